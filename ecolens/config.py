"""
Configuration module for the EcoLens service
Loads environment variables and provides settings
"""
from functools import lru_cache
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Application
    APP_ENV: str = "development"
    APP_DEBUG: bool = False
    ADMIN_API_KEY: str = "internal-admin-key"

    # Demo account served by GET /api/user
    DEMO_USER_ID: int = 1
    DEMO_USERNAME: str = "eco_user"
    DEMO_EMAIL: str = "user@ecolens.app"
    DEMO_FIREBASE_UID: str = "demo-uid"

    # Storage: "memory" (process-local) or "database" (SQLAlchemy)
    STORAGE_BACKEND: str = "memory"
    DATABASE_URL: str = "sqlite:///./ecolens.db"

    # Vision providers
    # Provider: "gemini", "clarifai", "demo", or "auto" (gemini -> clarifai -> demo)
    DETECTION_PROVIDER: str = "auto"
    GEMINI_API_KEY: str = ""
    GEMINI_API_URL: str = "https://generativelanguage.googleapis.com/v1beta"
    GEMINI_MODEL: str = "gemini-2.5-flash"
    CLARIFAI_API_KEY: str = ""
    CLARIFAI_API_URL: str = "https://api.clarifai.com/v2"
    CLARIFAI_MODEL_ID: str = "aaa03c23b3724a16a56b629203edc62c"  # general image recognition
    VISION_TIMEOUT_SEC: float = 30.0

    # Reward pipeline
    VERIFICATION_COIN_THRESHOLD: int = 10
    MAX_VERIFICATION_ATTEMPTS: int = 3
    VERIFICATION_WINDOW_HOURS: int = 24
    VERIFICATION_FRAUD_REJECT_THRESHOLD: int = 70
    FRAUD_FORCE_VERIFICATION_SCORE: int = 40

    # Anti-fraud limits
    MIN_DETECTION_CONFIDENCE: int = 60
    HIGH_VALUE_MIN_CONFIDENCE: int = 75
    RATE_LIMIT_WINDOW_MINUTES: int = 10
    RATE_LIMIT_MAX: int = 10
    SAME_ITEM_MAX: int = 3
    SAME_CLIENT_MAX: int = 8
    DAILY_DETECTION_LIMIT: int = 50
    RAPID_SCAN_WINDOW_MINUTES: int = 5
    RAPID_SCAN_MAX: int = 2
    OFF_HOURS_DAILY_MAX: int = 8
    DEVICE_DAILY_MAX: int = 30

    # Redemption
    QR_CURRENCY: str = "INR"

    class Config:
        env_file = ".env"
        extra = "allow"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


settings = get_settings()


def is_key_configured(api_key: str) -> bool:
    """Demo placeholders ("", "demo-key", ...) count as missing keys"""
    return bool(api_key) and not api_key.startswith("demo")
