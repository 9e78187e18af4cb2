"""
Pydantic Schemas for the EcoLens API.
Stored records, insert models and request/response bodies.
"""
from pydantic import BaseModel, ConfigDict, Field, EmailStr, field_validator
from typing import Optional, List, Dict, Any
from datetime import datetime, timezone
from enum import Enum


# ============================================
# ENUMS
# ============================================
class BinType(str, Enum):
    recyclable = "recyclable"
    compost = "compost"
    landfill = "landfill"


class TransactionType(str, Enum):
    earn = "earn"
    spend = "spend"


class VerificationStatus(str, Enum):
    pending = "pending"
    verified = "verified"
    rejected = "rejected"


class MaterialCategory(str, Enum):
    plastic = "plastic"
    paper = "paper"
    glass = "glass"
    metal = "metal"
    other = "other"


class GoalType(str, Enum):
    daily = "daily"
    weekly = "weekly"
    monthly = "monthly"


class GoalTarget(str, Enum):
    detections = "detections"
    coins = "coins"
    items = "items"


class _Record(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# ============================================
# USER SCHEMAS
# ============================================
class UserCreate(BaseModel):
    """Insert model for users."""
    username: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    firebase_uid: Optional[str] = None


class User(_Record):
    id: int
    username: str
    email: str
    firebase_uid: Optional[str] = None
    green_coins: int = Field(0, ge=0)
    total_earned: int = Field(0, ge=0)
    created_at: datetime


class UserUpdateRequest(BaseModel):
    """PUT /api/user body."""
    username: str = Field(..., min_length=1, max_length=100)
    email: EmailStr


# ============================================
# DETECTION SCHEMAS
# ============================================
class DetectedObject(BaseModel):
    """One classified item embedded in a detection record."""
    name: str
    confidence: int = Field(..., ge=0, le=100)
    bin_type: BinType
    coins_reward: int = Field(0, ge=0)


class DetectionItem(BaseModel):
    """Classifier output for a single item."""
    name: str
    confidence: int = Field(..., ge=0, le=100)
    bin_type: BinType
    bin_color: str
    coins_reward: int = Field(..., ge=0)
    source: str = Field("fallback", description="gemini, clarifai or fallback")


class DetectionResult(BaseModel):
    """Public view of a classifier result; the provider is not exposed."""
    name: str
    confidence: int
    bin_type: BinType
    bin_color: str
    coins_reward: int


class DetectRequest(BaseModel):
    """POST /api/detect body."""
    image_data: Optional[str] = Field(None, description="Image as a data URL")


class DetectionCreate(BaseModel):
    """Insert model for detections."""
    user_id: int
    image_url: Optional[str] = None
    image_hash: Optional[str] = None
    detected_objects: List[DetectedObject] = []
    confidence_score: Optional[int] = None
    coins_earned: int = 0
    is_verified: bool = False
    verification_status: VerificationStatus = VerificationStatus.pending
    verification_attempts: int = 0
    fraud_score: int = Field(0, ge=0, le=100)
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


class Detection(_Record):
    id: int
    user_id: int
    image_url: Optional[str] = None
    image_hash: Optional[str] = None
    detected_objects: List[DetectedObject] = []
    confidence_score: Optional[int] = None
    coins_earned: int = 0
    is_verified: bool = False
    verification_status: VerificationStatus = VerificationStatus.pending
    verification_attempts: int = 0
    verification_image_hash: Optional[str] = None
    fraud_score: int = 0
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: datetime
    verified_at: Optional[datetime] = None


class DetectionSubmission(BaseModel):
    """POST /api/detections body: the item the user chose to collect."""
    item_name: str = Field("Unknown Item", max_length=200)
    confidence: int = Field(80, ge=0, le=100)
    bin_type: BinType = BinType.landfill
    coins_awarded: int = Field(0, ge=0)
    needs_verification: bool = False
    image_hash: Optional[str] = None
    image_data: Optional[str] = Field(None, description="Captured item photo as data URL")


class RateLimitInfo(BaseModel):
    remaining: int
    reset_time: datetime
    daily_remaining: int


class DetectionRecordResponse(BaseModel):
    success: bool = True
    detection: Detection
    coins_awarded: int
    fraud_score: int
    requires_verification: bool
    verification_reason: Optional[str] = None
    rate_limit: RateLimitInfo
    behavior_warnings: List[str] = []


class VerifyRequest(BaseModel):
    """POST /api/detections/{id}/verify body."""
    bin_image: str = Field(..., min_length=1, description="Disposal photo as data URL")
    item_image: Optional[str] = Field(None, description="Original item photo; defaults to the stored one")
    item_captured_at: Optional[datetime] = None
    bin_captured_at: Optional[datetime] = None

    @field_validator("item_captured_at", "bin_captured_at")
    @classmethod
    def to_naive_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        """Stored timestamps are naive UTC; offset-aware input is converted"""
        if value is not None and value.tzinfo is not None:
            return value.astimezone(timezone.utc).replace(tzinfo=None)
        return value


class BinComparison(BaseModel):
    """Result of comparing the item photo with the disposal photo."""
    is_matching_object: bool
    match_score: int = Field(..., ge=0, le=100)
    item_identified: str = ""
    bin_item_identified: str = ""
    confidence: int = Field(..., ge=0, le=100)
    reasoning: str = ""
    fraud_risk: int = Field(..., ge=0, le=100)


class VerifyResponse(BaseModel):
    success: bool = True
    detection: Detection
    coins_awarded: int
    match_score: int
    fraud_score: int
    verification_notes: str


# ============================================
# TRANSACTION SCHEMAS
# ============================================
class TransactionCreate(BaseModel):
    """Insert model for transactions; amount is always positive."""
    user_id: int
    type: TransactionType
    amount: int = Field(..., gt=0)
    description: str
    detection_id: Optional[int] = None
    qr_code: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


class Transaction(_Record):
    id: int
    user_id: int
    type: TransactionType
    amount: int
    description: str
    detection_id: Optional[int] = None
    qr_code: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    created_at: datetime


class QRRequest(BaseModel):
    """POST /api/transactions/qr body."""
    amount: Optional[int] = Field(None, description="Coins to spend")
    value: Optional[float] = Field(None, description="Currency value of the voucher")


class QRResponse(BaseModel):
    success: bool = True
    qr_code_image: str
    qr_data: str
    redemption_code: str
    value: float
    currency: str
    transaction: Transaction


# ============================================
# STATS / ACHIEVEMENT SCHEMAS
# ============================================
class Stats(_Record):
    id: int
    user_id: int
    total_detections: int = 0
    total_coins_earned: int = 0
    total_coins_spent: int = 0
    streak_days: int = 0
    plastic_items_detected: int = 0
    paper_items_detected: int = 0
    glass_items_detected: int = 0
    metal_items_detected: int = 0
    favorite_material: Optional[MaterialCategory] = None
    last_detection_at: Optional[datetime] = None


class AchievementCreate(BaseModel):
    user_id: int
    achievement_type: str
    title: str
    description: str
    icon_type: Optional[str] = None


class Achievement(_Record):
    id: int
    user_id: int
    achievement_type: str
    title: str
    description: str
    icon_type: Optional[str] = None
    unlocked_at: datetime


# ============================================
# ANALYTICS SCHEMAS
# ============================================
class PersonalGoalCreate(BaseModel):
    goal_type: GoalType
    target_type: GoalTarget
    target_value: int = Field(..., gt=0)
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    end_date: Optional[datetime] = None


class PersonalGoal(_Record):
    id: int
    user_id: int
    goal_type: GoalType
    target_type: GoalTarget
    target_value: int
    title: str
    description: Optional[str] = None
    current_progress: int = 0
    is_active: bool = True
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: datetime


class GoalProgressRequest(BaseModel):
    progress: int = Field(..., ge=0)


class EnvironmentalImpactUpdate(BaseModel):
    """PATCH body; only supplied fields change."""
    total_co2_saved: Optional[float] = Field(None, ge=0)
    total_water_saved: Optional[float] = Field(None, ge=0)
    total_energy_saved: Optional[float] = Field(None, ge=0)
    trees_saved: Optional[float] = Field(None, ge=0)
    landfill_diverted: Optional[float] = Field(None, ge=0)
    recycling_score: Optional[int] = Field(None, ge=0)


class EnvironmentalImpact(_Record):
    id: int
    user_id: int
    total_co2_saved: float = 0.0
    total_water_saved: float = 0.0
    total_energy_saved: float = 0.0
    trees_saved: float = 0.0
    landfill_diverted: float = 0.0
    recycling_score: int = 0
    last_updated: Optional[datetime] = None


class ReminderCreate(BaseModel):
    reminder_type: str = Field(..., min_length=1, max_length=30)
    title: str = Field(..., min_length=1, max_length=255)
    message: str
    schedule_time: Optional[str] = Field(None, pattern=r"^([01]\d|2[0-3]):[0-5]\d$")
    is_active: bool = True
    next_scheduled: Optional[datetime] = None


class UserReminder(_Record):
    id: int
    user_id: int
    reminder_type: str
    title: str
    message: str
    schedule_time: Optional[str] = None
    is_active: bool = True
    next_scheduled: Optional[datetime] = None
    last_sent: Optional[datetime] = None
    created_at: datetime


class HabitEntryCreate(BaseModel):
    date: datetime
    detections_count: int = Field(0, ge=0)
    coins_earned: int = Field(0, ge=0)
    time_spent_minutes: int = Field(0, ge=0)
    favorite_time: Optional[str] = None
    item_types: Optional[Dict[str, int]] = None
    mood_rating: Optional[int] = Field(None, ge=1, le=5)
    notes: Optional[str] = None


class HabitAnalytics(_Record):
    id: int
    user_id: int
    date: datetime
    detections_count: int = 0
    coins_earned: int = 0
    time_spent_minutes: int = 0
    favorite_time: Optional[str] = None
    item_types: Optional[Dict[str, int]] = None
    mood_rating: Optional[int] = None
    notes: Optional[str] = None


class HabitInsights(BaseModel):
    average_daily_detections: float = 0.0
    best_streak: int = 0
    favorite_time: Optional[str] = None
    weekday_pattern: Dict[str, int] = {}
    total_days_tracked: int = 0


# ============================================
# SYSTEM SCHEMAS
# ============================================
class HealthResponse(BaseModel):
    status: str
    storage: str
    providers: Dict[str, bool]
    timestamp: datetime
