"""
FastAPI dependencies for the EcoLens service
"""
from typing import Optional
from fastapi import HTTPException, Header, status
from ecolens.config import settings
from ecolens.storage import Storage, create_storage

_storage: Optional[Storage] = None


def get_storage() -> Storage:
    """Process-wide storage backend, built on first use"""
    global _storage
    if _storage is None:
        _storage = create_storage()
    return _storage


async def get_current_user_id(x_user_id: Optional[int] = Header(None)) -> int:
    """Acting user from X-User-Id; the demo account when absent"""
    return x_user_id if x_user_id is not None else settings.DEMO_USER_ID


async def verify_api_key(x_api_key: Optional[str] = Header(None)) -> str:
    """Verify API key for admin endpoints"""
    if not x_api_key or x_api_key != settings.ADMIN_API_KEY:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API key"
        )
    return x_api_key
