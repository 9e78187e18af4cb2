"""
System Router - Health checks
"""
from datetime import datetime
from fastapi import APIRouter, Depends

from ecolens.dependencies import get_storage
from ecolens.schemas.schemas import HealthResponse
from ecolens.services.detection_service import detection_service
from ecolens.storage import Storage

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health_check(storage: Storage = Depends(get_storage)):
    """
    Health check returning the storage backend and which vision
    providers have credentials. Detection works without any provider.
    """
    return HealthResponse(
        status="healthy",
        storage=storage.name,
        providers=detection_service.provider_status(),
        timestamp=datetime.utcnow()
    )
