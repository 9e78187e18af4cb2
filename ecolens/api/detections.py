"""
Detections Router - record detections and Proof-in-Bin verification
"""
from fastapi import APIRouter, Depends, Header, Request
from typing import Optional

from ecolens.dependencies import get_current_user_id, get_storage
from ecolens.schemas.schemas import (
    DetectionRecordResponse,
    DetectionSubmission,
    VerifyRequest,
    VerifyResponse,
)
from ecolens.services.rewards_service import rewards_service
from ecolens.storage import Storage

router = APIRouter()


@router.post("/detections", response_model=DetectionRecordResponse)
async def create_detection(
    submission: DetectionSubmission,
    request: Request,
    user_agent: Optional[str] = Header(None),
    user_id: int = Depends(get_current_user_id),
    storage: Storage = Depends(get_storage)
):
    """
    Record a collected detection.

    Runs the anti-fraud checks first. Low-value items are credited at once;
    high-value or suspicious ones wait for Proof-in-Bin verification.
    """
    return rewards_service.record_detection(
        storage,
        user_id,
        submission,
        ip_address=request.client.host if request.client else None,
        user_agent=user_agent
    )


@router.post("/detections/{detection_id}/verify", response_model=VerifyResponse)
async def verify_detection(
    detection_id: int,
    body: VerifyRequest,
    storage: Storage = Depends(get_storage)
):
    """
    Verify disposal by comparing the item photo with a photo of it in the bin.

    Coins are credited only when the comparison passes.
    """
    return await rewards_service.verify_detection(storage, detection_id, body)
