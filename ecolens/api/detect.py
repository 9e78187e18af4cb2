"""
Detect Router - classify waste items in a captured photo
"""
from typing import List
from fastapi import APIRouter

from ecolens.exceptions import ValidationFailedError
from ecolens.schemas.schemas import DetectRequest, DetectionResult
from ecolens.services.detection_service import detection_service

router = APIRouter()


@router.post("/detect", response_model=List[DetectionResult])
async def detect_items(request: DetectRequest):
    """
    Classify the items in an image.

    Accepts a data URL (``data:image/jpeg;base64,...``). Provider failures
    fall back to synthetic results, so the list is never empty.
    """
    if not request.image_data or not request.image_data.startswith("data:"):
        raise ValidationFailedError("Valid image data is required")

    items = await detection_service.detect(request.image_data)
    return [DetectionResult(**item.model_dump(exclude={"source"})) for item in items]
