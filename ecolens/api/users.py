"""
Users Router - profile, stats, achievements and detection history
"""
from typing import List
from fastapi import APIRouter, Depends, Query

from ecolens.dependencies import get_current_user_id, get_storage
from ecolens.exceptions import NotFoundError
from ecolens.schemas.schemas import Achievement, Detection, Stats, User, UserUpdateRequest
from ecolens.services.user_service import user_service
from ecolens.storage import Storage

router = APIRouter()


def _stats_or_404(storage: Storage, user_id: int) -> Stats:
    stats = storage.get_user_stats(user_id)
    if stats is None:
        raise NotFoundError("User stats not found")
    return stats


@router.get("/user", response_model=User)
async def get_user(storage: Storage = Depends(get_storage)):
    """Get (or lazily create) the demo user"""
    return user_service.get_or_create_demo_user(storage)


@router.put("/user", response_model=User)
async def update_user(
    request: UserUpdateRequest,
    user_id: int = Depends(get_current_user_id),
    storage: Storage = Depends(get_storage)
):
    return user_service.update_profile(storage, user_id, request.username, request.email)


@router.get("/stats", response_model=Stats)
async def get_stats(
    user_id: int = Depends(get_current_user_id),
    storage: Storage = Depends(get_storage)
):
    return _stats_or_404(storage, user_id)


@router.get("/user/{user_id}/stats", response_model=Stats)
async def get_user_stats(user_id: int, storage: Storage = Depends(get_storage)):
    return _stats_or_404(storage, user_id)


@router.get("/achievements", response_model=List[Achievement])
async def get_achievements(
    user_id: int = Depends(get_current_user_id),
    storage: Storage = Depends(get_storage)
):
    return storage.get_user_achievements(user_id)


@router.get("/user/{user_id}/achievements", response_model=List[Achievement])
async def get_user_achievements(user_id: int, storage: Storage = Depends(get_storage)):
    return storage.get_user_achievements(user_id)


@router.get("/user/{user_id}/detections", response_model=List[Detection])
async def get_user_detections(
    user_id: int,
    limit: int = Query(None, ge=1, le=500, description="Maximum records to return"),
    storage: Storage = Depends(get_storage)
):
    """Detection history, newest first"""
    return storage.get_user_detections(user_id, limit)
