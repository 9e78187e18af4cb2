"""
Admin Router - raw listings and fraud monitoring (X-API-Key protected)
"""
from typing import Any, Dict, List
from fastapi import APIRouter, Depends

from ecolens.dependencies import get_storage, verify_api_key
from ecolens.schemas.schemas import Achievement, Detection, Stats, Transaction, User
from ecolens.services.fraud_service import fraud_service
from ecolens.storage import Storage

router = APIRouter(dependencies=[Depends(verify_api_key)])


@router.get("/users", response_model=List[User])
async def list_users(storage: Storage = Depends(get_storage)):
    return storage.get_all_users()


@router.get("/detections", response_model=List[Detection])
async def list_detections(storage: Storage = Depends(get_storage)):
    return storage.get_all_detections()


@router.get("/stats", response_model=List[Stats])
async def list_stats(storage: Storage = Depends(get_storage)):
    return storage.get_all_stats()


@router.get("/achievements", response_model=List[Achievement])
async def list_achievements(storage: Storage = Depends(get_storage)):
    return storage.get_all_achievements()


@router.get("/transactions", response_model=List[Transaction])
async def list_transactions(storage: Storage = Depends(get_storage)):
    return storage.get_all_transactions()


@router.get("/fraud-monitoring")
async def fraud_monitoring(storage: Storage = Depends(get_storage)) -> Dict[str, Any]:
    """
    Fraud report for the last 24 hours.

    Suspicious detections (fraud score > 50), users with more than 15
    detections, and image hashes submitted more than once.
    """
    return fraud_service.get_fraud_monitoring(storage)
