"""
Transactions Router - wallet history and QR redemption
"""
from typing import List
from fastapi import APIRouter, Depends

from ecolens.dependencies import get_current_user_id, get_storage
from ecolens.schemas.schemas import QRRequest, QRResponse, Transaction
from ecolens.services.rewards_service import rewards_service
from ecolens.storage import Storage

router = APIRouter()


@router.get("/transactions", response_model=List[Transaction])
async def get_transactions(
    user_id: int = Depends(get_current_user_id),
    storage: Storage = Depends(get_storage)
):
    """Current user's transactions, newest first"""
    return storage.get_user_transactions(user_id)


@router.post("/transactions/qr", response_model=QRResponse)
async def generate_qr(
    request: QRRequest,
    user_id: int = Depends(get_current_user_id),
    storage: Storage = Depends(get_storage)
):
    """
    Spend coins for a redemption QR code.

    The QR image encodes ``{"code", "value", "currency", "generated"}``.
    """
    return rewards_service.issue_redemption_qr(storage, user_id, request.amount, request.value)
