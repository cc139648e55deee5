"""
Coin wallet endpoints for the authenticated user.
"""
from typing import Dict

from fastapi import APIRouter, Depends

from bestday.core.auth import get_current_user_id
from bestday.features.coins.ledger import get_balance, get_transactions

router = APIRouter(prefix="/v1/coins", tags=["coins"])


@router.get("/balance")
def get_coin_balance(user_id: str = Depends(get_current_user_id)) -> Dict:
    return {"user_id": user_id, "coins": get_balance(user_id)}


@router.get("/transactions")
def get_coin_transactions(limit: int = 20, user_id: str = Depends(get_current_user_id)) -> Dict:
    """Recent ledger rows, newest first."""
    entries = get_transactions(user_id, limit)
    return {
        "user_id": user_id,
        "transactions": entries,
        "count": len(entries),
    }
