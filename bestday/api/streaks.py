"""
Daily login streak endpoints.
"""
from __future__ import annotations

from typing import Dict

from fastapi import APIRouter, Depends

from bestday.core.auth import get_current_user_id
from bestday.core.database import get_db_session
from bestday.core.errors import AppError, StreakClaimError
from bestday.core.logging import log_event
from bestday.features.streaks.milestones import load_active_milestones
from bestday.features.streaks.service import StreakService, streak_service

router = APIRouter(prefix="/v1/streaks", tags=["streaks"])


def get_streak_service() -> StreakService:
    """Overridden in tests to inject a fixed clock."""
    return streak_service


@router.post("/claim")
def claim_streak(
    user_id: str = Depends(get_current_user_id),
    service: StreakService = Depends(get_streak_service),
) -> Dict:
    """Record today's login and award any milestone it completes."""
    try:
        return service.claim(user_id)
    except AppError:
        raise
    except Exception as e:
        # Surface the cause; the claim transaction has already rolled back
        log_event(
            "error",
            "streak.claim_failed",
            user_id=user_id,
            event_type="streak.claim_failed",
            error_code=StreakClaimError.code,
            extra={"error": str(e)},
        )
        raise StreakClaimError(str(e))


@router.get("/current")
def get_current_streak(
    user_id: str = Depends(get_current_user_id),
    service: StreakService = Depends(get_streak_service),
) -> Dict:
    return service.get_state(user_id)


@router.get("/milestones")
def get_active_milestones(user_id: str = Depends(get_current_user_id)) -> Dict:
    with get_db_session() as session:
        milestones = load_active_milestones(session)
    return {"milestones": [m.to_dict() for m in milestones]}
