"""
Admin-only streak milestone configuration.
"""
import logging
from typing import Dict, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field, field_validator

from bestday.core.admin_auth import AdminActor, require_admin
from bestday.core.logging import LOGGER_NAME
from bestday.features.streaks.milestones import create_milestone, list_milestones, update_milestone

logger = logging.getLogger(f"{LOGGER_NAME}.admin_streaks")

router = APIRouter(prefix="/v1/admin/streak-milestones", tags=["admin-streaks"])


class MilestoneCreate(BaseModel):
    days_required: int
    badge_name: str
    bonus_coins: int = 0
    free_sticker_packs: int = 0
    badge_icon: Optional[str] = None
    description: Optional[str] = None
    is_active: bool = True

    @field_validator("badge_name", "badge_icon", "description")
    @classmethod
    def _trim(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        return value.strip()


class MilestoneUpdate(BaseModel):
    days_required: Optional[int] = None
    badge_name: Optional[str] = None
    bonus_coins: Optional[int] = None
    free_sticker_packs: Optional[int] = None
    badge_icon: Optional[str] = None
    description: Optional[str] = None
    is_active: Optional[bool] = Field(default=None, description="Inactive milestones are never awarded")


@router.get("")
def get_milestones(actor: AdminActor = Depends(require_admin)) -> Dict:
    milestones = list_milestones()
    return {"milestones": milestones, "count": len(milestones)}


@router.post("", status_code=201)
def post_milestone(body: MilestoneCreate, actor: AdminActor = Depends(require_admin)) -> Dict:
    milestone = create_milestone(body.model_dump())
    logger.info(
        "admin.milestone_created",
        extra={"user_id": actor.actor_id, "event_type": "admin.milestone_created"},
    )
    return milestone


@router.patch("/{milestone_id}")
def patch_milestone(milestone_id: str, body: MilestoneUpdate, actor: AdminActor = Depends(require_admin)) -> Dict:
    milestone = update_milestone(milestone_id, body.model_dump(exclude_unset=True))
    logger.info(
        "admin.milestone_updated",
        extra={"user_id": actor.actor_id, "event_type": "admin.milestone_updated"},
    )
    return milestone
