"""
Streak milestone ladder: lookup for the claim path and admin editing.
"""
from __future__ import annotations

from typing import Dict, List, Optional, Sequence

from sqlalchemy import insert, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from bestday.core.database import get_db_session, new_id, streak_milestones
from bestday.core.errors import ConflictError, NotFoundError, ValidationError
from bestday.models.streak import StreakMilestone

EDITABLE_FIELDS = (
    "days_required",
    "bonus_coins",
    "free_sticker_packs",
    "badge_name",
    "badge_icon",
    "description",
    "is_active",
)

# Optional columns a PATCH may reset to null
CLEARABLE_FIELDS = ("badge_icon", "description")


def load_active_milestones(session: Session) -> List[StreakMilestone]:
    """Active milestones ordered by days_required ascending."""
    rows = session.execute(
        select(streak_milestones)
        .where(streak_milestones.c.is_active.is_(True))
        .order_by(streak_milestones.c.days_required.asc())
    ).fetchall()
    return [StreakMilestone.from_row(row) for row in rows]


def next_milestone(milestones: Sequence[StreakMilestone], streak: int) -> Optional[StreakMilestone]:
    """Smallest milestone strictly above `streak`; `milestones` must be sorted."""
    for milestone in milestones:
        if milestone.days_required > streak:
            return milestone
    return None


def milestone_reached(milestones: Sequence[StreakMilestone], streak: int) -> Optional[StreakMilestone]:
    for milestone in milestones:
        if milestone.days_required == streak:
            return milestone
    return None


# Admin -------------------------------------------------------------


def _validate(values: Dict) -> None:
    if "days_required" in values and values["days_required"] is not None and values["days_required"] < 1:
        raise ValidationError("days_required must be at least 1")
    for key in ("bonus_coins", "free_sticker_packs"):
        if key in values and values[key] is not None and values[key] < 0:
            raise ValidationError(f"{key} must not be negative")
    if "badge_name" in values and values["badge_name"] is not None and not str(values["badge_name"]).strip():
        raise ValidationError("badge_name must not be empty")


def list_milestones() -> List[Dict]:
    """All milestones (active and inactive) for the admin panel."""
    with get_db_session() as session:
        rows = session.execute(
            select(streak_milestones).order_by(streak_milestones.c.days_required.asc())
        ).fetchall()
    return [StreakMilestone.from_row(row).to_dict() for row in rows]


def create_milestone(values: Dict) -> Dict:
    _validate(values)
    milestone_id = new_id()
    try:
        with get_db_session() as session:
            session.execute(insert(streak_milestones).values(id=milestone_id, **values))
    except IntegrityError:
        raise ConflictError(f"A milestone for {values.get('days_required')} days already exists")
    return get_milestone(milestone_id)


def get_milestone(milestone_id: str) -> Dict:
    with get_db_session() as session:
        row = session.execute(
            select(streak_milestones).where(streak_milestones.c.id == milestone_id)
        ).first()
    if not row:
        raise NotFoundError(f"Milestone {milestone_id} not found")
    return StreakMilestone.from_row(row).to_dict()


def update_milestone(milestone_id: str, changes: Dict) -> Dict:
    """Partial update; unknown keys are ignored, None clears only optional columns."""
    values = {
        k: v
        for k, v in changes.items()
        if k in EDITABLE_FIELDS and (v is not None or k in CLEARABLE_FIELDS)
    }
    _validate(values)
    if not values:
        return get_milestone(milestone_id)

    try:
        with get_db_session() as session:
            result = session.execute(
                update(streak_milestones)
                .where(streak_milestones.c.id == milestone_id)
                .values(**values)
            )
            if result.rowcount == 0:
                raise NotFoundError(f"Milestone {milestone_id} not found")
    except IntegrityError:
        raise ConflictError(f"A milestone for {values.get('days_required')} days already exists")
    return get_milestone(milestone_id)
