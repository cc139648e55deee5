from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Optional


@dataclass
class UserStreak:
    """
    Per-user login streak. Days are calendar days in the reference timezone.
    """

    user_id: str
    current_streak: int = 0
    longest_streak: int = 0
    last_login_date: Optional[date] = None
    total_login_days: int = 0
    next_milestone_days: Optional[int] = None

    @classmethod
    def from_row(cls, row) -> "UserStreak":
        return cls(
            user_id=row.user_id,
            current_streak=row.current_streak or 0,
            longest_streak=row.longest_streak or 0,
            last_login_date=_as_date(row.last_login_date),
            total_login_days=row.total_login_days or 0,
            next_milestone_days=row.next_milestone_days,
        )

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "current_streak": self.current_streak,
            "longest_streak": self.longest_streak,
            "last_login_date": self.last_login_date.isoformat() if self.last_login_date else None,
            "total_login_days": self.total_login_days,
            "next_milestone_days": self.next_milestone_days,
        }


@dataclass(frozen=True)
class StreakMilestone:
    id: str
    days_required: int
    bonus_coins: int = 0
    free_sticker_packs: int = 0
    badge_name: str = ""
    badge_icon: Optional[str] = None
    description: Optional[str] = None
    is_active: bool = True

    @classmethod
    def from_row(cls, row) -> "StreakMilestone":
        return cls(
            id=row.id,
            days_required=row.days_required,
            bonus_coins=row.bonus_coins or 0,
            free_sticker_packs=row.free_sticker_packs or 0,
            badge_name=row.badge_name,
            badge_icon=row.badge_icon,
            description=row.description,
            is_active=bool(row.is_active),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "days_required": self.days_required,
            "bonus_coins": self.bonus_coins,
            "free_sticker_packs": self.free_sticker_packs,
            "badge_name": self.badge_name,
            "badge_icon": self.badge_icon,
            "description": self.description,
            "is_active": self.is_active,
        }

    def award_summary(self) -> dict:
        return {
            "badge_name": self.badge_name,
            "badge_icon": self.badge_icon,
            "bonus_coins": self.bonus_coins,
            "free_sticker_packs": self.free_sticker_packs,
            "description": self.description,
        }

    def preview(self) -> dict:
        return {
            "days_required": self.days_required,
            "badge_name": self.badge_name,
            "bonus_coins": self.bonus_coins,
        }


def _as_date(value) -> Optional[date]:
    if value is None or isinstance(value, date):
        return value
    return date.fromisoformat(str(value))
