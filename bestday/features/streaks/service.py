from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Dict, List, Optional

from sqlalchemy import insert, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from bestday.core.clock import Clock, SystemClock, local_date, utc_now
from bestday.core.config import settings
from bestday.core.database import get_db_session, user_streak_milestones, user_streaks
from bestday.core.logging import log_event
from bestday.features.coins.ledger import credit_coins
from bestday.features.stickers.service import grant_bonus_cards
from bestday.features.streaks.milestones import (
    load_active_milestones,
    milestone_reached,
    next_milestone,
)
from bestday.models.streak import StreakMilestone, UserStreak


class StreakService:
    """
    Daily login streaks with one-time milestone rewards.

    A day is a calendar day in the reference timezone. Each claim runs in a
    single transaction: the streak update, the milestone guard row, the coin
    credit and the bonus cards commit or roll back together.
    """

    def __init__(
        self,
        clock: Optional[Clock] = None,
        tz_name: Optional[str] = None,
        bonus_card_expiry_days: Optional[int] = None,
    ):
        self._clock = clock or SystemClock()
        self._tz_name = tz_name or settings.STREAK_TIMEZONE
        self._expiry_days = (
            bonus_card_expiry_days if bonus_card_expiry_days is not None else settings.BONUS_CARD_EXPIRY_DAYS
        )

    def today(self) -> date:
        return local_date(self._clock.now(), self._tz_name)

    def claim(self, user_id: str) -> Dict:
        now = utc_now(self._clock)
        today = local_date(now, self._tz_name)
        yesterday = today - timedelta(days=1)

        with get_db_session() as session:
            streak = self._get_or_create(session, user_id)

            if streak.last_login_date == today:
                return self._already_logged(streak)

            if streak.last_login_date == yesterday:
                new_streak = streak.current_streak + 1
            else:
                new_streak = 1

            new_longest = max(new_streak, streak.longest_streak)
            new_total = streak.total_login_days + 1

            milestones = load_active_milestones(session)
            upcoming = next_milestone(milestones, new_streak)

            result = session.execute(
                update(user_streaks)
                .where(user_streaks.c.user_id == user_id)
                .where(or_(user_streaks.c.last_login_date.is_(None), user_streaks.c.last_login_date != today))
                .values(
                    current_streak=new_streak,
                    longest_streak=new_longest,
                    last_login_date=today,
                    next_milestone_days=upcoming.days_required if upcoming else None,
                    total_login_days=new_total,
                    updated_at=now,
                )
            )
            if result.rowcount == 0:
                # A concurrent claim recorded today first
                current = self._load(session, user_id)
                return self._already_logged(current or streak)

            awarded: List[Dict] = []
            hit = milestone_reached(milestones, new_streak)
            if hit is not None:
                summary = self._award_milestone(session, user_id, hit, today=today, now=now)
                if summary:
                    awarded.append(summary)

        log_event(
            "info",
            "streak.claimed",
            user_id=user_id,
            event_type="streak.claimed",
            extra={"current_streak": new_streak, "day": today.isoformat(), "milestones_awarded": len(awarded)},
        )

        return {
            "success": True,
            "current_streak": new_streak,
            "longest_streak": new_longest,
            "total_login_days": new_total,
            "milestones_awarded": awarded,
            "next_milestone": upcoming.preview() if upcoming else None,
        }

    def get_state(self, user_id: str) -> Dict:
        """Streak row plus the active milestone ladder, for the streak meter."""
        with get_db_session() as session:
            streak = self._get_or_create(session, user_id)
            milestones = load_active_milestones(session)

        upcoming = next_milestone(milestones, streak.current_streak)
        state = streak.to_dict()
        state["claimed_today"] = streak.last_login_date == self.today()
        state["next_milestone"] = upcoming.to_dict() if upcoming else None
        state["milestones"] = [m.to_dict() for m in milestones]
        return state

    # Internal helpers -------------------------------------------------
    @staticmethod
    def _already_logged(streak: UserStreak) -> Dict:
        return {
            "success": False,
            "reason": "already_logged_today",
            "streak": streak.current_streak,
        }

    @staticmethod
    def _load(session: Session, user_id: str) -> Optional[UserStreak]:
        row = session.execute(select(user_streaks).where(user_streaks.c.user_id == user_id)).first()
        return UserStreak.from_row(row) if row else None

    def _get_or_create(self, session: Session, user_id: str) -> UserStreak:
        existing = self._load(session, user_id)
        if existing:
            return existing
        try:
            with session.begin_nested():
                session.execute(
                    insert(user_streaks).values(
                        user_id=user_id,
                        current_streak=0,
                        longest_streak=0,
                        total_login_days=0,
                    )
                )
        except IntegrityError:
            # Created by a concurrent request
            pass
        return self._load(session, user_id) or UserStreak(user_id=user_id)

    def _award_milestone(
        self,
        session: Session,
        user_id: str,
        milestone: StreakMilestone,
        *,
        today: date,
        now: datetime,
    ) -> Optional[Dict]:
        """Grant a milestone once per user; None if it was awarded before."""
        already = session.execute(
            select(user_streak_milestones.c.id)
            .where(user_streak_milestones.c.user_id == user_id)
            .where(user_streak_milestones.c.milestone_id == milestone.id)
        ).first()
        if already:
            return None

        try:
            with session.begin_nested():
                session.execute(
                    insert(user_streak_milestones).values(
                        user_id=user_id,
                        milestone_id=milestone.id,
                        coins_awarded=milestone.bonus_coins,
                        sticker_packs_awarded=milestone.free_sticker_packs,
                        awarded_at=now,
                    )
                )
        except IntegrityError:
            return None

        if milestone.bonus_coins > 0:
            credit_coins(
                session,
                user_id,
                milestone.bonus_coins,
                transaction_type="earned",
                description=f"{milestone.badge_name} streak milestone!",
            )

        if milestone.free_sticker_packs > 0:
            grant_bonus_cards(
                session,
                user_id,
                milestone.free_sticker_packs,
                day=today,
                now=now,
                expiry_days=self._expiry_days,
            )

        log_event(
            "info",
            "streak.milestone_awarded",
            user_id=user_id,
            event_type="streak.milestone_awarded",
            extra={
                "days_required": milestone.days_required,
                "bonus_coins": milestone.bonus_coins,
                "free_sticker_packs": milestone.free_sticker_packs,
            },
        )
        return milestone.award_summary()


# Singleton service used by routes
streak_service = StreakService()
