from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import List

from sqlalchemy import insert, select
from sqlalchemy.orm import Session

from bestday.core.database import new_id, daily_scratch_cards, sticker_collections
from bestday.core.logging import log_event


def get_featured_collection_id(session: Session):
    row = session.execute(
        select(sticker_collections.c.id)
        .where(sticker_collections.c.is_active.is_(True))
        .where(sticker_collections.c.is_featured.is_(True))
        .order_by(sticker_collections.c.created_at.desc())
        .limit(1)
    ).first()
    return row.id if row else None


def grant_bonus_cards(
    session: Session,
    user_id: str,
    count: int,
    *,
    day: date,
    now: datetime,
    expiry_days: int = 7,
) -> List[str]:
    """
    Grant `count` bonus scratch cards in the featured collection.

    Cards expire `expiry_days` after `now`. Without an active featured
    collection nothing is granted.
    """
    if count <= 0:
        return []

    collection_id = get_featured_collection_id(session)
    if collection_id is None:
        log_event(
            "warning",
            "stickers.no_featured_collection",
            user_id=user_id,
            event_type="stickers.grant_skipped",
            extra={"requested": count},
        )
        return []

    expires_at = now + timedelta(days=expiry_days)
    base_number = int(now.timestamp() * 1000)
    card_ids = []
    for i in range(count):
        card_id = new_id()
        session.execute(
            insert(daily_scratch_cards).values(
                id=card_id,
                user_id=user_id,
                date=day,
                collection_id=collection_id,
                is_bonus_card=True,
                purchase_number=base_number + i,
                expires_at=expires_at,
            )
        )
        card_ids.append(card_id)
    return card_ids
