"""
Profile domain service.
- ensure_profile(session, user_id)
"""

from sqlalchemy import select, insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from bestday.core.database import profiles


def ensure_profile(session: Session, user_id: str) -> None:
    """Create an empty profile for user_id if none exists yet."""
    existing = session.execute(select(profiles.c.id).where(profiles.c.id == user_id)).first()
    if existing:
        return
    try:
        with session.begin_nested():
            session.execute(insert(profiles).values(id=user_id, coins=0))
    except IntegrityError:
        # Created by a concurrent request; the row we need exists now
        return

