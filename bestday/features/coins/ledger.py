"""
Coin wallet and ledger.

The balance lives on profiles.coins; every change appends a row to
coin_transactions in the same transaction.
"""
from __future__ import annotations

from typing import Dict, List, Literal, Optional

from sqlalchemy import insert, select, update
from sqlalchemy.orm import Session

from bestday.core.database import coin_transactions, get_db_session, profiles
from bestday.core.errors import ValidationError
from bestday.core.clock import as_utc
from bestday.features.users.service import ensure_profile

TransactionType = Literal["earned", "spent", "admin_adjustment"]

MAX_LEDGER_PAGE = 100


def credit_coins(
    session: Session,
    user_id: str,
    amount: int,
    *,
    transaction_type: TransactionType = "earned",
    description: Optional[str] = None,
) -> int:
    """
    Add `amount` coins to the user's balance and append a ledger row.

    Runs inside the caller's transaction. Returns the new balance.
    """
    if amount <= 0:
        raise ValidationError("amount must be positive")

    ensure_profile(session, user_id)
    session.execute(
        update(profiles)
        .where(profiles.c.id == user_id)
        .values(coins=profiles.c.coins + amount)
    )
    session.execute(
        insert(coin_transactions).values(
            user_id=user_id,
            amount=amount,
            transaction_type=transaction_type,
            description=description,
        )
    )
    return get_balance_in_session(session, user_id)


def get_balance_in_session(session: Session, user_id: str) -> int:
    row = session.execute(select(profiles.c.coins).where(profiles.c.id == user_id)).first()
    return int(row.coins) if row else 0


def get_balance(user_id: str) -> int:
    with get_db_session() as session:
        return get_balance_in_session(session, user_id)


def get_transactions(user_id: str, limit: int = 20) -> List[Dict]:
    """Recent ledger rows for user, newest first."""
    if limit < 1 or limit > MAX_LEDGER_PAGE:
        raise ValidationError(f"limit must be between 1 and {MAX_LEDGER_PAGE}")

    with get_db_session() as session:
        rows = session.execute(
            select(coin_transactions)
            .where(coin_transactions.c.user_id == user_id)
            .order_by(coin_transactions.c.created_at.desc(), coin_transactions.c.id.desc())
            .limit(limit)
        ).fetchall()

    entries = []
    for row in rows:
        created_at = as_utc(row.created_at)
        entries.append({
            "id": row.id,
            "amount": row.amount,
            "transaction_type": row.transaction_type,
            "description": row.description,
            "created_at": created_at.isoformat() if created_at else None,
        })
    return entries
