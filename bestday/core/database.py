"""
Database configuration and connection management.

This module provides:
- SQLAlchemy engine and session management
- Connection pooling with sane defaults (StaticPool for in-memory SQLite)
- Test database support
- Table definitions shared by every feature
"""
from typing import Optional
from contextlib import contextmanager
from uuid import uuid4
from sqlalchemy import create_engine, event, MetaData, Table, Column, Integer, String, Date, DateTime, Boolean, Text, Index, ForeignKey, UniqueConstraint, CheckConstraint, BigInteger
from sqlalchemy.pool import QueuePool, StaticPool
from sqlalchemy.orm import sessionmaker
from sqlalchemy.sql import func, true, false
import os

from bestday.core.config import settings

# SQLAlchemy metadata for table definitions
metadata = MetaData()

# Connection pooling configuration
POOL_SIZE = 10
MAX_OVERFLOW = 20
POOL_TIMEOUT = 30
POOL_RECYCLE = 3600  # Recycle connections after 1 hour

# Global engine and session factory
_engine = None
_SessionLocal = None


def new_id() -> str:
    return str(uuid4())


def get_database_url() -> Optional[str]:
    """
    Get the database URL from settings or environment.

    For testing, use TEST_DATABASE_URL if available.
    """
    test_url = os.getenv("TEST_DATABASE_URL")
    if test_url:
        return test_url

    return os.getenv("DATABASE_URL") or settings.DATABASE_URL


def _enable_sqlite_savepoints(engine) -> None:
    """Let SQLAlchemy own BEGIN on pysqlite so SAVEPOINT nests correctly."""

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def init_engine(database_url: Optional[str] = None):
    """
    Initialize the SQLAlchemy engine.

    Args:
        database_url: Optional override for DATABASE_URL
    """
    global _engine, _SessionLocal

    url = database_url or get_database_url()

    if not url:
        raise ValueError(
            "DATABASE_URL is not configured. "
            "Set DATABASE_URL in environment or .env file."
        )

    if url.startswith("sqlite"):
        # Single shared connection so in-memory databases survive across sessions
        _engine = create_engine(
            url,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
        _enable_sqlite_savepoints(_engine)
    else:
        _engine = create_engine(
            url,
            poolclass=QueuePool,
            pool_size=POOL_SIZE,
            max_overflow=MAX_OVERFLOW,
            pool_timeout=POOL_TIMEOUT,
            pool_recycle=POOL_RECYCLE,
            echo=False,  # Set to True for SQL query logging
        )

    _SessionLocal = sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=_engine
    )

    return _engine


def get_engine():
    """Get the current SQLAlchemy engine."""
    global _engine
    if _engine is None:
        init_engine()
    return _engine


def get_session_factory():
    """Get the session factory."""
    global _SessionLocal
    if _SessionLocal is None:
        init_engine()
    return _SessionLocal


@contextmanager
def get_db_session():
    """
    Context manager for a transactional database session.

    Everything executed inside the block commits together on exit and
    rolls back together if the block raises.

    Usage:
        with get_db_session() as session:
            session.execute(...)
    """
    SessionLocal = get_session_factory()
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def create_all_tables():
    """
    Create all tables defined in metadata.

    This is idempotent - tables that already exist will not be recreated.
    """
    engine = get_engine()
    metadata.create_all(bind=engine)


def drop_all_tables():
    """
    Drop all tables defined in metadata.

    WARNING: This is destructive! Only use in tests or development.
    """
    engine = get_engine()
    metadata.drop_all(bind=engine)


def reset_database():
    """
    Reset the database by dropping and recreating all tables.

    WARNING: This is destructive! Only use in tests.
    """
    drop_all_tables()
    create_all_tables()


# Profiles hold the coin wallet
profiles = Table(
    'profiles',
    metadata,
    Column('id', String(100), primary_key=True),
    Column('display_name', Text, nullable=True),
    Column('coins', Integer, nullable=False, server_default='0'),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    CheckConstraint('coins >= 0', name='ck_profiles_coins_non_negative'),
)

user_roles = Table(
    'user_roles',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('user_id', String(100), nullable=False, index=True),
    Column('role', String(50), nullable=False),  # 'admin', 'owner', 'guardian', 'bestie', ...
    UniqueConstraint('user_id', 'role', name='uq_user_roles_user_role'),
)

# One row per user, mutated at most once per reference-timezone day
user_streaks = Table(
    'user_streaks',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('user_id', String(100), nullable=False, unique=True),
    Column('current_streak', Integer, nullable=False, server_default='0'),
    Column('longest_streak', Integer, nullable=False, server_default='0'),
    Column('last_login_date', Date, nullable=True),
    Column('total_login_days', Integer, nullable=False, server_default='0'),
    Column('next_milestone_days', Integer, nullable=True),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Column('updated_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    CheckConstraint('current_streak >= 0', name='ck_user_streaks_current_non_negative'),
    CheckConstraint('current_streak <= longest_streak', name='ck_user_streaks_current_le_longest'),
)

streak_milestones = Table(
    'streak_milestones',
    metadata,
    Column('id', String(36), primary_key=True, default=new_id),
    Column('days_required', Integer, nullable=False, unique=True),
    Column('bonus_coins', Integer, nullable=False, server_default='0'),
    Column('free_sticker_packs', Integer, nullable=False, server_default='0'),
    Column('badge_name', String(200), nullable=False),
    Column('badge_icon', String(50), nullable=True),
    Column('description', Text, nullable=True),
    Column('is_active', Boolean, nullable=False, server_default=true()),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Index('idx_streak_milestones_active_days', 'is_active', 'days_required'),
)

# Existence of a row is the guard against awarding the same milestone twice
user_streak_milestones = Table(
    'user_streak_milestones',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('user_id', String(100), nullable=False, index=True),
    Column('milestone_id', String(36), ForeignKey('streak_milestones.id'), nullable=False),
    Column('coins_awarded', Integer, nullable=False, server_default='0'),
    Column('sticker_packs_awarded', Integer, nullable=False, server_default='0'),
    Column('awarded_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    UniqueConstraint('user_id', 'milestone_id', name='uq_user_streak_milestones_user_milestone'),
)

# Append-only coin ledger
coin_transactions = Table(
    'coin_transactions',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('user_id', String(100), nullable=False),
    Column('amount', Integer, nullable=False),
    Column('transaction_type', String(50), nullable=False),  # 'earned', 'spent', 'admin_adjustment', ...
    Column('description', Text, nullable=True),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Index('idx_coin_transactions_user_created', 'user_id', 'created_at'),
)

sticker_collections = Table(
    'sticker_collections',
    metadata,
    Column('id', String(36), primary_key=True, default=new_id),
    Column('name', String(200), nullable=False),
    Column('is_active', Boolean, nullable=False, server_default=true()),
    Column('is_featured', Boolean, nullable=False, server_default=false()),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
)

daily_scratch_cards = Table(
    'daily_scratch_cards',
    metadata,
    Column('id', String(36), primary_key=True, default=new_id),
    Column('user_id', String(100), nullable=False),
    Column('date', Date, nullable=False),
    Column('collection_id', String(36), ForeignKey('sticker_collections.id'), nullable=False),
    Column('is_bonus_card', Boolean, nullable=False, server_default=false()),
    Column('purchase_number', BigInteger, nullable=True),
    Column('is_scratched', Boolean, nullable=False, server_default=false()),
    Column('expires_at', DateTime(timezone=True), nullable=True),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Index('idx_daily_scratch_cards_user_date', 'user_id', 'date'),
)

order_items = Table(
    'order_items',
    metadata,
    Column('id', String(36), primary_key=True, default=new_id),
    Column('order_id', String(36), nullable=True, index=True),
    Column('tracking_number', String(100), nullable=True),
    Column('carrier', String(100), nullable=True),
    Column('fulfillment_status', String(50), nullable=False, server_default='pending'),
    Column('delivered_at', DateTime(timezone=True), nullable=True),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Index('idx_order_items_fulfillment_status', 'fulfillment_status'),
)

bike_ride_pledges = Table(
    'bike_ride_pledges',
    metadata,
    Column('id', String(36), primary_key=True, default=new_id),
    Column('pledger_email', String(320), nullable=False),
    Column('stripe_setup_intent_id', String(100), nullable=True),
    Column('stripe_mode', String(10), nullable=False, server_default='test'),  # 'live' | 'test'
    Column('charge_status', String(50), nullable=False, server_default='pending'),
    Column('charge_error', Text, nullable=True),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Index('idx_bike_ride_pledges_status_created', 'charge_status', 'created_at'),
)

# Scheduled/admin job executions
job_runs = Table(
    'job_runs',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('job_name', String(100), nullable=False, index=True),
    Column('started_at', DateTime(timezone=True), nullable=False),
    Column('finished_at', DateTime(timezone=True), nullable=True),
    Column('status', String(50), nullable=False),
    Column('stats_json', Text, nullable=True),
)
