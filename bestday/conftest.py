# bestday/conftest.py
import os
from datetime import datetime, timedelta, timezone

import jwt
import pytest
from sqlalchemy import insert

os.environ.setdefault("SKIP_ENV_VALIDATION", "1")

from bestday.core.clock import FixedClock
from bestday.core.config import settings
from bestday.core.database import (
    init_engine,
    reset_database,
    get_db_session,
    new_id,
    streak_milestones,
    sticker_collections,
    user_roles,
)

TEST_JWT_SECRET = "test-jwt-secret"
TEST_ADMIN_KEY = "test-admin-key"


@pytest.fixture(scope="function", autouse=True)
def test_settings(monkeypatch):
    """Pin auth and timezone settings so tests never depend on a local .env."""
    monkeypatch.setattr(settings, "AUTH_JWT_SECRET", TEST_JWT_SECRET)
    monkeypatch.setattr(settings, "AUTH_JWT_AUDIENCE", None)
    monkeypatch.setattr(settings, "ADMIN_KEY", TEST_ADMIN_KEY)
    monkeypatch.setattr(settings, "ADMIN_AUTH_MODE", "hybrid")
    monkeypatch.setattr(settings, "ENVIRONMENT", "test")
    monkeypatch.setattr(settings, "STREAK_TIMEZONE", "America/Denver")
    monkeypatch.setattr(settings, "AFTERSHIP_REQUEST_DELAY_SECONDS", 0)
    yield settings


@pytest.fixture(scope="function", autouse=True)
def db():
    """
    Fresh in-memory SQLite database per test.

    StaticPool keeps one connection so every session sees the same data.
    """
    engine = init_engine("sqlite://")
    reset_database()
    yield engine
    engine.dispose()


@pytest.fixture
def clock():
    # 2024-03-05 12:00 in Denver (MST, UTC-7)
    return FixedClock(datetime(2024, 3, 5, 19, 0, tzinfo=timezone.utc))


@pytest.fixture
def streak_service(clock):
    from bestday.features.streaks.service import StreakService

    return StreakService(clock=clock, tz_name="America/Denver")


@pytest.fixture
def client(streak_service):
    from fastapi.testclient import TestClient

    from bestday.api.streaks import get_streak_service
    from bestday.main import app

    app.dependency_overrides[get_streak_service] = lambda: streak_service
    yield TestClient(app)
    app.dependency_overrides.clear()


def make_token(user_id: str, *, secret: str = TEST_JWT_SECRET, expires_in: timedelta = timedelta(hours=1)) -> str:
    payload = {"sub": user_id, "exp": datetime.now(timezone.utc) + expires_in}
    return jwt.encode(payload, secret, algorithm="HS256")


@pytest.fixture
def admin_key():
    return TEST_ADMIN_KEY


@pytest.fixture
def token_factory():
    return make_token


@pytest.fixture
def auth_headers():
    def _headers(user_id: str = "user-1"):
        return {"Authorization": f"Bearer {make_token(user_id)}"}

    return _headers


@pytest.fixture
def admin_headers():
    """Bearer headers for a user holding the admin role."""
    with get_db_session() as session:
        session.execute(insert(user_roles).values(user_id="admin-1", role="admin"))
    return {"Authorization": f"Bearer {make_token('admin-1')}"}


@pytest.fixture
def add_milestone():
    def _add(days_required: int, *, bonus_coins: int = 0, free_sticker_packs: int = 0,
             badge_name: str = None, is_active: bool = True) -> str:
        milestone_id = new_id()
        with get_db_session() as session:
            session.execute(
                insert(streak_milestones).values(
                    id=milestone_id,
                    days_required=days_required,
                    bonus_coins=bonus_coins,
                    free_sticker_packs=free_sticker_packs,
                    badge_name=badge_name or f"{days_required} Day Streak",
                    badge_icon="🔥",
                    description=f"Logged in {days_required} days in a row",
                    is_active=is_active,
                )
            )
        return milestone_id

    return _add


@pytest.fixture
def featured_collection():
    collection_id = new_id()
    with get_db_session() as session:
        session.execute(
            insert(sticker_collections).values(
                id=collection_id,
                name="Spring Friends",
                is_active=True,
                is_featured=True,
            )
        )
    return collection_id
