"""Bearer JWT and admin authentication."""

from datetime import datetime, timedelta, timezone

import jwt
import pytest
from fastapi import HTTPException

from bestday.core import admin_auth
from bestday.core.auth import decode_token, verify_token


def test_verify_token_returns_subject(token_factory):
    assert verify_token(token_factory("user-42")) == "user-42"


def test_token_without_subject_rejected(test_settings):
    token = jwt.encode(
        {"exp": datetime.now(timezone.utc) + timedelta(minutes=5)},
        test_settings.AUTH_JWT_SECRET,
        algorithm="HS256",
    )
    with pytest.raises(HTTPException) as exc:
        verify_token(token)
    assert exc.value.status_code == 401
    assert exc.value.detail == "Token has no subject"


def test_audience_checked_when_configured(test_settings, monkeypatch):
    monkeypatch.setattr(test_settings, "AUTH_JWT_AUDIENCE", "authenticated")
    good = jwt.encode(
        {"sub": "u1", "aud": "authenticated", "exp": datetime.now(timezone.utc) + timedelta(minutes=5)},
        test_settings.AUTH_JWT_SECRET,
        algorithm="HS256",
    )
    bad = jwt.encode(
        {"sub": "u1", "aud": "anon", "exp": datetime.now(timezone.utc) + timedelta(minutes=5)},
        test_settings.AUTH_JWT_SECRET,
        algorithm="HS256",
    )

    assert decode_token(good)["sub"] == "u1"
    with pytest.raises(HTTPException):
        decode_token(bad)


def test_unconfigured_secret_rejects(token_factory, test_settings, monkeypatch):
    token = token_factory("u1")
    monkeypatch.setattr(test_settings, "AUTH_JWT_SECRET", None)
    with pytest.raises(HTTPException) as exc:
        decode_token(token)
    assert exc.value.detail == "Authentication not configured"


def test_owner_role_counts_as_admin():
    from sqlalchemy import insert

    from bestday.core.database import get_db_session, user_roles

    with get_db_session() as session:
        session.execute(insert(user_roles).values(user_id="owner-1", role="owner"))
        session.execute(insert(user_roles).values(user_id="bestie-1", role="bestie"))

    assert admin_auth.has_admin_role("owner-1") == "owner"
    assert admin_auth.has_admin_role("bestie-1") is None


def test_admin_jwt_actor(client, admin_headers):
    resp = client.get("/v1/admin/streak-milestones", headers=admin_headers)
    assert resp.status_code == 200


def test_jwt_mode_rejects_service_key(client, admin_key, test_settings, monkeypatch):
    monkeypatch.setattr(test_settings, "ADMIN_AUTH_MODE", "jwt")
    resp = client.get("/v1/admin/streak-milestones", headers={"X-Admin-Key": admin_key})
    assert resp.status_code == 401


def test_legacy_mode_allows_key_in_prod(client, admin_key, test_settings, monkeypatch):
    monkeypatch.setattr(test_settings, "ADMIN_AUTH_MODE", "legacy")
    monkeypatch.setattr(test_settings, "ENVIRONMENT", "prod")
    resp = client.get("/v1/admin/streak-milestones", headers={"X-Admin-Key": admin_key})
    assert resp.status_code == 200


def test_wrong_service_key_rejected(client):
    resp = client.get("/v1/admin/streak-milestones", headers={"X-Admin-Key": "nope"})
    assert resp.status_code == 401
