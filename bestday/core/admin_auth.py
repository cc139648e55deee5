"""
Admin authentication for admin panels and scheduled jobs.

Supports hybrid authentication:
- Bearer JWT (preferred): user must hold the `admin` or `owner` role
- X-Admin-Key: shared service key used by schedulers (cron)

Auth modes (ADMIN_AUTH_MODE):
- "jwt": Only bearer JWT allowed
- "legacy": Only X-Admin-Key allowed
- "hybrid": Both allowed (default); the key is blocked in prod
"""
import hashlib
import hmac
from dataclasses import dataclass
from typing import Literal, Optional

from fastapi import HTTPException, Request
from sqlalchemy import select

from bestday.core.auth import verify_token
from bestday.core.config import settings
from bestday.core.database import get_db_session, user_roles

ADMIN_ROLES = ("admin", "owner")


@dataclass
class AdminActor:
    """Represents an authenticated admin actor."""
    actor_type: Literal["user", "service_key"]
    actor_id: str  # user id or "service:<hash>"
    role: Optional[str] = None


def has_admin_role(user_id: str) -> Optional[str]:
    """Return the admin role held by user_id, if any."""
    with get_db_session() as session:
        row = session.execute(
            select(user_roles.c.role)
            .where(user_roles.c.user_id == user_id)
            .where(user_roles.c.role.in_(ADMIN_ROLES))
        ).first()
    return row.role if row else None


def verify_service_key(request: Request) -> Optional[AdminActor]:
    """
    Verify X-Admin-Key header.
    Returns AdminActor if valid, None if not present/invalid.
    """
    expected_key = settings.ADMIN_KEY
    if not expected_key:
        return None

    header_key = request.headers.get("X-Admin-Key", "").strip()
    if not header_key or not hmac.compare_digest(header_key, expected_key):
        return None

    key_hash = hashlib.sha256(header_key.encode()).hexdigest()[:16]
    return AdminActor(actor_type="service_key", actor_id=f"service:{key_hash}")


def verify_admin_jwt(request: Request) -> Optional[AdminActor]:
    """Return an AdminActor for a bearer token whose user holds an admin role."""
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return None
    token = auth_header[7:].strip()
    if not token:
        return None

    try:
        user_id = verify_token(token)
    except HTTPException:
        return None

    role = has_admin_role(user_id)
    if not role:
        return None
    return AdminActor(actor_type="user", actor_id=user_id, role=role)


def get_admin_actor(request: Request) -> Optional[AdminActor]:
    """
    Attempt to authenticate admin from request.
    Returns AdminActor or None (does not raise).
    """
    mode = settings.ADMIN_AUTH_MODE.lower()
    env = settings.ENVIRONMENT.lower()

    if mode in {"jwt", "hybrid"}:
        actor = verify_admin_jwt(request)
        if actor:
            return actor

    if mode in {"legacy", "hybrid"}:
        # In production the service key only works when explicitly selected
        if env == "prod" and mode != "legacy":
            return None
        return verify_service_key(request)

    return None


def require_admin(request: Request) -> AdminActor:
    """
    FastAPI dependency: Require admin authentication.

    Usage:
        @router.get("/v1/admin/endpoint")
        def admin_endpoint(actor: AdminActor = Depends(require_admin)):
            ...
    """
    actor = get_admin_actor(request)

    if not actor:
        has_jwt = bool(settings.AUTH_JWT_SECRET)
        has_key = bool(settings.ADMIN_KEY)

        if not has_jwt and not has_key:
            raise HTTPException(
                status_code=503,
                detail="Admin authentication not configured",
            )

        raise HTTPException(
            status_code=401,
            detail="Unauthorized: invalid or missing admin credentials",
        )

    return actor
