"""
Auth utilities for the Best Day API.

Validates bearer JWTs issued by the auth provider and extracts the user_id
from the `sub` claim.
"""
from fastapi import HTTPException, Request
from typing import Any, Dict, Optional
from bestday.core.config import settings
from bestday.core.logging import LOGGER_NAME
import jwt
import logging

logger = logging.getLogger(LOGGER_NAME)


def _bearer_token(request: Request) -> Optional[str]:
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return None
    token = auth_header[7:].strip()
    return token or None


def decode_token(token: str) -> Dict[str, Any]:
    """
    Verify an HS256 JWT and return its claims.

    Raises:
        HTTPException 401: Invalid or expired token, or auth not configured
    """
    secret = settings.AUTH_JWT_SECRET
    if not secret:
        logger.warning("AUTH_JWT_SECRET not configured; rejecting bearer token")
        raise HTTPException(status_code=401, detail="Authentication not configured")

    options = {"verify_signature": True, "verify_exp": True, "verify_aud": bool(settings.AUTH_JWT_AUDIENCE)}
    try:
        return jwt.decode(
            token,
            secret,
            algorithms=["HS256"],
            audience=settings.AUTH_JWT_AUDIENCE,
            options=options,
        )
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError as e:
        logger.debug(f"Invalid token: {e}")
        raise HTTPException(status_code=401, detail="Invalid token")


def verify_token(token: str) -> str:
    """Verify a bearer JWT and return the user id from its `sub` claim."""
    claims = decode_token(token)
    user_id = claims.get("sub")
    if not user_id:
        raise HTTPException(status_code=401, detail="Token has no subject")
    return str(user_id)


def get_current_user_id(request: Request) -> str:
    """
    FastAPI dependency: authenticated user id.

    Raises:
        HTTPException 401: Missing Authorization header or invalid token
    """
    token = _bearer_token(request)
    if not token:
        raise HTTPException(status_code=401, detail="No authorization header")
    return verify_token(token)
