"""
Staff Session Resolution Module

This module is the SINGLE SOURCE OF TRUTH for staff identity on a request.

ARCHITECTURE:
    1. The login endpoint issues a signed JWT (HS256, SESSION_SECRET)
    2. The browser carries it in the ``admin_session`` cookie; API clients
       may send it as ``Authorization: Bearer <token>``
    3. resolve_admin_session() verifies it and returns an AdminSession
       or None. None covers every failure: missing, malformed, forged or
       expired tokens all look like "not logged in"
    4. Callers translate None into a 401

Session claims are a snapshot from login time. Endpoints that return user
attributes must re-read the user row.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import Request

from .config import get_settings

logger = logging.getLogger(__name__)

ADMIN_COOKIE = "admin_session"
SESSION_ALGORITHM = "HS256"


@dataclass(frozen=True)
class AdminSession:
    """
    Authenticated staff principal and its authorization scope.

    Attributes:
        user_id: users.id of the staff member
        client_id: tenant the session was issued for
        role: role name at login time (OWNER, ADMIN, COACH, FRONT_DESK)
        name: display name at login time
        permissions: permission keys granted at login time
    """

    user_id: str
    client_id: str
    role: str
    name: str = ""
    permissions: tuple[str, ...] = field(default_factory=tuple)


def get_session_secret() -> str:
    secret = get_settings().session_secret
    if not secret or secret == "replace-with-a-long-random-string":
        raise RuntimeError(
            "SESSION_SECRET is not set. Generate a strong random secret (64+ characters) "
            "and set it in your .env file."
        )
    return secret


def create_admin_session_token(
    *,
    user_id: str,
    client_id: str,
    role: str,
    name: str,
    permissions: list[str],
    remember_me: bool = False,
    now: Optional[datetime] = None,
) -> str:
    """Issue a signed staff session token."""
    settings = get_settings()
    issued_at = now or datetime.now(timezone.utc)
    lifetime = (
        settings.admin_session_remember_seconds if remember_me else settings.admin_session_seconds
    )
    payload = {
        "sub": user_id,
        "cid": client_id,
        "role": role,
        "name": name or "",
        "permissions": list(permissions),
        "iat": issued_at,
        "exp": issued_at + timedelta(seconds=lifetime),
    }
    return jwt.encode(payload, get_session_secret(), algorithm=SESSION_ALGORITHM)


def decode_admin_session_token(token: str) -> Optional[AdminSession]:
    """Verify a staff session token. Returns None for any invalid token."""
    secret = get_session_secret()
    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=[SESSION_ALGORITHM],
            options={"require": ["exp", "sub"]},
        )
    except jwt.ExpiredSignatureError:
        logger.debug("Staff session expired")
        return None
    except jwt.InvalidTokenError as e:
        logger.debug(f"Staff session rejected: {type(e).__name__}")
        return None

    user_id = payload.get("sub")
    client_id = payload.get("cid")
    role = payload.get("role")
    permissions = payload.get("permissions") or []
    if not isinstance(user_id, str) or not isinstance(client_id, str) or not isinstance(role, str):
        logger.debug("Staff session rejected: missing identity claims")
        return None
    if not isinstance(permissions, list):
        return None

    return AdminSession(
        user_id=user_id,
        client_id=client_id,
        role=role,
        name=str(payload.get("name") or ""),
        permissions=tuple(str(p) for p in permissions),
    )


def extract_admin_token(request: Request) -> Optional[str]:
    cookie = request.cookies.get(ADMIN_COOKIE)
    if cookie:
        return cookie
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        token = auth_header[7:].strip()
        return token or None
    return None


def resolve_admin_session(request: Request) -> Optional[AdminSession]:
    """
    Resolve the staff session carried by a request.

    Returns:
        AdminSession on success, None when there is no valid session.
        None is not an error; the caller decides how to respond.

    Example:
        admin = resolve_admin_session(request)
        if admin is None:
            return error_response("Unauthorized", 401)
    """
    token = extract_admin_token(request)
    if not token:
        return None
    return decode_admin_session_token(token)
