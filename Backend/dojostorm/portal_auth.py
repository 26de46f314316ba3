"""
Member portal sessions.

Portal sessions are server-side rows in ``member_sessions``. The browser
holds ``portal_session = "<token>.<signature>"`` where the signature is an
HMAC-SHA256 of the token under SESSION_SECRET, so forged cookies are
rejected before any database lookup.

Every portal self-service query is scoped to ``MemberAuth.member_id`` and
nothing else: member ids in the request payload are never trusted. A
session is only honored on the host of the member's own gym.
"""

import hashlib
import hmac
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Request, Response
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from .core.config import get_settings
from .core.request_context import get_session_secret
from .core.responses import Unauthorized
from .models import Member, MemberSession
from .passwords import verify_password
from .tenancy.context import resolve_tenant

logger = logging.getLogger(__name__)

PORTAL_COOKIE = "portal_session"
INACTIVE_STATUS = "INACTIVE"


@dataclass(frozen=True)
class MemberAuth:
    """Authenticated portal member and the tenant the member belongs to."""

    member_id: str
    client_id: str


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def sign_token(token: str) -> str:
    return hmac.new(get_session_secret().encode(), token.encode(), hashlib.sha256).hexdigest()


def encode_session_cookie(token: str) -> str:
    return f"{token}.{sign_token(token)}"


def get_session_token_from_request(request: Request) -> Optional[str]:
    """Return the verified raw token from the portal cookie, or None."""
    cookie = request.cookies.get(PORTAL_COOKIE)
    if not cookie:
        return None

    parts = cookie.split(".")
    if len(parts) != 2:
        return None

    token, signature = parts
    # Cookies are decoded as latin-1, so compare bytes: str comparison rejects non-ASCII input.
    if not token or not hmac.compare_digest(signature.encode("utf-8"), sign_token(token).encode("utf-8")):
        logger.debug("Portal session cookie has a bad signature")
        return None
    return token


# ────────────────────────────────────────────────────────────────
# Sessions
# ────────────────────────────────────────────────────────────────

async def create_member_session(
    session: AsyncSession,
    member_id: str,
    now: Optional[datetime] = None,
) -> str:
    """Create a session row and return its raw token."""
    issued_at = now or datetime.now(timezone.utc)
    token = secrets.token_hex(32)
    session.add(
        MemberSession(
            member_id=member_id,
            token=token,
            expires_at=issued_at + timedelta(seconds=get_settings().portal_session_seconds),
        )
    )
    await session.flush()
    return token


async def validate_member_session(
    session: AsyncSession,
    token: str,
    now: Optional[datetime] = None,
) -> Optional[MemberAuth]:
    """
    Look up a session token.

    An expired session is deleted and treated as absent.
    """
    result = await session.execute(
        select(MemberSession, Member.client_id)
        .join(Member, Member.id == MemberSession.member_id)
        .where(MemberSession.token == token)
    )
    row = result.one_or_none()
    if not row:
        return None
    member_session, client_id = row

    current = now or datetime.now(timezone.utc)
    if _as_utc(member_session.expires_at) < current:
        await session.delete(member_session)
        await session.commit()
        logger.debug(f"Removed expired portal session for member {member_session.member_id}")
        return None

    return MemberAuth(member_id=member_session.member_id, client_id=client_id)


async def destroy_member_session(session: AsyncSession, token: str) -> None:
    await session.execute(delete(MemberSession).where(MemberSession.token == token))
    await session.commit()


async def resolve_member_session(request: Request, session: AsyncSession) -> Optional[MemberAuth]:
    """
    Resolve the portal member behind a request.

    Returns:
        MemberAuth on success, None when the cookie is missing, forged,
        unknown or expired. None is not an error; callers answer 401.
    """
    token = get_session_token_from_request(request)
    if not token:
        return None
    return await validate_member_session(session, token)


async def require_member(request: Request, session: AsyncSession) -> MemberAuth:
    """
    Require a portal session for a member of the request's tenant.

    Raises:
        Unauthorized: no valid session, or a session replayed on another gym's host
        TenantNotResolved: valid session but no tenant in the request
    """
    auth = await resolve_member_session(request, session)
    if auth is None:
        raise Unauthorized()

    tenant = await resolve_tenant(request, session)
    if auth.client_id != tenant.client_id:
        logger.warning(
            f"Tenant boundary violation! Portal session for member {auth.member_id} "
            f"of client {auth.client_id} used against client {tenant.client_id}"
        )
        raise Unauthorized()
    return auth


# ────────────────────────────────────────────────────────────────
# Credentials
# ────────────────────────────────────────────────────────────────

async def authenticate_member(
    session: AsyncSession,
    client_id: str,
    email: str,
    password: str,
) -> Optional[Member]:
    """Check portal credentials for a member of one tenant."""
    result = await session.execute(
        select(Member).where(
            Member.client_id == client_id,
            func.lower(Member.email) == email.strip().lower(),
            Member.status != INACTIVE_STATUS,
        )
    )
    # Family accounts can share an email; only members with a portal password can log in.
    for member in result.scalars().all():
        if member.portal_password_hash and verify_password(password, member.portal_password_hash):
            return member
    return None


# ────────────────────────────────────────────────────────────────
# Cookie helpers
# ────────────────────────────────────────────────────────────────

def set_session_cookie(response: Response, token: str) -> None:
    settings = get_settings()
    response.set_cookie(
        PORTAL_COOKIE,
        encode_session_cookie(token),
        httponly=True,
        secure=settings.cookie_secure,
        samesite="lax",
        path="/",
        max_age=settings.portal_session_seconds,
    )


def clear_session_cookie(response: Response) -> None:
    settings = get_settings()
    response.set_cookie(
        PORTAL_COOKIE,
        "",
        httponly=True,
        secure=settings.cookie_secure,
        samesite="lax",
        path="/",
        max_age=0,
    )
