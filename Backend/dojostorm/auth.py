"""
Staff Authentication, Authorization & Audit Module

ARCHITECTURE:
    - AdminSession (core.request_context) is the SINGLE SOURCE OF TRUTH for
      staff identity
    - require_staff() is the ONE authorization rule for tenant-scoped staff
      endpoints: a session must exist, belong to the resolved tenant, and
      hold the endpoint's permission key
    - log_audit() appends to the tenant's audit trail

USAGE:
    @router.get("/programs")
    async def list_programs(request: Request, session: AsyncSession = Depends(get_session)):
        try:
            tenant = await resolve_tenant(request, session)
            require_staff(request, tenant, "classes")
            ...
        except ApiError as exc:
            return exc.to_response()
"""

import json
import logging
from typing import Any, Optional

from fastapi import Request, Response
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from .core.config import get_settings
from .core.request_context import (
    ADMIN_COOKIE,
    AdminSession,
    create_admin_session_token,
    resolve_admin_session,
)
from .core.responses import Forbidden, Unauthorized
from .models import AuditLog, User
from .passwords import verify_password
from .permissions import has_permission
from .tenancy.context import TenantContext

logger = logging.getLogger(__name__)


__all__ = [
    # Identity
    "AdminSession",
    "resolve_admin_session",
    "create_admin_session_token",
    "authenticate_staff",
    "set_admin_session_cookie",
    "clear_admin_session_cookie",
    # Authorization
    "require_staff",
    # Audit logging
    "log_audit",
    "compute_changes",
    "AUDIT_TEMPLATE_UPDATED",
    "AUDIT_TEMPLATE_TOGGLED",
    "AUDIT_TEMPLATE_RESET",
    "AUDIT_PASSWORD_SET",
]


# ============================================================================
# IDENTITY
# ============================================================================

async def authenticate_staff(
    session: AsyncSession,
    client_id: str,
    email: str,
    password: str,
) -> Optional[User]:
    """
    Check staff credentials within one tenant.

    Returns:
        The User on success, None for unknown email or wrong password
    """
    result = await session.execute(
        select(User).where(
            User.client_id == client_id,
            func.lower(User.email) == email.strip().lower(),
        )
    )
    user = result.scalar_one_or_none()
    if not user:
        return None
    if not verify_password(password, user.password_hash):
        return None
    return user


def set_admin_session_cookie(response: Response, token: str, remember_me: bool = False) -> None:
    settings = get_settings()
    max_age = (
        settings.admin_session_remember_seconds if remember_me else settings.admin_session_seconds
    )
    response.set_cookie(
        ADMIN_COOKIE,
        token,
        httponly=True,
        secure=settings.cookie_secure,
        samesite="lax",
        path="/",
        max_age=max_age,
    )


def clear_admin_session_cookie(response: Response) -> None:
    settings = get_settings()
    response.set_cookie(
        ADMIN_COOKIE,
        "",
        httponly=True,
        secure=settings.cookie_secure,
        samesite="lax",
        path="/",
        max_age=0,
    )


# ============================================================================
# AUTHORIZATION
# ============================================================================

def require_staff(
    request: Request,
    tenant: TenantContext,
    permission: Optional[str] = None,
) -> AdminSession:
    """
    Require a staff session for the resolved tenant.

    Args:
        request: Incoming request carrying the session
        tenant: Tenant resolved for this request
        permission: Permission key the endpoint needs, if any

    Raises:
        Unauthorized: no session, or a session issued for another tenant
        Forbidden: session lacks ``permission``

    Returns:
        The AdminSession
    """
    admin = resolve_admin_session(request)
    if admin is None:
        raise Unauthorized()

    if admin.client_id != tenant.client_id:
        logger.warning(
            f"Tenant boundary violation! Session for client {admin.client_id} "
            f"used against client {tenant.client_id} by user {admin.user_id}"
        )
        raise Unauthorized()

    if permission and not has_permission(list(admin.permissions), permission):
        logger.warning(
            f"Authorization failed: User {admin.user_id} has role {admin.role}, "
            f"missing permission '{permission}' in client {tenant.client_id}"
        )
        raise Forbidden()

    return admin


# ============================================================================
# AUDIT LOGGING HELPERS
# ============================================================================

async def log_audit(
    session: AsyncSession,
    *,
    client_id: str,
    entity_type: str,
    entity_id: str,
    action: str,
    summary: str,
    changes: Optional[dict[str, dict[str, Any]]] = None,
) -> AuditLog:
    """
    Append an audit log entry to the tenant's trail.

    IMPORTANT: Do NOT include PII (phone numbers, emails, password material)
    in summary or changes.

    The entry is flushed, not committed; the caller owns the transaction.
    """
    audit_log = AuditLog(
        client_id=client_id,
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        summary=summary,
        changes=json.dumps(changes, default=str) if changes else None,
    )
    session.add(audit_log)
    await session.flush()

    logger.info(f"Audit: {action} on {entity_type}:{entity_id} (client={client_id})")

    return audit_log


def compute_changes(
    old: dict[str, Any],
    new: dict[str, Any],
    fields: list[str],
) -> Optional[dict[str, dict[str, Any]]]:
    """
    Field-level diff between two snapshots.

    Values are compared by their string form, so 5 and "5" are equal.

    Returns:
        {field: {"from": old, "to": new}} for changed fields, or None
    """
    changes: dict[str, dict[str, Any]] = {}
    for name in fields:
        old_value = old.get(name)
        new_value = new.get(name)
        if str(old_value) != str(new_value):
            changes[name] = {"from": old_value, "to": new_value}
    return changes or None


# ============================================================================
# COMMON AUDIT ACTIONS
# ============================================================================

AUDIT_TEMPLATE_UPDATED = "email_template.updated"
AUDIT_TEMPLATE_TOGGLED = "email_template.toggled"
AUDIT_TEMPLATE_RESET = "email_template.reset"
AUDIT_PASSWORD_SET = "member.portal_password_set"
