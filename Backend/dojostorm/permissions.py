"""
Staff permission keys and the default role → permission table.

A tenant can override the table for non-owner roles through the
``role_permissions`` setting, a JSON object of ``{"ROLE": ["key", ...]}``.
OWNER always holds every key.
"""

import json
import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .models import Setting, StaffRole

logger = logging.getLogger(__name__)

ROLE_PERMISSIONS_SETTING = "role_permissions"

ALL_PERMISSION_KEYS: tuple[str, ...] = (
    "dashboard",
    "members",
    "memberships",
    "styles",
    "classes",
    "calendar",
    "testing",
    "curriculum",
    "promotions",
    "pos",
    "waivers",
    "reports",
    "tasks",
    "communication",
    "kiosk",
    "account",
    "audit-log",
)

DEFAULT_ROLE_PERMISSIONS: dict[str, list[str]] = {
    StaffRole.OWNER.value: list(ALL_PERMISSION_KEYS),
    StaffRole.ADMIN.value: [k for k in ALL_PERMISSION_KEYS if k != "account"],
    StaffRole.COACH.value: [
        "dashboard",
        "members",
        "classes",
        "calendar",
        "testing",
        "curriculum",
        "promotions",
        "tasks",
        "communication",
        "kiosk",
    ],
    StaffRole.FRONT_DESK.value: [
        "dashboard",
        "members",
        "memberships",
        "classes",
        "calendar",
        "pos",
        "waivers",
        "tasks",
        "kiosk",
    ],
}

# Route prefixes to permission keys, first match wins.
ROUTE_PERMISSION_MAP: tuple[tuple[str, str], ...] = (
    ("/audit-log", "audit-log"),
    ("/email-templates", "communication"),
    ("/enrollment-submissions", "members"),
    ("/export", "reports"),
    ("/gift-certificates", "pos"),
    ("/payments", "account"),
    ("/programs", "classes"),
    ("/waivers", "waivers"),
)


def get_permission_for_route(path: str) -> Optional[str]:
    for prefix, permission in ROUTE_PERMISSION_MAP:
        if path == prefix or path.startswith(prefix + "/"):
            return permission
    return None


def has_permission(permissions: list[str], required: str) -> bool:
    return required in permissions


async def get_role_permissions(session: AsyncSession, client_id: str, role: str) -> list[str]:
    """Permission keys for ``role`` in a tenant, honoring the tenant override."""
    if role == StaffRole.OWNER.value:
        return list(ALL_PERMISSION_KEYS)

    result = await session.execute(
        select(Setting.value).where(
            Setting.client_id == client_id,
            Setting.key == ROLE_PERMISSIONS_SETTING,
        )
    )
    raw = result.scalar_one_or_none()
    if raw:
        try:
            custom = json.loads(raw)
        except ValueError:
            logger.warning(f"Ignoring malformed {ROLE_PERMISSIONS_SETTING} setting for client {client_id}")
        else:
            if isinstance(custom, dict) and isinstance(custom.get(role), list):
                return [str(k) for k in custom[role]]

    return list(DEFAULT_ROLE_PERMISSIONS.get(role, []))
