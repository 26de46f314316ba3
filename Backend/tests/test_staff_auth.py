"""
Staff Authentication & Permission Tests

Covers the signed admin session, login/logout, /auth/me freshness, and the
role → permission table with its per-tenant override.
"""
import json
from datetime import datetime, timedelta, timezone

import jwt
import pytest
from httpx import AsyncClient
from sqlalchemy import select

from dojostorm.core.request_context import (
    ADMIN_COOKIE,
    SESSION_ALGORITHM,
    create_admin_session_token,
    decode_admin_session_token,
)
from dojostorm.models import Setting, StaffRole, User
from dojostorm.permissions import (
    ALL_PERMISSION_KEYS,
    ROLE_PERMISSIONS_SETTING,
    get_permission_for_route,
    get_role_permissions,
)

from conftest import STAFF_PASSWORD, TEST_SESSION_SECRET, create_staff, staff_headers, tenant_headers


# ============================================================================
# SESSION TOKENS
# ============================================================================

def test_token_round_trip():
    token = create_admin_session_token(
        user_id="u1", client_id="c1", role="COACH", name="Kim", permissions=["classes"]
    )
    session = decode_admin_session_token(token)

    assert session.user_id == "u1"
    assert session.client_id == "c1"
    assert session.permissions == ("classes",)


def test_expired_token_is_none():
    issued = datetime.now(timezone.utc) - timedelta(days=30)
    token = create_admin_session_token(
        user_id="u1", client_id="c1", role="OWNER", name="", permissions=[], now=issued
    )
    assert decode_admin_session_token(token) is None


def test_token_signed_with_other_secret_is_none():
    token = jwt.encode(
        {"sub": "u1", "cid": "c1", "role": "OWNER", "exp": datetime.now(timezone.utc) + timedelta(hours=1)},
        "some-other-secret",
        algorithm=SESSION_ALGORITHM,
    )
    assert decode_admin_session_token(token) is None


def test_token_without_tenant_claim_is_none():
    token = jwt.encode(
        {"sub": "u1", "role": "OWNER", "exp": datetime.now(timezone.utc) + timedelta(hours=1)},
        TEST_SESSION_SECRET,
        algorithm=SESSION_ALGORITHM,
    )
    assert decode_admin_session_token(token) is None


def test_missing_secret_fails_loudly(monkeypatch):
    from dojostorm.core.config import get_settings

    monkeypatch.setenv("SESSION_SECRET", "")
    get_settings.cache_clear()

    with pytest.raises(RuntimeError, match="SESSION_SECRET is not set"):
        create_admin_session_token(user_id="u1", client_id="c1", role="OWNER", name="", permissions=[])


# ============================================================================
# PERMISSIONS
# ============================================================================

@pytest.mark.parametrize(
    "path,expected",
    [
        ("/audit-log", "audit-log"),
        ("/email-templates/welcome/reset", "communication"),
        ("/waivers/signed/abc", "waivers"),
        ("/export/members", "reports"),
        ("/auth/me", None),
        ("/programsx", None),
    ],
)
def test_permission_for_route(path, expected):
    assert get_permission_for_route(path) == expected


@pytest.mark.asyncio
async def test_owner_always_has_every_permission(async_session, gym_a):
    async_session.add(Setting(client_id=gym_a.id, key=ROLE_PERMISSIONS_SETTING, value='{"OWNER": []}'))
    await async_session.commit()

    assert await get_role_permissions(async_session, gym_a.id, "OWNER") == list(ALL_PERMISSION_KEYS)


@pytest.mark.asyncio
async def test_tenant_override_applies_to_that_tenant_only(async_session, gym_a, gym_b):
    async_session.add(Setting(
        client_id=gym_a.id,
        key=ROLE_PERMISSIONS_SETTING,
        value=json.dumps({"COACH": ["classes", "audit-log"]}),
    ))
    await async_session.commit()

    assert await get_role_permissions(async_session, gym_a.id, "COACH") == ["classes", "audit-log"]
    assert "audit-log" not in await get_role_permissions(async_session, gym_b.id, "COACH")


@pytest.mark.asyncio
async def test_malformed_override_falls_back_to_defaults(async_session, gym_a):
    async_session.add(Setting(client_id=gym_a.id, key=ROLE_PERMISSIONS_SETTING, value="{not json"))
    await async_session.commit()

    permissions = await get_role_permissions(async_session, gym_a.id, "FRONT_DESK")
    assert "pos" in permissions
    assert "audit-log" not in permissions


# ============================================================================
# LOGIN / LOGOUT
# ============================================================================

@pytest.mark.asyncio
async def test_login_sets_session_cookie(client: AsyncClient, gym_a, owner_a):
    response = await client.post(
        "/auth/login",
        json={"email": owner_a.email.upper(), "password": STAFF_PASSWORD},
        headers=tenant_headers(gym_a),
    )

    assert response.status_code == 200
    body = response.json()
    assert body["user"]["id"] == owner_a.id
    assert body["user"]["permissions"] == list(ALL_PERMISSION_KEYS)
    assert body["mustChangePassword"] is False

    session = decode_admin_session_token(response.cookies[ADMIN_COOKIE])
    assert session.client_id == gym_a.id


@pytest.mark.asyncio
async def test_login_wrong_password_is_401(client: AsyncClient, gym_a, owner_a):
    response = await client.post(
        "/auth/login",
        json={"email": owner_a.email, "password": "wrong-password"},
        headers=tenant_headers(gym_a),
    )

    assert response.status_code == 401
    assert response.json() == {"error": "Invalid email or password"}


@pytest.mark.asyncio
async def test_login_is_scoped_to_tenant(client: AsyncClient, gym_a, gym_b, owner_a):
    """
    Test: gym A's credentials at gym B's subdomain => 401
    """
    response = await client.post(
        "/auth/login",
        json={"email": owner_a.email, "password": STAFF_PASSWORD},
        headers=tenant_headers(gym_b),
    )

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_login_missing_fields_is_400(client: AsyncClient, gym_a):
    response = await client.post("/auth/login", json={"email": "x@y.z"}, headers=tenant_headers(gym_a))

    assert response.status_code == 400
    assert response.json() == {"error": "Email and password are required"}


@pytest.mark.asyncio
async def test_malformed_body_is_400(client: AsyncClient, gym_a):
    response = await client.post(
        "/auth/login",
        content=b"not json",
        headers={**tenant_headers(gym_a), "Content-Type": "application/json"},
    )

    assert response.status_code == 400
    assert response.json() == {"error": "Invalid request"}


@pytest.mark.asyncio
async def test_logout_clears_cookie(client: AsyncClient):
    response = await client.post("/auth/logout")

    assert response.status_code == 200
    assert f'{ADMIN_COOKIE}=""' in response.headers["set-cookie"]
    assert "Max-Age=0" in response.headers["set-cookie"]


# ============================================================================
# /auth/me
# ============================================================================

@pytest.mark.asyncio
async def test_me_reads_fresh_user_row(client: AsyncClient, async_session, gym_a, owner_a):
    """
    Test: name changed after login => /auth/me shows the new name,
    permissions still come from the session
    """
    headers = staff_headers(gym_a, owner_a, permissions=["dashboard"])
    owner_a.name = "Master Kim"
    await async_session.commit()

    response = await client.get("/auth/me", headers=headers)

    assert response.status_code == 200
    assert response.json() == {
        "user": {
            "id": owner_a.id,
            "email": owner_a.email,
            "name": "Master Kim",
            "role": "OWNER",
            "permissions": ["dashboard"],
        }
    }


@pytest.mark.asyncio
async def test_me_for_deleted_user_is_404(client: AsyncClient, async_session, gym_a):
    coach = await create_staff(async_session, gym_a, role=StaffRole.COACH)
    headers = staff_headers(gym_a, coach)
    await async_session.delete(coach)
    await async_session.commit()

    response = await client.get("/auth/me", headers=headers)

    assert response.status_code == 404
    assert response.json() == {"error": "User not found"}
    assert (await async_session.execute(select(User).where(User.id == coach.id))).scalar_one_or_none() is None
