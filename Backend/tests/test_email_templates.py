"""
Email Template API Tests

Templates are seeded lazily per tenant, customized with PUT, toggled with
PATCH, and restored with POST /email-templates/{key}/reset.
"""
import pytest
from httpx import AsyncClient
from sqlalchemy import func, select

from dojostorm.auth import AUDIT_TEMPLATE_RESET, AUDIT_TEMPLATE_UPDATED
from dojostorm.email_template_defaults import DEFAULT_EMAIL_TEMPLATES, get_default_template
from dojostorm.models import AuditLog, EmailTemplate, StaffRole

from conftest import create_staff, staff_headers


async def template_count(session, gym) -> int:
    result = await session.execute(
        select(func.count()).select_from(EmailTemplate).where(EmailTemplate.client_id == gym.id)
    )
    return result.scalar_one()


# ============================================================================
# DEFAULTS
# ============================================================================

def test_default_keys_are_unique():
    keys = [t.event_key for t in DEFAULT_EMAIL_TEMPLATES]
    assert len(keys) == len(set(keys))
    assert get_default_template("welcome").name == "Welcome Email"
    assert get_default_template("no_such_event") is None


@pytest.mark.asyncio
async def test_list_seeds_defaults_once(client: AsyncClient, async_session, gym_a, gym_b, owner_a):
    headers = staff_headers(gym_a, owner_a)

    first = await client.get("/email-templates", headers=headers)
    second = await client.get("/email-templates", headers=headers)

    assert first.status_code == 200
    assert len(first.json()) == len(DEFAULT_EMAIL_TEMPLATES)
    assert second.json() == first.json()
    assert [t["eventKey"] for t in first.json()] == sorted(t.event_key for t in DEFAULT_EMAIL_TEMPLATES)
    assert await template_count(async_session, gym_a) == len(DEFAULT_EMAIL_TEMPLATES)
    assert await template_count(async_session, gym_b) == 0


@pytest.mark.asyncio
async def test_get_single_falls_back_to_default(client: AsyncClient, gym_a, owner_a):
    response = await client.get("/email-templates/birthday", headers=staff_headers(gym_a, owner_a))

    assert response.status_code == 200
    body = response.json()
    assert body["id"] is None
    assert body["isCustom"] is False
    assert body["variables"] == ["memberName", "gymName"]


# ============================================================================
# RESET
# ============================================================================

@pytest.mark.asyncio
async def test_reset_restores_customized_template(client: AsyncClient, async_session, gym_a, owner_a):
    """
    Test: customized "welcome" row => reset returns default content,
    isCustom false, same row id
    """
    custom = EmailTemplate(
        client_id=gym_a.id,
        event_key="welcome",
        name="Welcome Email",
        subject="Yo",
        body_html="<p>custom</p>",
        is_custom=True,
        enabled=False,
    )
    async_session.add(custom)
    await async_session.commit()

    response = await client.post("/email-templates/welcome/reset", headers=staff_headers(gym_a, owner_a))

    assert response.status_code == 200
    body = response.json()
    default = get_default_template("welcome")
    assert body["id"] == custom.id
    assert body["subject"] == default.subject
    assert body["bodyHtml"] == default.body_html
    assert body["isCustom"] is False
    assert body["enabled"] is False

    actions = (await async_session.execute(
        select(AuditLog.action).where(AuditLog.client_id == gym_a.id)
    )).scalars().all()
    assert actions == [AUDIT_TEMPLATE_RESET]


@pytest.mark.asyncio
async def test_reset_creates_missing_row(client: AsyncClient, async_session, gym_a, owner_a):
    response = await client.post("/email-templates/past_due/reset", headers=staff_headers(gym_a, owner_a))

    assert response.status_code == 200
    assert response.json()["eventKey"] == "past_due"
    assert await template_count(async_session, gym_a) == 1


@pytest.mark.asyncio
async def test_reset_unknown_key_is_404_and_writes_nothing(client: AsyncClient, async_session, gym_a, owner_a):
    response = await client.post("/email-templates/not_a_key/reset", headers=staff_headers(gym_a, owner_a))

    assert response.status_code == 404
    assert response.json() == {"error": "No default template for this key"}
    assert await template_count(async_session, gym_a) == 0


# ============================================================================
# UPDATE & TOGGLE
# ============================================================================

@pytest.mark.asyncio
async def test_put_upserts_custom_template(client: AsyncClient, async_session, gym_a, owner_a):
    headers = staff_headers(gym_a, owner_a)

    created = await client.put(
        "/email-templates",
        json={"eventKey": "birthday", "subject": "Happy day!", "bodyHtml": "<p>Cake</p>"},
        headers=headers,
    )
    updated = await client.put(
        "/email-templates",
        json={"eventKey": "birthday", "subject": "Happy birthday!", "bodyHtml": "<p>Cake</p>"},
        headers=headers,
    )

    assert created.status_code == 200
    assert created.json()["isCustom"] is True
    assert created.json()["name"] == "Birthday Email"
    assert updated.json()["id"] == created.json()["id"]
    assert updated.json()["subject"] == "Happy birthday!"
    assert await template_count(async_session, gym_a) == 1

    audit = (await async_session.execute(
        select(AuditLog).where(AuditLog.client_id == gym_a.id).order_by(AuditLog.created_at)
    )).scalars().all()
    assert [entry.action for entry in audit] == [AUDIT_TEMPLATE_UPDATED, AUDIT_TEMPLATE_UPDATED]


@pytest.mark.asyncio
async def test_put_requires_fields(client: AsyncClient, gym_a, owner_a):
    response = await client.put(
        "/email-templates", json={"eventKey": "birthday"}, headers=staff_headers(gym_a, owner_a)
    )

    assert response.status_code == 400
    assert response.json() == {"error": "eventKey, subject, and bodyHtml are required"}


@pytest.mark.asyncio
async def test_patch_toggles_enabled(client: AsyncClient, gym_a, owner_a):
    headers = staff_headers(gym_a, owner_a)
    await client.get("/email-templates", headers=headers)

    response = await client.patch(
        "/email-templates", json={"eventKey": "birthday", "enabled": False}, headers=headers
    )

    assert response.status_code == 200
    assert response.json()["enabled"] is False


@pytest.mark.asyncio
async def test_patch_rejects_non_boolean(client: AsyncClient, gym_a, owner_a):
    response = await client.patch(
        "/email-templates", json={"eventKey": "birthday", "enabled": "false"}, headers=staff_headers(gym_a, owner_a)
    )

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_patch_unknown_template_is_404(client: AsyncClient, gym_a, owner_a):
    response = await client.patch(
        "/email-templates", json={"eventKey": "birthday", "enabled": True}, headers=staff_headers(gym_a, owner_a)
    )

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_templates_need_communication_permission(client: AsyncClient, async_session, gym_a):
    front_desk = await create_staff(async_session, gym_a, role=StaffRole.FRONT_DESK)

    response = await client.post("/email-templates/welcome/reset", headers=staff_headers(gym_a, front_desk))

    assert response.status_code == 403
    assert await template_count(async_session, gym_a) == 0
