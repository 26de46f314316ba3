"""
Pytest configuration and fixtures for async API testing.

Tests run against a fresh in-memory SQLite database (aiosqlite) per test
function. The FastAPI app shares the test session through a dependency
override, so rows seeded by a fixture are visible to the request and rows
written by the request are visible to assertions.
"""
import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from dojostorm.core.config import get_settings
from dojostorm.core.db import Base, get_session
from dojostorm.core.request_context import create_admin_session_token
from dojostorm.models import Client, Member, StaffRole, User
from dojostorm.passwords import hash_password
from dojostorm.permissions import DEFAULT_ROLE_PERMISSIONS
from dojostorm.portal_auth import PORTAL_COOKIE, create_member_session, encode_session_cookie

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"
TEST_SESSION_SECRET = "test-session-secret-0123456789abcdef0123456789abcdef0123456789"
STAFF_PASSWORD = "correct-horse-battery"
MEMBER_PASSWORD = "member-pass-123"


@pytest.fixture(autouse=True)
def test_settings(monkeypatch):
    """
    Pin the settings every test depends on.

    Empty strings (rather than unset variables) keep values from a local
    .env file out of the tests.
    """
    monkeypatch.setenv("SESSION_SECRET", TEST_SESSION_SECRET)
    monkeypatch.setenv("DATABASE_URL", TEST_DATABASE_URL)
    monkeypatch.setenv("DEFAULT_TENANT_SLUG", "")
    monkeypatch.setenv("STRIPE_SECRET_KEY", "")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture(scope="function")
async def async_engine():
    """
    In-memory engine with the schema created from the models.

    StaticPool keeps a single connection, so every session sees the same
    in-memory database.
    """
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture(scope="function")
async def async_session(async_engine):
    async_session_maker = async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    async with async_session_maker() as session:
        yield session


@pytest.fixture(scope="function")
async def client(async_session):
    """FastAPI AsyncClient with the database dependency pointed at the test session."""
    from dojostorm.main import app

    async def override_get_session():
        yield async_session

    app.dependency_overrides[get_session] = override_get_session

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


# ────────────────────────────────────────────────────────────────
# Seed data
# ────────────────────────────────────────────────────────────────

@pytest.fixture
async def gym_a(async_session):
    gym = Client(slug="thepit", name="The Pit")
    async_session.add(gym)
    await async_session.commit()
    return gym


@pytest.fixture
async def gym_b(async_session):
    gym = Client(slug="ironhouse", name="Iron House")
    async_session.add(gym)
    await async_session.commit()
    return gym


async def create_staff(session, gym, role=StaffRole.OWNER, email=None, name="Sensei Kim"):
    user = User(
        client_id=gym.id,
        email=email or f"{role.value.lower()}@{gym.slug}.test",
        password_hash=hash_password(STAFF_PASSWORD),
        name=name,
        role=role.value,
    )
    session.add(user)
    await session.commit()
    return user


async def create_member(session, gym, first_name="Ana", last_name="Silva", email=None, password=None, **fields):
    member = Member(
        client_id=gym.id,
        first_name=first_name,
        last_name=last_name,
        email=email,
        portal_password_hash=hash_password(password) if password else None,
        **fields,
    )
    session.add(member)
    await session.commit()
    return member


@pytest.fixture
async def owner_a(async_session, gym_a):
    return await create_staff(async_session, gym_a)


@pytest.fixture
async def owner_b(async_session, gym_b):
    return await create_staff(async_session, gym_b)


# ────────────────────────────────────────────────────────────────
# Request helpers
# ────────────────────────────────────────────────────────────────

def tenant_headers(gym) -> dict:
    return {"x-tenant-slug": gym.slug}


def staff_headers(gym, user, permissions=None) -> dict:
    """Headers for a staff request: tenant slug plus a bearer session token."""
    if permissions is None:
        permissions = DEFAULT_ROLE_PERMISSIONS[user.role]
    token = create_admin_session_token(
        user_id=user.id,
        client_id=user.client_id,
        role=user.role,
        name=user.name,
        permissions=permissions,
    )
    return {**tenant_headers(gym), "Authorization": f"Bearer {token}"}


async def portal_headers(session, gym, member) -> dict:
    """Headers for a portal request with a freshly created member session."""
    token = await create_member_session(session, member.id)
    await session.commit()
    return {**tenant_headers(gym), "Cookie": f"{PORTAL_COOKIE}={encode_session_cookie(token)}"}
