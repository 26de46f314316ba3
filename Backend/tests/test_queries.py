"""
Query Layer Tests

Predicate builder, pagination parsing, page + count, and batched name
lookups.
"""
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import event

from dojostorm.core.responses import ValidationFailed
from dojostorm.models import AuditLog, MembershipPlan
from dojostorm.tenancy import (
    DEFAULT_LIMIT,
    MAX_BIGINT,
    MAX_LIMIT,
    Pagination,
    Where,
    count_where,
    fetch_names_by_ids,
    fetch_page,
    list_where,
)


BASE_TIME = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


async def add_logs(session, gym, count, entity_type="MEMBER", summary="Updated member"):
    for i in range(count):
        session.add(
            AuditLog(
                client_id=gym.id,
                entity_type=entity_type,
                entity_id=f"{entity_type.lower()}-{i}",
                action="update",
                summary=f"{summary} {i}",
                created_at=BASE_TIME + timedelta(minutes=i),
            )
        )
    await session.commit()


# ============================================================================
# PAGINATION
# ============================================================================

class TestPagination:

    def test_defaults(self):
        assert Pagination.parse() == Pagination(limit=DEFAULT_LIMIT, offset=0)
        assert Pagination.parse("", " ") == Pagination(limit=50, offset=0)

    def test_parses_integers(self):
        assert Pagination.parse("10", "20") == Pagination(limit=10, offset=20)

    def test_clamps_limit_and_offset(self):
        assert Pagination.parse("0", "-5") == Pagination(limit=1, offset=0)
        assert Pagination.parse("100000").limit == MAX_LIMIT

    def test_rejects_non_integers(self):
        with pytest.raises(ValidationFailed, match="limit must be an integer"):
            Pagination.parse("ten")
        with pytest.raises(ValidationFailed, match="offset must be an integer"):
            Pagination.parse("10", "1.5")

    def test_rejects_values_beyond_bigint(self):
        assert Pagination.parse("10", str(MAX_BIGINT)).offset == MAX_BIGINT
        with pytest.raises(ValidationFailed, match="offset is out of range"):
            Pagination.parse("10", "99999999999999999999999")
        with pytest.raises(ValidationFailed, match="limit is out of range"):
            Pagination.parse("-99999999999999999999999")


# ============================================================================
# WHERE BUILDER
# ============================================================================

def test_none_values_add_no_clause():
    where = Where.for_tenant(AuditLog, "c1").equals(AuditLog.entity_type, None).contains(AuditLog.summary, "")
    assert len(where.clauses) == 1


def test_combinators_do_not_mutate():
    base = Where.for_tenant(AuditLog, "c1")
    narrowed = base.equals(AuditLog.entity_type, "MEMBER")

    assert len(base.clauses) == 1
    assert len(narrowed.clauses) == 2


@pytest.mark.asyncio
async def test_empty_in_list_matches_nothing(async_session, gym_a):
    await add_logs(async_session, gym_a, 3)

    where = Where.for_tenant(AuditLog, gym_a.id).in_list(AuditLog.entity_id, [])
    assert await count_where(async_session, AuditLog, where) == 0


@pytest.mark.asyncio
async def test_contains_treats_wildcards_literally(async_session, gym_a):
    await add_logs(async_session, gym_a, 2, summary="Discount 50% applied")
    await add_logs(async_session, gym_a, 2, entity_type="INVOICE", summary="Discount 505 applied")

    where = Where.for_tenant(AuditLog, gym_a.id).contains(AuditLog.summary, "50%")
    rows = await list_where(async_session, AuditLog, where)

    assert len(rows) == 2
    assert all("50%" in row.summary for row in rows)


@pytest.mark.asyncio
async def test_between_is_half_open(async_session, gym_a):
    await add_logs(async_session, gym_a, 5)

    where = Where.for_tenant(AuditLog, gym_a.id).between(
        AuditLog.created_at, BASE_TIME + timedelta(minutes=1), BASE_TIME + timedelta(minutes=3)
    )
    rows = await list_where(async_session, AuditLog, where, [AuditLog.created_at.asc()])

    assert [row.entity_id for row in rows] == ["member-1", "member-2"]


# ============================================================================
# PAGE + COUNT
# ============================================================================

@pytest.mark.asyncio
async def test_total_ignores_limit_and_offset(async_session, gym_a, gym_b):
    await add_logs(async_session, gym_a, 7)
    await add_logs(async_session, gym_a, 4, entity_type="INVOICE")
    await add_logs(async_session, gym_b, 5)

    where = Where.for_tenant(AuditLog, gym_a.id).equals(AuditLog.entity_type, "MEMBER")
    page = await fetch_page(
        async_session, AuditLog, where, [AuditLog.created_at.desc()], Pagination(limit=3, offset=2)
    )

    assert page.total == 7
    assert [row.entity_id for row in page.items] == ["member-4", "member-3", "member-2"]
    assert all(row.client_id == gym_a.id for row in page.items)


@pytest.mark.asyncio
async def test_offset_past_end_returns_empty_page(async_session, gym_a):
    await add_logs(async_session, gym_a, 3)

    page = await fetch_page(
        async_session, AuditLog, Where.for_tenant(AuditLog, gym_a.id), [], Pagination(limit=10, offset=10)
    )

    assert page.items == []
    assert page.total == 3


# ============================================================================
# ENRICHMENT & OWNERSHIP
# ============================================================================

@pytest.mark.asyncio
async def test_fetch_names_by_ids_single_query(async_engine, async_session, gym_a, gym_b):
    gold = MembershipPlan(client_id=gym_a.id, name="Gold")
    silver = MembershipPlan(client_id=gym_a.id, name="Silver")
    foreign = MembershipPlan(client_id=gym_b.id, name="Other Gym Plan")
    async_session.add_all([gold, silver, foreign])
    await async_session.commit()

    statements = []

    def capture(conn, cursor, statement, parameters, context, executemany):
        statements.append(statement)

    event.listen(async_engine.sync_engine, "before_cursor_execute", capture)
    try:
        names = await fetch_names_by_ids(
            async_session, MembershipPlan, [gold.id, None, silver.id, gold.id, foreign.id], gym_a.id
        )
        assert names == {gold.id: "Gold", silver.id: "Silver"}
        assert len(statements) == 1

        statements.clear()
        assert await fetch_names_by_ids(async_session, MembershipPlan, [None], gym_a.id) == {}
        assert statements == []
    finally:
        event.remove(async_engine.sync_engine, "before_cursor_execute", capture)

