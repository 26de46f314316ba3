"""
Tenant-scoped query helpers.

ALL reads of tenant data go through a Where predicate that starts from the
request's tenant (or the portal member) and then adds optional filters.
The same Where drives a page query and its count, so totals always reflect
the exact predicate of the page minus limit/offset.

Usage:
    from dojostorm.tenancy.queries import Where, Pagination, fetch_page

    where = (
        Where.for_tenant(AuditLog, tenant.client_id)
        .equals(AuditLog.entity_type, entity_type)
        .contains(AuditLog.summary, search)
    )
    page = await fetch_page(
        session, AuditLog, where, [AuditLog.created_at.desc()], Pagination.parse(limit, offset)
    )
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Generic, Iterable, Optional, Sequence, Type, TypeVar

from sqlalchemy import ColumnElement, Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import DeclarativeBase, InstrumentedAttribute

from ..core.responses import ValidationFailed

T = TypeVar("T", bound=DeclarativeBase)

DEFAULT_LIMIT = 50
MAX_LIMIT = 200
MAX_BIGINT = 2**63 - 1


# ────────────────────────────────────────────────────────────────
# Predicate builder
# ────────────────────────────────────────────────────────────────

class Where:
    """
    Immutable conjunction of SQLAlchemy predicates.

    Every combinator returns a new Where. A combinator whose value is None
    (or an empty search string) adds nothing, so optional filters compose
    without branching at the call site.
    """

    __slots__ = ("_clauses",)

    def __init__(self, *clauses: ColumnElement[bool]):
        self._clauses: tuple[ColumnElement[bool], ...] = tuple(clauses)

    @classmethod
    def for_tenant(cls, model: Type[T], client_id: str) -> "Where":
        return cls(model.client_id == client_id)

    @classmethod
    def for_member(cls, model: Type[T], member_id: str) -> "Where":
        return cls(model.member_id == member_id)

    def _with(self, clause: ColumnElement[bool]) -> "Where":
        return Where(*self._clauses, clause)

    def equals(self, column: InstrumentedAttribute, value: Any) -> "Where":
        if value is None:
            return self
        return self._with(column == value)

    def in_list(self, column: InstrumentedAttribute, values: Optional[Iterable[Any]]) -> "Where":
        # An empty list is kept: it matches nothing, which is the correct answer.
        if values is None:
            return self
        return self._with(column.in_(list(values)))

    def contains(self, column: InstrumentedAttribute, text: Optional[str]) -> "Where":
        """Substring match. Wildcards in ``text`` are escaped; case follows the DB collation."""
        if not text:
            return self
        return self._with(column.contains(text, autoescape=True))

    def between(
        self,
        column: InstrumentedAttribute,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> "Where":
        """Half-open range: start <= column < end. Either bound may be omitted."""
        where = self
        if start is not None:
            where = where._with(column >= start)
        if end is not None:
            where = where._with(column < end)
        return where

    @property
    def clauses(self) -> tuple[ColumnElement[bool], ...]:
        return self._clauses

    def apply(self, stmt: Select) -> Select:
        return stmt.where(*self._clauses)


# ────────────────────────────────────────────────────────────────
# Pagination
# ────────────────────────────────────────────────────────────────

def _parse_int(raw: Optional[str], name: str, default: int) -> int:
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw.strip())
    except ValueError:
        raise ValidationFailed(f"{name} must be an integer")
    # Drivers bind LIMIT/OFFSET as signed 64-bit integers.
    if abs(value) > MAX_BIGINT:
        raise ValidationFailed(f"{name} is out of range")
    return value


@dataclass(frozen=True)
class Pagination:
    limit: int = DEFAULT_LIMIT
    offset: int = 0

    @classmethod
    def parse(cls, limit: Optional[str] = None, offset: Optional[str] = None) -> "Pagination":
        """
        Normalize raw query-string values.

        Missing values take the defaults (50 / 0). Non-integers and values
        outside the signed 64-bit range raise ValidationFailed. limit is clamped to 1..MAX_LIMIT and a negative
        offset becomes 0.
        """
        parsed_limit = _parse_int(limit, "limit", DEFAULT_LIMIT)
        parsed_offset = _parse_int(offset, "offset", 0)
        return cls(
            limit=min(max(parsed_limit, 1), MAX_LIMIT),
            offset=max(parsed_offset, 0),
        )


@dataclass
class Page(Generic[T]):
    items: list[T] = field(default_factory=list)
    total: int = 0


# ────────────────────────────────────────────────────────────────
# Execution helpers
# ────────────────────────────────────────────────────────────────

async def count_where(session: AsyncSession, model: Type[T], where: Where) -> int:
    stmt = where.apply(select(func.count()).select_from(model))
    result = await session.execute(stmt)
    return int(result.scalar_one())


async def list_where(
    session: AsyncSession,
    model: Type[T],
    where: Where,
    order_by: Sequence[Any] = (),
    limit: Optional[int] = None,
    options: Sequence[Any] = (),
) -> list[T]:
    stmt = where.apply(select(model)).order_by(*order_by)
    if options:
        stmt = stmt.options(*options)
    if limit is not None:
        stmt = stmt.limit(limit)
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def first_where(
    session: AsyncSession,
    model: Type[T],
    where: Where,
    order_by: Sequence[Any] = (),
    options: Sequence[Any] = (),
) -> Optional[T]:
    rows = await list_where(session, model, where, order_by, limit=1, options=options)
    return rows[0] if rows else None


async def fetch_page(
    session: AsyncSession,
    model: Type[T],
    where: Where,
    order_by: Sequence[Any],
    pagination: Pagination,
    options: Sequence[Any] = (),
) -> Page[T]:
    """
    Fetch one page plus the total under the same predicate.

    The two statements run one after the other: an AsyncSession does not
    allow concurrent operations.
    """
    stmt = (
        where.apply(select(model))
        .order_by(*order_by)
        .limit(pagination.limit)
        .offset(pagination.offset)
    )
    if options:
        stmt = stmt.options(*options)
    result = await session.execute(stmt)
    items = list(result.scalars().all())
    total = await count_where(session, model, where)
    return Page(items=items, total=total)


async def fetch_names_by_ids(
    session: AsyncSession,
    model: Type[T],
    ids: Iterable[Optional[str]],
    client_id: str,
) -> dict[str, str]:
    """
    Resolve ids to names with a single IN query, scoped to the tenant.

    None entries and duplicates are dropped; no query is issued when nothing
    is left.
    """
    distinct_ids = sorted({i for i in ids if i})
    if not distinct_ids:
        return {}
    stmt = select(model.id, model.name).where(
        model.client_id == client_id,
        model.id.in_(distinct_ids),
    )
    result = await session.execute(stmt)
    return {row.id: row.name for row in result}
