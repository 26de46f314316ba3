"""
Tenant resolution for Dojo Storm.

Every tenant-scoped query is parameterized by the ``client_id`` carried in a
TenantContext, and the TenantContext is derived only from the request's
routing information (edge header or Host subdomain). Query-string and body
values never participate.

Resolution order (first match wins):
    1. ``x-tenant-slug`` header, set by the edge proxy from the subdomain
    2. Subdomain of the ``Host`` header
    3. ``DEFAULT_TENANT_SLUG`` setting (single-gym and local installs)
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from fastapi import Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import get_settings
from ..core.responses import TenantNotResolved
from ..models import Client


logger = logging.getLogger(__name__)

TENANT_SLUG_HEADER = "x-tenant-slug"

_IPV4_RE = re.compile(r"^\d+\.\d+\.\d+\.\d+$")


class TenantResolutionSource(str, Enum):
    """How the tenant was determined."""

    HEADER = "header"               # From x-tenant-slug set by the edge
    SUBDOMAIN = "subdomain"         # From the Host header
    DEFAULT = "default"             # DEFAULT_TENANT_SLUG setting


@dataclass(frozen=True)
class TenantContext:
    """
    Immutable context representing the current tenant for a request.

    Attributes:
        client_id: The database ID of the tenant (clients.id)
        slug: URL-safe identifier (e.g., "thepitidaho")
        name: Human-readable gym name
        source: How this context was determined (for logging)
    """

    client_id: str
    slug: str
    name: Optional[str] = None
    source: TenantResolutionSource = TenantResolutionSource.HEADER

    def __post_init__(self):
        if not self.client_id:
            raise ValueError("client_id must be non-empty")


# ────────────────────────────────────────────────────────────────
# Host / slug helpers
# ────────────────────────────────────────────────────────────────

def extract_subdomain(host: str) -> Optional[str]:
    """
    Extract the tenant subdomain from a host string.

        "thepitidaho.dojostormsoftware.com" -> "thepitidaho"
        "app.dojostormsoftware.com"         -> "app"
        "localhost:3000"                    -> None
        "dojostormsoftware.com"             -> None
    """
    if not host:
        return None
    hostname = host.split(":")[0].strip().lower()

    if hostname == "localhost" or _IPV4_RE.match(hostname):
        return None

    parts = hostname.split(".")
    if len(parts) >= 3 and parts[0]:
        return parts[0]
    return None


def generate_slug(name: str) -> str:
    """Generate a slug from a gym name: "The Pit Idaho" -> "thepitidaho"."""
    return re.sub(r"[^a-z0-9]", "", name.lower())


def extract_tenant_slug(request: Request) -> tuple[Optional[str], TenantResolutionSource]:
    """Pick the tenant slug from routing data only."""
    slug = (request.headers.get(TENANT_SLUG_HEADER) or "").strip().lower()
    if slug:
        return slug, TenantResolutionSource.HEADER

    slug = extract_subdomain(request.headers.get("host", ""))
    if slug:
        return slug, TenantResolutionSource.SUBDOMAIN

    default_slug = get_settings().default_tenant_slug
    if default_slug:
        return default_slug.strip().lower(), TenantResolutionSource.DEFAULT

    return None, TenantResolutionSource.DEFAULT


# ────────────────────────────────────────────────────────────────
# Resolution
# ────────────────────────────────────────────────────────────────

async def resolve_tenant_from_slug(
    session: AsyncSession,
    slug: str,
    source: TenantResolutionSource = TenantResolutionSource.HEADER,
) -> Optional[TenantContext]:
    """
    Look up a tenant by slug.

    Returns:
        TenantContext if found, None if the slug is unknown
    """
    result = await session.execute(select(Client).where(Client.slug == slug))
    client = result.scalar_one_or_none()

    if not client:
        return None

    return TenantContext(
        client_id=client.id,
        slug=client.slug,
        name=client.name,
        source=source,
    )


async def resolve_tenant(request: Request, session: AsyncSession) -> TenantContext:
    """
    Resolve the owning tenant of a request.

    Must run before any tenant-scoped query is built.

    Raises:
        TenantNotResolved: no slug could be derived, or the slug is unknown
    """
    slug, source = extract_tenant_slug(request)
    if not slug:
        logger.warning(f"Tenant not resolved for {request.url.path}: no slug header or subdomain")
        raise TenantNotResolved()

    ctx = await resolve_tenant_from_slug(session, slug, source)
    if not ctx:
        logger.warning(f"Tenant not resolved for {request.url.path}: unknown slug '{slug}'")
        raise TenantNotResolved()

    logger.debug(f"Resolved tenant from {source.value}: {slug} -> client_id={ctx.client_id}")
    return ctx


__all__ = [
    "TENANT_SLUG_HEADER",
    "TenantContext",
    "TenantResolutionSource",
    "extract_subdomain",
    "extract_tenant_slug",
    "generate_slug",
    "resolve_tenant",
    "resolve_tenant_from_slug",
]
