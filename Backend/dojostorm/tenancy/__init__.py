"""
Multi-tenancy package for Dojo Storm.

Modules:
    context: TenantContext resolution from the edge header or Host subdomain
    queries: Where predicate builder, pagination and tenant-scoped fetch helpers
"""

from .context import (
    TENANT_SLUG_HEADER,
    TenantContext,
    TenantResolutionSource,
    extract_subdomain,
    extract_tenant_slug,
    generate_slug,
    resolve_tenant,
    resolve_tenant_from_slug,
)

from .queries import (
    DEFAULT_LIMIT,
    MAX_BIGINT,
    MAX_LIMIT,
    Page,
    Pagination,
    Where,
    count_where,
    fetch_names_by_ids,
    fetch_page,
    first_where,
    list_where,
)

__all__ = [
    # Context
    "TENANT_SLUG_HEADER",
    "TenantContext",
    "TenantResolutionSource",
    "extract_subdomain",
    "extract_tenant_slug",
    "generate_slug",
    "resolve_tenant",
    "resolve_tenant_from_slug",
    # Query helpers
    "DEFAULT_LIMIT",
    "MAX_BIGINT",
    "MAX_LIMIT",
    "Page",
    "Pagination",
    "Where",
    "count_where",
    "fetch_names_by_ids",
    "fetch_page",
    "first_where",
    "list_where",
]
