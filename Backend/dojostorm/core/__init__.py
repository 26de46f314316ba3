"""
Core module - configuration, database, staff session resolution, and error responses.
"""
from .config import Settings, get_settings
from .db import Base, dispose_engine, get_engine, get_session, get_sessionmaker
from .request_context import (
    ADMIN_COOKIE,
    AdminSession,
    create_admin_session_token,
    decode_admin_session_token,
    resolve_admin_session,
)
from .responses import (
    ApiError,
    Forbidden,
    NotFound,
    TenantNotResolved,
    Unauthorized,
    ValidationFailed,
    error_response,
    internal_error,
)

__all__ = [
    # Config
    "Settings",
    "get_settings",
    # Database
    "Base",
    "dispose_engine",
    "get_engine",
    "get_session",
    "get_sessionmaker",
    # Staff sessions
    "ADMIN_COOKIE",
    "AdminSession",
    "create_admin_session_token",
    "decode_admin_session_token",
    "resolve_admin_session",
    # Responses
    "ApiError",
    "Forbidden",
    "NotFound",
    "TenantNotResolved",
    "Unauthorized",
    "ValidationFailed",
    "error_response",
    "internal_error",
]
