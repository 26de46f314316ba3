"""
Error taxonomy and JSON error bodies.

RESPONSE FORMAT:
    Success responses are the resource payload itself (status 200).

    Error responses always carry a single short string:
        {"error": "Human-readable message"}

ERROR TYPES:
    - Unauthorized (401): no session, bad session, or session for another tenant
    - ValidationFailed (400): request data failed validation
    - TenantNotResolved (400): no tenant could be derived from the request
    - Forbidden (403): session lacks the permission key for the resource
    - NotFound (404): resource or template key does not exist
    - anything else (500): logged server-side, generic message to the client

Handlers catch at their own boundary:

    try:
        ...
    except ApiError as exc:
        return exc.to_response()
    except Exception:
        return internal_error(logger, "GET /programs", "Failed to load programs")
"""

import logging
from typing import Optional

from fastapi import status
from fastapi.responses import JSONResponse


class ApiError(Exception):
    """Base class for errors that map to a client-visible status and message."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    default_message: str = "Bad request"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_response(self) -> JSONResponse:
        return error_response(self.message, self.status_code)


class Unauthorized(ApiError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Unauthorized"


class ValidationFailed(ApiError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid request"


class Forbidden(ApiError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Forbidden"


class NotFound(ApiError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class TenantNotResolved(ApiError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Tenant not resolved"


def error_response(message: str, status_code: int) -> JSONResponse:
    """Create a JSON error body. Never pass exception text in here."""
    return JSONResponse(status_code=status_code, content={"error": message})


def internal_error(logger: logging.Logger, operation: str, message: str) -> JSONResponse:
    """
    Log the active exception with its traceback and return a generic 500.

    Must be called from inside an ``except`` block.
    """
    logger.exception(f"{operation} failed")
    return error_response(message, status.HTTP_500_INTERNAL_SERVER_ERROR)
