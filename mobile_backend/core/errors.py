"""
Error Handling
==============

Error codes, the application exception hierarchy and exception handlers.

Edge functions answer with small flat JSON bodies (``{"error": "..."}``)
rather than a nested envelope, because the mobile clients and RevenueCat
read them directly. ``AppException`` therefore carries its full response
body and headers; handlers render it verbatim.

Webhook fault taxonomy:

- ``ConfigurationError``     missing shared secret           -> 500
- ``WebhookAuthError``       bad shared secret               -> 401
- ``PermanentPayloadError``  will never succeed on retry     -> 200 (acknowledged)
- ``TransientStorageError``  retryable write failure         -> 503
- ``ProcessingError``        unexpected exception            -> 500
"""

import logging
from typing import Any, Mapping, Optional

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


# =============================================================================
# Error Codes
# =============================================================================

class ErrorCodes:
    """Standardized error codes (used in logs and the generic handlers)."""

    # Webhook
    WEBHOOK_MISCONFIGURED = "WEBHOOK_001"
    WEBHOOK_UNAUTHORIZED = "WEBHOOK_002"
    WEBHOOK_PAYLOAD_IGNORED = "WEBHOOK_003"
    WEBHOOK_STORAGE_UNAVAILABLE = "WEBHOOK_004"
    WEBHOOK_PROCESSING_FAILED = "WEBHOOK_005"

    # Account functions
    AUTH_MISSING_HEADER = "AUTH_001"
    AUTH_INVALID_USER = "AUTH_002"
    APPLE_EXCHANGE_FAILED = "APPLE_001"

    # General
    METHOD_NOT_ALLOWED = "METHOD_NOT_ALLOWED"
    SERVER_MISCONFIGURED = "SERVER_MISCONFIGURED"
    INTERNAL_ERROR = "INTERNAL_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"


# =============================================================================
# Custom Exceptions
# =============================================================================

class AppException(HTTPException):
    """Base application exception carrying the exact response body."""

    def __init__(
        self,
        status_code: int,
        code: str,
        content: dict[str, Any],
        headers: Optional[Mapping[str, str]] = None,
    ):
        self.code = code
        self.content = content
        super().__init__(
            status_code=status_code,
            detail=content,
            headers=dict(headers) if headers else None,
        )

    def to_response(self, headers: Optional[Mapping[str, str]] = None) -> JSONResponse:
        """Render as a JSON response, merging in extra headers."""
        merged = dict(self.headers or {})
        if headers:
            merged.update(headers)
        return JSONResponse(
            status_code=self.status_code,
            content=self.content,
            headers=merged,
        )


class MethodNotAllowedError(AppException):
    """Request method is not accepted by the function."""

    def __init__(self, **kwargs):
        super().__init__(
            status_code=status.HTTP_405_METHOD_NOT_ALLOWED,
            code=ErrorCodes.METHOD_NOT_ALLOWED,
            content={"error": "Method not allowed"},
            **kwargs,
        )


class ConfigurationError(AppException):
    """Required server configuration is missing."""

    def __init__(self, missing: str = "", code: str = ErrorCodes.SERVER_MISCONFIGURED, **kwargs):
        self.missing = missing
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            code=code,
            content={"error": "Server configuration error"},
            **kwargs,
        )


class WebhookAuthError(AppException):
    """Shared-secret mismatch on an inbound webhook."""

    def __init__(self, **kwargs):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            code=ErrorCodes.WEBHOOK_UNAUTHORIZED,
            content={"error": "Unauthorized"},
            **kwargs,
        )


class PermanentPayloadError(AppException):
    """
    Event that can never succeed on retry.

    Acknowledged with HTTP 200 so the provider stops resending it.
    ``reason`` is for logs only and never reaches the response.
    """

    def __init__(self, message: str, reason: Optional[str] = None, **kwargs):
        self.reason = reason or message
        super().__init__(
            status_code=status.HTTP_200_OK,
            code=ErrorCodes.WEBHOOK_PAYLOAD_IGNORED,
            content={"success": True, "message": message},
            **kwargs,
        )


class TransientStorageError(AppException):
    """Retryable write failure; the provider should redeliver."""

    def __init__(self, details: str, **kwargs):
        super().__init__(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            code=ErrorCodes.WEBHOOK_STORAGE_UNAVAILABLE,
            content={"success": False, "error": "Database error", "details": details},
            **kwargs,
        )


class ProcessingError(AppException):
    """Unexpected failure while processing a webhook."""

    def __init__(self, **kwargs):
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            code=ErrorCodes.WEBHOOK_PROCESSING_FAILED,
            content={"success": False, "error": "Processing error"},
            **kwargs,
        )


class AuthenticationError(AppException):
    """Caller could not be identified from its bearer token."""

    def __init__(
        self,
        message: str = "Invalid user",
        code: str = ErrorCodes.AUTH_INVALID_USER,
        **kwargs,
    ):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            code=code,
            content={"error": message},
            **kwargs,
        )


class BadRequestError(AppException):
    """Malformed client request."""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            code=ErrorCodes.VALIDATION_ERROR,
            content={"error": message},
            **kwargs,
        )


class InternalError(AppException):
    """Server-side failure with a client-safe message."""

    def __init__(self, message: str, code: str = ErrorCodes.INTERNAL_ERROR, **kwargs):
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            code=code,
            content={"error": message},
            **kwargs,
        )


# =============================================================================
# Exception Handlers
# =============================================================================

async def app_exception_handler(
    request: Request,
    exc: AppException,
) -> JSONResponse:
    """Handler for AppException."""
    return exc.to_response()


async def http_exception_handler(
    request: Request,
    exc: HTTPException,
) -> JSONResponse:
    """Handler for standard HTTPException."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """Handler for request validation errors."""
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"error": "Validation error", "code": ErrorCodes.VALIDATION_ERROR},
    )


async def global_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """Handler for unhandled exceptions."""
    logger.exception("Unhandled error on %s: %s", request.url.path, type(exc).__name__)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "An unexpected error occurred", "code": ErrorCodes.INTERNAL_ERROR},
    )


def setup_exception_handlers(app):
    """
    Register exception handlers with FastAPI app.

    Usage:
        from mobile_backend.core.errors import setup_exception_handlers
        setup_exception_handlers(app)
    """
    from fastapi.exceptions import RequestValidationError

    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, global_exception_handler)
