"""
Error Handling Middleware

Provides consistent error responses across the API.

Features:
- Standardized error response format
- Correlation IDs for log tracking
- Sanitized responses (hides internal details unless debug is on)
- Custom exception classes for the service layer

Usage:
    from interview_cards.middleware.error_handling import setup_error_handling, NotFoundError

    setup_error_handling(app, debug=settings.DEBUG)

    raise NotFoundError(f"Card {card_id} not found")

Exception handling hierarchy:
    - HTTPException: Re-raised for FastAPI's built-in handler
    - ServiceError: Custom exceptions -> structured JSON response
    - Exception: Catch-all for unexpected errors -> sanitized 500
"""

import logging
import traceback
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)


# =============================================================================
# Custom Exceptions
# =============================================================================


class ServiceError(Exception):
    """
    Base exception for service errors.

    Carries an HTTP status code, an error code for categorization and
    optional details for debugging.

    Example:
        raise ServiceError("Database connection failed", status_code=503)
    """

    status_code: int = 500
    error_code: str = "service_error"

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        error_code: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message)
        self.message = message
        if status_code:
            self.status_code = status_code
        if error_code:
            self.error_code = error_code
        self.details = details


class ValidationError(ServiceError):
    """Raised when input data fails domain validation."""

    status_code = 422
    error_code = "validation_error"


class NotFoundError(ServiceError):
    """Raised when a requested resource doesn't exist."""

    status_code = 404
    error_code = "not_found"


class AuthorizationError(ServiceError):
    """Raised when the user lacks permission for an operation."""

    status_code = 403
    error_code = "forbidden"


class ProtectedListError(AuthorizationError):
    """Raised when deleting the default (favorites) or uploads list."""

    error_code = "protected_list"


class InvalidTransitionError(ServiceError):
    """Raised when a review action is not allowed in the current phase."""

    status_code = 409
    error_code = "invalid_transition"


# =============================================================================
# Error Handling Middleware
# =============================================================================


def _error_content(
    error_code: str,
    message: str,
    error_id: str,
    details: Optional[dict] = None,
) -> dict:
    return {
        "error": error_code,
        "message": message,
        "error_id": error_id,
        "details": details,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """
    Global error handling middleware.

    - Catches unhandled exceptions
    - Logs with correlation ID
    - Returns consistent error format
    - Hides internal details unless debug is enabled
    """

    def __init__(self, app, debug: bool = False):
        super().__init__(app)
        self.debug = debug

    async def dispatch(self, request: Request, call_next):
        """Process request and handle any errors."""
        error_id = str(uuid4())[:8]

        try:
            return await call_next(request)

        except HTTPException:
            raise

        except ServiceError as e:
            logger.error(
                f"[{error_id}] {e.error_code}: {e.message}",
                extra={
                    "error_id": error_id,
                    "error_code": e.error_code,
                    "path": request.url.path,
                    "method": request.method,
                },
            )
            return JSONResponse(
                status_code=e.status_code,
                content=_error_content(
                    e.error_code,
                    e.message,
                    error_id,
                    e.details if self.debug else None,
                ),
            )

        except Exception as e:
            logger.error(
                f"[{error_id}] Unhandled error: {type(e).__name__}: {e}",
                extra={
                    "error_id": error_id,
                    "path": request.url.path,
                    "method": request.method,
                    "traceback": traceback.format_exc(),
                },
            )
            details = None
            if self.debug:
                details = {
                    "exception": type(e).__name__,
                    "message": str(e),
                    "traceback": traceback.format_exc(),
                }
            return JSONResponse(
                status_code=500,
                content=_error_content(
                    "internal_server_error",
                    "An unexpected error occurred",
                    error_id,
                    details,
                ),
            )


async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    """Exception handler variant used for errors raised inside route handlers."""
    error_id = str(uuid4())[:8]
    logger.warning(f"[{error_id}] {exc.error_code}: {exc.message} ({request.url.path})")
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_content(exc.error_code, exc.message, error_id),
    )


def setup_error_handling(app: FastAPI, debug: bool = False) -> None:
    """
    Configure error handling on the FastAPI app.

    Args:
        app: FastAPI application instance
        debug: Whether to include stack traces in responses
    """
    app.add_exception_handler(ServiceError, service_error_handler)
    app.add_middleware(ErrorHandlingMiddleware, debug=debug)
    logger.info(f"Error handling middleware enabled (debug={debug})")
