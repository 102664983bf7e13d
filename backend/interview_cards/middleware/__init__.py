"""HTTP middleware."""

from interview_cards.middleware.error_handling import (
    AuthorizationError,
    ErrorHandlingMiddleware,
    InvalidTransitionError,
    NotFoundError,
    ProtectedListError,
    ServiceError,
    ValidationError,
    setup_error_handling,
)

__all__ = [
    "AuthorizationError",
    "ErrorHandlingMiddleware",
    "InvalidTransitionError",
    "NotFoundError",
    "ProtectedListError",
    "ServiceError",
    "ValidationError",
    "setup_error_handling",
]
