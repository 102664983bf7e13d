"""
Strict Base Models for API Request/Response Validation

Request bodies reject unknown fields so frontend/backend mismatches fail fast
with a 422; response models ignore extra attributes coming from ORM rows.

Architecture:
    API Request -> StrictRequest (extra="forbid") -> Route Handler
    DB Model -> StrictResponse (extra="ignore") -> API Response
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict


class StrictRequest(BaseModel):
    """
    Base model for API request bodies with strict validation.

    Features:
        - extra="forbid": Unknown fields raise 422 Unprocessable Entity
        - validate_default=True: Validates default values
        - str_strip_whitespace=True: Trims whitespace from strings
    """

    model_config = ConfigDict(
        extra="forbid",
        validate_default=True,
        str_strip_whitespace=True,
        from_attributes=True,
    )


class StrictResponse(BaseModel):
    """
    Base model for API response bodies.

    Allows extra attributes (DB rows carry more columns than we expose) and
    ORM conversion via model_validate(row).
    """

    model_config = ConfigDict(
        extra="ignore",
        validate_default=True,
        from_attributes=True,
    )


class ErrorDetail(StrictResponse):
    """Error envelope produced by the error handling middleware."""

    error: str
    message: str
    error_id: str
    details: Optional[dict] = None
    timestamp: datetime


class PaginatedResponse(StrictResponse):
    """
    Base model for paginated list responses.

    Subclass and add an 'items' field with the appropriate type.
    """

    total: int
    page: int = 1
    page_size: int = 20
    has_more: bool = False


class SuccessResponse(StrictResponse):
    """Simple success response for operations without complex output."""

    success: bool = True
    message: str
