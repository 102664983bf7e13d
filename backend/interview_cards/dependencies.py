"""
FastAPI Dependencies

Request-scoped access to the caller's identity and the process-wide review
components stored on app.state by the lifespan.

Authentication is handled upstream; the authenticated user id arrives in the
X-User-Id header. A missing header means an anonymous caller, for which the
services return neutral results.
"""

from typing import Optional

from fastapi import Header, Request

from interview_cards.services.learning.review_service import ReviewService
from interview_cards.services.learning.session_service import SessionStore
from interview_cards.services.summary_cache import CardSummaryCache


async def get_current_user_id(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
) -> Optional[str]:
    """Authenticated user id, or None for anonymous callers."""
    if x_user_id is None:
        return None
    return x_user_id.strip() or None


def get_session_store(request: Request) -> SessionStore:
    return request.app.state.session_store


def get_summary_cache(request: Request) -> CardSummaryCache:
    return request.app.state.summary_cache


def get_review_service(request: Request) -> ReviewService:
    return request.app.state.review_service
