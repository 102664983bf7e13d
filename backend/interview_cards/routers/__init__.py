"""API Routers package."""

from interview_cards.routers import health as health_router
from interview_cards.routers import library as library_router
from interview_cards.routers import lists as lists_router
from interview_cards.routers import review as review_router

__all__ = ["health_router", "library_router", "lists_router", "review_router"]
