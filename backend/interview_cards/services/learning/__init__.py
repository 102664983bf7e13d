"""
Learning Services

Scheduling, queue building, session persistence and the review state machine.
"""

from interview_cards.services.learning.review_queue import (
    QueueOptions,
    generate_review_queue,
)
from interview_cards.services.learning.review_service import (
    ReviewRegistry,
    ReviewService,
    SqlReviewBackend,
)
from interview_cards.services.learning.review_state import ReviewInteraction
from interview_cards.services.learning.scheduler import (
    ScheduleUpdate,
    calculate_streak,
    schedule_next,
)
from interview_cards.services.learning.session_service import (
    InMemorySessionRepository,
    SessionDebouncer,
    SessionStore,
    SqlSessionRepository,
)

__all__ = [
    "QueueOptions",
    "generate_review_queue",
    "ReviewRegistry",
    "ReviewService",
    "SqlReviewBackend",
    "ReviewInteraction",
    "ScheduleUpdate",
    "calculate_streak",
    "schedule_next",
    "InMemorySessionRepository",
    "SessionDebouncer",
    "SessionStore",
    "SqlSessionRepository",
]
