"""
Review Session API Models (Pydantic)

Review sessions are identified by (scope, mode) per user, where scope is one of
"all", "due", "favorites", "category:<id>", "list:<id>", "mastery:<tier>" or
"card:<id>". A session holds the ordered queue of card ids for one sitting, a
cursor into it, and the filter snapshot used to build it.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from pydantic import Field

from interview_cards.enums.learning import (
    MasteryStatus,
    QuestionType,
    ReviewMode,
    ReviewPhase,
)
from interview_cards.models.base import StrictRequest, StrictResponse
from interview_cards.models.cards import Card


def session_key(scope: str, mode: ReviewMode | str) -> str:
    """Session identity key "scope:mode"."""
    mode_value = mode.value if isinstance(mode, ReviewMode) else mode
    return f"{scope}:{mode_value}"


class ReviewFilters(StrictResponse):
    """Filter snapshot stored with a session."""

    only_due: bool = False
    mastery_filter: list[MasteryStatus] = Field(default_factory=list)
    question_type_filter: list[QuestionType] = Field(default_factory=list)
    shuffle: bool = False


def default_filters(scope: str) -> ReviewFilters:
    """Filters used when a session is created without explicit filters."""
    return ReviewFilters(only_due=scope == "due")


class ReviewSession(StrictResponse):
    """
    Resumable review session.

    Invariant: 0 <= cursor < len(queue_card_ids) whenever the queue is
    non-empty; an empty queue always has cursor 0.
    """

    id: str
    scope: str
    mode: ReviewMode
    queue_card_ids: list[str] = Field(default_factory=list)
    cursor: int = 0
    filters: ReviewFilters = Field(default_factory=ReviewFilters)
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_empty(self) -> bool:
        return not self.queue_card_ids

    @property
    def current_card_id(self) -> Optional[str]:
        if not self.queue_card_ids:
            return None
        return self.queue_card_ids[self.cursor]


# ===========================================
# Requests
# ===========================================


class StartReviewRequest(StrictRequest):
    """Start (or resume) a review for a scope."""

    scope: str = "all"
    mode: ReviewMode = ReviewMode.QA
    continue_session: bool = True
    filters: Optional[ReviewFilters] = None


class SessionRef(StrictRequest):
    """Identifies a live review session."""

    scope: str = "all"
    mode: ReviewMode = ReviewMode.QA


class MasterySubmitRequest(SessionRef):
    """Mastery self-assessment for the current card."""

    mastery: MasteryStatus


class GoToRequest(SessionRef):
    """Jump to a queue position."""

    index: int = Field(..., ge=0)


class FiltersPatch(SessionRef):
    """Partial filter update for a live session."""

    only_due: Optional[bool] = None
    mastery_filter: Optional[list[MasteryStatus]] = None
    question_type_filter: Optional[list[QuestionType]] = None
    shuffle: Optional[bool] = None


# ===========================================
# Responses
# ===========================================


class ReviewStateResponse(StrictResponse):
    """Snapshot of a review interaction for the presentation layer."""

    session: Optional[ReviewSession] = None
    phase: ReviewPhase = ReviewPhase.IDLE
    current_card: Optional[Card] = None
    answer: Optional[str] = None
    answer_loading: bool = False
    remaining: int = 0
    nothing_to_review: bool = True
