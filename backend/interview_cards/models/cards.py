"""
Card Catalog API Models (Pydantic)

A card as seen by a user is the immutable catalog row merged with that user's
override (mastery, counters, due date). Without an override the default
overlay applies: mastery=new, review_count=0, interval_days=0, due now.

ARCHITECTURE NOTE:
    The corresponding SQLAlchemy models live in interview_cards/db/models.py.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from pydantic import Field

from interview_cards.enums.learning import (
    CardSource,
    DifficultyTag,
    FrequencyTag,
    MasteryStatus,
    QuestionType,
)
from interview_cards.models.base import PaginatedResponse, StrictRequest, StrictResponse


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class CardSummary(StrictResponse):
    """
    Read-mostly projection of a card without answer text.

    This is what the local summary cache stores. `updated_at_raw` is the
    upstream update timestamp as received and serves only as the sync cursor.
    """

    id: str
    source: CardSource = CardSource.UPSTREAM
    upstream_source: Optional[str] = None
    category_l1_id: str
    category_l2_id: str
    category_l3_id: str
    title: str
    question: str
    question_type: QuestionType = QuestionType.CONCEPT
    difficulty: DifficultyTag = DifficultyTag.MUST_KNOW
    frequency: FrequencyTag = FrequencyTag.MID
    custom_tags: list[str] = Field(default_factory=list)
    origin_upstream_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    updated_at_raw: Optional[str] = None


class Card(StrictResponse):
    """Effective card: catalog fields plus the user's review overlay."""

    id: str
    source: CardSource = CardSource.UPSTREAM
    upstream_source: Optional[str] = None

    category_l1_id: str
    category_l2_id: str
    category_l3_id: str

    title: str
    title_zh: Optional[str] = None
    title_en: Optional[str] = None
    question: str
    question_zh: Optional[str] = None
    question_en: Optional[str] = None
    answer: Optional[str] = None
    answer_zh: Optional[str] = None
    answer_en: Optional[str] = None

    question_type: QuestionType = QuestionType.CONCEPT
    difficulty: DifficultyTag = DifficultyTag.MUST_KNOW
    frequency: FrequencyTag = FrequencyTag.MID
    custom_tags: list[str] = Field(default_factory=list)

    # Review overlay
    mastery: MasteryStatus = MasteryStatus.NEW
    review_count: int = 0
    interval_days: int = 0
    due_at: datetime = Field(default_factory=_utc_now)
    last_reviewed_at: Optional[datetime] = None
    last_submission_code: Optional[str] = None
    pass_rate: Optional[float] = None

    origin_upstream_id: Optional[str] = None
    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)


class CardUpsert(StrictRequest):
    """
    Request to create or update a catalog card.

    Omitting `id` creates a user card with a generated "user-<uuid>" id. Level-1
    and level-2 category ids are derived from the level-3 category when omitted.
    """

    id: Optional[str] = None
    source: CardSource = CardSource.USER
    upstream_source: Optional[str] = None
    category_l3_id: str
    category_l2_id: Optional[str] = None
    category_l1_id: Optional[str] = None

    title: str = Field(..., min_length=1)
    title_zh: Optional[str] = None
    title_en: Optional[str] = None
    question: Optional[str] = None
    question_zh: Optional[str] = None
    question_en: Optional[str] = None
    answer: Optional[str] = None
    answer_zh: Optional[str] = None
    answer_en: Optional[str] = None

    question_type: QuestionType = QuestionType.CONCEPT
    difficulty: DifficultyTag = DifficultyTag.MUST_KNOW
    frequency: FrequencyTag = FrequencyTag.MID
    custom_tags: list[str] = Field(default_factory=list)
    origin_upstream_id: Optional[str] = None


class OverrideFields(StrictRequest):
    """Mutable per-user fields written by an override upsert."""

    mastery: Optional[MasteryStatus] = None
    review_count: Optional[int] = Field(None, ge=0)
    interval_days: Optional[int] = Field(None, ge=0)
    due_at: Optional[datetime] = None
    last_reviewed_at: Optional[datetime] = None
    last_submission_code: Optional[str] = None
    pass_rate: Optional[float] = None


class OverrideResponse(StrictResponse):
    """Stored override row."""

    user_id: str
    card_id: str
    mastery: Optional[MasteryStatus] = None
    review_count: Optional[int] = None
    interval_days: Optional[int] = None
    due_at: Optional[datetime] = None
    last_reviewed_at: Optional[datetime] = None
    last_submission_code: Optional[str] = None
    pass_rate: Optional[float] = None
    updated_at: Optional[datetime] = None


class CategoryResponse(StrictResponse):
    """Category tree node."""

    id: str
    level: int = Field(..., ge=1, le=3)
    name: str
    name_en: Optional[str] = None
    parent_id: Optional[str] = None
    icon: Optional[str] = None


class CardSummaryPage(PaginatedResponse):
    """One page of cached card summaries plus the total match count."""

    items: list[CardSummary]


class CardAnswerResponse(StrictResponse):
    """Localized answer text; `answer` is None when the card has none."""

    card_id: str
    language: str
    answer: Optional[str] = None


class SolvedProgress(StrictResponse):
    """Solved/total counts over the cards matching a library filter."""

    solved: int = 0
    total: int = 0


class MasteryStats(StrictResponse):
    """Card counts per mastery tier; untracked cards count as new."""

    new: int = 0
    fuzzy: int = 0
    can_explain: int = Field(0, alias="can-explain")
    solid: int = 0

    model_config = StrictResponse.model_config | {"populate_by_name": True}


class DomainStats(StrictResponse):
    """Totals per level-2 category."""

    category_l2_id: str
    total: int = 0
    solid: int = 0


class LibraryStats(StrictResponse):
    """Dashboard statistics for a user."""

    mastery: MasteryStats
    due_count: int = 0
    streak_days: int = 0
    domains: list[DomainStats] = Field(default_factory=list)
