"""Pydantic API models."""

from interview_cards.models.base import (
    ErrorDetail,
    PaginatedResponse,
    StrictRequest,
    StrictResponse,
    SuccessResponse,
)
from interview_cards.models.cards import (
    Card,
    CardAnswerResponse,
    CardSummary,
    CardSummaryPage,
    CardUpsert,
    CategoryResponse,
    DomainStats,
    LibraryStats,
    MasteryStats,
    OverrideFields,
    OverrideResponse,
    SolvedProgress,
)
from interview_cards.models.lists import (
    CardListAddCard,
    CardListCreate,
    CardListResponse,
    CardListUpdate,
)
from interview_cards.models.review import (
    FiltersPatch,
    GoToRequest,
    MasterySubmitRequest,
    ReviewFilters,
    ReviewSession,
    ReviewStateResponse,
    SessionRef,
    StartReviewRequest,
    default_filters,
    session_key,
)

__all__ = [
    "ErrorDetail",
    "PaginatedResponse",
    "StrictRequest",
    "StrictResponse",
    "SuccessResponse",
    "Card",
    "CardAnswerResponse",
    "CardSummary",
    "CardSummaryPage",
    "CardUpsert",
    "CategoryResponse",
    "DomainStats",
    "LibraryStats",
    "MasteryStats",
    "OverrideFields",
    "OverrideResponse",
    "SolvedProgress",
    "CardListAddCard",
    "CardListCreate",
    "CardListResponse",
    "CardListUpdate",
    "FiltersPatch",
    "GoToRequest",
    "MasterySubmitRequest",
    "ReviewFilters",
    "ReviewSession",
    "ReviewStateResponse",
    "SessionRef",
    "StartReviewRequest",
    "default_filters",
    "session_key",
]
