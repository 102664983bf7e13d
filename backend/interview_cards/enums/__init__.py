"""Enumerations shared across models, services and routers."""

from interview_cards.enums.learning import (
    CardSource,
    ContentLanguage,
    DifficultyTag,
    FrequencyTag,
    MasteryStatus,
    QuestionType,
    ReviewMode,
    ReviewPhase,
)

__all__ = [
    "CardSource",
    "ContentLanguage",
    "DifficultyTag",
    "FrequencyTag",
    "MasteryStatus",
    "QuestionType",
    "ReviewMode",
    "ReviewPhase",
]
