"""
Review System Enums

Defines the mastery tiers used by the scheduler, review modes, and the
catalog tags attached to interview cards.
"""

from enum import Enum


class MasteryStatus(str, Enum):
    """
    Self-assessed mastery tiers, ordered from weakest to strongest.

    Scheduling per tier:
    - NEW: due immediately, interval reset to 0
    - FUZZY: re-shown after a short retry delay
    - CAN_EXPLAIN: interval doubles, at least 1 day
    - SOLID: interval grows 2.5x, at least 7 days; graduates out of the queue
    """

    NEW = "new"
    FUZZY = "fuzzy"
    CAN_EXPLAIN = "can-explain"
    SOLID = "solid"

    @property
    def rank(self) -> int:
        """Position in the ordered tier list (0 = new)."""
        return _MASTERY_ORDER.index(self)


_MASTERY_ORDER = [
    MasteryStatus.NEW,
    MasteryStatus.FUZZY,
    MasteryStatus.CAN_EXPLAIN,
    MasteryStatus.SOLID,
]


class ReviewMode(str, Enum):
    """Review modes; a session is identified by scope plus mode."""

    QA = "qa"
    CODE = "code"
    MIX = "mix"


class ReviewPhase(str, Enum):
    """
    Phases of the review interaction state machine.

    IDLE -> FRONT (queue loaded) -> BACK (flipped) -> FRONT (next card) | IDLE
    """

    IDLE = "idle"
    FRONT = "front"  # Question shown, answer hidden
    BACK = "back"  # Answer shown


class CardSource(str, Enum):
    """Where a card came from."""

    UPSTREAM = "upstream"  # Imported from an upstream question bank
    USER = "user"  # Created by a user


class QuestionType(str, Enum):
    """Question type tags."""

    CONCEPT = "concept"
    CODING = "coding"
    OUTPUT = "output"
    DEBUG = "debug"
    SCENARIO = "scenario"
    DESIGN = "design"


class DifficultyTag(str, Enum):
    """Difficulty tags."""

    EASY = "easy"
    MUST_KNOW = "must-know"
    HARD = "hard"
    HAND_WRITE = "hand-write"


class FrequencyTag(str, Enum):
    """How often a question shows up in interviews."""

    HIGH = "high"
    MID = "mid"
    LOW = "low"


class ContentLanguage(str, Enum):
    """Content languages with localized card variants."""

    ZH_CN = "zh-CN"
    EN_US = "en-US"
