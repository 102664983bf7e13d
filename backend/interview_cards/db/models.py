"""
SQLAlchemy Database Models

Tables:
- categories: Three-level category tree (module -> area -> domain)
- cards: Shared, read-mostly card catalog
- card_overrides: Per-user mutable review state layered over a card
- card_lists: User-defined card lists (favorites is the default list)
- review_sessions: Resumable review queues keyed by user and "scope:mode"
- review_logs: Append-only log of mastery submissions
- card_summary_cache: Local mirror of card summaries (no answer text)
- cache_meta: Key/value metadata for the summary cache (sync watermark)

ARCHITECTURE NOTE:
    This file contains SQLALCHEMY models for database persistence.
    The corresponding Pydantic schemas live in interview_cards/models/.

    Data flows: Service Layer -> Pydantic -> SQLAlchemy -> Database
"""

from datetime import datetime, timezone
from typing import Optional
import uuid

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from interview_cards.db.base import Base


def _utc_now() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


# ===========================================
# Catalog
# ===========================================


class Category(Base):
    """
    Category tree node.

    Levels strictly increase from parent to child (1 -> 2 -> 3). Cards only
    reference level-3 categories.
    """

    __tablename__ = "categories"

    id: Mapped[str] = mapped_column(String(100), primary_key=True)
    level: Mapped[int] = mapped_column(Integer)
    name: Mapped[str] = mapped_column(String(200))
    name_en: Mapped[Optional[str]] = mapped_column(String(200))
    parent_id: Mapped[Optional[str]] = mapped_column(String(100), index=True)
    icon: Mapped[Optional[str]] = mapped_column(String(50))


class Card(Base):
    """
    Catalog card.

    Immutable from the reviewer's point of view; per-user review state lives in
    CardOverride. `updated_at` doubles as the sync cursor for the summary cache.

    Attributes:
        id: Stable source-derived id ("febobo-123") or "user-<uuid>".
        source: "upstream" or "user".
        category_l1_id/category_l2_id/category_l3_id: Category path.
        title/question/answer: Default-language content, with *_zh/*_en variants.
        question_type/difficulty/frequency: Catalog tags.
        custom_tags: Free-form tags.
        origin_upstream_id: External id in the upstream source.
    """

    __tablename__ = "cards"

    id: Mapped[str] = mapped_column(String(100), primary_key=True)
    source: Mapped[str] = mapped_column(String(20), default="upstream")
    upstream_source: Mapped[Optional[str]] = mapped_column(String(50))

    category_l1_id: Mapped[str] = mapped_column(String(100))
    category_l2_id: Mapped[str] = mapped_column(String(100))
    category_l3_id: Mapped[str] = mapped_column(String(100), index=True)

    title: Mapped[str] = mapped_column(Text)
    title_zh: Mapped[Optional[str]] = mapped_column(Text)
    title_en: Mapped[Optional[str]] = mapped_column(Text)
    question: Mapped[str] = mapped_column(Text)
    question_zh: Mapped[Optional[str]] = mapped_column(Text)
    question_en: Mapped[Optional[str]] = mapped_column(Text)
    answer: Mapped[Optional[str]] = mapped_column(Text)
    answer_zh: Mapped[Optional[str]] = mapped_column(Text)
    answer_en: Mapped[Optional[str]] = mapped_column(Text)

    question_type: Mapped[str] = mapped_column(String(20), default="concept")
    difficulty: Mapped[str] = mapped_column(String(20), default="must-know")
    frequency: Mapped[str] = mapped_column(String(10), default="mid")
    custom_tags: Mapped[Optional[list]] = mapped_column(JSON, default=list)

    origin_upstream_id: Mapped[Optional[str]] = mapped_column(String(200))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, index=True
    )


class CardOverride(Base):
    """
    Per-user review state for a card.

    At most one row per (user_id, card_id); writes are upserts and the last
    write wins.
    """

    __tablename__ = "card_overrides"
    __table_args__ = (
        UniqueConstraint("user_id", "card_id", name="uq_card_overrides_user_card"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(100), index=True)
    card_id: Mapped[str] = mapped_column(String(100), index=True)

    mastery: Mapped[Optional[str]] = mapped_column(String(20))
    review_count: Mapped[Optional[int]] = mapped_column(Integer)
    interval_days: Mapped[Optional[int]] = mapped_column(Integer)
    due_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    last_reviewed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True)
    )
    last_submission_code: Mapped[Optional[str]] = mapped_column(Text)
    pass_rate: Mapped[Optional[float]] = mapped_column(Float)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now
    )


# ===========================================
# Lists, Sessions, Logs
# ===========================================


class CardList(Base):
    """User-defined card list. `card_ids` keeps insertion order for display."""

    __tablename__ = "card_lists"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(String(100), index=True)
    name: Mapped[str] = mapped_column(String(200))
    card_ids: Mapped[list] = mapped_column(JSON, default=list)
    is_default: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now
    )


class ReviewSessionRecord(Base):
    """
    Persisted review session.

    `id` is "scope:mode"; together with user_id it identifies the session.
    """

    __tablename__ = "review_sessions"

    user_id: Mapped[str] = mapped_column(String(100), primary_key=True)
    id: Mapped[str] = mapped_column(String(300), primary_key=True)
    scope: Mapped[str] = mapped_column(String(250))
    mode: Mapped[str] = mapped_column(String(10))
    queue_card_ids: Mapped[list] = mapped_column(JSON, default=list)
    cursor: Mapped[int] = mapped_column(Integer, default=0)
    filters: Mapped[Optional[dict]] = mapped_column(JSON)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now
    )


class ReviewLog(Base):
    """Append-only record of a mastery submission."""

    __tablename__ = "review_logs"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(100), index=True)
    card_id: Mapped[str] = mapped_column(String(100))
    category_l2_id: Mapped[Optional[str]] = mapped_column(String(100))
    category_l3_id: Mapped[Optional[str]] = mapped_column(String(100))
    reviewed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now
    )
    previous_mastery: Mapped[str] = mapped_column(String(20))
    new_mastery: Mapped[str] = mapped_column(String(20))
    did_reveal_answer: Mapped[bool] = mapped_column(Boolean, default=True)
    time_spent_ms: Mapped[int] = mapped_column(Integer, default=0)


# ===========================================
# Local Summary Cache
# ===========================================


class CardSummaryCacheRow(Base):
    """
    Cached card summary (no answer text).

    `updated_at_raw` is the upstream update timestamp exactly as received; it is
    only used as the sync cursor.
    """

    __tablename__ = "card_summary_cache"

    id: Mapped[str] = mapped_column(String(100), primary_key=True)
    source: Mapped[str] = mapped_column(String(20))
    upstream_source: Mapped[Optional[str]] = mapped_column(String(50))
    category_l1_id: Mapped[str] = mapped_column(String(100))
    category_l2_id: Mapped[str] = mapped_column(String(100))
    category_l3_id: Mapped[str] = mapped_column(String(100), index=True)
    title: Mapped[str] = mapped_column(Text)
    question: Mapped[str] = mapped_column(Text)
    question_type: Mapped[str] = mapped_column(String(20))
    difficulty: Mapped[str] = mapped_column(String(20))
    frequency: Mapped[str] = mapped_column(String(10))
    custom_tags: Mapped[Optional[list]] = mapped_column(JSON, default=list)
    origin_upstream_id: Mapped[Optional[str]] = mapped_column(String(200))
    created_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    updated_at_raw: Mapped[Optional[str]] = mapped_column(String(64))


class CacheMeta(Base):
    """Key/value metadata for the summary cache."""

    __tablename__ = "cache_meta"

    key: Mapped[str] = mapped_column(String(100), primary_key=True)
    value: Mapped[Optional[str]] = mapped_column(Text)
