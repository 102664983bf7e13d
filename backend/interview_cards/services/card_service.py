"""
Card Service

Catalog reads/writes and the per-user override overlay.

A card seen by a user is the shared catalog row merged with that user's
override row. Without an override the default overlay applies (mastery new,
review_count 0, interval_days 0, due now). Overrides are upserted on
(user_id, card_id): last write wins and repeated writes are idempotent.

Review queries load cards without answer text; answers are fetched separately
through get_card_answer() when a card is flipped.

Usage:
    service = CardService(db)
    cards = await service.get_review_cards(user_id, "category:react-hooks")
    await service.upsert_override(user_id, card.id, update.as_card_fields())
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Mapping, Optional, Sequence, Union
from uuid import uuid4

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import defer

from interview_cards.config.settings import settings
from interview_cards.db.models import Card as CardRow
from interview_cards.db.models import CardOverride
from interview_cards.enums.learning import ContentLanguage, MasteryStatus
from interview_cards.models.cards import (
    Card,
    CardSummary,
    CardUpsert,
    OverrideFields,
    OverrideResponse,
)
from interview_cards.services.category_service import CategoryService
from interview_cards.services.list_service import ListService

logger = logging.getLogger(__name__)

CATALOG_FIELDS = (
    "id",
    "source",
    "upstream_source",
    "category_l1_id",
    "category_l2_id",
    "category_l3_id",
    "title",
    "title_zh",
    "title_en",
    "question",
    "question_zh",
    "question_en",
    "question_type",
    "difficulty",
    "frequency",
    "origin_upstream_id",
    "created_at",
    "updated_at",
)
ANSWER_FIELDS = ("answer", "answer_zh", "answer_en")
OVERRIDE_FIELDS = (
    "mastery",
    "review_count",
    "interval_days",
    "due_at",
    "last_reviewed_at",
    "last_submission_code",
    "pass_rate",
)

# Answer columns tried in order for each content language
ANSWER_FALLBACKS = {
    ContentLanguage.EN_US: ("answer_en", "answer", "answer_zh"),
    ContentLanguage.ZH_CN: ("answer_zh", "answer", "answer_en"),
}


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes from the driver as UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _value(value: Any) -> Any:
    return getattr(value, "value", value)


def apply_override(
    row: CardRow,
    override: Optional[CardOverride],
    now: Optional[datetime] = None,
    include_answer: bool = True,
) -> Card:
    """Merge a catalog row with a user's override (or the default overlay)."""
    data = {name: getattr(row, name) for name in CATALOG_FIELDS}
    data["custom_tags"] = list(row.custom_tags or [])
    data["created_at"] = _aware(data["created_at"]) or _utc_now()
    data["updated_at"] = _aware(data["updated_at"]) or data["created_at"]
    if include_answer:
        for name in ANSWER_FIELDS:
            data[name] = getattr(row, name)

    if override is None:
        data["due_at"] = now or _utc_now()
    else:
        data.update(
            mastery=override.mastery or MasteryStatus.NEW,
            review_count=override.review_count or 0,
            interval_days=override.interval_days or 0,
            due_at=_aware(override.due_at) or now or _utc_now(),
            last_reviewed_at=_aware(override.last_reviewed_at),
            last_submission_code=override.last_submission_code,
            pass_rate=override.pass_rate,
        )
    return Card(**data)


def pick_answer(source: Any, language: Union[ContentLanguage, str, None] = None) -> Optional[str]:
    """First non-empty answer variant for the language, in fallback order."""
    lang = ContentLanguage(language or settings.DEFAULT_CONTENT_LANGUAGE)
    for column in ANSWER_FALLBACKS[lang]:
        text = getattr(source, column, None)
        if text:
            return text
    return None


def to_summary(row: CardRow) -> CardSummary:
    updated_at = _aware(row.updated_at)
    return CardSummary(
        id=row.id,
        source=row.source,
        upstream_source=row.upstream_source,
        category_l1_id=row.category_l1_id,
        category_l2_id=row.category_l2_id,
        category_l3_id=row.category_l3_id,
        title=row.title,
        question=row.question,
        question_type=row.question_type,
        difficulty=row.difficulty,
        frequency=row.frequency,
        custom_tags=list(row.custom_tags or []),
        origin_upstream_id=row.origin_upstream_id,
        created_at=_aware(row.created_at),
        updated_at=updated_at,
        updated_at_raw=updated_at.isoformat() if updated_at else None,
    )


def _card_select(include_answer: bool):
    query = select(CardRow)
    if not include_answer:
        query = query.options(
            defer(CardRow.answer), defer(CardRow.answer_zh), defer(CardRow.answer_en)
        )
    return query


class CardService:
    """Catalog and override access for one database session."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # =========================================================================
    # Catalog
    # =========================================================================

    async def list_cards(
        self,
        search: Optional[str] = None,
        category_l3_id: Optional[str] = None,
        category_l3_ids: Optional[Sequence[str]] = None,
        page: int = 1,
        page_size: Optional[int] = None,
    ) -> tuple[list[CardSummary], int]:
        """
        Page through catalog rows ordered by id.

        Args:
            search: Case-insensitive substring on title or question
            category_l3_id: Single category filter
            category_l3_ids: Category set filter; an empty set matches nothing
            page: 1-based page number
            page_size: Rows per page (capped at LIBRARY_MAX_PAGE_SIZE)

        Returns:
            (rows, total matching count)
        """
        if category_l3_ids is not None and len(category_l3_ids) == 0:
            return [], 0

        conditions = []
        if category_l3_id:
            conditions.append(CardRow.category_l3_id == category_l3_id)
        if category_l3_ids:
            conditions.append(CardRow.category_l3_id.in_(list(category_l3_ids)))
        needle = (search or "").strip()
        if needle:
            pattern = f"%{needle}%"
            conditions.append(
                or_(CardRow.title.ilike(pattern), CardRow.question.ilike(pattern))
            )

        size = max(1, min(page_size or settings.LIBRARY_DEFAULT_PAGE_SIZE, settings.LIBRARY_MAX_PAGE_SIZE))
        offset = (max(1, page) - 1) * size

        total = await self.db.scalar(
            select(func.count()).select_from(CardRow).where(*conditions)
        )
        result = await self.db.execute(
            _card_select(include_answer=False)
            .where(*conditions)
            .order_by(CardRow.id)
            .offset(offset)
            .limit(size)
        )
        return [to_summary(row) for row in result.scalars().all()], total or 0

    async def get_card(
        self,
        card_id: str,
        user_id: Optional[str] = None,
        include_answer: bool = True,
    ) -> Optional[Card]:
        result = await self.db.execute(
            _card_select(include_answer).where(CardRow.id == card_id)
        )
        row = result.scalar_one_or_none()
        if row is None:
            return None
        overrides = await self._override_map(user_id, [card_id])
        return apply_override(row, overrides.get(card_id), include_answer=include_answer)

    async def get_card_answer(
        self,
        card_id: str,
        language: Union[ContentLanguage, str, None] = None,
    ) -> Optional[str]:
        """
        Answer text in the requested language, falling back to the other
        variants when the preferred one is empty.
        """
        result = await self.db.execute(
            select(CardRow.answer, CardRow.answer_zh, CardRow.answer_en).where(
                CardRow.id == card_id
            )
        )
        row = result.one_or_none()
        if row is None:
            return None

        return pick_answer(row, language)

    async def upsert_card(self, data: CardUpsert) -> Card:
        """
        Insert or update a catalog card.

        New cards without an id get "user-<uuid>". Missing level-1/level-2
        category ids are resolved from the level-3 category. updated_at is
        stamped so the next summary sync picks the change up.
        """
        l1_id, l2_id = data.category_l1_id, data.category_l2_id
        if not l1_id or not l2_id:
            l1_id, l2_id, _ = await CategoryService(self.db).resolve_category_path(
                data.category_l3_id
            )

        card_id = data.id or f"user-{uuid4()}"
        row = await self.db.get(CardRow, card_id)
        now = _utc_now()
        if row is None:
            row = CardRow(id=card_id, created_at=now)
            self.db.add(row)

        title = data.title.strip()
        question = (data.question or title).strip()
        answer = (data.answer or "").strip() or None

        row.source = _value(data.source)
        row.upstream_source = data.upstream_source
        row.category_l1_id = l1_id
        row.category_l2_id = l2_id
        row.category_l3_id = data.category_l3_id
        row.title = title
        row.title_zh = data.title_zh or title
        row.title_en = data.title_en or title
        row.question = question
        row.question_zh = data.question_zh or question
        row.question_en = data.question_en or question
        row.answer = answer
        row.answer_zh = data.answer_zh or answer
        row.answer_en = data.answer_en or answer
        row.question_type = _value(data.question_type)
        row.difficulty = _value(data.difficulty)
        row.frequency = _value(data.frequency)
        row.custom_tags = list(data.custom_tags)
        row.origin_upstream_id = data.origin_upstream_id
        row.updated_at = now

        await self.db.flush()
        logger.info(f"Upserted card {card_id} in {data.category_l3_id}")
        return apply_override(row, None, now=now)

    async def get_cards_by_ids(
        self, card_ids: Sequence[str], user_id: Optional[str] = None
    ) -> list[Card]:
        """Cards in the requested id order; unknown ids are dropped."""
        if not card_ids:
            return []
        result = await self.db.execute(
            _card_select(include_answer=False).where(CardRow.id.in_(list(card_ids)))
        )
        rows = {row.id: row for row in result.scalars().all()}
        overrides = await self._override_map(user_id, list(rows))
        now = _utc_now()
        return [
            apply_override(rows[cid], overrides.get(cid), now, include_answer=False)
            for cid in dict.fromkeys(card_ids)
            if cid in rows
        ]

    async def get_cards_by_category(
        self, category_l3_id: str, user_id: Optional[str] = None
    ) -> list[Card]:
        result = await self.db.execute(
            _card_select(include_answer=False)
            .where(CardRow.category_l3_id == category_l3_id)
            .order_by(CardRow.id)
        )
        return await self._with_overrides(result.scalars().all(), user_id)

    async def get_all_cards(
        self, user_id: Optional[str] = None, include_answer: bool = False
    ) -> list[Card]:
        result = await self.db.execute(
            _card_select(include_answer).order_by(CardRow.id)
        )
        return await self._with_overrides(
            result.scalars().all(), user_id, include_answer=include_answer
        )

    async def get_card_ids(self) -> set[str]:
        result = await self.db.execute(select(CardRow.id))
        return set(result.scalars().all())

    async def count_cards(self) -> int:
        return await self.db.scalar(select(func.count()).select_from(CardRow)) or 0

    # =========================================================================
    # Review selections
    # =========================================================================

    async def get_review_cards(
        self,
        user_id: Optional[str],
        scope: str,
        limit: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> list[Card]:
        """
        Candidate cards for a review scope.

        Scopes: "all", "due", "favorites", "category:<l3 id>", "list:<id>",
        "mastery:<tier>", "card:<id>". Unknown scopes review everything.
        """
        normalized = (scope or "all").strip()
        limit = limit or settings.REVIEW_CARD_LIMIT

        if normalized.startswith("card:"):
            card_id = normalized.removeprefix("card:")
            if not card_id:
                return []
            card = await self.get_card(card_id, user_id, include_answer=False)
            return [card] if card else []

        if normalized == "favorites":
            favorites = await ListService(self.db).get_default_list(user_id)
            if not favorites or not favorites.card_ids:
                return []
            cards = await self.get_cards_by_ids(favorites.card_ids, user_id)
            return cards[:limit]

        if normalized.startswith("mastery:"):
            try:
                tier = MasteryStatus(normalized.removeprefix("mastery:"))
            except ValueError:
                return []
            cards = await self.get_all_cards(user_id)
            return [card for card in cards if card.mastery == tier][:limit]

        if normalized.startswith("list:"):
            card_list = await ListService(self.db).get_list(
                normalized.removeprefix("list:"), user_id
            )
            if not card_list:
                return []
            cards = await self.get_cards_by_ids(card_list.card_ids, user_id)
            return cards[:limit]

        if normalized.startswith("category:"):
            cards = await self.get_cards_by_category(
                normalized.removeprefix("category:"), user_id
            )
            return cards[:limit]

        if normalized == "due":
            cards = await self.get_due_cards(user_id, now or _utc_now())
            return cards[:limit]

        cards = await self.get_all_cards(user_id)
        return cards[:limit]

    async def get_due_cards(self, user_id: Optional[str], now: datetime) -> list[Card]:
        """Cards due at `now`, excluding solid ones."""
        cards = await self.get_all_cards(user_id)
        return [
            card
            for card in cards
            if card.due_at <= now and card.mastery != MasteryStatus.SOLID
        ]

    async def get_due_count(self, user_id: Optional[str], now: datetime) -> int:
        """
        Due override rows plus every card the user has never touched.

        Overrides of cards no longer in the catalog are ignored; an override
        without a due time is due now, like the default overlay.
        """
        if not user_id:
            return 0
        catalog_ids = await self.get_card_ids()
        overrides = [
            o for o in await self.list_overrides(user_id) if o.card_id in catalog_ids
        ]

        due = 0
        for override in overrides:
            if override.mastery == MasteryStatus.SOLID:
                continue
            if override.due_at is None or _aware(override.due_at) <= now:
                due += 1
        return due + len(catalog_ids) - len(overrides)

    # =========================================================================
    # Overrides
    # =========================================================================

    async def _override_map(
        self, user_id: Optional[str], card_ids: Optional[Sequence[str]] = None
    ) -> dict[str, CardOverride]:
        if not user_id:
            return {}
        query = select(CardOverride).where(CardOverride.user_id == user_id)
        if card_ids is not None:
            if not card_ids:
                return {}
            query = query.where(CardOverride.card_id.in_(list(card_ids)))
        result = await self.db.execute(query)
        return {row.card_id: row for row in result.scalars().all()}

    async def _with_overrides(
        self,
        rows: Sequence[CardRow],
        user_id: Optional[str],
        include_answer: bool = False,
    ) -> list[Card]:
        overrides = await self._override_map(user_id)
        now = _utc_now()
        return [
            apply_override(row, overrides.get(row.id), now, include_answer=include_answer)
            for row in rows
        ]

    async def get_overrides(
        self, user_id: Optional[str], card_ids: Sequence[str]
    ) -> list[OverrideResponse]:
        overrides = await self._override_map(user_id, card_ids)
        return [OverrideResponse.model_validate(row) for row in overrides.values()]

    async def list_overrides(self, user_id: Optional[str]) -> list[OverrideResponse]:
        overrides = await self._override_map(user_id)
        return [OverrideResponse.model_validate(row) for row in overrides.values()]

    async def upsert_override(
        self,
        user_id: Optional[str],
        card_id: str,
        fields: Union[OverrideFields, Mapping[str, Any]],
    ) -> Optional[OverrideResponse]:
        """
        Write override fields for (user, card), creating the row if needed.

        Only the fields provided are written; the rest keep their values.
        """
        if not user_id:
            return None
        if isinstance(fields, OverrideFields):
            values = fields.model_dump(exclude_unset=True)
        else:
            values = {k: v for k, v in fields.items() if k in OVERRIDE_FIELDS}

        result = await self.db.execute(
            select(CardOverride).where(
                CardOverride.user_id == user_id, CardOverride.card_id == card_id
            )
        )
        row = result.scalar_one_or_none()
        if row is None:
            row = CardOverride(user_id=user_id, card_id=card_id)
            self.db.add(row)

        for name, value in values.items():
            setattr(row, name, _value(value))
        row.updated_at = _utc_now()

        await self.db.flush()
        logger.info(
            f"Updated override for card {card_id}: mastery={row.mastery}, "
            f"interval={row.interval_days}d"
        )
        return OverrideResponse.model_validate(row)

    # =========================================================================
    # Summary source
    # =========================================================================

    async def fetch_summaries(
        self, after: Optional[str], offset: int, limit: int
    ) -> list[CardSummary]:
        """Summaries updated strictly after `after`, oldest first."""
        query = _card_select(include_answer=False)
        if after:
            query = query.where(CardRow.updated_at > datetime.fromisoformat(after))
        result = await self.db.execute(
            query.order_by(CardRow.updated_at, CardRow.id).offset(offset).limit(limit)
        )
        return [to_summary(row) for row in result.scalars().all()]


class CatalogSummarySource:
    """Summary source that opens its own database session per page."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def fetch_summaries(
        self, after: Optional[str], offset: int, limit: int
    ) -> list[CardSummary]:
        async with self.session_factory() as db:
            return await CardService(db).fetch_summaries(after, offset, limit)

    async def card_ids(self) -> set[str]:
        async with self.session_factory() as db:
            return await CardService(db).get_card_ids()
