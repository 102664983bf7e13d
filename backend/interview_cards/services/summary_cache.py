"""
Incremental Card Summary Cache

Local, eventually-consistent mirror of card summaries (no answer text) used by
the library listing and progress counters.

Sync protocol:
1. Read the "cards_last_synced" watermark once per sync call
2. Pull pages of `page_size` rows updated strictly after that watermark,
   ordered by update time ascending, using offset windows
3. Upsert each page by id, then advance the watermark to the page's last row
4. Stop on a short or empty page

A failed page fetch stops the pull; the watermark stays at the last completed
page so the next call resumes from there. Upserts are idempotent on id, so
re-delivered rows are harmless.

Usage:
    cache = CardSummaryCache(SqlSummaryCacheStore(async_session_maker), source)
    await cache.sync()
    page = await cache.query_page(page=1, page_size=40, search="closure")
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Iterable, Optional, Protocol, Sequence

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from interview_cards.config.settings import settings, yaml_config
from interview_cards.db.models import CacheMeta, CardSummaryCacheRow
from interview_cards.enums.learning import MasteryStatus
from interview_cards.models.cards import CardSummary, CardSummaryPage, SolvedProgress

logger = logging.getLogger(__name__)

WATERMARK_KEY = yaml_config.get("summary_cache", {}).get(
    "watermark_key", "cards_last_synced"
)


@dataclass(frozen=True)
class SummaryQuery:
    """Library filter applied to cached summaries."""

    search: Optional[str] = None
    category_l3_id: Optional[str] = None

    @property
    def needle(self) -> Optional[str]:
        text = (self.search or "").strip().lower()
        return text or None

    def matches(self, summary: CardSummary) -> bool:
        if self.category_l3_id and summary.category_l3_id != self.category_l3_id:
            return False
        needle = self.needle
        if needle is None:
            return True
        return needle in summary.title.lower() or needle in summary.question.lower()


@dataclass
class SyncResult:
    pages: int = 0
    rows: int = 0
    watermark: Optional[str] = None


class SummarySource(Protocol):
    """Remote side of the sync: card summaries updated after a watermark."""

    async def fetch_summaries(
        self, after: Optional[str], offset: int, limit: int
    ) -> list[CardSummary]: ...


class SummaryCacheStore(Protocol):
    """Local side of the sync: summary rows plus key/value metadata."""

    async def get_meta(self, key: str) -> Optional[str]: ...

    async def set_meta(self, key: str, value: str) -> None: ...

    async def upsert_summaries(self, rows: Sequence[CardSummary]) -> None: ...

    async def query_page(
        self, query: SummaryQuery, offset: int, limit: int
    ) -> tuple[list[CardSummary], int]: ...

    async def matching_ids(self, query: SummaryQuery) -> list[str]: ...


def _is_newer_or_equal(incoming: CardSummary, existing: CardSummary) -> bool:
    if incoming.updated_at is None or existing.updated_at is None:
        return True
    return incoming.updated_at >= existing.updated_at


def is_solved(override) -> bool:
    """An override counts as solved once reviewed or moved past `new`."""
    if (override.review_count or 0) > 0:
        return True
    mastery = override.mastery
    return mastery is not None and mastery != MasteryStatus.NEW


# =============================================================================
# Stores
# =============================================================================


class InMemorySummaryCacheStore:
    """Dictionary-backed store for tests and single-process development."""

    def __init__(self):
        self.rows: dict[str, CardSummary] = {}
        self.meta: dict[str, str] = {}

    async def get_meta(self, key: str) -> Optional[str]:
        return self.meta.get(key)

    async def set_meta(self, key: str, value: str) -> None:
        self.meta[key] = value

    async def upsert_summaries(self, rows: Sequence[CardSummary]) -> None:
        for row in rows:
            existing = self.rows.get(row.id)
            if existing is None or _is_newer_or_equal(row, existing):
                self.rows[row.id] = row

    def _matching(self, query: SummaryQuery) -> list[CardSummary]:
        return sorted(
            (row for row in self.rows.values() if query.matches(row)),
            key=lambda row: row.id,
        )

    async def query_page(
        self, query: SummaryQuery, offset: int, limit: int
    ) -> tuple[list[CardSummary], int]:
        matching = self._matching(query)
        return matching[offset : offset + limit], len(matching)

    async def matching_ids(self, query: SummaryQuery) -> list[str]:
        return [row.id for row in self._matching(query)]


class SqlSummaryCacheStore:
    """Store backed by the card_summary_cache and cache_meta tables."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def get_meta(self, key: str) -> Optional[str]:
        async with self.session_factory() as db:
            result = await db.execute(select(CacheMeta).where(CacheMeta.key == key))
            row = result.scalar_one_or_none()
            return row.value if row else None

    async def set_meta(self, key: str, value: str) -> None:
        async with self.session_factory() as db:
            result = await db.execute(select(CacheMeta).where(CacheMeta.key == key))
            row = result.scalar_one_or_none()
            if row:
                row.value = value
            else:
                db.add(CacheMeta(key=key, value=value))
            await db.commit()

    async def upsert_summaries(self, rows: Sequence[CardSummary]) -> None:
        if not rows:
            return
        async with self.session_factory() as db:
            for summary in rows:
                existing = await db.get(CardSummaryCacheRow, summary.id)
                if existing is None:
                    existing = CardSummaryCacheRow(id=summary.id)
                    db.add(existing)
                elif (
                    summary.updated_at is not None
                    and existing.updated_at is not None
                    and summary.updated_at < existing.updated_at
                ):
                    continue
                self._apply(existing, summary)
            await db.commit()

    @staticmethod
    def _apply(row: CardSummaryCacheRow, summary: CardSummary) -> None:
        row.source = summary.source.value
        row.upstream_source = summary.upstream_source
        row.category_l1_id = summary.category_l1_id
        row.category_l2_id = summary.category_l2_id
        row.category_l3_id = summary.category_l3_id
        row.title = summary.title
        row.question = summary.question
        row.question_type = summary.question_type.value
        row.difficulty = summary.difficulty.value
        row.frequency = summary.frequency.value
        row.custom_tags = list(summary.custom_tags)
        row.origin_upstream_id = summary.origin_upstream_id
        row.created_at = summary.created_at
        row.updated_at = summary.updated_at
        row.updated_at_raw = summary.updated_at_raw

    @staticmethod
    def _to_summary(row: CardSummaryCacheRow) -> CardSummary:
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
            custom_tags=row.custom_tags or [],
            origin_upstream_id=row.origin_upstream_id,
            created_at=row.created_at,
            updated_at=row.updated_at,
            updated_at_raw=row.updated_at_raw,
        )

    @staticmethod
    def _conditions(query: SummaryQuery) -> list:
        conditions = []
        if query.category_l3_id:
            conditions.append(CardSummaryCacheRow.category_l3_id == query.category_l3_id)
        needle = query.needle
        if needle:
            pattern = f"%{needle}%"
            conditions.append(
                or_(
                    CardSummaryCacheRow.title.ilike(pattern),
                    CardSummaryCacheRow.question.ilike(pattern),
                )
            )
        return conditions

    async def query_page(
        self, query: SummaryQuery, offset: int, limit: int
    ) -> tuple[list[CardSummary], int]:
        conditions = self._conditions(query)
        async with self.session_factory() as db:
            total = await db.scalar(
                select(func.count()).select_from(CardSummaryCacheRow).where(*conditions)
            )
            result = await db.execute(
                select(CardSummaryCacheRow)
                .where(*conditions)
                .order_by(CardSummaryCacheRow.id)
                .offset(offset)
                .limit(limit)
            )
            rows = result.scalars().all()
        return [self._to_summary(row) for row in rows], total or 0

    async def matching_ids(self, query: SummaryQuery) -> list[str]:
        async with self.session_factory() as db:
            result = await db.execute(
                select(CardSummaryCacheRow.id)
                .where(*self._conditions(query))
                .order_by(CardSummaryCacheRow.id)
            )
            return list(result.scalars().all())


# =============================================================================
# Cache
# =============================================================================


class CardSummaryCache:
    """Incremental sync plus paged and progress queries over cached summaries."""

    def __init__(
        self,
        store: SummaryCacheStore,
        source: SummarySource,
        page_size: Optional[int] = None,
    ):
        self.store = store
        self.source = source
        self.page_size = page_size or settings.SUMMARY_SYNC_PAGE_SIZE
        self._lock = asyncio.Lock()

    async def sync(self) -> SyncResult:
        """
        Pull every summary updated after the stored watermark.

        Raises:
            Whatever the source raises for a failed page; pages completed
            before the failure stay applied and the watermark reflects them.
        """
        async with self._lock:
            since = await self.store.get_meta(WATERMARK_KEY)
            result = SyncResult(watermark=since)
            offset = 0

            while True:
                try:
                    page = await self.source.fetch_summaries(
                        since, offset, self.page_size
                    )
                except Exception as e:
                    logger.warning(
                        f"Summary sync stopped at offset {offset} "
                        f"(watermark {result.watermark}): {e}"
                    )
                    raise

                if not page:
                    break

                await self.store.upsert_summaries(page)
                last_raw = page[-1].updated_at_raw
                if last_raw:
                    await self.store.set_meta(WATERMARK_KEY, last_raw)
                    result.watermark = last_raw

                result.pages += 1
                result.rows += len(page)
                offset += len(page)

                if len(page) < self.page_size:
                    break

            if result.rows:
                logger.info(
                    f"Summary cache synced {result.rows} rows in {result.pages} pages "
                    f"(watermark {result.watermark})"
                )
            return result

    async def _sync_for_read(self) -> None:
        try:
            await self.sync()
        except Exception as e:
            logger.warning(f"Serving cached summaries after failed sync: {e}")

    async def query_page(
        self,
        page: int = 1,
        page_size: Optional[int] = None,
        search: Optional[str] = None,
        category_l3_id: Optional[str] = None,
    ) -> CardSummaryPage:
        """Sync, then return one page of matching summaries ordered by id."""
        await self._sync_for_read()

        page = max(1, page)
        size = page_size or settings.LIBRARY_DEFAULT_PAGE_SIZE
        size = max(1, min(size, settings.LIBRARY_MAX_PAGE_SIZE))
        offset = (page - 1) * size

        items, total = await self.store.query_page(
            SummaryQuery(search=search, category_l3_id=category_l3_id), offset, size
        )
        return CardSummaryPage(
            items=items,
            total=total,
            page=page,
            page_size=size,
            has_more=offset + len(items) < total,
        )

    async def query_progress(
        self,
        overrides: Iterable,
        search: Optional[str] = None,
        category_l3_id: Optional[str] = None,
    ) -> SolvedProgress:
        """
        Count matching summaries and how many of them the user has solved.

        Args:
            overrides: The user's override rows (objects with `card_id`,
                `mastery` and `review_count`)
        """
        await self._sync_for_read()

        ids = await self.store.matching_ids(
            SummaryQuery(search=search, category_l3_id=category_l3_id)
        )
        solved_ids = {o.card_id for o in overrides if is_solved(o)}
        solved = sum(1 for card_id in ids if card_id in solved_ids)
        return SolvedProgress(solved=solved, total=len(ids))
