"""
Review Session Store

Persists resumable review sessions keyed by user and "scope:mode".

- create_session(): builds the queue with the queue builder and writes it
  immediately; creation must be durable before the caller uses it
- restore_session(): loads a session and validates it against the current
  catalog: ids of deleted cards are pruned and the cursor is clamped to
  max(0, len - 1)
- save_session(): debounced write; bursts of navigation within the debounce
  window collapse into one write of the latest state
- save_session_immediate(): cancels any pending debounced write and writes now
- delete_session(): removes the persisted row

Debounced writes are fire-and-forget. Failures are logged, never raised.

Usage:
    store = SessionStore(SqlSessionRepository(async_session_maker), catalog_ids)

    session = await store.restore_session(user_id, "all", ReviewMode.QA)
    if session is None or session.is_empty:
        session = await store.create_session(user_id, "all", ReviewMode.QA, cards, filters)

    # On shutdown
    await store.aclose()
"""

from __future__ import annotations

import asyncio
import logging
import random
from datetime import datetime, timezone
from typing import Awaitable, Callable, Hashable, Optional, Protocol, Sequence

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from interview_cards.config.settings import settings
from interview_cards.db.models import ReviewSessionRecord
from interview_cards.enums.learning import ReviewMode
from interview_cards.models.cards import Card
from interview_cards.models.review import ReviewFilters, ReviewSession, session_key
from interview_cards.services.learning.review_queue import (
    QueueOptions,
    generate_review_queue,
)

logger = logging.getLogger(__name__)

CatalogIdsProvider = Callable[[], Awaitable[set[str]]]
Clock = Callable[[], datetime]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Persistence
# =============================================================================


class SessionRepository(Protocol):
    """Persisted session storage keyed by (user_id, session id)."""

    async def get(self, user_id: str, session_id: str) -> Optional[ReviewSession]: ...

    async def put(self, user_id: str, session: ReviewSession) -> None: ...

    async def delete(self, user_id: str, session_id: str) -> None: ...


class InMemorySessionRepository:
    """Process-local repository, used for development and tests."""

    def __init__(self):
        self._rows: dict[tuple[str, str], ReviewSession] = {}

    async def get(self, user_id: str, session_id: str) -> Optional[ReviewSession]:
        row = self._rows.get((user_id, session_id))
        return row.model_copy(deep=True) if row else None

    async def put(self, user_id: str, session: ReviewSession) -> None:
        self._rows[(user_id, session.id)] = session.model_copy(deep=True)

    async def delete(self, user_id: str, session_id: str) -> None:
        self._rows.pop((user_id, session_id), None)


class SqlSessionRepository:
    """
    Repository backed by the review_sessions table.

    Opens its own database session per call because debounced writes run
    after the request that scheduled them has finished.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def get(self, user_id: str, session_id: str) -> Optional[ReviewSession]:
        async with self.session_factory() as db:
            result = await db.execute(
                select(ReviewSessionRecord).where(
                    ReviewSessionRecord.user_id == user_id,
                    ReviewSessionRecord.id == session_id,
                )
            )
            row = result.scalar_one_or_none()

        if row is None:
            return None

        return ReviewSession(
            id=row.id,
            scope=row.scope,
            mode=ReviewMode(row.mode),
            queue_card_ids=list(row.queue_card_ids or []),
            cursor=row.cursor or 0,
            filters=ReviewFilters.model_validate(row.filters or {}),
            updated_at=row.updated_at or _utc_now(),
        )

    async def put(self, user_id: str, session: ReviewSession) -> None:
        async with self.session_factory() as db:
            result = await db.execute(
                select(ReviewSessionRecord).where(
                    ReviewSessionRecord.user_id == user_id,
                    ReviewSessionRecord.id == session.id,
                )
            )
            row = result.scalar_one_or_none()
            if row is None:
                row = ReviewSessionRecord(user_id=user_id, id=session.id)
                db.add(row)

            row.scope = session.scope
            row.mode = session.mode.value
            row.queue_card_ids = list(session.queue_card_ids)
            row.cursor = session.cursor
            row.filters = session.filters.model_dump(mode="json")
            row.updated_at = _utc_now()
            await db.commit()

    async def delete(self, user_id: str, session_id: str) -> None:
        async with self.session_factory() as db:
            await db.execute(
                delete(ReviewSessionRecord).where(
                    ReviewSessionRecord.user_id == user_id,
                    ReviewSessionRecord.id == session_id,
                )
            )
            await db.commit()


# =============================================================================
# Debouncer
# =============================================================================


class SessionDebouncer:
    """
    Per-key trailing-edge debouncer on the running event loop.

    Each key has a single pending slot: scheduling again cancels the pending
    write and replaces it, so only the last write in a window runs.

    Attributes:
        delay_seconds: Quiet period before a pending write runs
    """

    def __init__(self, delay_ms: int):
        self.delay_seconds = delay_ms / 1000.0
        self._pending: dict[Hashable, tuple[asyncio.Task, Callable[[], Awaitable[None]]]] = {}

    @property
    def pending_keys(self) -> list[Hashable]:
        return list(self._pending)

    def schedule(self, key: Hashable, action: Callable[[], Awaitable[None]]) -> None:
        """Replace any pending action for `key` and start a new timer."""
        self.cancel(key)
        task = asyncio.create_task(self._run_later(key, action))
        self._pending[key] = (task, action)

    def cancel(self, key: Hashable) -> None:
        """Drop the pending action for `key`, if any."""
        entry = self._pending.pop(key, None)
        if entry is not None:
            entry[0].cancel()

    async def flush(self) -> None:
        """Run every pending action now (used at shutdown)."""
        entries = list(self._pending.items())
        self._pending.clear()
        for key, (task, action) in entries:
            task.cancel()
            await self._run_action(key, action)

    async def _run_later(self, key: Hashable, action: Callable[[], Awaitable[None]]) -> None:
        await asyncio.sleep(self.delay_seconds)
        entry = self._pending.get(key)
        if entry is None or entry[0] is not asyncio.current_task():
            return
        del self._pending[key]
        await self._run_action(key, action)

    async def _run_action(self, key: Hashable, action: Callable[[], Awaitable[None]]) -> None:
        try:
            await action()
        except Exception as e:
            logger.error(f"Debounced session save failed for {key}: {e}")


# =============================================================================
# Session Store
# =============================================================================


class SessionStore:
    """
    Review session lifecycle: create, restore+validate, save, delete.

    Owns one SessionDebouncer; construct at startup and call aclose() on
    shutdown so pending writes are flushed.
    """

    def __init__(
        self,
        repository: SessionRepository,
        catalog_ids: CatalogIdsProvider,
        debounce_ms: Optional[int] = None,
        clock: Clock = _utc_now,
    ):
        """
        Args:
            repository: Persisted session storage
            catalog_ids: Async callable returning the ids currently in the catalog
            debounce_ms: Debounce window (defaults to settings.SESSION_SAVE_DEBOUNCE_MS)
            clock: Current-time source
        """
        self.repository = repository
        self.catalog_ids = catalog_ids
        self.clock = clock
        self.debouncer = SessionDebouncer(
            debounce_ms if debounce_ms is not None else settings.SESSION_SAVE_DEBOUNCE_MS
        )

    async def create_session(
        self,
        user_id: Optional[str],
        scope: str,
        mode: ReviewMode,
        cards: Sequence[Card],
        filters: ReviewFilters,
        rng: random.Random | None = None,
    ) -> ReviewSession:
        """
        Build a fresh queue for (scope, mode) and persist it immediately.

        Without a user the session is returned but not persisted.
        """
        now = self.clock()
        queue = generate_review_queue(
            cards, QueueOptions.from_filters(filters), now=now, rng=rng
        )

        session = ReviewSession(
            id=session_key(scope, mode),
            scope=scope,
            mode=mode,
            queue_card_ids=[card.id for card in queue],
            cursor=0,
            filters=filters,
            updated_at=now,
        )

        await self.save_session_immediate(user_id, session)
        logger.info(
            f"Created review session {session.id} with {len(session.queue_card_ids)} "
            f"of {len(cards)} cards"
        )
        return session

    async def restore_session(
        self,
        user_id: Optional[str],
        scope: str,
        mode: ReviewMode,
    ) -> Optional[ReviewSession]:
        """
        Load and validate the persisted session for (scope, mode).

        Returns:
            Validated session (possibly with an empty queue), or None if the
            session was never created or there is no user
        """
        if not user_id:
            return None

        session = await self.repository.get(user_id, session_key(scope, mode))
        if session is None:
            return None

        return await self.validate_session(session)

    async def validate_session(self, session: ReviewSession) -> ReviewSession:
        """Prune ids missing from the catalog and clamp the cursor into range."""
        existing = await self.catalog_ids()
        valid_ids = [card_id for card_id in session.queue_card_ids if card_id in existing]

        cursor = session.cursor
        if cursor >= len(valid_ids):
            cursor = max(0, len(valid_ids) - 1)
        if cursor < 0:
            cursor = 0

        pruned = len(session.queue_card_ids) - len(valid_ids)
        if pruned:
            logger.debug(f"Pruned {pruned} stale card ids from session {session.id}")

        return session.model_copy(update={"queue_card_ids": valid_ids, "cursor": cursor})

    def save_session(self, user_id: Optional[str], session: ReviewSession) -> None:
        """Schedule a debounced write; the latest state in the window wins."""
        if not user_id:
            return
        snapshot = session.model_copy(deep=True)
        self.debouncer.schedule(
            (user_id, session.id),
            lambda: self._write(user_id, snapshot),
        )

    async def save_session_immediate(
        self, user_id: Optional[str], session: ReviewSession
    ) -> None:
        """Write now, replacing any pending debounced write for this session."""
        if not user_id:
            return
        self.debouncer.cancel((user_id, session.id))
        await self._write(user_id, session)

    async def delete_session(
        self, user_id: Optional[str], scope: str, mode: ReviewMode
    ) -> None:
        """Remove the persisted session for (scope, mode)."""
        if not user_id:
            return
        sid = session_key(scope, mode)
        self.debouncer.cancel((user_id, sid))
        await self.repository.delete(user_id, sid)
        logger.info(f"Deleted review session {sid}")

    async def aclose(self) -> None:
        """Flush pending debounced writes."""
        await self.debouncer.flush()

    async def _write(self, user_id: str, session: ReviewSession) -> None:
        stamped = session.model_copy(update={"updated_at": self.clock()})
        await self.repository.put(user_id, stamped)
