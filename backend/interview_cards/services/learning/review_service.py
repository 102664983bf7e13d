"""
Review Service

Orchestrates a review sitting: fetch the scope's cards, resume the persisted
session for (scope, mode) when it still has cards, otherwise build a fresh
one, and hand the result to a ReviewInteraction kept in the registry for
follow-up requests.

Usage:
    service = ReviewService(store, SqlReviewBackend(async_session_maker), registry)
    interaction = await service.start_review(user_id, "due", ReviewMode.QA)
    await interaction.submit_mastery(MasteryStatus.SOLID)
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from typing import Optional, Protocol

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from interview_cards.config.settings import settings
from interview_cards.enums.learning import ContentLanguage, MasteryStatus, ReviewMode
from interview_cards.middleware.error_handling import AuthorizationError, NotFoundError
from interview_cards.models.cards import Card
from interview_cards.models.review import ReviewFilters, default_filters, session_key
from interview_cards.services.card_service import CardService
from interview_cards.services.learning.review_state import ReviewBackend, ReviewInteraction
from interview_cards.services.learning.scheduler import ScheduleUpdate
from interview_cards.services.learning.session_service import SessionStore
from interview_cards.services.review_log_service import ReviewLogService

logger = logging.getLogger(__name__)


class ReviewDataSource(ReviewBackend, Protocol):
    """Review effects plus the scope card loader and answer language."""

    language: ContentLanguage | str

    async def load_cards(self, user_id: Optional[str], scope: str) -> list[Card]: ...


class SqlReviewBackend:
    """
    Database-backed review effects.

    Each call opens its own session: interactions outlive the request that
    created them.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        language: ContentLanguage | str | None = None,
        card_limit: Optional[int] = None,
    ):
        self.session_factory = session_factory
        self.language = language or settings.DEFAULT_CONTENT_LANGUAGE
        self.card_limit = card_limit or settings.REVIEW_CARD_LIMIT

    async def load_cards(self, user_id: Optional[str], scope: str) -> list[Card]:
        async with self.session_factory() as db:
            return await CardService(db).get_review_cards(user_id, scope, self.card_limit)

    async def fetch_answer(self, card_id: str) -> Optional[str]:
        async with self.session_factory() as db:
            return await CardService(db).get_card_answer(card_id, self.language)

    async def save_override(
        self, user_id: str, card_id: str, update: ScheduleUpdate
    ) -> None:
        async with self.session_factory() as db:
            await CardService(db).upsert_override(
                user_id, card_id, update.as_card_fields()
            )
            await db.commit()

    async def append_log(
        self,
        user_id: str,
        card: Card,
        new_mastery: MasteryStatus,
        time_spent_ms: int,
        did_reveal_answer: bool,
    ) -> None:
        async with self.session_factory() as db:
            await ReviewLogService(db).append_log(
                user_id,
                card.id,
                previous_mastery=card.mastery,
                new_mastery=new_mastery,
                time_spent_ms=time_spent_ms,
                did_reveal_answer=did_reveal_answer,
                category_l2_id=card.category_l2_id,
                category_l3_id=card.category_l3_id,
            )
            await db.commit()


class ReviewRegistry:
    """
    Live interactions keyed by (user id, session id).

    Bounded: once `max_size` interactions are live, the least recently used
    one is dropped. A dropped interaction is rebuilt from its persisted
    session on the next start.
    """

    def __init__(self, max_size: Optional[int] = None):
        self.max_size = max_size or settings.REVIEW_REGISTRY_MAX_SIZE
        self._interactions: OrderedDict[tuple[str, str], ReviewInteraction] = OrderedDict()

    def __len__(self) -> int:
        return len(self._interactions)

    def get(self, user_id: str, session_id: str) -> Optional[ReviewInteraction]:
        key = (user_id, session_id)
        interaction = self._interactions.get(key)
        if interaction is not None:
            self._interactions.move_to_end(key)
        return interaction

    def put(self, user_id: str, session_id: str, interaction: ReviewInteraction) -> None:
        key = (user_id, session_id)
        self._interactions[key] = interaction
        self._interactions.move_to_end(key)
        while len(self._interactions) > self.max_size:
            (evicted_user, evicted_id), _ = self._interactions.popitem(last=False)
            logger.debug(f"Evicted idle review interaction {evicted_id} of {evicted_user}")

    def discard(self, user_id: str, session_id: str) -> Optional[ReviewInteraction]:
        return self._interactions.pop((user_id, session_id), None)


class ReviewService:
    """
    Review lifecycle for the HTTP layer.

    Interactions of signed-in users live in the registry between requests.
    Anonymous callers get a transient interaction that is never registered,
    so no two anonymous clients share review state.
    """

    def __init__(
        self,
        store: SessionStore,
        source: ReviewDataSource,
        registry: Optional[ReviewRegistry] = None,
    ):
        self.store = store
        self.source = source
        self.registry = registry if registry is not None else ReviewRegistry()

    async def start_review(
        self,
        user_id: Optional[str],
        scope: str,
        mode: ReviewMode,
        continue_session: bool = True,
        filters: Optional[ReviewFilters] = None,
    ) -> ReviewInteraction:
        """
        Resume or create the session for (scope, mode).

        A persisted session is resumed only when it still has cards after
        validation; otherwise a new queue is built from the scope's cards.
        """
        interaction = self._interaction_for(user_id, session_key(scope, mode))
        async with interaction.lock:
            cards = await self.source.load_cards(user_id, scope)

            session = None
            if continue_session:
                session = await self.store.restore_session(user_id, scope, mode)
                if session is not None and not session.is_empty:
                    logger.info(
                        f"Resuming review session {session.id} at "
                        f"{session.cursor + 1}/{len(session.queue_card_ids)}"
                    )

            if session is None or session.is_empty:
                session = await self.store.create_session(
                    user_id, scope, mode, cards, filters or default_filters(scope)
                )

            interaction.load(session, cards)
        return interaction

    async def restart_review(
        self,
        user_id: Optional[str],
        scope: str,
        mode: ReviewMode,
        filters: Optional[ReviewFilters] = None,
    ) -> ReviewInteraction:
        """Drop the persisted session and build a fresh queue."""
        interaction = self._interaction_for(user_id, session_key(scope, mode))
        async with interaction.lock:
            if filters is None and interaction.session is not None:
                filters = interaction.session.filters

            await self.store.delete_session(user_id, scope, mode)
            cards = await self.source.load_cards(user_id, scope)
            session = await self.store.create_session(
                user_id, scope, mode, cards, filters or default_filters(scope)
            )
            interaction.load(session, cards)
        return interaction

    def get_interaction(
        self, user_id: Optional[str], scope: str, mode: ReviewMode
    ) -> ReviewInteraction:
        """
        Raises:
            AuthorizationError: For anonymous callers, whose reviews are not kept
            NotFoundError: If no review was started for (scope, mode)
        """
        sid = session_key(scope, mode)
        if not user_id:
            raise AuthorizationError("Sign in to continue a review session")
        interaction = self.registry.get(user_id, sid)
        if interaction is None:
            raise NotFoundError(f"No active review session {sid}; start a review first")
        return interaction

    async def end_review(self, user_id: Optional[str], scope: str, mode: ReviewMode) -> None:
        """Forget the live interaction and delete the persisted session."""
        if not user_id:
            return
        interaction = self.registry.discard(user_id, session_key(scope, mode))
        if interaction is None:
            await self.store.delete_session(user_id, scope, mode)
            return
        async with interaction.lock:
            interaction.reset()
            await self.store.delete_session(user_id, scope, mode)

    def _interaction_for(self, user_id: Optional[str], session_id: str) -> ReviewInteraction:
        interaction = self.registry.get(user_id, session_id) if user_id else None
        if interaction is None:
            interaction = ReviewInteraction(
                user_id, self.store, self.source, language=self.source.language
            )
            if user_id:
                self.registry.put(user_id, session_id, interaction)
        return interaction
