"""
Review Interaction State Machine

Drives one review sitting over a session queue.

Phases:
    IDLE   no session loaded, or the queue is empty ("nothing to review")
    FRONT  question shown, answer hidden
    BACK   answer shown

Transitions:
    load()            -> FRONT (non-empty queue) | IDLE
    flip()            FRONT <-> BACK; entering BACK without a local answer
                      starts an async answer fetch
    submit_mastery()  FRONT|BACK -> FRONT (next card) | IDLE (queue exhausted)
    next()/previous() FRONT|BACK -> FRONT, wrapping at both ends
    go_to_index()     FRONT|BACK -> FRONT
    reset()           -> IDLE

Every answer fetch carries a generation token. Navigation, submission and
reload bump the generation, so a fetch that completes for a card the user has
already left is discarded instead of overwriting newer state.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Protocol, Sequence

from interview_cards.config.settings import settings
from interview_cards.enums.learning import ContentLanguage, MasteryStatus, ReviewPhase
from interview_cards.middleware.error_handling import (
    InvalidTransitionError,
    ValidationError,
)
from interview_cards.models.cards import Card
from interview_cards.models.review import (
    FiltersPatch,
    ReviewFilters,
    ReviewSession,
    ReviewStateResponse,
)
from interview_cards.services.card_service import pick_answer
from interview_cards.services.learning.scheduler import (
    ScheduleUpdate,
    schedule_next,
)
from interview_cards.services.learning.session_service import SessionStore
from interview_cards.services.review_log_service import clamp_time_spent

logger = logging.getLogger(__name__)


class ReviewBackend(Protocol):
    """Remote effects of a review sitting."""

    async def fetch_answer(self, card_id: str) -> Optional[str]: ...

    async def save_override(
        self, user_id: str, card_id: str, update: ScheduleUpdate
    ) -> None: ...

    async def append_log(
        self,
        user_id: str,
        card: Card,
        new_mastery: MasteryStatus,
        time_spent_ms: int,
        did_reveal_answer: bool,
    ) -> None: ...


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ReviewInteraction:
    """
    Review state for one (user, session).

    Not safe for concurrent mutation; the HTTP layer serializes calls per
    interaction with `lock`.
    """

    def __init__(
        self,
        user_id: Optional[str],
        store: SessionStore,
        backend: ReviewBackend,
        language: ContentLanguage | str | None = None,
        clock: Callable[[], datetime] = _utc_now,
    ):
        self.user_id = user_id
        self.store = store
        self.backend = backend
        self.language = language or settings.DEFAULT_CONTENT_LANGUAGE
        self.clock = clock
        self.lock = asyncio.Lock()

        self.session: Optional[ReviewSession] = None
        self.phase = ReviewPhase.IDLE
        self.cards: dict[str, Card] = {}
        self.answers: dict[str, Optional[str]] = {}
        self.answer_loading = False

        self._generation = 0
        self._answer_task: Optional[asyncio.Task] = None
        self._shown_at = clock()

    # =========================================================================
    # Views
    # =========================================================================

    @property
    def current_card(self) -> Optional[Card]:
        if self.session is None or self.session.is_empty:
            return None
        return self.cards.get(self.session.current_card_id)

    @property
    def current_answer(self) -> Optional[str]:
        card = self.current_card
        if card is None:
            return None
        return self.answers.get(card.id)

    def snapshot(self) -> ReviewStateResponse:
        remaining = len(self.session.queue_card_ids) if self.session else 0
        return ReviewStateResponse(
            session=self.session,
            phase=self.phase,
            current_card=self.current_card,
            answer=self.current_answer if self.phase is ReviewPhase.BACK else None,
            answer_loading=self.answer_loading,
            remaining=remaining,
            nothing_to_review=remaining == 0,
        )

    # =========================================================================
    # Transitions
    # =========================================================================

    def load(self, session: ReviewSession, cards: Sequence[Card]) -> None:
        """Install a session and its card pool; ids without a card are dropped."""
        self.cards = {card.id: card for card in cards}
        queue = [cid for cid in session.queue_card_ids if cid in self.cards]
        if len(queue) != len(session.queue_card_ids):
            cursor = min(session.cursor, max(0, len(queue) - 1))
            session = session.model_copy(update={"queue_card_ids": queue, "cursor": cursor})

        self.session = session
        self.answers = {}
        for card in cards:
            local = pick_answer(card, self.language)
            if local:
                self.answers[card.id] = local
        self._arrive()

    def reset(self) -> None:
        self._generation += 1
        self.session = None
        self.cards = {}
        self.answers = {}
        self.answer_loading = False
        self.phase = ReviewPhase.IDLE

    async def flip(self) -> ReviewPhase:
        """Toggle between FRONT and BACK."""
        self._require_active("flip")

        if self.phase is ReviewPhase.BACK:
            self.phase = ReviewPhase.FRONT
            return self.phase

        self.phase = ReviewPhase.BACK
        card = self.current_card
        if card is not None and card.id not in self.answers and not self.answer_loading:
            self.answer_loading = True
            token = self._generation
            self._answer_task = asyncio.create_task(self._load_answer(card.id, token))
        return self.phase

    async def wait_for_answer(self) -> None:
        """Wait for the in-flight answer fetch, if any."""
        task = self._answer_task
        if task is not None and not task.done():
            await asyncio.wait({task})

    async def submit_mastery(
        self, mastery: MasteryStatus, now: Optional[datetime] = None
    ) -> ScheduleUpdate:
        """
        Rate the current card and move on.

        Persists the override and appends a review log entry, then either
        graduates the card out of the queue (solid) or advances the cursor by
        one with wraparound.

        Raises:
            InvalidTransitionError: When no card is on screen
        """
        self._require_active("submit mastery")
        mastery = MasteryStatus(mastery)
        now = now or self.clock()
        card = self.current_card
        session = self.session

        did_reveal_answer = self.phase is ReviewPhase.BACK
        elapsed_ms = int((now - self._shown_at).total_seconds() * 1000)
        time_spent_ms = clamp_time_spent(elapsed_ms)

        update = schedule_next(
            card,
            mastery,
            now,
            fuzzy_retry_delay=timedelta(minutes=settings.FUZZY_RETRY_MINUTES),
        )

        token = self._generation
        if self.user_id:
            await self.backend.save_override(self.user_id, card.id, update)
            await self.backend.append_log(
                self.user_id, card, mastery, time_spent_ms, did_reveal_answer
            )
        if token != self._generation:
            # Session was reloaded or moved while the writes were in flight
            logger.info(f"Rating of {card.id} saved; session {session.id} changed meanwhile")
            return update

        self.cards[card.id] = card.model_copy(update=update.as_card_fields())

        queue = list(session.queue_card_ids)
        if mastery is MasteryStatus.SOLID:
            queue = [cid for cid in queue if cid != card.id]
            cursor = session.cursor if session.cursor < len(queue) else 0
        else:
            cursor = (session.cursor + 1) % len(queue)

        self.session = session.model_copy(
            update={"queue_card_ids": queue, "cursor": cursor, "updated_at": now}
        )
        self._arrive()
        self.store.save_session(self.user_id, self.session)

        logger.debug(
            f"Rated {card.id} {card.mastery.value} -> {mastery.value}; "
            f"{len(queue)} cards left in {session.id}"
        )
        return update

    def next(self) -> None:
        self._require_active("move to next card")
        queue_len = len(self.session.queue_card_ids)
        self._move_to((self.session.cursor + 1) % queue_len)

    def previous(self) -> None:
        self._require_active("move to previous card")
        queue_len = len(self.session.queue_card_ids)
        self._move_to((self.session.cursor - 1) % queue_len)

    def go_to_index(self, index: int) -> None:
        self._require_active("jump")
        queue_len = len(self.session.queue_card_ids)
        if index < 0 or index >= queue_len:
            raise ValidationError(
                f"Index {index} is outside the queue (0..{queue_len - 1})",
                details={"index": index, "queue_length": queue_len},
            )
        self._move_to(index)

    def update_filters(self, patch: FiltersPatch | ReviewFilters) -> ReviewFilters:
        """
        Merge new filter values into the session snapshot.

        The current queue is kept; the filters apply to the next queue built
        for this scope (restart).
        """
        if self.session is None:
            raise InvalidTransitionError("No review session is loaded")

        if isinstance(patch, ReviewFilters):
            changes = patch.model_dump()
        else:
            changes = patch.model_dump(
                exclude_none=True, include=set(ReviewFilters.model_fields)
            )
        filters = self.session.filters.model_copy(update=changes)
        self.session = self.session.model_copy(update={"filters": filters})
        self.store.save_session(self.user_id, self.session)
        return filters

    # =========================================================================
    # Internals
    # =========================================================================

    def _require_active(self, action: str) -> None:
        if self.phase is ReviewPhase.IDLE or self.session is None or self.session.is_empty:
            raise InvalidTransitionError(
                f"Cannot {action}: nothing to review",
                details={"phase": self.phase.value},
            )

    def _arrive(self) -> None:
        self._generation += 1
        self.answer_loading = False
        self._shown_at = self.clock()
        if self.session is None or self.session.is_empty:
            self.phase = ReviewPhase.IDLE
        else:
            self.phase = ReviewPhase.FRONT

    def _move_to(self, cursor: int) -> None:
        self.session = self.session.model_copy(update={"cursor": cursor})
        self._arrive()
        self.store.save_session(self.user_id, self.session)

    async def _load_answer(self, card_id: str, token: int) -> None:
        try:
            answer = await self.backend.fetch_answer(card_id)
        except Exception as e:
            logger.warning(f"Answer fetch failed for {card_id}: {e}")
            if token == self._generation:
                self.answer_loading = False
            return

        if token != self._generation:
            logger.debug(f"Discarding superseded answer fetch for {card_id}")
            return
        self.answers[card_id] = answer
        self.answer_loading = False
