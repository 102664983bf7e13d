"""
Unit tests for review orchestration (start, resume, restart, end).
"""

import asyncio

import pytest

from interview_cards.enums.learning import MasteryStatus, ReviewMode, ReviewPhase
from interview_cards.middleware.error_handling import AuthorizationError, NotFoundError
from interview_cards.models.review import ReviewFilters, ReviewSession
from interview_cards.services.learning.review_service import ReviewRegistry, ReviewService


@pytest.fixture
def source(fake_source_factory, make_card):
    return fake_source_factory([make_card("a"), make_card("b"), make_card("c")])


@pytest.fixture
def service(session_store, source):
    return ReviewService(session_store, source, ReviewRegistry())


class TestStartReview:
    @pytest.mark.asyncio
    async def test_creates_session_when_none_exists(self, service, session_repository):
        interaction = await service.start_review("u1", "all", ReviewMode.QA)

        assert interaction.session.queue_card_ids == ["a", "b", "c"]
        assert interaction.phase is ReviewPhase.FRONT
        assert await session_repository.get("u1", "all:qa") is not None

    @pytest.mark.asyncio
    async def test_resumes_existing_session(self, service, session_repository):
        await session_repository.put(
            "u1",
            ReviewSession(
                id="all:qa", scope="all", mode=ReviewMode.QA,
                queue_card_ids=["c", "a"], cursor=1,
            ),
        )

        interaction = await service.start_review("u1", "all", ReviewMode.QA)

        assert interaction.session.queue_card_ids == ["c", "a"]
        assert interaction.current_card.id == "a"

    @pytest.mark.asyncio
    async def test_fully_pruned_session_is_rebuilt(self, service, session_repository):
        await session_repository.put(
            "u1",
            ReviewSession(
                id="all:qa", scope="all", mode=ReviewMode.QA,
                queue_card_ids=["deleted"], cursor=0,
            ),
        )

        interaction = await service.start_review("u1", "all", ReviewMode.QA)

        assert interaction.session.queue_card_ids == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_continue_false_builds_new_queue(self, service, session_repository):
        await session_repository.put(
            "u1",
            ReviewSession(
                id="all:qa", scope="all", mode=ReviewMode.QA,
                queue_card_ids=["c"], cursor=0,
            ),
        )

        interaction = await service.start_review(
            "u1", "all", ReviewMode.QA, continue_session=False
        )

        assert interaction.session.queue_card_ids == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_nothing_to_review(self, session_store, fake_source_factory, make_card):
        source = fake_source_factory([make_card("a", mastery=MasteryStatus.SOLID)])
        service = ReviewService(session_store, source)

        interaction = await service.start_review("u1", "all", ReviewMode.QA)

        state = interaction.snapshot()
        assert state.nothing_to_review is True
        assert state.phase is ReviewPhase.IDLE

    @pytest.mark.asyncio
    async def test_due_scope_uses_only_due_filter(self, service):
        interaction = await service.start_review("u1", "due", ReviewMode.QA)
        assert interaction.session.filters.only_due is True

    @pytest.mark.asyncio
    async def test_same_interaction_reused_per_session(self, service):
        first = await service.start_review("u1", "all", ReviewMode.QA)
        second = await service.start_review("u1", "all", ReviewMode.QA)

        assert first is second
        assert len(service.registry) == 1


class TestRestartAndEnd:
    @pytest.mark.asyncio
    async def test_restart_keeps_filters_and_resets_progress(self, service):
        interaction = await service.start_review(
            "u1", "all", ReviewMode.QA, filters=ReviewFilters(mastery_filter=["new"])
        )
        await interaction.submit_mastery(MasteryStatus.FUZZY)

        restarted = await service.restart_review("u1", "all", ReviewMode.QA)

        assert restarted.session.cursor == 0
        assert restarted.session.filters.mastery_filter == [MasteryStatus.NEW]

    @pytest.mark.asyncio
    async def test_get_interaction_requires_started_review(self, service):
        with pytest.raises(NotFoundError):
            service.get_interaction("u1", "all", ReviewMode.QA)

    @pytest.mark.asyncio
    async def test_end_review_deletes_session(self, service, session_repository):
        await service.start_review("u1", "all", ReviewMode.QA)

        await service.end_review("u1", "all", ReviewMode.QA)

        assert await session_repository.get("u1", "all:qa") is None
        with pytest.raises(NotFoundError):
            service.get_interaction("u1", "all", ReviewMode.QA)


class TestAnonymousReviews:
    @pytest.mark.asyncio
    async def test_anonymous_starts_do_not_share_state(self, service):
        first = await service.start_review(None, "all", ReviewMode.QA)
        first.next()

        second = await service.start_review(None, "all", ReviewMode.QA)
        second.next()
        second.next()

        assert first is not second
        assert first.session.cursor == 1
        assert second.session.cursor == 2
        assert len(service.registry) == 0

    @pytest.mark.asyncio
    async def test_anonymous_cannot_continue_a_review(self, service):
        await service.start_review(None, "all", ReviewMode.QA)

        with pytest.raises(AuthorizationError):
            service.get_interaction(None, "all", ReviewMode.QA)


class TestConcurrentLifecycle:
    @pytest.mark.asyncio
    async def test_restart_during_rating_keeps_fresh_session(
        self, service, source, session_repository
    ):
        interaction = await service.start_review("u1", "all", ReviewMode.QA)
        gate = asyncio.Event()
        saved = []

        async def gated_save(user_id, card_id, update):
            await gate.wait()
            saved.append(card_id)

        source.save_override = gated_save
        rating = asyncio.create_task(interaction.submit_mastery(MasteryStatus.SOLID))
        await asyncio.sleep(0)

        restarted = await service.restart_review("u1", "all", ReviewMode.QA)
        assert restarted.session.queue_card_ids == ["a", "b", "c"]

        gate.set()
        await rating
        await service.store.debouncer.flush()

        assert saved == ["a"]
        assert restarted.session.queue_card_ids == ["a", "b", "c"]
        assert restarted.session.cursor == 0
        stored = await session_repository.get("u1", "all:qa")
        assert stored.queue_card_ids == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_start_waits_for_held_lock(self, service):
        interaction = await service.start_review("u1", "all", ReviewMode.QA)
        interaction.next()

        async with interaction.lock:
            pending = asyncio.create_task(
                service.start_review("u1", "all", ReviewMode.QA, continue_session=False)
            )
            await asyncio.sleep(0.01)
            assert not pending.done()
            assert interaction.session.cursor == 1

        await pending
        assert interaction.session.cursor == 0


class TestRegistryBound:
    def test_least_recently_used_is_evicted(self):
        registry = ReviewRegistry(max_size=2)
        first, second, third = object(), object(), object()

        registry.put("u1", "all:qa", first)
        registry.put("u1", "due:qa", second)
        assert registry.get("u1", "all:qa") is first
        registry.put("u2", "all:qa", third)

        assert len(registry) == 2
        assert registry.get("u1", "due:qa") is None
        assert registry.get("u1", "all:qa") is first
        assert registry.get("u2", "all:qa") is third

    @pytest.mark.asyncio
    async def test_evicted_review_resumes_from_persisted_session(self, session_store, source):
        service = ReviewService(session_store, source, ReviewRegistry(max_size=1))
        review = await service.start_review("u1", "all", ReviewMode.QA)
        review.next()
        await session_store.debouncer.flush()

        await service.start_review("u1", "due", ReviewMode.QA)
        with pytest.raises(NotFoundError):
            service.get_interaction("u1", "all", ReviewMode.QA)

        resumed = await service.start_review("u1", "all", ReviewMode.QA)
        assert resumed is not review
        assert resumed.session.cursor == 1
