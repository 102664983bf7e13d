"""
Unit tests for the review session store and its debouncer.
"""

import asyncio
import logging
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from interview_cards.db.models import ReviewSessionRecord
from interview_cards.enums.learning import ReviewMode
from interview_cards.models.review import ReviewFilters, ReviewSession, default_filters
from interview_cards.services.learning.session_service import (
    SessionDebouncer,
    SqlSessionRepository,
)


def _session(queue, cursor=0, scope="all", mode=ReviewMode.QA):
    return ReviewSession(
        id=f"{scope}:{mode.value}",
        scope=scope,
        mode=mode,
        queue_card_ids=list(queue),
        cursor=cursor,
    )


class TestCreateSession:
    @pytest.mark.asyncio
    async def test_create_persists_immediately(self, session_store, session_repository, make_card):
        cards = [make_card("a"), make_card("b")]

        session = await session_store.create_session(
            "u1", "all", ReviewMode.QA, cards, default_filters("all")
        )

        assert session.id == "all:qa"
        assert session.cursor == 0
        stored = await session_repository.get("u1", "all:qa")
        assert stored is not None
        assert stored.queue_card_ids == ["a", "b"]

    @pytest.mark.asyncio
    async def test_create_applies_filters(self, session_store, make_card, now):
        cards = [make_card("a"), make_card("b", due_at=now + timedelta(days=2))]

        session = await session_store.create_session(
            "u1", "due", ReviewMode.QA, cards, default_filters("due")
        )

        assert session.filters.only_due is True
        assert session.queue_card_ids == ["a"]

    @pytest.mark.asyncio
    async def test_anonymous_create_is_not_persisted(self, session_store, session_repository, make_card):
        session = await session_store.create_session(
            None, "all", ReviewMode.QA, [make_card("a")], ReviewFilters()
        )

        assert session.queue_card_ids == ["a"]
        assert session_repository._rows == {}


class TestRestoreSession:
    @pytest.mark.asyncio
    async def test_missing_session_returns_none(self, session_store):
        assert await session_store.restore_session("u1", "all", ReviewMode.QA) is None

    @pytest.mark.asyncio
    async def test_anonymous_restore_returns_none(self, session_store, session_repository):
        await session_repository.put("u1", _session(["a"]))
        assert await session_store.restore_session(None, "all", ReviewMode.QA) is None

    @pytest.mark.asyncio
    async def test_stale_ids_pruned_and_cursor_clamped(
        self, session_store, session_repository, catalog_ids
    ):
        await session_repository.put("u1", _session(["a", "b", "c"], cursor=2))
        catalog_ids.discard("c")

        restored = await session_store.restore_session("u1", "all", ReviewMode.QA)

        assert restored.queue_card_ids == ["a", "b"]
        assert restored.cursor == 1

    @pytest.mark.asyncio
    async def test_cursor_kept_when_still_in_range(
        self, session_store, session_repository, catalog_ids
    ):
        await session_repository.put("u1", _session(["a", "b", "c", "d"], cursor=1))
        catalog_ids.discard("d")

        restored = await session_store.restore_session("u1", "all", ReviewMode.QA)

        assert restored.queue_card_ids == ["a", "b", "c"]
        assert restored.cursor == 1

    @pytest.mark.asyncio
    async def test_fully_pruned_session_is_empty_not_error(
        self, session_store, session_repository
    ):
        await session_repository.put("u1", _session(["gone-1", "gone-2"], cursor=1))

        restored = await session_store.restore_session("u1", "all", ReviewMode.QA)

        assert restored is not None
        assert restored.queue_card_ids == []
        assert restored.cursor == 0
        assert restored.is_empty

    @pytest.mark.asyncio
    async def test_restore_is_idempotent(self, session_store, session_repository, catalog_ids):
        await session_repository.put("u1", _session(["a", "x", "b"], cursor=2))

        first = await session_store.restore_session("u1", "all", ReviewMode.QA)
        second = await session_store.restore_session("u1", "all", ReviewMode.QA)

        assert first.queue_card_ids == second.queue_card_ids == ["a", "b"]
        assert first.cursor == second.cursor == 1

    @pytest.mark.asyncio
    async def test_sessions_are_per_user_and_mode(self, session_store, session_repository):
        await session_repository.put("u1", _session(["a"]))

        assert await session_store.restore_session("u2", "all", ReviewMode.QA) is None
        assert await session_store.restore_session("u1", "all", ReviewMode.CODE) is None


class TestDebouncedSave:
    @pytest.mark.asyncio
    async def test_burst_collapses_into_last_write(self, session_store, session_repository):
        session_repository.put = AsyncMock(side_effect=session_repository.put)

        for cursor in range(3):
            session_store.save_session("u1", _session(["a", "b", "c"], cursor=cursor))
        assert session_repository.put.await_count == 0

        await asyncio.sleep(0.1)

        assert session_repository.put.await_count == 1
        stored = await session_repository.get("u1", "all:qa")
        assert stored.cursor == 2

    @pytest.mark.asyncio
    async def test_keys_debounce_independently(self, session_store, session_repository):
        session_repository.put = AsyncMock(side_effect=session_repository.put)

        session_store.save_session("u1", _session(["a"], scope="all"))
        session_store.save_session("u1", _session(["b"], scope="due"))
        await asyncio.sleep(0.1)

        assert session_repository.put.await_count == 2

    @pytest.mark.asyncio
    async def test_immediate_save_replaces_pending_write(self, session_store, session_repository):
        session_repository.put = AsyncMock(side_effect=session_repository.put)

        session_store.save_session("u1", _session(["a", "b", "c"], cursor=1))
        await session_store.save_session_immediate("u1", _session(["a", "b", "c"], cursor=2))
        await asyncio.sleep(0.1)

        assert session_repository.put.await_count == 1
        assert (await session_repository.get("u1", "all:qa")).cursor == 2

    @pytest.mark.asyncio
    async def test_later_mutation_does_not_leak_into_pending_write(
        self, session_store, session_repository
    ):
        session = _session(["a", "b"])
        session_store.save_session("u1", session)
        session.queue_card_ids.append("c")
        await asyncio.sleep(0.1)

        assert (await session_repository.get("u1", "all:qa")).queue_card_ids == ["a", "b"]

    @pytest.mark.asyncio
    async def test_anonymous_save_is_ignored(self, session_store):
        session_store.save_session(None, _session(["a"]))
        assert session_store.debouncer.pending_keys == []

    @pytest.mark.asyncio
    async def test_failed_write_is_logged_not_raised(self, session_store, session_repository, caplog):
        session_repository.put = AsyncMock(side_effect=RuntimeError("database unavailable"))

        with caplog.at_level(logging.ERROR):
            session_store.save_session("u1", _session(["a"]))
            await asyncio.sleep(0.1)

        assert "Debounced session save failed" in caplog.text
        assert session_store.debouncer.pending_keys == []

    @pytest.mark.asyncio
    async def test_aclose_flushes_pending_writes(self, session_store, session_repository):
        session_store.save_session("u1", _session(["a"], cursor=0))

        await session_store.aclose()

        assert await session_repository.get("u1", "all:qa") is not None
        assert session_store.debouncer.pending_keys == []


class TestDeleteSession:
    @pytest.mark.asyncio
    async def test_delete_removes_row_and_pending_write(self, session_store, session_repository):
        await session_repository.put("u1", _session(["a"]))
        session_store.save_session("u1", _session(["a", "b"]))

        await session_store.delete_session("u1", "all", ReviewMode.QA)
        await asyncio.sleep(0.1)

        assert await session_repository.get("u1", "all:qa") is None


class TestSessionDebouncer:
    @pytest.mark.asyncio
    async def test_cancel_drops_action(self):
        debouncer = SessionDebouncer(delay_ms=10)
        action = AsyncMock()

        debouncer.schedule("k", action)
        debouncer.cancel("k")
        await asyncio.sleep(0.05)

        action.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_flush_runs_pending_once(self):
        debouncer = SessionDebouncer(delay_ms=1000)
        action = AsyncMock()

        debouncer.schedule("k", action)
        await debouncer.flush()

        action.assert_awaited_once()
        assert debouncer.pending_keys == []


def _factory(db):
    factory = MagicMock()
    factory.return_value.__aenter__ = AsyncMock(return_value=db)
    factory.return_value.__aexit__ = AsyncMock(return_value=False)
    return factory


class TestSqlSessionRepository:
    @pytest.mark.asyncio
    async def test_put_inserts_new_row(self, mock_db_session):
        result = MagicMock()
        result.scalar_one_or_none.return_value = None
        mock_db_session.execute.return_value = result
        repo = SqlSessionRepository(_factory(mock_db_session))

        await repo.put("u1", _session(["a", "b"], cursor=1))

        row = mock_db_session.add.call_args[0][0]
        assert isinstance(row, ReviewSessionRecord)
        assert row.user_id == "u1"
        assert row.id == "all:qa"
        assert row.mode == "qa"
        assert row.queue_card_ids == ["a", "b"]
        assert row.cursor == 1
        assert row.filters["only_due"] is False
        mock_db_session.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_get_maps_row(self, mock_db_session):
        row = ReviewSessionRecord(
            user_id="u1",
            id="due:code",
            scope="due",
            mode="code",
            queue_card_ids=["a"],
            cursor=0,
            filters={"only_due": True, "mastery_filter": ["fuzzy"]},
        )
        result = MagicMock()
        result.scalar_one_or_none.return_value = row
        mock_db_session.execute.return_value = result
        repo = SqlSessionRepository(_factory(mock_db_session))

        session = await repo.get("u1", "due:code")

        assert session.mode is ReviewMode.CODE
        assert session.filters.only_due is True
        assert session.filters.mastery_filter == ["fuzzy"]

    @pytest.mark.asyncio
    async def test_get_missing_row(self, mock_db_session):
        result = MagicMock()
        result.scalar_one_or_none.return_value = None
        mock_db_session.execute.return_value = result
        repo = SqlSessionRepository(_factory(mock_db_session))

        assert await repo.get("u1", "all:qa") is None
