"""
Unit tests for the incremental card summary cache.
"""

from datetime import datetime
from types import SimpleNamespace

import pytest

from interview_cards.enums.learning import MasteryStatus
from interview_cards.services.summary_cache import (
    WATERMARK_KEY,
    CardSummaryCache,
    InMemorySummaryCacheStore,
    SummaryQuery,
    is_solved,
)


class FakeRemote:
    """Remote summary table; answers offset windows above a watermark."""

    def __init__(self, rows=None):
        self.rows = {row.id: row for row in rows or []}
        self.calls = []
        self.fail_on_call = None

    def add(self, *rows):
        for row in rows:
            self.rows[row.id] = row

    async def fetch_summaries(self, after, offset, limit):
        self.calls.append((after, offset, limit))
        if self.fail_on_call == len(self.calls):
            raise ConnectionError("remote unavailable")

        rows = sorted(self.rows.values(), key=lambda r: (r.updated_at, r.id))
        if after:
            cutoff = datetime.fromisoformat(after)
            rows = [r for r in rows if r.updated_at > cutoff]
        return rows[offset : offset + limit]


@pytest.fixture
def store():
    return InMemorySummaryCacheStore()


class TestSync:
    @pytest.mark.asyncio
    async def test_full_pull_in_pages(self, store, make_summary):
        remote = FakeRemote([make_summary(f"c{i}", minutes=i) for i in range(5)])
        cache = CardSummaryCache(store, remote, page_size=2)

        result = await cache.sync()

        assert result.rows == 5
        assert result.pages == 3
        assert sorted(store.rows) == ["c0", "c1", "c2", "c3", "c4"]
        assert store.meta[WATERMARK_KEY] == remote.rows["c4"].updated_at_raw

    @pytest.mark.asyncio
    async def test_watermark_read_once_and_pages_are_offsets(self, store, make_summary):
        remote = FakeRemote([make_summary(f"c{i}", minutes=i) for i in range(4)])
        cache = CardSummaryCache(store, remote, page_size=2)

        await cache.sync()

        assert [call[0] for call in remote.calls] == [None, None, None]
        assert [call[1] for call in remote.calls] == [0, 2, 4]

    @pytest.mark.asyncio
    async def test_repeated_syncs_converge_without_duplicates(self, store, make_summary):
        remote = FakeRemote([make_summary("c0", minutes=0), make_summary("c1", minutes=1)])
        cache = CardSummaryCache(store, remote, page_size=2)
        watermarks = []

        await cache.sync()
        watermarks.append(store.meta[WATERMARK_KEY])

        remote.add(make_summary("c2", minutes=2), make_summary("c3", minutes=3))
        await cache.sync()
        watermarks.append(store.meta[WATERMARK_KEY])

        remote.add(make_summary("c4", minutes=4))
        await cache.sync()
        watermarks.append(store.meta[WATERMARK_KEY])

        await cache.sync()
        watermarks.append(store.meta[WATERMARK_KEY])

        assert sorted(store.rows) == ["c0", "c1", "c2", "c3", "c4"]
        assert len(store.rows) == len(remote.rows)
        parsed = [datetime.fromisoformat(w) for w in watermarks]
        assert parsed == sorted(parsed)

    @pytest.mark.asyncio
    async def test_rows_older_than_watermark_are_not_refetched(self, store, make_summary):
        remote = FakeRemote([make_summary("c0", minutes=0), make_summary("c1", minutes=1)])
        cache = CardSummaryCache(store, remote, page_size=10)
        await cache.sync()
        remote.calls.clear()

        result = await cache.sync()

        assert result.rows == 0
        assert remote.calls[0][0] == remote.rows["c1"].updated_at_raw

    @pytest.mark.asyncio
    async def test_updated_row_replaces_cached_copy(self, store, make_summary):
        remote = FakeRemote([make_summary("c0", minutes=0, title="Old")])
        cache = CardSummaryCache(store, remote, page_size=10)
        await cache.sync()

        remote.add(make_summary("c0", minutes=5, title="New"))
        await cache.sync()

        assert store.rows["c0"].title == "New"
        assert len(store.rows) == 1

    @pytest.mark.asyncio
    async def test_failed_page_keeps_watermark_at_last_completed_page(self, store, make_summary):
        remote = FakeRemote([make_summary(f"c{i}", minutes=i) for i in range(5)])
        remote.fail_on_call = 2
        cache = CardSummaryCache(store, remote, page_size=2)

        with pytest.raises(ConnectionError):
            await cache.sync()

        assert sorted(store.rows) == ["c0", "c1"]
        assert store.meta[WATERMARK_KEY] == remote.rows["c1"].updated_at_raw

        remote.fail_on_call = None
        await cache.sync()

        assert sorted(store.rows) == ["c0", "c1", "c2", "c3", "c4"]
        assert store.meta[WATERMARK_KEY] == remote.rows["c4"].updated_at_raw

    @pytest.mark.asyncio
    async def test_empty_remote(self, store):
        cache = CardSummaryCache(store, FakeRemote(), page_size=2)

        result = await cache.sync()

        assert result.rows == 0
        assert WATERMARK_KEY not in store.meta


class TestInMemoryStore:
    @pytest.mark.asyncio
    async def test_older_copy_does_not_overwrite_newer(self, store, make_summary):
        await store.upsert_summaries([make_summary("c0", minutes=10, title="Newer")])
        await store.upsert_summaries([make_summary("c0", minutes=1, title="Older")])

        assert store.rows["c0"].title == "Newer"

    def test_query_matches_title_or_question_case_insensitively(self, make_summary):
        summary = make_summary("c0", title="React Hooks", question="What does useEffect do?")

        assert SummaryQuery(search="hooks").matches(summary)
        assert SummaryQuery(search="USEEFFECT").matches(summary)
        assert not SummaryQuery(search="vue").matches(summary)
        assert SummaryQuery(search="   ").matches(summary)


class TestQueries:
    @pytest.mark.asyncio
    async def test_query_page_filters_sorts_and_counts(self, store, make_summary):
        remote = FakeRemote(
            [
                make_summary("c3", minutes=0, title="Closures in JS"),
                make_summary("c1", minutes=1, title="closure scope"),
                make_summary("c2", minutes=2, title="Event loop"),
                make_summary("c4", minutes=3, title="Closure vs class", category_l3_id="node"),
            ]
        )
        cache = CardSummaryCache(store, remote, page_size=10)

        page = await cache.query_page(page=1, page_size=2, search="CLOSURE")

        assert [item.id for item in page.items] == ["c1", "c3"]
        assert page.total == 3
        assert page.has_more is True

        second = await cache.query_page(page=2, page_size=2, search="closure")
        assert [item.id for item in second.items] == ["c4"]
        assert second.has_more is False

        by_category = await cache.query_page(category_l3_id="node")
        assert [item.id for item in by_category.items] == ["c4"]

    @pytest.mark.asyncio
    async def test_query_page_serves_cache_when_sync_fails(self, store, make_summary):
        await store.upsert_summaries([make_summary("c0")])
        remote = FakeRemote()
        remote.fail_on_call = 1
        cache = CardSummaryCache(store, remote, page_size=10)

        page = await cache.query_page()

        assert [item.id for item in page.items] == ["c0"]

    @pytest.mark.asyncio
    async def test_solved_progress(self, store, make_summary):
        remote = FakeRemote([make_summary(cid, minutes=i) for i, cid in enumerate("ABC")])
        cache = CardSummaryCache(store, remote, page_size=10)
        overrides = [
            SimpleNamespace(card_id="A", mastery=None, review_count=2),
            SimpleNamespace(card_id="B", mastery=MasteryStatus.NEW, review_count=0),
        ]

        progress = await cache.query_progress(overrides)

        assert progress.solved == 1
        assert progress.total == 3

    @pytest.mark.asyncio
    async def test_progress_respects_filters(self, store, make_summary):
        remote = FakeRemote(
            [
                make_summary("A", minutes=0, category_l3_id="react"),
                make_summary("B", minutes=1, category_l3_id="node"),
            ]
        )
        cache = CardSummaryCache(store, remote, page_size=10)
        overrides = [
            SimpleNamespace(card_id="A", mastery=MasteryStatus.FUZZY, review_count=1),
            SimpleNamespace(card_id="B", mastery=MasteryStatus.SOLID, review_count=3),
        ]

        progress = await cache.query_progress(overrides, category_l3_id="node")

        assert (progress.solved, progress.total) == (1, 1)


class TestIsSolved:
    @pytest.mark.parametrize(
        "mastery,review_count,expected",
        [
            (None, 0, False),
            (MasteryStatus.NEW, 0, False),
            (MasteryStatus.NEW, 1, True),
            (MasteryStatus.FUZZY, 0, True),
            ("solid", None, True),
        ],
    )
    def test_is_solved(self, mastery, review_count, expected):
        override = SimpleNamespace(mastery=mastery, review_count=review_count)
        assert is_solved(override) is expected
