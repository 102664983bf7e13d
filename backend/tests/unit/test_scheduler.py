"""
Unit tests for the mastery scheduler and streak calculation.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone

import pytest

from interview_cards.enums.learning import MasteryStatus
from interview_cards.services.learning.scheduler import (
    calculate_streak,
    next_interval_days,
    schedule_next,
)

NOW = datetime(2025, 3, 10, 9, 0, tzinfo=timezone.utc)


@dataclass
class CardState:
    interval_days: int = 0
    review_count: int = 0


class TestScheduleNext:
    def test_new_resets_interval_and_is_due_now(self):
        update = schedule_next(CardState(interval_days=12, review_count=4), MasteryStatus.NEW, NOW)

        assert update.interval_days == 0
        assert update.due_at == NOW

    @pytest.mark.parametrize("previous", [0, 1, 7, 30])
    def test_fuzzy_is_due_in_ten_minutes_with_interval_one(self, previous):
        update = schedule_next(CardState(interval_days=previous), MasteryStatus.FUZZY, NOW)

        assert update.due_at == NOW + timedelta(minutes=10)
        assert update.interval_days == 1

    def test_can_explain_from_zero_is_one_day(self):
        update = schedule_next(CardState(), MasteryStatus.CAN_EXPLAIN, NOW)

        assert update.interval_days == 1
        assert update.due_at == NOW + timedelta(days=1)

    def test_can_explain_doubles(self):
        update = schedule_next(CardState(interval_days=3), MasteryStatus.CAN_EXPLAIN, NOW)
        assert update.interval_days == 6

    def test_solid_from_zero_is_seven_days(self):
        update = schedule_next(CardState(), MasteryStatus.SOLID, NOW)

        assert update.interval_days == 7
        assert update.due_at == NOW + timedelta(days=7)

    def test_solid_rounds_half_up(self):
        # 3 * 2.5 = 7.5
        assert next_interval_days(3, MasteryStatus.SOLID) == 8
        # 5 * 2.5 = 12.5; round() would give 12
        assert next_interval_days(5, MasteryStatus.SOLID) == 13

    def test_solid_floor_applies_to_small_intervals(self):
        assert next_interval_days(1, MasteryStatus.SOLID) == 7
        assert next_interval_days(2, MasteryStatus.SOLID) == 7

    def test_every_transition_counts_a_review(self):
        for mastery in MasteryStatus:
            update = schedule_next(CardState(review_count=2), mastery, NOW)
            assert update.review_count == 3
            assert update.last_reviewed_at == NOW
            assert update.mastery is mastery

    def test_accepts_string_tier(self):
        update = schedule_next(CardState(), "can-explain", NOW)
        assert update.mastery is MasteryStatus.CAN_EXPLAIN

    @pytest.mark.parametrize(
        "mastery,floor",
        [(MasteryStatus.CAN_EXPLAIN, 1), (MasteryStatus.SOLID, 7)],
    )
    def test_intervals_respect_floor_and_are_monotonic(self, mastery, floor):
        previous_result = 0
        for previous in range(0, 120):
            interval = schedule_next(CardState(interval_days=previous), mastery, NOW).interval_days
            assert interval >= floor
            assert interval >= previous_result
            previous_result = interval

    def test_same_inputs_same_output(self):
        card = CardState(interval_days=4, review_count=1)
        assert schedule_next(card, MasteryStatus.SOLID, NOW) == schedule_next(
            card, MasteryStatus.SOLID, NOW
        )

    def test_repeated_solid_submissions(self):
        card = CardState()
        first = schedule_next(card, MasteryStatus.SOLID, NOW)

        assert first.interval_days == 7
        assert first.due_at == NOW + timedelta(days=7)
        assert first.review_count == 1

        card = CardState(interval_days=first.interval_days, review_count=first.review_count)
        second = schedule_next(card, MasteryStatus.SOLID, NOW)

        assert second.interval_days == 18
        assert second.review_count == 2

    def test_as_card_fields(self):
        fields = schedule_next(CardState(), MasteryStatus.FUZZY, NOW).as_card_fields()
        assert set(fields) == {
            "mastery",
            "interval_days",
            "due_at",
            "review_count",
            "last_reviewed_at",
        }


class TestCalculateStreak:
    def test_no_reviews(self):
        assert calculate_streak([], date(2025, 3, 10)) == 0

    def test_consecutive_days_ending_today(self):
        dates = [datetime(2025, 3, d, 20, tzinfo=timezone.utc) for d in (8, 9, 10)]
        assert calculate_streak(dates, date(2025, 3, 10)) == 3

    def test_streak_ending_yesterday_still_counts(self):
        dates = [date(2025, 3, 8), date(2025, 3, 9)]
        assert calculate_streak(dates, date(2025, 3, 10)) == 2

    def test_stale_streak_is_zero(self):
        dates = [date(2025, 3, 5), date(2025, 3, 6)]
        assert calculate_streak(dates, date(2025, 3, 10)) == 0

    def test_gap_stops_streak_and_duplicates_collapse(self):
        dates = [
            datetime(2025, 3, 10, 8, tzinfo=timezone.utc),
            datetime(2025, 3, 10, 18, tzinfo=timezone.utc),
            datetime(2025, 3, 9, 8, tzinfo=timezone.utc),
            datetime(2025, 3, 7, 8, tzinfo=timezone.utc),
        ]
        assert calculate_streak(dates, date(2025, 3, 10)) == 2
