"""
Mastery Scheduler

Fixed-factor interval scheduling over four self-assessed mastery tiers:

    new          interval 0, due now
    fuzzy        interval 1 (bookkeeping), due now + 10 minutes
    can-explain  interval = max(1, round(prev * 2)), prev 0 -> 1 day
    solid        interval = max(7, round(prev * 2.5)), prev 0 -> 7 days

Every transition increments review_count and stamps last_reviewed_at.

The fuzzy tier records interval_days=1 even though the card is due again
after the short retry delay. Downstream tests rely on both values.

All functions are pure: the current time is passed in by the caller.

Usage:
    from interview_cards.services.learning.scheduler import schedule_next

    update = schedule_next(card, MasteryStatus.SOLID, now=datetime.now(timezone.utc))
    card = card.model_copy(update=update.as_card_fields())
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterable, Protocol, assert_never

from interview_cards.enums.learning import MasteryStatus

FUZZY_RETRY_DELAY = timedelta(minutes=10)
CAN_EXPLAIN_FLOOR_DAYS = 1
CAN_EXPLAIN_FACTOR = 2.0
SOLID_FLOOR_DAYS = 7
SOLID_FACTOR = 2.5


class SchedulableCard(Protocol):
    """Anything carrying the counters the scheduler reads."""

    interval_days: int
    review_count: int


@dataclass(frozen=True)
class ScheduleUpdate:
    """Result of scheduling one mastery submission."""

    mastery: MasteryStatus
    interval_days: int
    due_at: datetime
    review_count: int
    last_reviewed_at: datetime

    def as_card_fields(self) -> dict:
        """Field mapping suitable for Card.model_copy(update=...)."""
        return {
            "mastery": self.mastery,
            "interval_days": self.interval_days,
            "due_at": self.due_at,
            "review_count": self.review_count,
            "last_reviewed_at": self.last_reviewed_at,
        }


def _round_half_up(value: float) -> int:
    # Python's round() is banker's rounding; intervals round .5 upwards
    return int(value + 0.5)


def next_interval_days(previous_days: int, mastery: MasteryStatus) -> int:
    """Interval bookkeeping value for a tier given the previous interval."""
    prev = previous_days or 0

    if mastery is MasteryStatus.NEW:
        return 0
    if mastery is MasteryStatus.FUZZY:
        return 1
    if mastery is MasteryStatus.CAN_EXPLAIN:
        grown = CAN_EXPLAIN_FLOOR_DAYS if prev == 0 else prev * CAN_EXPLAIN_FACTOR
        return max(CAN_EXPLAIN_FLOOR_DAYS, _round_half_up(grown))
    if mastery is MasteryStatus.SOLID:
        grown = SOLID_FLOOR_DAYS if prev == 0 else prev * SOLID_FACTOR
        return max(SOLID_FLOOR_DAYS, _round_half_up(grown))
    assert_never(mastery)


def schedule_next(
    card: SchedulableCard,
    new_mastery: MasteryStatus,
    now: datetime,
    fuzzy_retry_delay: timedelta = FUZZY_RETRY_DELAY,
) -> ScheduleUpdate:
    """
    Compute the next schedule for a card rated at `new_mastery`.

    Args:
        card: Current card state (interval_days, review_count)
        new_mastery: Tier the user just assigned
        now: Current time (timezone-aware UTC)
        fuzzy_retry_delay: Delay before a fuzzy card is due again

    Returns:
        ScheduleUpdate with the new interval, due time and counters
    """
    new_mastery = MasteryStatus(new_mastery)
    interval = next_interval_days(card.interval_days, new_mastery)

    if new_mastery is MasteryStatus.NEW:
        due_at = now
    elif new_mastery is MasteryStatus.FUZZY:
        due_at = now + fuzzy_retry_delay
    else:
        due_at = now + timedelta(days=interval)

    return ScheduleUpdate(
        mastery=new_mastery,
        interval_days=interval,
        due_at=due_at,
        review_count=(card.review_count or 0) + 1,
        last_reviewed_at=now,
    )


def calculate_streak(review_dates: Iterable[datetime | date], today: date) -> int:
    """
    Count consecutive review days ending today or yesterday.

    Returns 0 when the most recent review day is older than yesterday.
    """
    days = sorted(
        {d.date() if isinstance(d, datetime) else d for d in review_dates},
        reverse=True,
    )
    if not days:
        return 0

    latest = days[0]
    if latest not in (today, today - timedelta(days=1)):
        return 0

    streak = 1
    for previous, current in zip(days, days[1:]):
        if (previous - current).days == 1:
            streak += 1
        else:
            break
    return streak
