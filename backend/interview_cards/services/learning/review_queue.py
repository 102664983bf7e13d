"""
Review Queue Builder

Turns a candidate card set into an ordered review queue. Stages, in order:

1. only_due: drop cards whose due time is in the future
2. mastery_filter: keep only the listed tiers (empty = keep all)
3. question_type_filter: keep only the listed question types (empty = keep all)
4. drop SOLID cards unconditionally; solid cards have graduated and never
   enter a queue, even when the mastery filter names them
5. order: uniform shuffle (Fisher-Yates) or ascending due time

The non-shuffled sort is stable, so cards with equal due times keep their
input order. The input list is never mutated.
"""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Sequence, TypeVar

from interview_cards.enums.learning import MasteryStatus, QuestionType
from interview_cards.models.cards import Card
from interview_cards.models.review import ReviewFilters

CardT = TypeVar("CardT", bound=Card)


@dataclass
class QueueOptions:
    """Options for generate_review_queue()."""

    only_due: bool = False
    mastery_filter: list[MasteryStatus] = field(default_factory=list)
    question_type_filter: list[QuestionType] = field(default_factory=list)
    shuffle: bool = False

    @classmethod
    def from_filters(cls, filters: ReviewFilters) -> "QueueOptions":
        return cls(
            only_due=filters.only_due,
            mastery_filter=list(filters.mastery_filter),
            question_type_filter=list(filters.question_type_filter),
            shuffle=filters.shuffle,
        )


def fisher_yates_shuffle(items: list, rng: random.Random | None = None) -> None:
    """Shuffle `items` in place with a uniform Fisher-Yates permutation."""
    rand = rng or random
    for i in range(len(items) - 1, 0, -1):
        j = rand.randint(0, i)
        items[i], items[j] = items[j], items[i]


def generate_review_queue(
    cards: Sequence[CardT],
    options: Optional[QueueOptions] = None,
    now: Optional[datetime] = None,
    rng: random.Random | None = None,
) -> list[CardT]:
    """
    Build an ordered review queue.

    Args:
        cards: Candidate cards (effective state, overrides applied)
        options: Filter/order options (defaults: no filters, sort by due)
        now: Reference time for the only_due stage (required when only_due)
        rng: Random source for shuffling (tests pass a seeded Random)

    Returns:
        New list; a subsequence of `cards` by identity
    """
    options = options or QueueOptions()
    queue = list(cards)

    if options.only_due:
        if now is None:
            raise ValueError("now is required when only_due is set")
        queue = [card for card in queue if card.due_at <= now]

    if options.mastery_filter:
        wanted = {MasteryStatus(m) for m in options.mastery_filter}
        queue = [card for card in queue if card.mastery in wanted]

    if options.question_type_filter:
        wanted_types = {QuestionType(t) for t in options.question_type_filter}
        queue = [card for card in queue if card.question_type in wanted_types]

    queue = [card for card in queue if card.mastery != MasteryStatus.SOLID]

    if options.shuffle:
        fisher_yates_shuffle(queue, rng)
    else:
        queue.sort(key=lambda card: card.due_at)

    return queue
