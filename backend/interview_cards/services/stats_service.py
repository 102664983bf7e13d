"""
Library Statistics

Dashboard numbers derived from the catalog, the user's overrides and the
review log: mastery tier counts, due count, per-domain progress and the
current daily streak.
"""

import logging
from collections import Counter
from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from interview_cards.enums.learning import MasteryStatus
from interview_cards.models.cards import DomainStats, LibraryStats, MasteryStats
from interview_cards.services.card_service import CardService
from interview_cards.services.learning.scheduler import calculate_streak
from interview_cards.services.review_log_service import ReviewLogService

logger = logging.getLogger(__name__)


class StatsService:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.cards = CardService(db)
        self.review_logs = ReviewLogService(db)

    async def get_mastery_stats(self, user_id: Optional[str]) -> MasteryStats:
        """Counts per tier; cards without a non-new override count as new."""
        if not user_id:
            return MasteryStats()

        total = await self.cards.count_cards()
        overrides = await self.cards.list_overrides(user_id)
        counts = Counter(
            MasteryStatus(o.mastery) for o in overrides if o.mastery is not None
        )
        non_new = (
            counts[MasteryStatus.FUZZY]
            + counts[MasteryStatus.CAN_EXPLAIN]
            + counts[MasteryStatus.SOLID]
        )
        return MasteryStats(
            new=max(0, total - non_new),
            fuzzy=counts[MasteryStatus.FUZZY],
            can_explain=counts[MasteryStatus.CAN_EXPLAIN],
            solid=counts[MasteryStatus.SOLID],
        )

    async def get_domain_stats(self, user_id: Optional[str]) -> list[DomainStats]:
        """Total and solid counts per level-2 category, ordered by category id."""
        cards = await self.cards.get_all_cards(user_id)
        totals: Counter[str] = Counter()
        solid: Counter[str] = Counter()
        for card in cards:
            totals[card.category_l2_id] += 1
            if card.mastery == MasteryStatus.SOLID:
                solid[card.category_l2_id] += 1

        return [
            DomainStats(category_l2_id=l2_id, total=totals[l2_id], solid=solid[l2_id])
            for l2_id in sorted(totals)
        ]

    async def get_streak(self, user_id: Optional[str], today: Optional[date] = None) -> int:
        dates = await self.review_logs.list_review_dates(user_id)
        return calculate_streak(dates, today or datetime.now(timezone.utc).date())

    async def get_library_stats(
        self, user_id: Optional[str], now: Optional[datetime] = None
    ) -> LibraryStats:
        now = now or datetime.now(timezone.utc)
        return LibraryStats(
            mastery=await self.get_mastery_stats(user_id),
            due_count=await self.cards.get_due_count(user_id, now),
            streak_days=await self.get_streak(user_id, now.date()),
            domains=await self.get_domain_stats(user_id),
        )
