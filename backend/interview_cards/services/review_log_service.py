"""
Review Log Service

Append-only log of mastery submissions. The review flow only writes here;
the log is read back for streak statistics.
"""

import logging
from datetime import datetime, timezone
from typing import Optional, Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from interview_cards.config.settings import settings
from interview_cards.db.models import ReviewLog
from interview_cards.enums.learning import MasteryStatus

logger = logging.getLogger(__name__)

Mastery = Union[MasteryStatus, str]


def clamp_time_spent(time_spent_ms: int, cap_ms: Optional[int] = None) -> int:
    """Clamp elapsed time into [0, REVIEW_MAX_TIME_SPENT_MS]."""
    cap = cap_ms if cap_ms is not None else settings.REVIEW_MAX_TIME_SPENT_MS
    return max(0, min(int(time_spent_ms), cap))


class ReviewLogService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def append_log(
        self,
        user_id: Optional[str],
        card_id: str,
        previous_mastery: Mastery,
        new_mastery: Mastery,
        time_spent_ms: int,
        did_reveal_answer: bool,
        category_l2_id: Optional[str] = None,
        category_l3_id: Optional[str] = None,
        reviewed_at: Optional[datetime] = None,
    ) -> Optional[ReviewLog]:
        if not user_id:
            return None

        entry = ReviewLog(
            user_id=user_id,
            card_id=card_id,
            category_l2_id=category_l2_id,
            category_l3_id=category_l3_id,
            reviewed_at=reviewed_at or datetime.now(timezone.utc),
            previous_mastery=MasteryStatus(previous_mastery).value,
            new_mastery=MasteryStatus(new_mastery).value,
            did_reveal_answer=did_reveal_answer,
            time_spent_ms=clamp_time_spent(time_spent_ms),
        )
        self.db.add(entry)
        await self.db.flush()

        logger.debug(
            f"Logged review of {card_id}: {entry.previous_mastery} -> {entry.new_mastery} "
            f"({entry.time_spent_ms}ms, revealed={did_reveal_answer})"
        )
        return entry

    async def list_review_dates(self, user_id: Optional[str]) -> list[datetime]:
        """Timestamps of every logged review, newest first."""
        if not user_id:
            return []
        result = await self.db.execute(
            select(ReviewLog.reviewed_at)
            .where(ReviewLog.user_id == user_id)
            .order_by(ReviewLog.reviewed_at.desc())
        )
        return list(result.scalars().all())
