"""
Card List Service

User-owned card lists. Each user has at most one default list (the
"favorites" list), created lazily on first use. The default list and the
list named "uploads" cannot be deleted.

Operations without a user id return neutral results (empty list, None)
instead of raising.
"""

import logging
from datetime import datetime, timezone
from typing import Iterable, Optional
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from interview_cards.db.models import CardList
from interview_cards.middleware.error_handling import (
    NotFoundError,
    ProtectedListError,
    ValidationError,
)
from interview_cards.models.lists import CardListResponse

logger = logging.getLogger(__name__)

DEFAULT_LIST_NAME = "Favorites"
UPLOADS_LIST_NAME = "uploads"


def _dedupe(card_ids: Iterable[str]) -> list[str]:
    """Drop repeated ids, keeping the first occurrence."""
    return list(dict.fromkeys(card_ids))


class ListService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def _get_row(self, list_id: str, user_id: str) -> CardList:
        result = await self.db.execute(
            select(CardList).where(CardList.id == list_id, CardList.user_id == user_id)
        )
        row = result.scalar_one_or_none()
        if row is None:
            raise NotFoundError(f"List {list_id} not found")
        return row

    async def list_lists(self, user_id: Optional[str]) -> list[CardListResponse]:
        """All lists of the user, newest first."""
        if not user_id:
            return []
        result = await self.db.execute(
            select(CardList)
            .where(CardList.user_id == user_id)
            .order_by(CardList.created_at.desc())
        )
        return [CardListResponse.model_validate(row) for row in result.scalars().all()]

    async def get_list(
        self, list_id: str, user_id: Optional[str]
    ) -> Optional[CardListResponse]:
        if not user_id:
            return None
        result = await self.db.execute(
            select(CardList).where(CardList.id == list_id, CardList.user_id == user_id)
        )
        row = result.scalar_one_or_none()
        return CardListResponse.model_validate(row) if row else None

    async def get_default_list(self, user_id: Optional[str]) -> Optional[CardListResponse]:
        if not user_id:
            return None
        result = await self.db.execute(
            select(CardList)
            .where(CardList.user_id == user_id, CardList.is_default.is_(True))
            .order_by(CardList.created_at)
            .limit(1)
        )
        row = result.scalar_one_or_none()
        return CardListResponse.model_validate(row) if row else None

    async def ensure_default_list(self, user_id: Optional[str]) -> Optional[CardListResponse]:
        """Return the default list, creating it on first use."""
        existing = await self.get_default_list(user_id)
        if existing or not user_id:
            return existing
        return await self.create_list(user_id, DEFAULT_LIST_NAME, is_default=True)

    async def create_list(
        self,
        user_id: Optional[str],
        name: str,
        card_ids: Optional[list[str]] = None,
        is_default: bool = False,
    ) -> Optional[CardListResponse]:
        """
        Create a list.

        Raises:
            ValidationError: If the name is blank or the user already has a
                default list and another one is requested
        """
        if not user_id:
            return None
        if not name or not name.strip():
            raise ValidationError("List name must not be empty")
        if is_default and await self.get_default_list(user_id):
            raise ValidationError("User already has a default list")

        now = datetime.now(timezone.utc)
        row = CardList(
            id=str(uuid4()),
            user_id=user_id,
            name=name.strip(),
            card_ids=_dedupe(card_ids or []),
            is_default=is_default,
            created_at=now,
            updated_at=now,
        )
        self.db.add(row)
        await self.db.flush()

        logger.info(f"Created list {row.id} ({row.name}) for user {user_id}")
        return CardListResponse.model_validate(row)

    async def update_list(
        self,
        list_id: str,
        user_id: Optional[str],
        name: Optional[str] = None,
        card_ids: Optional[list[str]] = None,
    ) -> Optional[CardListResponse]:
        if not user_id:
            return None
        row = await self._get_row(list_id, user_id)

        if name is not None:
            if not name.strip():
                raise ValidationError("List name must not be empty")
            row.name = name.strip()
        if card_ids is not None:
            row.card_ids = _dedupe(card_ids)
        row.updated_at = datetime.now(timezone.utc)

        await self.db.flush()
        return CardListResponse.model_validate(row)

    async def add_card(
        self, list_id: str, user_id: Optional[str], card_id: str
    ) -> Optional[CardListResponse]:
        if not user_id:
            return None
        row = await self._get_row(list_id, user_id)
        current = list(row.card_ids or [])
        if card_id not in current:
            row.card_ids = current + [card_id]
            row.updated_at = datetime.now(timezone.utc)
            await self.db.flush()
            logger.info(f"Added card {card_id} to list {list_id}")
        return CardListResponse.model_validate(row)

    async def remove_card(
        self, list_id: str, user_id: Optional[str], card_id: str
    ) -> Optional[CardListResponse]:
        if not user_id:
            return None
        row = await self._get_row(list_id, user_id)
        current = list(row.card_ids or [])
        if card_id in current:
            row.card_ids = [cid for cid in current if cid != card_id]
            row.updated_at = datetime.now(timezone.utc)
            await self.db.flush()
            logger.info(f"Removed card {card_id} from list {list_id}")
        return CardListResponse.model_validate(row)

    async def delete_list(self, list_id: str, user_id: Optional[str]) -> bool:
        """
        Delete a list.

        Raises:
            NotFoundError: If the list does not belong to the user
            ProtectedListError: For the default list and the uploads list
        """
        if not user_id:
            return False
        row = await self._get_row(list_id, user_id)
        if row.is_default or row.name == UPLOADS_LIST_NAME:
            raise ProtectedListError(f"List '{row.name}' cannot be deleted")

        await self.db.delete(row)
        await self.db.flush()
        logger.info(f"Deleted list {list_id} for user {user_id}")
        return True
