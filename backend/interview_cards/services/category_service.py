"""
Category Service

Read access to the three-level category tree (domain -> area -> topic).
Cards reference level-3 categories only; level-1 and level-2 ids are derived
by walking the parent chain.
"""

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from interview_cards.db.models import Category
from interview_cards.middleware.error_handling import NotFoundError, ValidationError
from interview_cards.models.cards import CategoryResponse

logger = logging.getLogger(__name__)


class CategoryService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_categories(self, level: Optional[int] = None) -> list[CategoryResponse]:
        query = select(Category).order_by(Category.level, Category.id)
        if level is not None:
            query = query.where(Category.level == level)
        result = await self.db.execute(query)
        return [CategoryResponse.model_validate(row) for row in result.scalars().all()]

    async def get_category(self, category_id: str) -> Optional[CategoryResponse]:
        row = await self.db.get(Category, category_id)
        return CategoryResponse.model_validate(row) if row else None

    async def resolve_category_path(self, category_l3_id: str) -> tuple[str, str, str]:
        """
        Resolve (l1, l2, l3) ids for a level-3 category.

        Raises:
            NotFoundError: If the category does not exist
            ValidationError: If the category is not level 3, or its parent
                chain does not strictly decrease in level down to level 1
        """
        leaf = await self.db.get(Category, category_l3_id)
        if leaf is None:
            raise NotFoundError(f"Category {category_l3_id} not found")
        if leaf.level != 3:
            raise ValidationError(
                f"Cards must reference a level-3 category, got level {leaf.level}",
                details={"category_id": category_l3_id},
            )

        chain = [leaf]
        node = leaf
        while node.level > 1:
            parent = await self.db.get(Category, node.parent_id) if node.parent_id else None
            if parent is None or parent.level != node.level - 1:
                raise ValidationError(
                    f"Category {node.id} has an invalid parent chain",
                    details={"category_id": category_l3_id},
                )
            chain.append(parent)
            node = parent

        l3, l2, l1 = chain
        return l1.id, l2.id, l3.id
