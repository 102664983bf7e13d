"""
Library API Router

Browsing the card catalog through the local summary cache, card detail and
answers, user-created cards, categories and dashboard statistics.

Endpoints:
- GET /api/library/cards - Page of cached card summaries
- GET /api/library/cards/{id} - Card with the caller's review overlay
- GET /api/library/cards/{id}/answer - Localized answer text
- POST /api/library/cards - Create or update a card
- GET /api/library/progress - Solved/total counts for a filter
- POST /api/library/sync - Pull catalog changes into the summary cache
- GET /api/library/categories - Category tree nodes
- GET /api/library/stats - Mastery, due count, streak and domain stats
"""

import logging
from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from interview_cards.config import settings
from interview_cards.db.base import get_db
from interview_cards.dependencies import get_current_user_id, get_summary_cache
from interview_cards.enums.learning import ContentLanguage
from interview_cards.middleware.error_handling import NotFoundError
from interview_cards.models.cards import (
    Card,
    CardAnswerResponse,
    CardSummaryPage,
    CardUpsert,
    CategoryResponse,
    LibraryStats,
    SolvedProgress,
)
from interview_cards.services.card_service import CardService
from interview_cards.services.category_service import CategoryService
from interview_cards.services.stats_service import StatsService
from interview_cards.services.summary_cache import CardSummaryCache

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/library", tags=["library"])


async def get_card_service(db: AsyncSession = Depends(get_db)) -> CardService:
    return CardService(db)


async def get_category_service(db: AsyncSession = Depends(get_db)) -> CategoryService:
    return CategoryService(db)


async def get_stats_service(db: AsyncSession = Depends(get_db)) -> StatsService:
    return StatsService(db)


# ===========================================
# Cards
# ===========================================


@router.get("/cards", response_model=CardSummaryPage)
async def list_cards(
    page: int = Query(1, ge=1),
    page_size: Optional[int] = Query(None, ge=1, le=100),
    search: Optional[str] = Query(None, description="Substring of title or question"),
    category_l3_id: Optional[str] = Query(None),
    cache: CardSummaryCache = Depends(get_summary_cache),
) -> CardSummaryPage:
    """Page through cached summaries ordered by id (syncs first)."""
    return await cache.query_page(
        page=page, page_size=page_size, search=search, category_l3_id=category_l3_id
    )


@router.get("/cards/{card_id}", response_model=Card)
async def get_card(
    card_id: str,
    user_id: Optional[str] = Depends(get_current_user_id),
    service: CardService = Depends(get_card_service),
) -> Card:
    card = await service.get_card(card_id, user_id)
    if card is None:
        raise NotFoundError(f"Card {card_id} not found")
    return card


@router.get("/cards/{card_id}/answer", response_model=CardAnswerResponse)
async def get_card_answer(
    card_id: str,
    language: Optional[ContentLanguage] = Query(None),
    service: CardService = Depends(get_card_service),
) -> CardAnswerResponse:
    """Answer in the requested language, falling back to other variants."""
    if await service.get_card(card_id, include_answer=False) is None:
        raise NotFoundError(f"Card {card_id} not found")

    lang = language or ContentLanguage(settings.DEFAULT_CONTENT_LANGUAGE)
    answer = await service.get_card_answer(card_id, lang)
    return CardAnswerResponse(card_id=card_id, language=lang.value, answer=answer)


@router.post("/cards", response_model=Card)
async def upsert_card(
    card_data: CardUpsert,
    service: CardService = Depends(get_card_service),
) -> Card:
    """Create a user card (id generated when omitted) or update an existing one."""
    return await service.upsert_card(card_data)


# ===========================================
# Cache
# ===========================================


@router.get("/progress", response_model=SolvedProgress)
async def get_progress(
    search: Optional[str] = Query(None),
    category_l3_id: Optional[str] = Query(None),
    user_id: Optional[str] = Depends(get_current_user_id),
    service: CardService = Depends(get_card_service),
    cache: CardSummaryCache = Depends(get_summary_cache),
) -> SolvedProgress:
    overrides = await service.list_overrides(user_id)
    return await cache.query_progress(
        overrides, search=search, category_l3_id=category_l3_id
    )


@router.post("/sync")
async def sync_summary_cache(
    cache: CardSummaryCache = Depends(get_summary_cache),
) -> dict:
    result = await cache.sync()
    return asdict(result)


# ===========================================
# Categories and Stats
# ===========================================


@router.get("/categories", response_model=list[CategoryResponse])
async def list_categories(
    level: Optional[int] = Query(None, ge=1, le=3),
    service: CategoryService = Depends(get_category_service),
) -> list[CategoryResponse]:
    return await service.get_categories(level)


@router.get("/stats", response_model=LibraryStats)
async def get_stats(
    user_id: Optional[str] = Depends(get_current_user_id),
    service: StatsService = Depends(get_stats_service),
) -> LibraryStats:
    return await service.get_library_stats(user_id)
