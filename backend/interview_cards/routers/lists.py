"""
Lists API Router

User card lists, including the lazily created default (favorites) list.

Endpoints:
- GET /api/lists - All lists of the caller, newest first
- POST /api/lists - Create a list
- GET /api/lists/default - The default list (created on first use)
- GET /api/lists/{id} - One list
- PATCH /api/lists/{id} - Rename or replace card ids
- POST /api/lists/{id}/cards - Add a card
- DELETE /api/lists/{id}/cards/{card_id} - Remove a card
- DELETE /api/lists/{id} - Delete a list (default and uploads are protected)
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from interview_cards.db.base import get_db
from interview_cards.dependencies import get_current_user_id
from interview_cards.middleware.error_handling import AuthorizationError, NotFoundError
from interview_cards.models.base import SuccessResponse
from interview_cards.models.lists import (
    CardListAddCard,
    CardListCreate,
    CardListResponse,
    CardListUpdate,
)
from interview_cards.services.list_service import ListService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/lists", tags=["lists"])


async def get_list_service(db: AsyncSession = Depends(get_db)) -> ListService:
    return ListService(db)


def _require(card_list: Optional[CardListResponse], list_id: str) -> CardListResponse:
    if card_list is None:
        raise NotFoundError(f"List {list_id} not found")
    return card_list


@router.get("", response_model=list[CardListResponse])
async def list_lists(
    user_id: Optional[str] = Depends(get_current_user_id),
    service: ListService = Depends(get_list_service),
) -> list[CardListResponse]:
    return await service.list_lists(user_id)


@router.post("", response_model=CardListResponse)
async def create_list(
    request: CardListCreate,
    user_id: Optional[str] = Depends(get_current_user_id),
    service: ListService = Depends(get_list_service),
) -> CardListResponse:
    card_list = await service.create_list(
        user_id, request.name, request.card_ids, is_default=request.is_default
    )
    if card_list is None:
        raise AuthorizationError("Sign in to create lists")
    return card_list


@router.get("/default", response_model=Optional[CardListResponse])
async def get_default_list(
    user_id: Optional[str] = Depends(get_current_user_id),
    service: ListService = Depends(get_list_service),
) -> Optional[CardListResponse]:
    """The favorites list; anonymous callers get null."""
    return await service.ensure_default_list(user_id)


@router.get("/{list_id}", response_model=CardListResponse)
async def get_list(
    list_id: str,
    user_id: Optional[str] = Depends(get_current_user_id),
    service: ListService = Depends(get_list_service),
) -> CardListResponse:
    return _require(await service.get_list(list_id, user_id), list_id)


@router.patch("/{list_id}", response_model=CardListResponse)
async def update_list(
    list_id: str,
    request: CardListUpdate,
    user_id: Optional[str] = Depends(get_current_user_id),
    service: ListService = Depends(get_list_service),
) -> CardListResponse:
    card_list = await service.update_list(
        list_id, user_id, name=request.name, card_ids=request.card_ids
    )
    return _require(card_list, list_id)


@router.post("/{list_id}/cards", response_model=CardListResponse)
async def add_card(
    list_id: str,
    request: CardListAddCard,
    user_id: Optional[str] = Depends(get_current_user_id),
    service: ListService = Depends(get_list_service),
) -> CardListResponse:
    return _require(await service.add_card(list_id, user_id, request.card_id), list_id)


@router.delete("/{list_id}/cards/{card_id}", response_model=CardListResponse)
async def remove_card(
    list_id: str,
    card_id: str,
    user_id: Optional[str] = Depends(get_current_user_id),
    service: ListService = Depends(get_list_service),
) -> CardListResponse:
    return _require(await service.remove_card(list_id, user_id, card_id), list_id)


@router.delete("/{list_id}", response_model=SuccessResponse)
async def delete_list(
    list_id: str,
    user_id: Optional[str] = Depends(get_current_user_id),
    service: ListService = Depends(get_list_service),
) -> SuccessResponse:
    if not await service.delete_list(list_id, user_id):
        raise NotFoundError(f"List {list_id} not found")
    return SuccessResponse(message=f"List {list_id} deleted")
