"""
Card List API Models (Pydantic)

Each user has at most one default list ("favorites"), created lazily. The
default list and the list named "uploads" cannot be deleted.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import Field

from interview_cards.models.base import StrictRequest, StrictResponse


class CardListResponse(StrictResponse):
    """Card list with ids in insertion order."""

    id: str
    name: str
    card_ids: list[str] = Field(default_factory=list)
    is_default: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class CardListCreate(StrictRequest):
    name: str = Field(..., min_length=1, max_length=200)
    card_ids: list[str] = Field(default_factory=list)
    is_default: bool = False


class CardListUpdate(StrictRequest):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    card_ids: Optional[list[str]] = None


class CardListAddCard(StrictRequest):
    card_id: str = Field(..., min_length=1)
