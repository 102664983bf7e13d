"""
Review API Router

Endpoints driving a review sitting. Sessions are identified by (scope, mode);
every action returns the resulting review state.

Endpoints:
- POST /api/review/start - Resume or create the session for a scope
- POST /api/review/restart - Discard the session and build a fresh queue
- GET /api/review/state - Current state of a live session
- POST /api/review/flip - Toggle question/answer
- POST /api/review/mastery - Rate the current card
- POST /api/review/next - Move to the next card
- POST /api/review/previous - Move to the previous card
- POST /api/review/goto - Jump to a queue position
- PATCH /api/review/filters - Update the session's filter snapshot
- DELETE /api/review/session - End the session and delete it
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from interview_cards.dependencies import get_current_user_id, get_review_service
from interview_cards.enums.learning import ReviewMode
from interview_cards.models.base import SuccessResponse
from interview_cards.models.review import (
    FiltersPatch,
    GoToRequest,
    MasterySubmitRequest,
    ReviewStateResponse,
    SessionRef,
    StartReviewRequest,
)
from interview_cards.services.learning.review_service import ReviewService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/review", tags=["review"])


# ===========================================
# Session Lifecycle
# ===========================================


@router.post("/start", response_model=ReviewStateResponse)
async def start_review(
    request: StartReviewRequest,
    user_id: Optional[str] = Depends(get_current_user_id),
    service: ReviewService = Depends(get_review_service),
) -> ReviewStateResponse:
    """
    Start reviewing a scope.

    Resumes the persisted session when it still has cards, otherwise builds a
    new queue. An empty queue is reported with nothing_to_review=true.
    """
    interaction = await service.start_review(
        user_id,
        request.scope,
        request.mode,
        continue_session=request.continue_session,
        filters=request.filters,
    )
    return interaction.snapshot()


@router.post("/restart", response_model=ReviewStateResponse)
async def restart_review(
    request: StartReviewRequest,
    user_id: Optional[str] = Depends(get_current_user_id),
    service: ReviewService = Depends(get_review_service),
) -> ReviewStateResponse:
    """Discard progress for the scope and start from a fresh queue."""
    interaction = await service.restart_review(
        user_id, request.scope, request.mode, filters=request.filters
    )
    return interaction.snapshot()


@router.get("/state", response_model=ReviewStateResponse)
async def get_review_state(
    scope: str = Query("all"),
    mode: ReviewMode = Query(ReviewMode.QA),
    user_id: Optional[str] = Depends(get_current_user_id),
    service: ReviewService = Depends(get_review_service),
) -> ReviewStateResponse:
    return service.get_interaction(user_id, scope, mode).snapshot()


@router.delete("/session", response_model=SuccessResponse)
async def end_review(
    scope: str = Query("all"),
    mode: ReviewMode = Query(ReviewMode.QA),
    user_id: Optional[str] = Depends(get_current_user_id),
    service: ReviewService = Depends(get_review_service),
) -> SuccessResponse:
    await service.end_review(user_id, scope, mode)
    return SuccessResponse(message=f"Review session {scope}:{mode.value} ended")


# ===========================================
# Card Interaction
# ===========================================


@router.post("/flip", response_model=ReviewStateResponse)
async def flip_card(
    request: SessionRef,
    user_id: Optional[str] = Depends(get_current_user_id),
    service: ReviewService = Depends(get_review_service),
) -> ReviewStateResponse:
    """Toggle the current card; the response includes the answer once loaded."""
    interaction = service.get_interaction(user_id, request.scope, request.mode)
    async with interaction.lock:
        await interaction.flip()
        await interaction.wait_for_answer()
        return interaction.snapshot()


@router.post("/mastery", response_model=ReviewStateResponse)
async def submit_mastery(
    request: MasterySubmitRequest,
    user_id: Optional[str] = Depends(get_current_user_id),
    service: ReviewService = Depends(get_review_service),
) -> ReviewStateResponse:
    """
    Rate the current card.

    Solid cards leave the queue; any other rating advances to the next card.
    """
    interaction = service.get_interaction(user_id, request.scope, request.mode)
    async with interaction.lock:
        await interaction.submit_mastery(request.mastery)
        return interaction.snapshot()


@router.post("/next", response_model=ReviewStateResponse)
async def next_card(
    request: SessionRef,
    user_id: Optional[str] = Depends(get_current_user_id),
    service: ReviewService = Depends(get_review_service),
) -> ReviewStateResponse:
    interaction = service.get_interaction(user_id, request.scope, request.mode)
    async with interaction.lock:
        interaction.next()
        return interaction.snapshot()


@router.post("/previous", response_model=ReviewStateResponse)
async def previous_card(
    request: SessionRef,
    user_id: Optional[str] = Depends(get_current_user_id),
    service: ReviewService = Depends(get_review_service),
) -> ReviewStateResponse:
    interaction = service.get_interaction(user_id, request.scope, request.mode)
    async with interaction.lock:
        interaction.previous()
        return interaction.snapshot()


@router.post("/goto", response_model=ReviewStateResponse)
async def go_to_card(
    request: GoToRequest,
    user_id: Optional[str] = Depends(get_current_user_id),
    service: ReviewService = Depends(get_review_service),
) -> ReviewStateResponse:
    interaction = service.get_interaction(user_id, request.scope, request.mode)
    async with interaction.lock:
        interaction.go_to_index(request.index)
        return interaction.snapshot()


@router.patch("/filters", response_model=ReviewStateResponse)
async def update_filters(
    request: FiltersPatch,
    user_id: Optional[str] = Depends(get_current_user_id),
    service: ReviewService = Depends(get_review_service),
) -> ReviewStateResponse:
    """Merge filter changes; they apply to the next queue built for the scope."""
    interaction = service.get_interaction(user_id, request.scope, request.mode)
    async with interaction.lock:
        interaction.update_filters(request)
        return interaction.snapshot()
