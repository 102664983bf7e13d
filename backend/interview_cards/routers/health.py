"""
Health Check Endpoints

Endpoints:
- GET /api/health - Basic health check
- GET /api/health/detailed - Database connectivity and review component status
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from interview_cards.config import settings
from interview_cards.db.base import get_db

router = APIRouter(prefix="/api/health", tags=["health"])


@router.get("")
async def health_check():
    """Basic health check."""
    return {
        "status": "healthy",
        "service": settings.APP_NAME,
    }


@router.get("/detailed")
async def detailed_health_check(request: Request, db: AsyncSession = Depends(get_db)):
    """Health check including the database and live review sessions."""
    health = {"status": "healthy", "service": settings.APP_NAME, "dependencies": {}}

    try:
        await db.execute(text("SELECT 1"))
        health["dependencies"]["database"] = {"status": "healthy"}
    except Exception as e:
        health["dependencies"]["database"] = {"status": "unhealthy", "error": str(e)}
        health["status"] = "degraded"

    store = getattr(request.app.state, "session_store", None)
    registry = getattr(request.app.state, "review_registry", None)
    health["dependencies"]["review"] = {
        "status": "healthy" if store is not None else "not_started",
        "live_sessions": len(registry) if registry is not None else 0,
        "pending_saves": len(store.debouncer.pending_keys) if store is not None else 0,
    }

    return health
