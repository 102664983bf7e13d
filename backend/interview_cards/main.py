"""
Interview Cards API

Application factory and lifespan.

Startup:
1. Create missing tables
2. Build the summary cache and run an initial sync
3. Build the session store (with its debouncer), the review registry and the
   review service, and publish them on app.state

Shutdown flushes pending debounced session writes and disposes the engine.

Run:
    uvicorn interview_cards.main:app --reload
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from interview_cards import __version__
from interview_cards.config import settings
from interview_cards.db.base import async_session_maker, engine, init_db
from interview_cards.middleware.error_handling import setup_error_handling
from interview_cards.routers import (
    health_router,
    library_router,
    lists_router,
    review_router,
)
from interview_cards.services.card_service import CatalogSummarySource
from interview_cards.services.learning.review_service import (
    ReviewRegistry,
    ReviewService,
    SqlReviewBackend,
)
from interview_cards.services.learning.session_service import (
    SessionStore,
    SqlSessionRepository,
)
from interview_cards.services.summary_cache import CardSummaryCache, SqlSummaryCacheStore

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()

    source = CatalogSummarySource(async_session_maker)
    summary_cache = CardSummaryCache(SqlSummaryCacheStore(async_session_maker), source)
    try:
        await summary_cache.sync()
    except Exception as e:
        logger.warning(f"Initial summary cache sync failed: {e}")

    session_store = SessionStore(
        SqlSessionRepository(async_session_maker),
        catalog_ids=source.card_ids,
    )
    registry = ReviewRegistry()

    app.state.summary_cache = summary_cache
    app.state.session_store = session_store
    app.state.review_registry = registry
    app.state.review_service = ReviewService(
        session_store, SqlReviewBackend(async_session_maker), registry
    )
    logger.info(f"{settings.APP_NAME} {__version__} started")

    yield

    await session_store.aclose()
    await engine.dispose()
    logger.info(f"{settings.APP_NAME} stopped")


def create_app() -> FastAPI:
    configure_logging()

    app = FastAPI(title=settings.APP_NAME, version=__version__, lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    setup_error_handling(app, debug=settings.DEBUG)

    app.include_router(health_router.router)
    app.include_router(review_router.router)
    app.include_router(library_router.router)
    app.include_router(lists_router.router)

    return app


app = create_app()
