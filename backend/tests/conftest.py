"""
Shared Test Fixtures and Configuration

This module provides pytest fixtures used across the unit tests: card and
summary factories, an in-memory session store, a fake review data source and
a mocked database session.
"""

import os
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Generator, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest
from dotenv import load_dotenv

# Add the backend directory to the path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

# Load .env file from project root BEFORE any fixtures run
_project_root = Path(__file__).parent.parent.parent
_env_file = _project_root / ".env"
if _env_file.exists():
    load_dotenv(_env_file)

from interview_cards.models.cards import Card, CardSummary  # noqa: E402
from interview_cards.services.card_service import pick_answer  # noqa: E402
from interview_cards.services.learning.session_service import (  # noqa: E402
    InMemorySessionRepository,
    SessionStore,
)

NOW = datetime(2025, 3, 10, 9, 0, tzinfo=timezone.utc)


# ============================================================================
# Environment Configuration
# ============================================================================


@pytest.fixture(scope="session", autouse=True)
def setup_test_environment() -> Generator[None, None, None]:
    """
    Set up test environment variables before any tests run.

    Overrides values from .env files so tests run with predictable
    configuration.
    """
    original_env = os.environ.copy()

    test_env = {
        "POSTGRES_HOST": os.environ.get("POSTGRES_HOST", "localhost"),
        "POSTGRES_PORT": os.environ.get("POSTGRES_PORT", "5432"),
        "POSTGRES_USER": os.environ.get("POSTGRES_TEST_USER", "testuser"),
        "POSTGRES_PASSWORD": os.environ.get("POSTGRES_TEST_PASSWORD", "testpass"),
        "POSTGRES_DB": os.environ.get("POSTGRES_TEST_DB", "testdb"),
        "DEBUG": "true",
    }
    os.environ.update(test_env)

    yield

    os.environ.clear()
    os.environ.update(original_env)


# ============================================================================
# Card Factories
# ============================================================================


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def make_card():
    """Build an effective card (catalog fields plus overlay) for tests."""

    def _make(card_id: str, **overrides) -> Card:
        data = dict(
            id=card_id,
            category_l1_id="technical",
            category_l2_id="web-frontend",
            category_l3_id="react",
            title=f"Card {card_id}",
            question=f"Question {card_id}?",
            due_at=NOW,
            created_at=NOW,
            updated_at=NOW,
        )
        data.update(overrides)
        return Card(**data)

    return _make


@pytest.fixture
def make_summary():
    """Build a card summary updated `minutes` after NOW."""

    def _make(card_id: str, minutes: int = 0, **overrides) -> CardSummary:
        updated_at = NOW + timedelta(minutes=minutes)
        data = dict(
            id=card_id,
            category_l1_id="technical",
            category_l2_id="web-frontend",
            category_l3_id="react",
            title=f"Card {card_id}",
            question=f"Question {card_id}?",
            created_at=NOW,
            updated_at=updated_at,
            updated_at_raw=updated_at.isoformat(),
        )
        data.update(overrides)
        return CardSummary(**data)

    return _make


# ============================================================================
# Session Store Fixtures
# ============================================================================


@pytest.fixture
def session_repository() -> InMemorySessionRepository:
    return InMemorySessionRepository()


@pytest.fixture
def catalog_ids() -> set[str]:
    """Ids currently in the catalog; tests remove ids to simulate deletions."""
    return {"a", "b", "c", "d"}


@pytest.fixture
def session_store(session_repository, catalog_ids) -> SessionStore:
    async def _catalog_ids():
        return set(catalog_ids)

    return SessionStore(
        session_repository, _catalog_ids, debounce_ms=20, clock=lambda: NOW
    )


class FakeReviewSource:
    """In-memory review data source recording every remote effect."""

    language = "en-US"

    def __init__(self, cards: list[Card], answers: Optional[dict[str, str]] = None):
        self.cards = list(cards)
        self.answers = dict(answers or {})
        self.overrides = []
        self.logs = []
        self.scopes = []

    async def load_cards(self, user_id, scope):
        self.scopes.append(scope)
        return [card.model_copy() for card in self.cards]

    async def fetch_answer(self, card_id):
        if card_id in self.answers:
            return self.answers[card_id]
        card = next((c for c in self.cards if c.id == card_id), None)
        return pick_answer(card, self.language) if card else None

    async def save_override(self, user_id, card_id, update):
        self.overrides.append((user_id, card_id, update))

    async def append_log(self, user_id, card, new_mastery, time_spent_ms, did_reveal_answer):
        self.logs.append(
            {
                "user_id": user_id,
                "card_id": card.id,
                "previous_mastery": card.mastery,
                "new_mastery": new_mastery,
                "time_spent_ms": time_spent_ms,
                "did_reveal_answer": did_reveal_answer,
            }
        )


@pytest.fixture
def fake_source_factory():
    return FakeReviewSource


# ============================================================================
# Mock Fixtures
# ============================================================================


@pytest.fixture
def mock_db_session() -> MagicMock:
    """
    Create a mock database session for unit testing.
    """
    mock = MagicMock()
    mock.execute = AsyncMock()
    mock.scalar = AsyncMock()
    mock.get = AsyncMock(return_value=None)
    mock.flush = AsyncMock()
    mock.commit = AsyncMock()
    mock.rollback = AsyncMock()
    mock.delete = AsyncMock()
    mock.close = AsyncMock()
    mock.add = MagicMock()
    return mock
