"""
Interview Cards Test Suite

Test Structure:
    tests/
    ├── conftest.py              # Shared fixtures (card factories, fake review source)
    └── unit/                    # Unit tests (isolated, no external services)
        ├── test_scheduler.py    # Mastery scheduling and streaks
        ├── test_review_queue.py # Queue filtering, ordering and shuffle
        ├── test_session_service.py  # Session store and debounced writes
        ├── test_summary_cache.py    # Incremental summary sync
        ├── test_review_state.py     # Review interaction state machine
        └── test_routers.py      # API endpoints with in-memory components

Running Tests:
    # Run all tests
    pytest backend/tests/ -v

    # Run with coverage
    pytest backend/tests/ --cov=interview_cards --cov-report=html
"""
