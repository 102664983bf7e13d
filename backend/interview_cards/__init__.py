"""Interview Cards: spaced-repetition review service for interview preparation."""

__version__ = "0.1.0"
