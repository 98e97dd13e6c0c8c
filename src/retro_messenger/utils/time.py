# src/retro_messenger/utils/time.py
"""Time utilities for in-memory records."""

from datetime import UTC, datetime


def utcnow() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""
    return datetime.now(UTC)
