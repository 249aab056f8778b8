"""
Utility functions for EvoFlow.
"""

import time
import uuid
from datetime import datetime, timezone


def generate_id(prefix: str = "", length: int = 8) -> str:
    """
    Generate a short unique identifier.

    Args:
        prefix: Optional prefix string
        length: Number of characters (default 8)

    Returns:
        A unique ID string, optionally with prefix
    """
    uid = uuid.uuid4().hex[:length]
    if prefix:
        return f"{prefix}_{uid}"
    return uid


def now_utc() -> datetime:
    """
    Get current UTC timestamp (timezone-aware).

    Returns:
        Current datetime in UTC timezone
    """
    return datetime.now(timezone.utc)


def elapsed_ms(start: float) -> float:
    """Milliseconds elapsed since a ``time.perf_counter()`` reading."""
    return (time.perf_counter() - start) * 1000
