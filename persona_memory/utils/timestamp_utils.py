"""
Timestamp utilities for consistent time handling across the stores.
"""

import time
from datetime import datetime
from typing import Callable, Optional

SECONDS_PER_DAY = 24 * 60 * 60

Clock = Callable[[], float]


def now_seconds() -> float:
    """Current wall-clock time as Unix seconds."""
    return time.time()


def age_seconds(created_at: float, now: Optional[float] = None) -> float:
    """Seconds elapsed since `created_at`, never negative.

    Args:
        created_at: Unix timestamp in seconds
        now: Reference time (optional, uses current time if None)

    Returns:
        Age in seconds
    """
    if now is None:
        now = time.time()
    return max(0.0, now - created_at)


def age_days(created_at: float, now: Optional[float] = None) -> float:
    """Days elapsed since `created_at`."""
    return age_seconds(created_at, now) / SECONDS_PER_DAY


def to_iso(timestamp: Optional[float] = None) -> str:
    """Convert timestamp to an ISO-8601 string.

    Args:
        timestamp: Unix timestamp in seconds (optional, uses current time if None)

    Returns:
        ISO formatted local datetime
    """
    if timestamp is None:
        timestamp = time.time()
    return datetime.fromtimestamp(timestamp).isoformat()
