"""
Processing timestamps.

Timestamps attached to annotated records are always timezone-aware so they compare and
serialize consistently regardless of where a batch ran.
"""

from __future__ import annotations

from datetime import datetime, timezone as dt_timezone
from typing import Callable
from zoneinfo import ZoneInfo


def now(timezone: str | None = None) -> datetime:
    """Current time in `timezone` (UTC when omitted)."""
    if timezone:
        return datetime.now(ZoneInfo(timezone))
    return datetime.now(dt_timezone.utc)


def clock_for(timezone: str | None) -> Callable[[], datetime]:
    """Zero-argument clock bound to `timezone`, for the chunk processors."""
    zone = ZoneInfo(timezone) if timezone else dt_timezone.utc
    return lambda: datetime.now(zone)
