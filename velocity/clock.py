"""
velocity/clock.py
The engine's only shared resource is wall-clock time. Read it here, once per
call, and keep every datetime timezone-aware (naive values are taken as UTC).
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def resolve_now(now: Optional[datetime] = None) -> datetime:
    """`now` as aware UTC, defaulting to the current time."""
    return as_utc(now) if now is not None else utcnow()


def days_since(created_at: Optional[datetime], now: Optional[datetime] = None) -> Optional[int]:
    """Whole days elapsed, clamped at 0. None when the timestamp is absent."""
    created_at = as_utc(created_at)
    if created_at is None:
        return None
    return max((resolve_now(now) - created_at).days, 0)
