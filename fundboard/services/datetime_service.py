"""Epoch-millisecond timestamps used by the project document."""

from __future__ import annotations

from datetime import datetime, timezone


def now_utc() -> datetime:
    """Return the current UTC datetime."""
    return datetime.now(timezone.utc)


def now_ms() -> int:
    """Return the current time as integer milliseconds since the epoch."""
    return int(now_utc().timestamp() * 1000)


def ms_to_datetime(value: int) -> datetime:
    """Convert epoch milliseconds to an aware UTC datetime."""
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


def format_ms(value: int) -> str:
    """Format epoch milliseconds for display: YYYY-MM-DD HH:MM UTC."""
    return ms_to_datetime(value).strftime("%Y-%m-%d %H:%M UTC")
