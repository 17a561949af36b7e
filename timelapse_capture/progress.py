"""Helpers for formatting delays and batch progress in log lines."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional


def format_duration(seconds: float) -> str:
    """Return a compact human-readable duration string such as ``2h05m00s``."""
    total_seconds = int(round(seconds))
    if total_seconds <= 0:
        return "0s"
    days, remainder = divmod(total_seconds, 86400)
    hours, remainder = divmod(remainder, 3600)
    minutes, seconds_remaining = divmod(remainder, 60)
    if days:
        return f"{days}d{hours:02d}h{minutes:02d}m"
    if hours:
        return f"{hours}h{minutes:02d}m{seconds_remaining:02d}s"
    if minutes:
        return f"{minutes}m{seconds_remaining:02d}s"
    return f"{seconds_remaining}s"


def format_delay_ms(delay_ms: int) -> str:
    return format_duration(delay_ms / 1000.0)


def eta_string(
    elapsed: float,
    completed: int,
    total: int,
    *,
    now: Optional[datetime] = None,
) -> str:
    """Format an ETA string given elapsed seconds and progress counters."""
    if completed <= 0 or total <= 0 or completed > total or elapsed <= 0.0:
        return "ETA estimating"

    remaining = max(0.0, elapsed * (total - completed) / completed)
    finish_time = (now or datetime.now()) + timedelta(seconds=remaining)
    return f"ETA {format_duration(remaining)} (finish {finish_time.strftime('%H:%M:%S')})"


__all__ = ["eta_string", "format_delay_ms", "format_duration"]
