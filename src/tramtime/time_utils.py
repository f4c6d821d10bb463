"""Utility functions for time arithmetic and formatting."""

import time
from datetime import datetime
from typing import Optional


def now_epoch() -> int:
    """Current Unix time in whole seconds."""
    return int(time.time())


def minutes_until(event_epoch: int, now: int) -> int:
    """Whole minutes from now until the event, rounded toward negative infinity."""
    return (event_epoch - now) // 60


def format_display_time(minutes: int) -> str:
    """Short arrival label used in arrival lists: "Now", "1 min", "12 min"."""
    if minutes <= 0:
        return "Now"
    if minutes == 1:
        return "1 min"
    return f"{minutes} min"


def format_minutes_until_arrival(minutes: int) -> str:
    """
    Format minutes until arrival in a human-readable way.

    Hours are split out from 60 minutes on: 60 -> "1h", 90 -> "1h 30m".
    """
    if minutes < 60:
        return format_display_time(minutes)
    hours, remaining = divmod(minutes, 60)
    if remaining == 0:
        return f"{hours}h"
    return f"{hours}h {remaining}m"


def format_time(epoch_seconds: Optional[float] = None) -> str:
    """Format a Unix timestamp (default: now) as local HH:MM."""
    if epoch_seconds is None:
        epoch_seconds = time.time()
    return datetime.fromtimestamp(epoch_seconds).strftime("%H:%M")
