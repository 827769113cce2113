"""Human-readable formatting of counts and durations."""

import math


def format_number(num: int | None) -> str:
    if num is None:
        return "0"
    return f"{num:,}"


def format_duration(seconds: float) -> str:
    """Format elapsed seconds as ``12.34s``, ``3m 5s`` or ``1h 2m 3s``."""
    if seconds < 60:
        return f"{seconds:.2f}s"
    minutes = int(seconds // 60)
    remaining_seconds = int(seconds % 60)
    if minutes < 60:
        return f"{minutes}m {remaining_seconds}s"
    hours = minutes // 60
    return f"{hours}h {minutes % 60}m {remaining_seconds}s"


def format_speed(count: int, seconds: float) -> str:
    if seconds <= 0:
        return "N/A"
    return f"{format_number(math.floor(count / seconds))} docs/s"
