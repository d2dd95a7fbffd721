"""
core/time.py - Time helpers.

Wall-clock stamps for candidates and breaker records, and the local-midnight
arithmetic used by the circuit breaker daily reset.
"""

import time
from datetime import date, datetime, timedelta, timezone
from typing import Optional


def now_ms() -> int:
    """Get current Unix timestamp in milliseconds."""
    return int(time.time() * 1000)


def timestamp_to_iso(timestamp: float) -> str:
    """Unix timestamp (seconds) to UTC ISO string."""
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()


def local_date(timestamp: float) -> date:
    """Local calendar date of a Unix timestamp."""
    return datetime.fromtimestamp(timestamp).date()


def seconds_until_local_midnight(timestamp: Optional[float] = None) -> float:
    """
    Seconds from timestamp (default now) to the next local midnight.

    Always strictly positive.
    """
    ts = timestamp if timestamp is not None else time.time()
    now = datetime.fromtimestamp(ts)
    midnight = datetime.combine(now.date() + timedelta(days=1), datetime.min.time())
    return max((midnight - now).total_seconds(), 0.001)
