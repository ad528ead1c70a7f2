"""Time helpers shared by models and the query cache.

``utc_now`` is the column default for timestamps; ``monotonic_ms`` is the
clock used for latency measurement, where wall-clock jumps must not matter.

Usage:
    from audio_categories.utils.datetime_utils import utc_now, elapsed_ms

    created_at = Column(DateTime, default=utc_now)

    start = monotonic_ms()
    ...
    latency = elapsed_ms(start)
"""

import time
from datetime import datetime, timezone


def utc_now() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


def monotonic_ms() -> float:
    """Return a monotonic timestamp in milliseconds."""
    return time.perf_counter() * 1000.0


def elapsed_ms(start_ms: float) -> float:
    """Milliseconds elapsed since a value returned by monotonic_ms()."""
    return monotonic_ms() - start_ms
