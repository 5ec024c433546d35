"""
Wall-clock source used when callers do not inject a timestamp.
"""

import time
from typing import Optional


def current_time_ms() -> int:
    """Milliseconds since the epoch."""
    return int(time.time() * 1000)


def resolve_now(now_ms: Optional[int]) -> int:
    """Use the injected timestamp, or read the wall clock when none is given."""
    return current_time_ms() if now_ms is None else int(now_ms)
