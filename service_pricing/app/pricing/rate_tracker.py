"""
Per-second request rate tracking with bounded memory.
"""

from collections import deque
from typing import Deque, Dict, List, Tuple

from shared.errors import ConfigurationError

BUCKET_MS = 1000


def bucket_key(now_ms: int) -> int:
    """Start of the one-second bucket containing ``now_ms``."""
    return (now_ms // BUCKET_MS) * BUCKET_MS


class RateTracker:
    """Counts request arrivals in one-second buckets and estimates the current rate.

    Memory and time are both bounded by ``smoothing_window``: buckets and
    smoothing samples older than the window are purged on every record/sample
    pass, and the smoothing history is a FIFO of at most ``smoothing_window``
    samples. A window with no traffic at all therefore estimates zero.

    Not thread-safe on its own; the owning ``FeeController`` serializes access.
    """

    def __init__(self, smoothing_window: int):
        if smoothing_window <= 0:
            raise ConfigurationError("smoothing_window must be positive", {"smoothing_window": smoothing_window})
        self.smoothing_window = smoothing_window
        self.bucket_counts: Dict[int, int] = {}
        # (bucket key, count) pairs, oldest first
        self._samples: Deque[Tuple[int, int]] = deque(maxlen=smoothing_window)
        self._last_rate = 0.0

    @property
    def last_rate(self) -> float:
        """Rate produced by the most recent ``sample_rate`` call."""
        return self._last_rate

    @property
    def smoothed_history(self) -> List[int]:
        """Retained smoothing samples, oldest first."""
        return [count for _, count in self._samples]

    @property
    def request_count(self) -> int:
        """Requests counted across retained buckets."""
        return sum(self.bucket_counts.values())

    @property
    def active_seconds(self) -> int:
        return len(self.bucket_counts)

    @property
    def history_size(self) -> int:
        return len(self._samples)

    def live_buckets(self, now_ms: int) -> Dict[int, int]:
        """Buckets still inside the window at ``now_ms``, without purging."""
        cutoff = self._cutoff(now_ms)
        return {key: count for key, count in self.bucket_counts.items() if key >= cutoff}

    def record(self, now_ms: int) -> None:
        """Count one request arriving at ``now_ms``."""
        key = bucket_key(now_ms)
        self.bucket_counts[key] = self.bucket_counts.get(key, 0) + 1
        self._purge(now_ms)

    def sample_rate(self, now_ms: int) -> float:
        """Estimate requests per second and feed the smoothing history.

        With traffic in the trailing second the raw count is returned, and it is
        appended to the history when it differs from the previous sample by more
        than one. A quiet trailing second falls back to the mean of the samples
        still inside the window, or zero when none are left.
        """
        self._purge(now_ms)
        count = self._trailing_count(now_ms)
        if count > 0:
            if not self._samples or abs(count - self._samples[-1][1]) > 1:
                self._samples.append((bucket_key(now_ms), count))
            self._last_rate = float(count)
        else:
            self._last_rate = self._history_mean(now_ms)
        return self._last_rate

    def peek_rate(self, now_ms: int) -> float:
        """Same estimate as ``sample_rate`` without mutating any state."""
        count = self._trailing_count(now_ms)
        if count > 0:
            return float(count)
        return self._history_mean(now_ms)

    def resize(self, smoothing_window: int) -> None:
        """Change the window, keeping the newest history samples."""
        if smoothing_window <= 0:
            raise ConfigurationError("smoothing_window must be positive", {"smoothing_window": smoothing_window})
        self.smoothing_window = smoothing_window
        self._samples = deque(self._samples, maxlen=smoothing_window)

    def reset(self) -> None:
        self.bucket_counts.clear()
        self._samples.clear()
        self._last_rate = 0.0

    def _cutoff(self, now_ms: int) -> int:
        return now_ms - self.smoothing_window * BUCKET_MS

    def _trailing_count(self, now_ms: int) -> int:
        since = now_ms - BUCKET_MS
        return sum(count for key, count in self.bucket_counts.items() if key >= since)

    def _history_mean(self, now_ms: int) -> float:
        cutoff = self._cutoff(now_ms)
        live = [count for key, count in self._samples if key >= cutoff]
        if not live:
            return 0.0
        return sum(live) / len(live)

    def _purge(self, now_ms: int) -> None:
        cutoff = self._cutoff(now_ms)
        stale = [key for key in self.bucket_counts if key < cutoff]
        for key in stale:
            del self.bucket_counts[key]
        while self._samples and self._samples[0][0] < cutoff:
            self._samples.popleft()
