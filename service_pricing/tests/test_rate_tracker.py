"""
Unit tests for RateTracker.
"""

import pytest

from service_pricing.app.pricing.rate_tracker import RateTracker, bucket_key
from shared.errors import ConfigurationError

T0 = 1_700_000_000_000


class TestRateTracker:
    """Test cases for RateTracker."""

    @pytest.fixture
    def tracker(self):
        """Create RateTracker instance."""
        return RateTracker(smoothing_window=10)

    def test_bucket_key_rounds_down_to_second(self):
        """Test bucket keys are the start of the containing second."""
        assert bucket_key(T0) == T0
        assert bucket_key(T0 + 999) == T0
        assert bucket_key(T0 + 1000) == T0 + 1000

    def test_record_buckets_by_second(self, tracker):
        """Test requests in the same second share a bucket."""
        tracker.record(T0)
        tracker.record(T0 + 300)
        tracker.record(T0 + 999)
        tracker.record(T0 + 1000)

        assert tracker.bucket_counts == {T0: 3, T0 + 1000: 1}
        assert tracker.request_count == 4
        assert tracker.active_seconds == 2

    def test_sample_returns_instantaneous_count(self, tracker):
        """Test the raw trailing-second count is returned while traffic flows."""
        for _ in range(8):
            tracker.record(T0)

        assert tracker.sample_rate(T0) == 8
        assert tracker.last_rate == 8

    def test_sample_skips_near_duplicate_history(self, tracker):
        """Test samples within one of the previous sample are not appended."""
        tracker.record(T0)
        tracker.sample_rate(T0)
        assert tracker.smoothed_history == [1]

        tracker.record(T0)
        tracker.sample_rate(T0)
        assert tracker.smoothed_history == [1]

        tracker.record(T0)
        tracker.sample_rate(T0)
        assert tracker.smoothed_history == [1, 3]

    def test_quiet_second_falls_back_to_history_mean(self, tracker):
        """Test a quiet trailing second returns the smoothed average."""
        for _ in range(4):
            tracker.record(T0)
        tracker.sample_rate(T0)
        for _ in range(8):
            tracker.record(T0 + 1500)
        tracker.sample_rate(T0 + 1500)
        assert tracker.smoothed_history == [4, 8]

        assert tracker.sample_rate(T0 + 3000) == 6.0
        assert tracker.last_rate == 6.0

    def test_empty_tracker_rate_is_zero(self, tracker):
        """Test no traffic and no history gives zero."""
        assert tracker.sample_rate(T0) == 0.0
        assert tracker.peek_rate(T0) == 0.0

    def test_peek_does_not_mutate(self, tracker):
        """Test peek_rate leaves history, buckets and last rate alone."""
        for _ in range(5):
            tracker.record(T0)

        assert tracker.peek_rate(T0) == 5.0
        assert tracker.history_size == 0
        assert tracker.last_rate == 0.0
        assert tracker.bucket_counts == {T0: 5}

    def test_record_purges_stale_buckets(self):
        """Test buckets older than the window are dropped on record."""
        tracker = RateTracker(smoothing_window=3)
        tracker.record(T0)
        tracker.record(T0 + 1000)
        tracker.record(T0 + 2000)
        tracker.record(T0 + 5000)

        cutoff = T0 + 5000 - 3 * 1000
        assert all(key >= cutoff for key in tracker.bucket_counts)
        assert set(tracker.bucket_counts) == {T0 + 2000, T0 + 5000}

    def test_sample_purges_stale_buckets(self):
        """Test sampling also enforces the window."""
        tracker = RateTracker(smoothing_window=3)
        tracker.record(T0)

        tracker.sample_rate(T0 + 10_000)

        assert tracker.bucket_counts == {}

    def test_history_is_bounded(self):
        """Test the smoothing history never exceeds the window."""
        tracker = RateTracker(smoothing_window=3)
        for second in range(10):
            now = T0 + second * 1000 + 500
            for _ in range(1 if second % 2 == 0 else 5):
                tracker.record(now)
            tracker.sample_rate(now)
            assert tracker.history_size <= 3

        assert tracker.history_size == 3
        assert tracker.smoothed_history == [5, 1, 5]

    def test_reset_clears_everything(self, tracker):
        """Test reset empties buckets and history."""
        for _ in range(5):
            tracker.record(T0)
        tracker.sample_rate(T0)

        tracker.reset()

        assert tracker.bucket_counts == {}
        assert tracker.history_size == 0
        assert tracker.last_rate == 0.0
        assert tracker.sample_rate(T0) == 0.0

    def test_resize_keeps_newest_samples(self, tracker):
        """Test shrinking the window keeps the most recent history."""
        for second, count in enumerate([1, 5, 9, 13]):
            now = T0 + second * 1000 + 500
            for _ in range(count):
                tracker.record(now)
            tracker.sample_rate(now)
        assert tracker.smoothed_history == [1, 5, 9, 13]

        tracker.resize(2)

        assert tracker.smoothed_history == [9, 13]
        assert tracker.smoothing_window == 2

    def test_quiet_window_expires_history(self, tracker):
        """Test samples older than the window stop feeding the fallback."""
        for _ in range(20):
            tracker.record(T0)
        tracker.sample_rate(T0)

        assert tracker.peek_rate(T0 + 5_000) == 20.0
        assert tracker.peek_rate(T0 + 60_000) == 0.0
        assert tracker.sample_rate(T0 + 60_000) == 0.0
        assert tracker.history_size == 0
        assert tracker.bucket_counts == {}

    def test_live_buckets_is_a_pure_read(self, tracker):
        """Test live buckets filter by the window without purging."""
        tracker.record(T0)
        tracker.record(T0 + 5_000)

        assert tracker.live_buckets(T0 + 12_000) == {T0 + 5_000: 1}
        assert tracker.bucket_counts == {T0: 1, T0 + 5_000: 1}

    def test_invalid_window(self):
        """Test a non-positive window is rejected."""
        with pytest.raises(ConfigurationError):
            RateTracker(smoothing_window=0)
