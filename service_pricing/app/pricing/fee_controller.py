"""
EIP-1559 inspired request fee controller.

The controller keeps a per-request base fee for one protected route. Every
quote records demand; at most once per adjustment interval the fee is
recomputed with a bounded multiplicative update driven by utilization
(measured rate / target rate):

- over capacity (utilization > 1): raise by up to ``max_change_rate``,
  scaled by ``elasticity_multiplier``
- under target (utilization < target_utilization): lower by up to
  ``max_change_rate``
- in between: unchanged

The result is always clamped to ``[min_base_fee, max_base_fee]``.
"""

import threading
import warnings
from collections import deque
from contextlib import nullcontext
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Deque, Dict, List, Mapping, Optional, Tuple, Union

from shared.errors import DegenerateStateWarning
from shared.logging import get_logger
from shared.metrics import MetricsCollector
from .clock import resolve_now
from .config import FeeControllerConfig, create_config
from .money import Price, format_micros, format_price, micros_to_decimal
from .rate_tracker import RateTracker

FEE_HISTORY_REPORTED = 5


@dataclass
class FeeMetrics:
    """Point-in-time view of a controller for dashboards and debugging."""
    current_rps: float
    target_rps: float
    utilization: str
    current_base_fee: str
    request_count: int
    active_seconds: int
    history_size: int
    fee_history_size: int
    last_adjustment_ms: int
    base_fee_history: List[str] = field(default_factory=list)

    @property
    def last_adjustment(self) -> str:
        return datetime.fromtimestamp(self.last_adjustment_ms / 1000, tz=timezone.utc).isoformat()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "currentRPS": self.current_rps,
            "targetRPS": self.target_rps,
            "utilization": self.utilization,
            "currentBaseFee": self.current_base_fee,
            "requestCount": self.request_count,
            "activeSeconds": self.active_seconds,
            "historySize": self.history_size,
            "feeHistorySize": self.fee_history_size,
            "baseFeeHistory": list(self.base_fee_history),
            "lastAdjustment": self.last_adjustment,
        }


class FeeController:
    """Prices requests to one protected route and adapts the price to demand.

    All public operations are serialized by a per-instance lock, so one
    controller can be shared by every worker thread serving its route while
    controllers for different routes never contend.

    Timestamps are injected as ``now_ms`` (milliseconds since the epoch); when
    omitted the wall clock is read.
    """

    def __init__(
        self,
        config: Optional[Union[FeeControllerConfig, Mapping[str, Any]]] = None,
        now_ms: Optional[int] = None,
        metrics: Optional[MetricsCollector] = None,
        route: str = "default",
    ):
        if not isinstance(config, FeeControllerConfig):
            config = create_config(config)

        self.route = route
        self.logger = get_logger("pricing.fee_controller")
        self._metrics = metrics
        self._lock = threading.Lock()

        self._config = config
        self._target_rate = config.target_rate_per_second
        self._tracker = RateTracker(config.smoothing_window)
        self._fee_micros = config.default_fee_micros
        self._fee_history: Deque[int] = deque([self._fee_micros], maxlen=config.smoothing_window)
        self._last_adjustment_ms = resolve_now(now_ms)
        # Instant the control law last ran; a second run at the same instant is a no-op
        self._last_applied_ms: Optional[int] = None

        self.logger.info(
            "Fee controller initialized",
            route=route,
            default_fee=format_micros(self._fee_micros),
            target_rps=self._target_rate,
            adjustment_interval_ms=config.adjustment_interval_ms
        )

    @property
    def config(self) -> FeeControllerConfig:
        return self._config

    @property
    def rate_tracker(self) -> RateTracker:
        return self._tracker

    @property
    def target_rate_per_second(self) -> float:
        return self._target_rate

    @property
    def current_fee_micros(self) -> int:
        return self._fee_micros

    @property
    def current_fee(self) -> Price:
        """Current fee in the configured representation."""
        return format_price(self._fee_micros, self._config.style)

    @property
    def fee_history(self) -> Tuple[int, ...]:
        """Past fees in micro-dollars, oldest first."""
        return tuple(self._fee_history)

    @property
    def last_adjustment_ms(self) -> int:
        return self._last_adjustment_ms

    def quote(self, now_ms: Optional[int] = None) -> Price:
        """Record one request and return the price to charge for it."""
        now_ms = resolve_now(now_ms)
        timer = (
            self._metrics.time_operation("pricing_quote_duration_seconds", route=self.route)
            if self._metrics else nullcontext()
        )
        with timer:
            with self._lock:
                self._tracker.record(now_ms)
                rate = self._tracker.sample_rate(now_ms)
                if now_ms - self._last_adjustment_ms >= self._config.adjustment_interval_ms:
                    self._adjust(now_ms)
                    self._last_adjustment_ms = now_ms
                fee_micros = self._fee_micros
                target = self._target_rate
                style = self._config.style

        if self._metrics:
            self._metrics.record_quote(self.route, float(micros_to_decimal(fee_micros)), rate, target)

        self.logger.debug(
            "Quote served",
            route=self.route,
            rps=rate,
            target_rps=target,
            fee=format_micros(fee_micros)
        )
        return format_price(fee_micros, style)

    def adjust_fee(self, now_ms: Optional[int] = None) -> Price:
        """Run one step of the control law and return the resulting fee.

        Idempotent within one instant: calling again with the same ``now_ms``
        returns the current fee without compounding the multiplier.
        """
        now_ms = resolve_now(now_ms)
        with self._lock:
            fee_micros = self._adjust(now_ms)
            style = self._config.style
        return format_price(fee_micros, style)

    def force_adjustment(self, now_ms: Optional[int] = None) -> Price:
        """Adjust immediately regardless of the interval gate."""
        now_ms = resolve_now(now_ms)
        with self._lock:
            fee_micros = self._adjust(now_ms)
            self._last_adjustment_ms = now_ms
            style = self._config.style
        return format_price(fee_micros, style)

    def metrics(self, now_ms: Optional[int] = None) -> FeeMetrics:
        """Snapshot of the controller. Reads state only; the smoothing history is untouched.

        Without ``now_ms`` the rate is the one seen by the last quote. With it,
        rate and request counts are evaluated at that instant, so traffic that
        has left the window is no longer reported.
        """
        with self._lock:
            if now_ms is None:
                rate = self._tracker.last_rate
                buckets = self._tracker.bucket_counts
            else:
                rate = self._tracker.peek_rate(now_ms)
                buckets = self._tracker.live_buckets(now_ms)
            target = self._target_rate
            utilization = (rate / target) * 100 if target > 0 else 0.0
            history = list(self._fee_history)[-FEE_HISTORY_REPORTED:]
            return FeeMetrics(
                current_rps=rate,
                target_rps=target,
                utilization=f"{utilization:.1f}%",
                current_base_fee=format_micros(self._fee_micros),
                request_count=sum(buckets.values()),
                active_seconds=len(buckets),
                history_size=self._tracker.history_size,
                fee_history_size=len(self._fee_history),
                last_adjustment_ms=self._last_adjustment_ms,
                base_fee_history=[format_micros(fee, 6) for fee in history],
            )

    def reset(self, now_ms: Optional[int] = None) -> None:
        """Return to the default fee and forget all observed traffic."""
        now_ms = resolve_now(now_ms)
        with self._lock:
            self._tracker.reset()
            self._fee_micros = self._config.default_fee_micros
            self._fee_history = deque([self._fee_micros], maxlen=self._config.smoothing_window)
            self._last_adjustment_ms = now_ms
            self._last_applied_ms = None
            fee_micros = self._fee_micros
        self.logger.info("Fee controller reset", route=self.route, fee=format_micros(fee_micros))

    def update_config(self, partial: Optional[Mapping[str, Any]] = None, **kwargs: Any) -> FeeControllerConfig:
        """Merge overrides into the config.

        The merged config is validated before anything changes; on failure a
        ``ConfigurationError`` is raised and the controller keeps its old config.
        """
        changes = {**(partial or {}), **kwargs}
        with self._lock:
            config = self._config.merged(changes)
            self._config = config
            self._target_rate = config.target_rate_per_second
            if config.smoothing_window != self._tracker.smoothing_window:
                self._tracker.resize(config.smoothing_window)
                self._fee_history = deque(self._fee_history, maxlen=config.smoothing_window)
            self._fee_micros = self._clamp(self._fee_micros)
            target = self._target_rate

        self.logger.info("Fee controller configuration updated", route=self.route, changes=changes, target_rps=target)
        return config

    def _adjust(self, now_ms: int) -> int:
        """Control law. Caller must hold the lock."""
        if now_ms == self._last_applied_ms:
            return self._fee_micros

        rate = self._tracker.sample_rate(now_ms)
        target = self._target_rate

        if target <= 0:
            self.logger.warning("Target rate is not positive, using default fee", route=self.route, target_rps=target)
            warnings.warn(
                f"Fee controller for route '{self.route}' has target rate {target}; default fee applied",
                DegenerateStateWarning,
                stacklevel=3
            )
            if self._metrics:
                self._metrics.increment_counter("pricing_degenerate_target_total", route=self.route)
            return self._config.default_fee_micros

        config = self._config
        utilization = Decimal(str(rate)) / Decimal(str(target))
        max_change = Decimal(str(config.max_change_rate))
        target_utilization = Decimal(str(config.target_utilization))

        if utilization > 1:
            excess = utilization - 1
            elasticity = Decimal(str(config.elasticity_multiplier))
            multiplier = 1 + min(excess * max_change * elasticity, max_change)
            regime = "over_capacity"
        elif utilization < target_utilization:
            shortage = (target_utilization - utilization) / target_utilization
            multiplier = 1 - min(shortage * max_change, max_change)
            regime = "under_target"
        else:
            multiplier = Decimal(1)
            regime = "within_target"

        old_fee = self._fee_micros
        scaled = (Decimal(old_fee) * multiplier).quantize(Decimal(1), rounding=ROUND_HALF_UP)
        new_fee = self._clamp(int(scaled))

        self._fee_micros = new_fee
        self._fee_history.append(new_fee)
        self._last_applied_ms = now_ms

        if new_fee > old_fee:
            direction = "up"
        elif new_fee < old_fee:
            direction = "down"
        else:
            direction = "stable"

        log = self.logger.debug if direction == "stable" else self.logger.info
        log(
            "Fee adjusted",
            route=self.route,
            regime=regime,
            rps=rate,
            target_rps=target,
            utilization=f"{float(utilization) * 100:.1f}%",
            multiplier=str(multiplier),
            old_fee=format_micros(old_fee),
            new_fee=format_micros(new_fee)
        )
        if self._metrics:
            self._metrics.record_adjustment(self.route, direction, float(micros_to_decimal(new_fee)))
        return new_fee

    def _clamp(self, fee_micros: int) -> int:
        return max(self._config.min_fee_micros, min(fee_micros, self._config.max_fee_micros))
