"""
Threshold pricing: a flat base price that rises linearly with excess demand.

This is the simpler alternative to ``FeeController``. It has no memory of
past prices; every quote is computed directly from the request rate over a
sliding window:

    price = min(base_price + (rps - rps_threshold) * multiplier, max_price)

and ``base_price`` while the rate stays at or below the threshold.
"""

import threading
from collections import deque
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Deque, Dict, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, model_validator
from pydantic.alias_generators import to_camel

from shared.errors import ConfigurationError
from shared.logging import get_logger
from .clock import resolve_now
from .config import build_model
from .money import Price, PriceStyle, format_price, parse_price, price_style

DEFAULT_WINDOW_MS = 60_000


class SlidingWindowRateTracker:
    """Keeps raw arrival timestamps over a sliding window."""

    def __init__(self, window_ms: int = DEFAULT_WINDOW_MS):
        if window_ms <= 0:
            raise ConfigurationError("window_ms must be positive", {"window_ms": window_ms})
        self.window_ms = window_ms
        self._timestamps: Deque[int] = deque()

    def record(self, now_ms: int) -> float:
        self._timestamps.append(now_ms)
        self._prune(now_ms)
        return self.rate(now_ms)

    def rate(self, now_ms: int) -> float:
        """Requests in the window divided by the window length in seconds."""
        cutoff = now_ms - self.window_ms
        recent = sum(1 for ts in self._timestamps if ts > cutoff)
        return recent / (self.window_ms / 1000)

    def __len__(self) -> int:
        return len(self._timestamps)

    def _prune(self, now_ms: int) -> None:
        cutoff = now_ms - self.window_ms
        while self._timestamps and self._timestamps[0] <= cutoff:
            self._timestamps.popleft()


class ThresholdPricingConfig(BaseModel):
    """Settings for ``ThresholdPricer``; ``multiplier`` is dollars per excess request/second."""

    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True, alias_generator=to_camel)

    base_price: Price
    max_price: Price
    rps_threshold: float
    multiplier: float
    window_ms: int = DEFAULT_WINDOW_MS

    @model_validator(mode="after")
    def _check_bounds(self) -> "ThresholdPricingConfig":
        base = parse_price(self.base_price)
        maximum = parse_price(self.max_price)
        if base > maximum:
            raise ConfigurationError(
                "base_price must not exceed max_price",
                {"base_price": str(self.base_price), "max_price": str(self.max_price)}
            )
        if self.rps_threshold < 0:
            raise ConfigurationError("rps_threshold must not be negative", {"rps_threshold": self.rps_threshold})
        if self.multiplier < 0:
            raise ConfigurationError("multiplier must not be negative", {"multiplier": self.multiplier})
        if self.window_ms <= 0:
            raise ConfigurationError("window_ms must be positive", {"window_ms": self.window_ms})
        return self

    @property
    def style(self) -> PriceStyle:
        return price_style(self.base_price)


def create_threshold_config(overrides: Optional[Mapping[str, Any]] = None, **kwargs: Any) -> ThresholdPricingConfig:
    return build_model(ThresholdPricingConfig, {**(overrides or {}), **kwargs})


class ThresholdPricer:
    """Quotes ``base_price`` until traffic exceeds ``rps_threshold``, then climbs linearly."""

    def __init__(self, config: Union[ThresholdPricingConfig, Mapping[str, Any]], route: str = "default"):
        if not isinstance(config, ThresholdPricingConfig):
            config = create_threshold_config(config)
        self.config = config
        self.route = route
        self.logger = get_logger("pricing.threshold")
        self._tracker = SlidingWindowRateTracker(config.window_ms)
        self._base_micros = parse_price(config.base_price)
        self._max_micros = parse_price(config.max_price)
        self._lock = threading.Lock()

    def quote(self, now_ms: Optional[int] = None) -> Price:
        now_ms = resolve_now(now_ms)
        with self._lock:
            rps = self._tracker.record(now_ms)

        threshold = self.config.rps_threshold
        if rps <= threshold:
            self.logger.debug("RPS within threshold", route=self.route, rps=rps, threshold=threshold)
            return format_price(self._base_micros, self.config.style)

        increase = Decimal(str(rps - threshold)) * Decimal(str(self.config.multiplier)) * 1_000_000
        price = min(self._base_micros + int(increase.quantize(Decimal(1), rounding=ROUND_HALF_UP)), self._max_micros)
        self.logger.info("RPS above threshold, raising price", route=self.route, rps=rps, threshold=threshold)
        return format_price(price, self.config.style)

    def details(self, now_ms: Optional[int] = None) -> Dict[str, Any]:
        now_ms = resolve_now(now_ms)
        with self._lock:
            return {"rps": self._tracker.rate(now_ms), "request_count": len(self._tracker)}
