"""
Dynamic request pricing.

Holds the EIP-1559 style fee controller, its per-second rate tracker, the
simpler threshold pricer and the per-route registry the gateway calls into.
"""

from .config import FeeControllerConfig, create_config
from .fee_controller import FeeController, FeeMetrics
from .money import Price, PriceStyle, format_price, parse_price
from .rate_tracker import RateTracker
from .registry import PricingRegistry
from .threshold import ThresholdPricer, ThresholdPricingConfig, create_threshold_config

__all__ = [
    "FeeController",
    "FeeControllerConfig",
    "FeeMetrics",
    "Price",
    "PriceStyle",
    "PricingRegistry",
    "RateTracker",
    "ThresholdPricer",
    "ThresholdPricingConfig",
    "create_config",
    "create_threshold_config",
    "format_price",
    "parse_price",
]
