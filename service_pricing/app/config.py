"""
Configuration loading for the pricing service.

Process-wide defaults come from the environment (``ACCESS_PRICING_*``);
per-route pricing comes from an optional YAML file:

    defaults:
      max_base_fee: "$0.02"
    routes:
      /api/v1/search:
        default_fee: "$0.002"
        targetUtilization: 0.6
      /api/v1/export: {}
"""

from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from shared.config import BaseConfig
from shared.errors import ConfigurationError
from shared.logging import configure_logging, get_logger
from shared.metrics import MetricsCollector, get_metrics_collector
from .pricing.config import (
    DEFAULT_ADJUSTMENT_INTERVAL_MS,
    DEFAULT_ASSUMED_PEAK_CAPACITY,
    DEFAULT_ELASTICITY_MULTIPLIER,
    DEFAULT_FEE,
    DEFAULT_MAX_BASE_FEE,
    DEFAULT_MAX_CHANGE_RATE,
    DEFAULT_MIN_BASE_FEE,
    DEFAULT_SMOOTHING_WINDOW,
    DEFAULT_TARGET_UTILIZATION,
    FeeControllerConfig,
    create_config,
)
from .pricing.registry import PricingRegistry

logger = get_logger("pricing.config")


class PricingSettings(BaseConfig):
    """Pricing defaults, overridable via ``ACCESS_PRICING_<FIELD>``."""

    pricing_min_base_fee: str = DEFAULT_MIN_BASE_FEE
    pricing_max_base_fee: str = DEFAULT_MAX_BASE_FEE
    pricing_default_fee: str = DEFAULT_FEE
    pricing_max_change_rate: float = DEFAULT_MAX_CHANGE_RATE
    pricing_target_utilization: float = DEFAULT_TARGET_UTILIZATION
    pricing_smoothing_window: int = DEFAULT_SMOOTHING_WINDOW
    pricing_elasticity_multiplier: float = DEFAULT_ELASTICITY_MULTIPLIER
    pricing_adjustment_interval_ms: int = DEFAULT_ADJUSTMENT_INTERVAL_MS
    pricing_assumed_peak_capacity: float = DEFAULT_ASSUMED_PEAK_CAPACITY

    # Route used when no routes file is configured
    pricing_default_route: str = "default"
    pricing_routes_file: Optional[str] = None

    def to_fee_config(self) -> FeeControllerConfig:
        """Validated controller config built from these settings."""
        return create_config(
            min_base_fee=self.pricing_min_base_fee,
            max_base_fee=self.pricing_max_base_fee,
            default_fee=self.pricing_default_fee,
            max_change_rate=self.pricing_max_change_rate,
            target_utilization=self.pricing_target_utilization,
            smoothing_window=self.pricing_smoothing_window,
            elasticity_multiplier=self.pricing_elasticity_multiplier,
            adjustment_interval_ms=self.pricing_adjustment_interval_ms,
            assumed_peak_capacity=self.pricing_assumed_peak_capacity,
        )


def load_route_configs(
    path: Union[str, Path],
    defaults: Optional[FeeControllerConfig] = None,
) -> Dict[str, FeeControllerConfig]:
    """Read per-route pricing from a YAML file.

    Each route inherits ``defaults`` (or the built-in defaults), then the
    file's ``defaults:`` section, then its own overrides.
    """
    path = Path(path)
    try:
        with path.open("r", encoding="utf-8") as f:
            document = yaml.safe_load(f) or {}
    except OSError as e:
        raise ConfigurationError(f"Cannot read routes file: {path}", {"path": str(path), "error": str(e)}) from e
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in routes file: {path}", {"path": str(path), "error": str(e)}) from e

    if not isinstance(document, dict):
        raise ConfigurationError("Routes file must contain a mapping", {"path": str(path)})

    base = defaults or create_config()
    file_defaults = document.get("defaults") or {}
    routes = document.get("routes") or {}
    if not isinstance(file_defaults, dict) or not isinstance(routes, dict):
        raise ConfigurationError("'defaults' and 'routes' must be mappings", {"path": str(path)})
    if file_defaults:
        base = base.merged(file_defaults)

    configs: Dict[str, FeeControllerConfig] = {}
    for route, overrides in routes.items():
        if overrides is not None and not isinstance(overrides, dict):
            raise ConfigurationError(f"Pricing for route '{route}' must be a mapping", {"route": str(route)})
        try:
            configs[str(route)] = base.merged(overrides or {})
        except ConfigurationError as e:
            raise ConfigurationError(
                f"Invalid pricing for route '{route}': {e.message}",
                {"route": str(route), **e.details},
                code=e.code
            ) from e

    logger.info("Loaded route pricing", path=str(path), routes=sorted(configs))
    return configs


def build_registry(
    settings: Optional[PricingSettings] = None,
    now_ms: Optional[int] = None,
    metrics: Optional[MetricsCollector] = None,
) -> PricingRegistry:
    """Wire settings, logging, metrics and route pricing into a registry."""
    settings = settings or PricingSettings()
    configure_logging("pricing", settings.log_level)

    if metrics is None and settings.enable_metrics:
        metrics = get_metrics_collector("pricing")
        metrics.start_metrics_server(settings.metrics_port)

    defaults = settings.to_fee_config()
    if settings.pricing_routes_file:
        configs = load_route_configs(settings.pricing_routes_file, defaults)
    else:
        configs = {settings.pricing_default_route: defaults}

    registry = PricingRegistry.from_route_configs(configs, now_ms=now_ms, metrics=metrics)
    logger.info(
        "Pricing registry ready",
        env=settings.env,
        routes=registry.routes(),
        settings=describe_settings(settings)
    )
    return registry


def describe_settings(settings: PricingSettings) -> Dict[str, Any]:
    """Pricing settings with the ``pricing_`` prefix stripped, for logging."""
    return {
        name[len("pricing_"):]: value
        for name, value in settings.model_dump().items()
        if name.startswith("pricing_")
    }
