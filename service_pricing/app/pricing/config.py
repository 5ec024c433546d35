"""
Fee controller configuration.

``FeeControllerConfig`` is immutable; runtime changes produce a new,
fully revalidated instance through ``merged``. Field names accept both the
snake_case attribute names and their camelCase aliases (``minBaseFee``,
``adjustmentIntervalMs`` ...), so configs exported by JavaScript gateways load
unchanged.
"""

from typing import Any, Dict, Mapping, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, ValidationError as PydanticValidationError, model_validator
from pydantic.alias_generators import to_camel

from shared.errors import ConfigurationError
from .money import Price, PriceStyle, parse_price, price_style

ModelT = TypeVar("ModelT", bound=BaseModel)

DEFAULT_MIN_BASE_FEE = "$0.001"
DEFAULT_MAX_BASE_FEE = "$0.05"
DEFAULT_FEE = "$0.001"
DEFAULT_MAX_CHANGE_RATE = 0.125
DEFAULT_TARGET_UTILIZATION = 0.5
DEFAULT_SMOOTHING_WINDOW = 30
DEFAULT_ELASTICITY_MULTIPLIER = 2.0
DEFAULT_ADJUSTMENT_INTERVAL_MS = 10_000
# Requests per second the protected resource is assumed to sustain at 100%
# utilization; target rate = target_utilization * assumed_peak_capacity.
DEFAULT_ASSUMED_PEAK_CAPACITY = 20.0


class FeeControllerConfig(BaseModel):
    """Tunables for one EIP-1559 style fee controller."""

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    min_base_fee: Price = DEFAULT_MIN_BASE_FEE
    max_base_fee: Price = DEFAULT_MAX_BASE_FEE
    default_fee: Price = DEFAULT_FEE
    max_change_rate: float = DEFAULT_MAX_CHANGE_RATE
    target_utilization: float = DEFAULT_TARGET_UTILIZATION
    smoothing_window: int = DEFAULT_SMOOTHING_WINDOW
    elasticity_multiplier: float = DEFAULT_ELASTICITY_MULTIPLIER
    adjustment_interval_ms: int = DEFAULT_ADJUSTMENT_INTERVAL_MS
    assumed_peak_capacity: float = DEFAULT_ASSUMED_PEAK_CAPACITY

    @model_validator(mode="after")
    def _check_bounds(self) -> "FeeControllerConfig":
        min_fee = parse_price(self.min_base_fee)
        max_fee = parse_price(self.max_base_fee)
        default_fee = parse_price(self.default_fee)

        if min_fee <= 0:
            raise ConfigurationError("min_base_fee must be positive", {"min_base_fee": str(self.min_base_fee)})
        if min_fee > max_fee:
            raise ConfigurationError(
                "min_base_fee must not exceed max_base_fee",
                {"min_base_fee": str(self.min_base_fee), "max_base_fee": str(self.max_base_fee)}
            )
        if not min_fee <= default_fee <= max_fee:
            raise ConfigurationError(
                "default_fee must lie within [min_base_fee, max_base_fee]",
                {
                    "default_fee": str(self.default_fee),
                    "min_base_fee": str(self.min_base_fee),
                    "max_base_fee": str(self.max_base_fee),
                }
            )
        if not 0 <= self.max_change_rate <= 1:
            raise ConfigurationError("max_change_rate must be within [0, 1]", {"max_change_rate": self.max_change_rate})
        if not 0 < self.target_utilization <= 1:
            raise ConfigurationError(
                "target_utilization must be within (0, 1]",
                {"target_utilization": self.target_utilization}
            )
        for name in ("smoothing_window", "adjustment_interval_ms", "elasticity_multiplier", "assumed_peak_capacity"):
            value = getattr(self, name)
            if not value > 0:
                raise ConfigurationError(f"{name} must be positive", {name: value})
        return self

    @property
    def min_fee_micros(self) -> int:
        return parse_price(self.min_base_fee)

    @property
    def max_fee_micros(self) -> int:
        return parse_price(self.max_base_fee)

    @property
    def default_fee_micros(self) -> int:
        return parse_price(self.default_fee)

    @property
    def style(self) -> PriceStyle:
        """Quotes are rendered the way ``default_fee`` was configured."""
        return price_style(self.default_fee)

    @property
    def target_rate_per_second(self) -> float:
        return self.target_utilization * self.assumed_peak_capacity

    def merged(self, partial: Optional[Mapping[str, Any]] = None, **kwargs: Any) -> "FeeControllerConfig":
        """Return a new validated config with the given fields replaced."""
        data = self.model_dump()
        data.update(normalize_fields({**(partial or {}), **kwargs}))
        return build_model(FeeControllerConfig, data)


def normalize_fields(data: Mapping[str, Any]) -> Dict[str, Any]:
    """Map camelCase aliases onto field names; reject unknown fields."""
    by_alias = {to_camel(name): name for name in FeeControllerConfig.model_fields}
    normalized: Dict[str, Any] = {}
    unknown = []
    for key, value in data.items():
        if key in FeeControllerConfig.model_fields:
            normalized[key] = value
        elif key in by_alias:
            normalized[by_alias[key]] = value
        else:
            unknown.append(key)
    if unknown:
        raise ConfigurationError("Unknown fee controller settings", {"fields": sorted(map(str, unknown))})
    return normalized


def build_model(model: Type[ModelT], data: Mapping[str, Any]) -> ModelT:
    """Instantiate a settings model, reporting type errors as ``ConfigurationError``."""
    try:
        return model(**data)
    except PydanticValidationError as e:
        raise ConfigurationError(
            f"Invalid {model.__name__}",
            {"errors": [{"loc": list(err["loc"]), "msg": err["msg"]} for err in e.errors()]}
        ) from e


def create_config(overrides: Optional[Mapping[str, Any]] = None, **kwargs: Any) -> FeeControllerConfig:
    """Build a config from defaults plus overrides.

    Fields that are not overridden keep their documented defaults verbatim,
    e.g. ``create_config().min_base_fee == "$0.001"``.
    """
    return build_model(FeeControllerConfig, normalize_fields({**(overrides or {}), **kwargs}))
