"""
Unit tests for fee controller configuration.
"""

import pytest
from pydantic import ValidationError as PydanticValidationError

from service_pricing.app.pricing.config import FeeControllerConfig, create_config
from service_pricing.app.pricing.money import PriceStyle
from shared.errors import ConfigurationError, UnparseablePriceError


class TestCreateConfig:
    """Test cases for create_config."""

    def test_defaults_are_returned_verbatim(self):
        """Test unset fields keep their documented defaults."""
        config = create_config({"defaultFee": "$0.002"})

        assert config.default_fee == "$0.002"
        assert config.min_base_fee == "$0.001"
        assert config.max_base_fee == "$0.05"
        assert config.max_change_rate == 0.125
        assert config.target_utilization == 0.5
        assert config.smoothing_window == 30
        assert config.elasticity_multiplier == 2.0
        assert config.adjustment_interval_ms == 10000
        assert config.assumed_peak_capacity == 20.0

    def test_camel_case_and_snake_case_overrides(self):
        """Test both alias styles are accepted."""
        config = create_config({"smoothingWindow": 10}, max_change_rate=0.25)

        assert config.smoothing_window == 10
        assert config.max_change_rate == 0.25

    def test_target_rate_derived_from_peak_capacity(self):
        """Test target rate is utilization times assumed peak capacity."""
        assert create_config().target_rate_per_second == 10.0
        assert create_config(target_utilization=0.8).target_rate_per_second == 16.0
        assert create_config(assumed_peak_capacity=100).target_rate_per_second == 50.0

    def test_unknown_field_rejected(self):
        """Test typos in field names fail fast."""
        with pytest.raises(ConfigurationError) as exc_info:
            create_config({"minFee": "$0.001"})

        assert exc_info.value.details["fields"] == ["minFee"]

    def test_type_errors_wrapped(self):
        """Test pydantic type failures surface as ConfigurationError."""
        with pytest.raises(ConfigurationError) as exc_info:
            create_config(smoothing_window="ten")

        assert exc_info.value.code == "CONFIGURATION_ERROR"
        assert exc_info.value.details["errors"]

    @pytest.mark.parametrize("overrides", [
        {"min_base_fee": "$0.02", "max_base_fee": "$0.01"},
        {"default_fee": "$0.1"},
        {"default_fee": "$0.0005"},
        {"min_base_fee": "$0", "default_fee": "$0"},
        {"target_utilization": 0},
        {"target_utilization": 1.5},
        {"max_change_rate": 1.5},
        {"max_change_rate": -0.1},
        {"smoothing_window": 0},
        {"adjustment_interval_ms": -1},
        {"elasticity_multiplier": 0},
        {"assumed_peak_capacity": 0},
    ])
    def test_invalid_bounds_rejected(self, overrides):
        """Test invalid bounds raise rather than being clamped."""
        with pytest.raises(ConfigurationError):
            create_config(overrides)

    def test_unparseable_price_fails_at_construction(self):
        """Test malformed prices fail when the config is built."""
        with pytest.raises(UnparseablePriceError):
            create_config(max_base_fee="lots")

    def test_sub_micro_dollar_bound_rejected(self):
        """Test bounds finer than one micro-dollar are reported as unparseable."""
        with pytest.raises(UnparseablePriceError) as exc_info:
            create_config(min_base_fee="$0.0000004")

        assert exc_info.value.price == "$0.0000004"

    def test_zero_change_rate_allowed(self):
        """Test a zero change rate is a valid way to pin the fee."""
        assert create_config(max_change_rate=0).max_change_rate == 0

    def test_full_utilization_allowed(self):
        """Test target utilization of exactly 1 is accepted."""
        assert create_config(target_utilization=1).target_rate_per_second == 20.0


class TestFeeControllerConfig:
    """Test cases for FeeControllerConfig behaviour."""

    def test_config_is_frozen(self):
        """Test configs cannot be mutated in place."""
        config = create_config()

        with pytest.raises(PydanticValidationError):
            config.smoothing_window = 5

    def test_merged_returns_new_instance(self):
        """Test merged leaves the original untouched."""
        config = create_config()
        updated = config.merged({"targetUtilization": 0.8})

        assert updated.target_utilization == 0.8
        assert config.target_utilization == 0.5
        assert updated.default_fee == config.default_fee

    def test_merged_validates(self):
        """Test merged applies the same validation as construction."""
        with pytest.raises(ConfigurationError):
            create_config().merged(min_base_fee="$1")

    def test_micro_dollar_bounds(self):
        """Test parsed bounds are exposed in micro-dollars."""
        config = create_config(min_base_fee="$0.0001", max_base_fee="$0.01")

        assert config.min_fee_micros == 100
        assert config.max_fee_micros == 10_000
        assert config.default_fee_micros == 1000

    def test_style_follows_default_fee(self):
        """Test output style follows how default_fee was configured."""
        assert create_config().style is PriceStyle.STRING
        numeric = FeeControllerConfig(min_base_fee=0.0001, max_base_fee=0.01, default_fee=0.001)
        assert numeric.style is PriceStyle.NUMERIC
