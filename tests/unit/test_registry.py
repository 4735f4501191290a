"""
Unit tests for throttle specs and the throttle registry.
"""

import math
from datetime import timedelta

import pytest
from pydantic import ValidationError

from job_throttle.constants import DEFAULT_BUCKET
from job_throttle.exceptions import ConfigurationError
from job_throttle.throttle.registry import ThrottleRegistry
from job_throttle.types.throttle import ThrottleSpec, default_bucket


class TestThrottleSpec:
    """Tests for ThrottleSpec validation."""

    def test_defaults(self):
        """Test delay defaults to period and multipliers to 1..5."""
        spec = ThrottleSpec(threshold=1, period=60)

        assert spec.delay == 60
        assert spec.min_delay_multiplier == 1
        assert spec.max_delay_multiplier == 5
        assert spec.drop is False
        assert spec.key is None

    def test_timedelta_durations(self):
        """Test durations given as timedelta are stored in seconds."""
        spec = ThrottleSpec(
            threshold=2,
            period=timedelta(minutes=1),
            delay=timedelta(seconds=90),
        )

        assert spec.period == 60.0
        assert spec.delay == 90.0

    @pytest.mark.parametrize("threshold", [0, -1, 2.5, "3", True, None])
    def test_invalid_threshold(self, threshold):
        """Test threshold must be an integer >= 1."""
        with pytest.raises(ConfigurationError, match="threshold needs to be an integer > 0"):
            ThrottleSpec(threshold=threshold, period=10)

    @pytest.mark.parametrize("value", [-0.1, -1, "1", None, math.nan, math.inf])
    def test_invalid_min_delay_multiplier(self, value):
        """Test min_delay_multiplier must be a non-negative number."""
        with pytest.raises(ConfigurationError, match="min_delay_multiplier needs to be a number >= 0"):
            ThrottleSpec(threshold=1, period=10, min_delay_multiplier=value)

    def test_max_below_min_multiplier(self):
        """Test max_delay_multiplier must not be below min_delay_multiplier."""
        with pytest.raises(ConfigurationError, match="max_delay_multiplier needs to be a number"):
            ThrottleSpec(threshold=1, period=10, min_delay_multiplier=3, max_delay_multiplier=2)

    def test_max_multiplier_not_a_number(self):
        """Test max_delay_multiplier must be a number."""
        with pytest.raises(ConfigurationError, match="max_delay_multiplier"):
            ThrottleSpec(threshold=1, period=10, max_delay_multiplier="5")

    @pytest.mark.parametrize("delay", [0, -5, "10", timedelta(0), math.nan, math.inf, -math.inf])
    def test_invalid_delay(self, delay):
        """Test delay must be a positive number."""
        with pytest.raises(ConfigurationError, match="delay needs to be a number > 0"):
            ThrottleSpec(threshold=1, period=10, delay=delay)

    def test_invalid_period(self):
        """Test period must be a positive duration."""
        with pytest.raises(ConfigurationError, match="period needs to be a number > 0"):
            ThrottleSpec(threshold=1, period=0, delay=10)

    @pytest.mark.parametrize("period", [math.nan, math.inf])
    def test_non_finite_period(self, period):
        """Test NaN and infinite periods are rejected."""
        with pytest.raises(ConfigurationError, match="period needs to be a number > 0"):
            ThrottleSpec(threshold=1, period=period, delay=10)

    @pytest.mark.parametrize("value", [math.nan, math.inf])
    def test_non_finite_max_delay_multiplier(self, value):
        """Test NaN and infinite upper multipliers are rejected."""
        with pytest.raises(ConfigurationError, match="max_delay_multiplier needs to be a number"):
            ThrottleSpec(threshold=1, period=10, max_delay_multiplier=value)

    @pytest.mark.parametrize(
        "field", ["period", "delay", "min_delay_multiplier", "max_delay_multiplier"]
    )
    def test_nan_never_registered(self, registry, field):
        """Test a NaN value leaves no spec behind to produce a NaN delay."""
        options = {"threshold": 1, "period": 10, field: math.nan}

        with pytest.raises(ConfigurationError):
            registry.configure_throttle("send_email", **options)

        assert registry.lookup("send_email") is None

    def test_equal_multipliers_allowed(self):
        """Test a fixed delay is a valid configuration."""
        spec = ThrottleSpec(threshold=1, period=10, min_delay_multiplier=2, max_delay_multiplier=2)

        assert spec.min_delay_multiplier == spec.max_delay_multiplier == 2

    def test_zero_min_multiplier_allowed(self):
        """Test reenqueueing may start immediately."""
        spec = ThrottleSpec(threshold=1, period=10, min_delay_multiplier=0)

        assert spec.min_delay_multiplier == 0

    def test_reports_every_problem(self):
        """Test all invalid fields are named in one error."""
        with pytest.raises(ConfigurationError) as exc_info:
            ThrottleSpec(threshold=0, period=10, delay=-1)

        assert "threshold" in str(exc_info.value)
        assert "delay" in str(exc_info.value)

    def test_immutable(self):
        """Test specs cannot be changed after construction."""
        spec = ThrottleSpec(threshold=1, period=10)

        with pytest.raises(ValidationError):
            spec.threshold = 5

    def test_has_dynamic_key(self):
        """Test key functions are told apart from static keys."""
        assert ThrottleSpec(threshold=1, period=10, key=lambda job: job).has_dynamic_key is True
        assert ThrottleSpec(threshold=1, period=10, key="shared").has_dynamic_key is False


class TestThrottleRegistry:
    """Tests for ThrottleRegistry."""

    def test_configure_and_lookup(self, registry: ThrottleRegistry):
        """Test a configured throttle is found under the default bucket."""
        spec = registry.configure_throttle("send_email", threshold=1, period=60)

        assert registry.lookup("send_email") == spec
        assert registry.lookup("send_email", DEFAULT_BUCKET) == spec
        assert registry.has_specs("send_email") is True

    def test_lookup_missing(self, registry: ThrottleRegistry):
        """Test lookups for unknown job types and buckets return None."""
        registry.configure_throttle("send_email", threshold=1, period=60)

        assert registry.lookup("unknown") is None
        assert registry.lookup("send_email", "bulk") is None
        assert registry.has_specs("unknown") is False

    def test_lookup_has_no_side_effects(self, registry: ThrottleRegistry):
        """Test looking up a job type does not create an entry."""
        registry.lookup("unknown", "bucket")

        assert registry.job_types() == []

    def test_later_registration_overwrites(self, registry: ThrottleRegistry):
        """Test the same bucket keeps only the last spec."""
        registry.configure_throttle("send_email", threshold=1, period=60)
        registry.configure_throttle("send_email", threshold=3, period=30)

        assert registry.lookup("send_email").threshold == 3

    def test_buckets_are_independent(self, registry: ThrottleRegistry):
        """Test several buckets of one job type."""
        registry.configure_throttle("send_email", threshold=1, period=60)
        registry.configure_throttle("send_email", threshold=10, period=60, bucket="bulk")

        assert registry.lookup("send_email").threshold == 1
        assert registry.lookup("send_email", "bulk").threshold == 10

    def test_invalid_configuration_stores_nothing(self, registry: ThrottleRegistry):
        """Test a rejected throttle leaves the registry untouched."""
        with pytest.raises(ConfigurationError):
            registry.configure_throttle("send_email", threshold=0, period=10)

        assert registry.has_specs("send_email") is False

    def test_register_rejects_non_spec(self, registry: ThrottleRegistry):
        """Test register only accepts ThrottleSpec instances."""
        with pytest.raises(ConfigurationError, match="Expected a ThrottleSpec"):
            registry.register("send_email", None, {"threshold": 1, "period": 10})

    def test_register_revalidates_unchecked_spec(self, registry: ThrottleRegistry):
        """Test specs built without validation are checked on registration."""
        spec = ThrottleSpec.model_construct(
            threshold=0,
            period=10.0,
            drop=False,
            key=None,
            delay=10.0,
            min_delay_multiplier=1,
            max_delay_multiplier=5,
        )

        with pytest.raises(ConfigurationError, match="threshold"):
            registry.register("send_email", None, spec)

    def test_register_rejects_empty_names(self, registry: ThrottleRegistry):
        """Test job type and bucket must not be empty."""
        spec = ThrottleSpec(threshold=1, period=10)

        with pytest.raises(ConfigurationError, match="job_type"):
            registry.register("", None, spec)
        with pytest.raises(ConfigurationError, match="bucket"):
            registry.register("send_email", "", spec)

    def test_throttle_decorator(self, registry: ThrottleRegistry):
        """Test the decorator form registers and returns the handler."""

        @registry.throttle("send_email", threshold=2, period=30, drop=True)
        async def handler(context):
            return None

        assert handler.__name__ == "handler"
        assert registry.lookup("send_email").drop is True

    def test_throttle_registers_only_when_applied(self, registry: ThrottleRegistry):
        """Test an unapplied throttle decorator registers nothing."""
        decorator = registry.throttle("send_email", threshold=2, period=30)

        assert registry.has_specs("send_email") is False

        decorator(lambda context: None)

        assert registry.lookup("send_email").threshold == 2

    def test_throttle_rejects_invalid_options_when_applied(self, registry: ThrottleRegistry):
        """Test invalid decorator options fail at definition time."""
        decorator = registry.throttle("send_email", threshold=0, period=30)

        with pytest.raises(ConfigurationError, match="threshold"):
            decorator(lambda context: None)

    def test_bucket_selector(self, registry: ThrottleRegistry, make_context):
        """Test a custom bucket selector ends up in the job type config."""
        registry.configure_throttle("send_email", threshold=1, period=60, bucket="vip")

        @registry.bucket_selector("send_email")
        def select(context):
            return "vip" if context.data.get("vip") else None

        config = registry.config_for("send_email")

        assert config.resolve_bucket(make_context(vip=True)) == "vip"
        assert config.resolve_bucket(make_context()) is None

    def test_bucket_selector_must_be_callable(self, registry: ThrottleRegistry):
        """Test non-callable selectors are rejected."""
        with pytest.raises(ConfigurationError, match="callable"):
            registry.set_bucket_selector("send_email", "vip")

    def test_config_for_unthrottled_job_type(self, registry: ThrottleRegistry):
        """Test unknown job types get an empty config with the default selector."""
        config = registry.config_for("unknown")

        assert dict(config.buckets) == {}
        assert config.bucket_selector is default_bucket

    def test_freeze(self, registry: ThrottleRegistry):
        """Test freezing snapshots configs and blocks registration."""
        registry.configure_throttle("send_email", threshold=1, period=60)

        configs = registry.freeze()

        assert registry.frozen is True
        assert list(configs) == ["send_email"]
        with pytest.raises(TypeError):
            configs["other"] = None
        with pytest.raises(TypeError):
            configs["send_email"].buckets["bulk"] = None
        with pytest.raises(ConfigurationError, match="frozen"):
            registry.configure_throttle("other", threshold=1, period=60)
