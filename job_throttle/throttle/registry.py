"""
Throttle spec registry.

Job types declare their throttles here at definition time. Once an
admission controller is built from the registry it is frozen and its
configuration is handed out as read-only JobThrottleConfig objects.
"""

import logging
from collections.abc import Callable, Mapping
from datetime import timedelta
from types import MappingProxyType
from typing import Any, TypeVar

from job_throttle.constants import (
    DEFAULT_BUCKET,
    DEFAULT_MAX_DELAY_MULTIPLIER,
    DEFAULT_MIN_DELAY_MULTIPLIER,
)
from job_throttle.exceptions import ConfigurationError
from job_throttle.types.throttle import (
    BucketSelector,
    JobThrottleConfig,
    KeyFunction,
    ThrottleSpec,
    default_bucket,
)

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


class ThrottleRegistry:
    """
    Per job type mapping from bucket name to ThrottleSpec.

    A later registration for the same bucket replaces the earlier one.
    """

    def __init__(self) -> None:
        self._specs: dict[str, dict[str, ThrottleSpec]] = {}
        self._selectors: dict[str, BucketSelector] = {}
        self._frozen = False

    @property
    def frozen(self) -> bool:
        """Whether registrations are still accepted."""
        return self._frozen

    def register(
        self,
        job_type: str,
        bucket: str | None,
        spec: ThrottleSpec,
    ) -> ThrottleSpec:
        """
        Validate and store a throttle spec.

        Args:
            job_type: The job type being throttled.
            bucket: Bucket name. Defaults to the implicit default bucket.
            spec: The throttle spec.

        Returns:
            The stored spec.

        Raises:
            ConfigurationError: If the spec is invalid or the registry is frozen.
        """
        self._check_writable()
        job_type = self._check_job_type(job_type)
        bucket = self._normalize_bucket(bucket)

        if not isinstance(spec, ThrottleSpec):
            raise ConfigurationError(
                f"Expected a ThrottleSpec for {job_type}/{bucket}, got {type(spec).__name__}"
            )

        # Instances built with model_construct() skip validation
        spec = ThrottleSpec(
            **{name: getattr(spec, name) for name in ThrottleSpec.model_fields}
        )

        buckets = self._specs.setdefault(job_type, {})
        if bucket in buckets:
            logger.warning(
                "Replacing throttle",
                extra={"job_type": job_type, "bucket": bucket},
            )
        buckets[bucket] = spec

        logger.info(
            "Registered throttle",
            extra={
                "job_type": job_type,
                "bucket": bucket,
                "threshold": spec.threshold,
                "period": spec.period,
                "drop": spec.drop,
            },
        )
        return spec

    def configure_throttle(
        self,
        job_type: str,
        *,
        threshold: int,
        period: float | timedelta,
        drop: bool = False,
        key: KeyFunction | str | None = None,
        bucket: str | None = None,
        delay: float | timedelta | None = None,
        min_delay_multiplier: float = DEFAULT_MIN_DELAY_MULTIPLIER,
        max_delay_multiplier: float = DEFAULT_MAX_DELAY_MULTIPLIER,
    ) -> ThrottleSpec:
        """
        Build and register a throttle for a job type.

        Args:
            job_type: The job type being throttled.
            threshold: Maximum number of concurrent slots.
            period: Slot lease in seconds (or a timedelta).
            drop: Discard denied jobs instead of reenqueueing them.
            key: Callable partitioning the lock key per job, or a static key
                shared by every job type that uses it.
            bucket: Bucket name. Defaults to the implicit default bucket.
            delay: Base reenqueue delay. Defaults to ``period``.
            min_delay_multiplier: Lower bound multiplier for the delay.
            max_delay_multiplier: Upper bound multiplier for the delay.

        Returns:
            The registered spec.

        Raises:
            ConfigurationError: If any value is invalid. Nothing is stored then.
        """
        spec = ThrottleSpec(
            threshold=threshold,
            period=period,
            drop=drop,
            key=key,
            delay=delay,
            min_delay_multiplier=min_delay_multiplier,
            max_delay_multiplier=max_delay_multiplier,
        )
        return self.register(job_type, bucket, spec)

    def throttle(self, job_type: str, **options: Any) -> Callable[[F], F]:
        """
        Decorator form of configure_throttle.

        Example:
            @registry.throttle("send_email", threshold=1, period=60)
            @handlers.register("send_email")
            async def handle_send_email(context: JobContext) -> JobResult:
                ...
        """

        def decorator(handler: F) -> F:
            self.configure_throttle(job_type, **options)
            return handler

        return decorator

    def set_bucket_selector(self, job_type: str, selector: BucketSelector) -> None:
        """
        Override how job instances of a type pick their bucket.

        Raises:
            ConfigurationError: If the selector is not callable or the registry is frozen.
        """
        self._check_writable()
        job_type = self._check_job_type(job_type)
        if not callable(selector):
            raise ConfigurationError(f"Bucket selector for {job_type} must be callable")
        self._selectors[job_type] = selector

    def bucket_selector(self, job_type: str) -> Callable[[BucketSelector], BucketSelector]:
        """Decorator form of set_bucket_selector."""

        def decorator(selector: BucketSelector) -> BucketSelector:
            self.set_bucket_selector(job_type, selector)
            return selector

        return decorator

    def lookup(self, job_type: str, bucket: str | None = None) -> ThrottleSpec | None:
        """Get the spec for a job type and bucket, or None if there is none."""
        return self._specs.get(job_type, {}).get(self._normalize_bucket(bucket))

    def has_specs(self, job_type: str) -> bool:
        """Check whether a job type has at least one throttle."""
        return bool(self._specs.get(job_type))

    def job_types(self) -> list[str]:
        """List throttled job types."""
        return [job_type for job_type, buckets in self._specs.items() if buckets]

    def config_for(self, job_type: str) -> JobThrottleConfig:
        """
        Get the read-only configuration of a job type.

        Job types without throttles get an empty configuration.
        """
        return JobThrottleConfig(
            job_type=job_type,
            buckets=MappingProxyType(dict(self._specs.get(job_type, {}))),
            bucket_selector=self._selectors.get(job_type, default_bucket),
        )

    def freeze(self) -> Mapping[str, JobThrottleConfig]:
        """
        Stop accepting registrations and snapshot every job type.

        Returns:
            Read-only mapping of job type to its configuration.
        """
        self._frozen = True
        return MappingProxyType(
            {job_type: self.config_for(job_type) for job_type in self.job_types()}
        )

    def _check_writable(self) -> None:
        if self._frozen:
            raise ConfigurationError(
                "Throttle registry is frozen; configure throttles before building the controller"
            )

    @staticmethod
    def _check_job_type(job_type: str) -> str:
        if not isinstance(job_type, str) or not job_type:
            raise ConfigurationError("job_type must be a non-empty string")
        return job_type

    @staticmethod
    def _normalize_bucket(bucket: Any) -> str:
        if bucket is None:
            return DEFAULT_BUCKET
        bucket = str(bucket)
        if not bucket:
            raise ConfigurationError("bucket must not be empty")
        return bucket
