"""
Throttle configuration and admission decision types.
"""

import math
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import timedelta
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    ValidationError,
    ValidationInfo,
    field_validator,
    model_validator,
)

from job_throttle.constants import (
    DEFAULT_BUCKET,
    DEFAULT_MAX_DELAY_MULTIPLIER,
    DEFAULT_MIN_DELAY_MULTIPLIER,
    AdmissionAction,
)
from job_throttle.exceptions import ConfigurationError
from job_throttle.types.job import JobContext

# Maps a job to the value that partitions its lock key (e.g. a tenant id)
KeyFunction = Callable[[JobContext], Any]

# Maps a job to the bucket it is throttled under; None or "" means exempt
BucketSelector = Callable[[JobContext], Any]


def _is_number(value: Any) -> bool:
    """Real, finite numbers only: bools, NaN and infinities are rejected."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def _format_errors(exc: ValidationError) -> str:
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error["loc"]) or "throttle"
        message = error["msg"].removeprefix("Value error, ")
        messages.append(f"{location}: {message}")
    return "Invalid throttle configuration: " + "; ".join(messages)


class ThrottleSpec(BaseModel):
    """
    Immutable throttle configuration for one bucket of a job type.

    Durations are stored in seconds; ``timedelta`` values are accepted and
    converted. ``delay`` defaults to ``period``. Any invalid value raises
    ConfigurationError from the constructor, so an instance is always valid.
    """

    model_config = ConfigDict(frozen=True)

    threshold: int
    period: float
    drop: bool = False
    key: KeyFunction | str | None = None
    delay: float
    min_delay_multiplier: float = DEFAULT_MIN_DELAY_MULTIPLIER
    max_delay_multiplier: float = DEFAULT_MAX_DELAY_MULTIPLIER

    def __init__(self, **data: Any) -> None:
        try:
            super().__init__(**data)
        except ValidationError as exc:
            raise ConfigurationError(_format_errors(exc)) from exc

    @model_validator(mode="before")
    @classmethod
    def _default_delay_to_period(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("delay") is None:
            data = {**data, "delay": data.get("period")}
        return data

    @field_validator("threshold", mode="before")
    @classmethod
    def _check_threshold(cls, value: Any) -> int:
        if not isinstance(value, int) or isinstance(value, bool) or value < 1:
            raise ValueError("threshold needs to be an integer > 0")
        return value

    @field_validator("period", "delay", mode="before")
    @classmethod
    def _check_duration(cls, value: Any, info: ValidationInfo) -> float:
        if isinstance(value, timedelta):
            value = value.total_seconds()
        if not _is_number(value) or not value > 0:
            raise ValueError(f"{info.field_name} needs to be a number > 0")
        return float(value)

    @field_validator("min_delay_multiplier", mode="before")
    @classmethod
    def _check_min_multiplier(cls, value: Any) -> float:
        if not _is_number(value) or not value >= 0:
            raise ValueError("min_delay_multiplier needs to be a number >= 0")
        return value

    @field_validator("max_delay_multiplier", mode="before")
    @classmethod
    def _check_max_multiplier(cls, value: Any, info: ValidationInfo) -> float:
        minimum = info.data.get("min_delay_multiplier")
        if not _is_number(value) or (minimum is not None and not value >= minimum):
            raise ValueError(
                "max_delay_multiplier needs to be a number >= min_delay_multiplier"
            )
        return value

    @property
    def has_dynamic_key(self) -> bool:
        """Whether the lock key depends on the job instance."""
        return callable(self.key)


def default_bucket(context: JobContext) -> str:
    """Bucket selector used when a job type does not define its own."""
    return DEFAULT_BUCKET


@dataclass(frozen=True)
class JobThrottleConfig:
    """
    Read-only throttle configuration of one job type.
    Built once by the registry and shared by every admission check.
    """

    job_type: str
    buckets: Mapping[str, ThrottleSpec]
    bucket_selector: BucketSelector = default_bucket

    def lookup(self, bucket: str) -> ThrottleSpec | None:
        """Get the spec for a bucket, or None when the bucket is not throttled."""
        return self.buckets.get(bucket)

    def resolve_bucket(self, context: JobContext) -> str | None:
        """
        Resolve the bucket a job attempt is throttled under.

        Returns:
            The bucket name, or None when the selector returned nothing.
        """
        bucket = self.bucket_selector(context)
        if bucket is None:
            return None
        bucket = str(bucket)
        return bucket or None


@dataclass(frozen=True)
class AdmissionDecision:
    """
    Outcome of one admission check.

    ``token`` is set only when the lock service granted a slot.
    ``delay_seconds`` and ``delay_range`` are set only for REENQUEUE.
    """

    action: AdmissionAction
    job_type: str
    bucket: str | None = None
    lock_key: str | None = None
    token: str | None = None
    reason: str | None = None
    delay_seconds: float | None = None
    delay_range: tuple[float, float] | None = None

    @property
    def should_run(self) -> bool:
        """Whether the job body may run now."""
        return self.action in (AdmissionAction.EXEMPT, AdmissionAction.RUN)

    @property
    def holds_slot(self) -> bool:
        """Whether this attempt holds a lock service slot."""
        return self.token is not None
