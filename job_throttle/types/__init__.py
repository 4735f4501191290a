"""
Type definitions for job throttling.
Contains input/output type definitions for all functions, grouped by module.
"""

from job_throttle.types.job import (
    JobContext,
    JobHandler,
    JobResult,
)
from job_throttle.types.throttle import (
    AdmissionDecision,
    BucketSelector,
    JobThrottleConfig,
    KeyFunction,
    ThrottleSpec,
    default_bucket,
)

__all__ = [
    # Job types
    "JobContext",
    "JobHandler",
    "JobResult",
    # Throttle types
    "ThrottleSpec",
    "JobThrottleConfig",
    "AdmissionDecision",
    "KeyFunction",
    "BucketSelector",
    "default_bucket",
]
