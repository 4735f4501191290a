"""
Distributed admission control for background jobs.

Enforces "at most N concurrent executions per time window" per job type,
or per partition of a job type, using a shared slot service across worker
processes. Denied attempts are dropped or reenqueued with randomized backoff.
"""

__version__ = "1.0.0"

from job_throttle.constants import AdmissionAction, JobDisposition, LockFailurePolicy
from job_throttle.exceptions import ConfigurationError, LockServiceError, ThrottleError
from job_throttle.locks import InMemoryLockService, LockService, RedisLockService, create_lock_service
from job_throttle.throttle import AdmissionController, ThrottleRegistry, derive_key
from job_throttle.types import AdmissionDecision, JobContext, JobResult, ThrottleSpec
from job_throttle.worker import ExecutionHooks, HandlerRegistry

__all__ = [
    "__version__",
    "AdmissionAction",
    "AdmissionController",
    "AdmissionDecision",
    "ConfigurationError",
    "ExecutionHooks",
    "HandlerRegistry",
    "InMemoryLockService",
    "JobContext",
    "JobDisposition",
    "JobResult",
    "LockFailurePolicy",
    "LockService",
    "LockServiceError",
    "RedisLockService",
    "ThrottleError",
    "ThrottleRegistry",
    "ThrottleSpec",
    "create_lock_service",
    "derive_key",
]
