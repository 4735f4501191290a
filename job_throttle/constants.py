"""
Application constants.
Centralized location for all constant values used across the package.
"""

from enum import StrEnum


class AdmissionAction(StrEnum):
    """
    Outcome of one admission check.

    State transitions:
    - EXEMPT: no throttle applies, the job runs without touching the lock service
    - AWAITING_SLOT -> RUN (token granted)
    - AWAITING_SLOT -> DROP (denied, spec.drop is set)
    - AWAITING_SLOT -> REENQUEUE (denied, retried after a sampled delay)
    """

    EXEMPT = "exempt"
    RUN = "run"
    DROP = "drop"
    REENQUEUE = "reenqueue"


class JobDisposition(StrEnum):
    """What the runtime should do with a job attempt after execution."""

    COMPLETED = "completed"
    FAILED = "failed"
    DROPPED = "dropped"
    REENQUEUED = "reenqueued"


class LockFailurePolicy(StrEnum):
    """How admission reacts when the lock service itself fails."""

    FAIL_OPEN = "fail_open"
    FAIL_CLOSED = "fail_closed"
    RAISE = "raise"


# Throttle defaults
DEFAULT_BUCKET = "_default"
DEFAULT_MIN_DELAY_MULTIPLIER = 1
DEFAULT_MAX_DELAY_MULTIPLIER = 5
DEFAULT_LOCK_KEY_PREFIX = "traffic_control"
THROTTLE_KEY_PREFIX = "throttle_"
STATIC_KEY_MARKER = "@"
THROTTLING_REASON = "throttling"

# Metrics names
METRIC_ADMISSIONS = "throttle_admissions_total"
METRIC_LOCK_ACQUIRE_LATENCY = "throttle_lock_acquire_seconds"
METRIC_LOCK_ERRORS = "throttle_lock_errors_total"
METRIC_REENQUEUE_DELAY = "throttle_reenqueue_delay_seconds"
METRIC_SLOTS_RELEASED = "throttle_slots_released_total"
METRIC_JOBS_COMPLETED = "jobs_completed_total"
METRIC_JOB_DURATION = "job_duration_seconds"

# Trace span names
SPAN_THROTTLE_ADMISSION = "throttle_admission"
SPAN_EXECUTE_JOB = "execute_job"
SPAN_RELEASE_SLOT = "release_slot"
