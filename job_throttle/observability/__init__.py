"""
Observability module.
Contains logging, metrics, and tracing setup.
"""

from job_throttle.observability.logging import (
    bind_job_context,
    bound_admission_context,
    clear_context,
    setup_logging,
)
from job_throttle.observability.metrics import (
    MetricsCollector,
    get_metrics,
    setup_metrics,
)
from job_throttle.observability.tracing import get_tracer, setup_tracing

__all__ = [
    "setup_logging",
    "bound_admission_context",
    "bind_job_context",
    "clear_context",
    "setup_metrics",
    "get_metrics",
    "MetricsCollector",
    "setup_tracing",
    "get_tracer",
]
