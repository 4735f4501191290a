"""
Prometheus metrics collection.
"""

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

from job_throttle.constants import (
    METRIC_ADMISSIONS,
    METRIC_JOB_DURATION,
    METRIC_JOBS_COMPLETED,
    METRIC_LOCK_ACQUIRE_LATENCY,
    METRIC_LOCK_ERRORS,
    METRIC_REENQUEUE_DELAY,
    METRIC_SLOTS_RELEASED,
)

# Global metrics instance
_metrics: "MetricsCollector | None" = None


class MetricsCollector:
    """
    Prometheus metrics collector for throttled job execution.

    Collects metrics for:
    - Admission decisions per job type and bucket
    - Lock service latency and failures
    - Reenqueue delays
    - Job completions and duration
    """

    def __init__(self, registry: CollectorRegistry | None = None):
        """
        Initialize the metrics collector.

        Args:
            registry: Optional custom registry. Uses default if not provided.
        """
        self._registry = registry or REGISTRY

        self.admissions = Counter(
            METRIC_ADMISSIONS,
            "Total number of admission decisions",
            ["job_type", "bucket", "decision"],
            registry=self._registry,
        )

        self.lock_acquire_latency = Histogram(
            METRIC_LOCK_ACQUIRE_LATENCY,
            "Lock service acquire latency in seconds",
            ["job_type", "bucket"],
            buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 5.0),
            registry=self._registry,
        )

        self.lock_errors = Counter(
            METRIC_LOCK_ERRORS,
            "Total number of lock service failures",
            ["job_type", "bucket", "policy"],
            registry=self._registry,
        )

        self.reenqueue_delay = Histogram(
            METRIC_REENQUEUE_DELAY,
            "Sampled reenqueue delay in seconds",
            ["job_type", "bucket"],
            buckets=(1.0, 5.0, 15.0, 30.0, 60.0, 120.0, 300.0, 600.0, 1800.0, 3600.0),
            registry=self._registry,
        )

        self.slots_released = Counter(
            METRIC_SLOTS_RELEASED,
            "Total number of slots released explicitly",
            ["job_type", "bucket"],
            registry=self._registry,
        )

        self.jobs_completed = Counter(
            METRIC_JOBS_COMPLETED,
            "Total number of job attempts finished",
            ["job_type", "status"],
            registry=self._registry,
        )

        self.job_duration = Histogram(
            METRIC_JOB_DURATION,
            "Job execution duration in seconds",
            ["job_type", "status"],
            buckets=(0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0),
            registry=self._registry,
        )

    def record_admission(self, job_type: str, bucket: str | None, decision: str) -> None:
        """Record an admission decision."""
        self.admissions.labels(
            job_type=job_type,
            bucket=bucket or "",
            decision=decision,
        ).inc()

    def record_lock_acquire(self, job_type: str, bucket: str, duration_seconds: float) -> None:
        """Record the latency of one acquire call."""
        self.lock_acquire_latency.labels(job_type=job_type, bucket=bucket).observe(
            duration_seconds
        )

    def record_lock_error(self, job_type: str, bucket: str, policy: str) -> None:
        """Record a lock service failure and the policy applied to it."""
        self.lock_errors.labels(job_type=job_type, bucket=bucket, policy=policy).inc()

    def record_reenqueue(self, job_type: str, bucket: str, delay_seconds: float) -> None:
        """Record a sampled reenqueue delay."""
        self.reenqueue_delay.labels(job_type=job_type, bucket=bucket).observe(delay_seconds)

    def record_slot_released(self, job_type: str, bucket: str) -> None:
        """Record an explicit slot release."""
        self.slots_released.labels(job_type=job_type, bucket=bucket).inc()

    def record_job_completed(
        self,
        job_type: str,
        status: str,
        duration_seconds: float,
    ) -> None:
        """Record a finished job attempt."""
        self.jobs_completed.labels(job_type=job_type, status=status).inc()
        self.job_duration.labels(job_type=job_type, status=status).observe(
            duration_seconds
        )

    def get_metrics(self) -> bytes:
        """Get all metrics in Prometheus format."""
        return generate_latest(self._registry)

    def get_content_type(self) -> str:
        """Get the content type for metrics response."""
        return CONTENT_TYPE_LATEST


def setup_metrics(registry: CollectorRegistry | None = None) -> MetricsCollector:
    """
    Set up and return the process-wide metrics collector.

    Args:
        registry: Registry used when the collector is created.

    Returns:
        MetricsCollector: The metrics collector instance.
    """
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector(registry)
    return _metrics


def get_metrics() -> MetricsCollector:
    """Get the metrics collector instance, creating it on first use."""
    if _metrics is None:
        return setup_metrics()
    return _metrics
