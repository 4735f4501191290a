"""
Pytest configuration and shared fixtures.
"""

import random
from uuid import uuid4

import pytest
from prometheus_client import CollectorRegistry

from job_throttle.config import Settings
from job_throttle.constants import LockFailurePolicy
from job_throttle.exceptions import LockServiceError
from job_throttle.locks.memory_lock import InMemoryLockService
from job_throttle.observability.metrics import MetricsCollector
from job_throttle.throttle.registry import ThrottleRegistry
from job_throttle.types.job import JobContext


class FakeClock:
    """Manually advanced clock for lease expiry tests."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingLockService:
    """Lock service double that records calls and answers from a script."""

    def __init__(self, grants: list[str | None] | None = None, error: Exception | None = None):
        self.grants = list(grants or [])
        self.error = error
        self.acquired: list[tuple[str, int, float]] = []
        self.released: list[tuple[str, str]] = []

    async def acquire(self, key: str, resources: int, stale_lock_expiration: float) -> str | None:
        self.acquired.append((key, resources, stale_lock_expiration))
        if self.error is not None:
            raise self.error
        return self.grants.pop(0) if self.grants else "token"

    async def release(self, key: str, token: str) -> None:
        self.released.append((key, token))

    async def close(self) -> None:
        pass


class RecordingHooks:
    """Execution hooks that remember what they were told."""

    def __init__(self):
        self.dropped: list[tuple[JobContext, str]] = []
        self.reenqueued: list[tuple[JobContext, tuple[float, float], float, str]] = []

    async def drop(self, context: JobContext, reason: str) -> None:
        self.dropped.append((context, reason))

    async def reenqueue(
        self,
        context: JobContext,
        delay_range: tuple[float, float],
        delay_seconds: float,
        reason: str,
    ) -> None:
        self.reenqueued.append((context, delay_range, delay_seconds, reason))


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings."""
    return Settings(
        redis_url=None,
        lock_key_prefix="traffic_control",
        lock_failure_policy=LockFailurePolicy.FAIL_OPEN,
        release_on_completion=False,
        log_level="DEBUG",
        log_format="console",
    )


@pytest.fixture
def metrics_registry() -> CollectorRegistry:
    """Prometheus registry isolated from the process default."""
    return CollectorRegistry()


@pytest.fixture
def metrics(metrics_registry: CollectorRegistry) -> MetricsCollector:
    """Metrics collector on the isolated registry."""
    return MetricsCollector(metrics_registry)


@pytest.fixture
def registry() -> ThrottleRegistry:
    """Create an empty throttle registry."""
    return ThrottleRegistry()


@pytest.fixture
def clock() -> FakeClock:
    """Create a manually advanced clock."""
    return FakeClock()


@pytest.fixture
def lock_service(clock: FakeClock) -> InMemoryLockService:
    """Create an in-memory lock service on the fake clock."""
    return InMemoryLockService(clock=clock)


@pytest.fixture
def recording_lock_service() -> RecordingLockService:
    """Create a lock service double that always grants."""
    return RecordingLockService()


@pytest.fixture
def failing_lock_service() -> RecordingLockService:
    """Create a lock service double that is unreachable."""
    return RecordingLockService(error=LockServiceError("connection refused", key="k"))


@pytest.fixture
def hooks() -> RecordingHooks:
    """Create recording execution hooks."""
    return RecordingHooks()


@pytest.fixture
def rng() -> random.Random:
    """Seeded random source."""
    return random.Random(1234)


@pytest.fixture
def make_context():
    """Factory for job contexts."""

    def factory(job_type: str = "send_email", **data) -> JobContext:
        return JobContext(
            job_type=job_type,
            payload={"job_type": job_type, "data": data},
            job_id=uuid4(),
        )

    return factory
