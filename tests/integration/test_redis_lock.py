"""
Integration tests against a real Redis.

Run with TEST_REDIS_URL=redis://localhost:6379/15
"""

import asyncio
import os
from collections.abc import AsyncGenerator
from uuid import uuid4

import pytest
import pytest_asyncio

from job_throttle.constants import AdmissionAction
from job_throttle.locks.redis_lock import RedisLockService
from job_throttle.throttle.controller import AdmissionController
from job_throttle.throttle.registry import ThrottleRegistry

TEST_REDIS_URL = os.getenv("TEST_REDIS_URL")

pytestmark = [
    pytest.mark.integration,
    pytest.mark.skipif(TEST_REDIS_URL is None, reason="TEST_REDIS_URL not set"),
]


@pytest_asyncio.fixture
async def redis_lock_service() -> AsyncGenerator[RedisLockService]:
    """Create a Redis lock service for one test."""
    service = RedisLockService.from_url(TEST_REDIS_URL, timeout=2.0)
    yield service
    await service.close()


@pytest.fixture
def lock_key() -> str:
    """Unique key so tests never see each other's slots."""
    return f"test:throttle:{uuid4().hex}"


class TestRedisLockService:
    """Tests for RedisLockService."""

    @pytest.mark.asyncio
    async def test_concurrent_acquire_respects_resources(self, redis_lock_service, lock_key):
        """Test exactly `resources` of many concurrent attempts get a slot."""
        tokens = await asyncio.gather(
            *(redis_lock_service.acquire(lock_key, resources=3, stale_lock_expiration=30) for _ in range(20))
        )

        granted = [token for token in tokens if token is not None]
        assert len(granted) == 3
        assert len(set(granted)) == 3

    @pytest.mark.asyncio
    async def test_slot_expires(self, redis_lock_service, lock_key):
        """Test a slot is reclaimed after its lease."""
        assert await redis_lock_service.acquire(lock_key, resources=1, stale_lock_expiration=0.2)
        assert await redis_lock_service.acquire(lock_key, resources=1, stale_lock_expiration=0.2) is None

        await asyncio.sleep(0.3)

        assert await redis_lock_service.acquire(lock_key, resources=1, stale_lock_expiration=0.2)

    @pytest.mark.asyncio
    async def test_release(self, redis_lock_service, lock_key):
        """Test a released slot can be taken again."""
        token = await redis_lock_service.acquire(lock_key, resources=1, stale_lock_expiration=30)

        await redis_lock_service.release(lock_key, token)

        assert await redis_lock_service.acquire(lock_key, resources=1, stale_lock_expiration=30)


class TestSharedAdmission:
    """Tests for controllers in separate workers sharing one Redis."""

    @pytest.mark.asyncio
    async def test_workers_share_slots(self, redis_lock_service, test_settings, metrics, make_context):
        """Test two controllers with identical config enforce one shared threshold."""
        prefix = f"test_{uuid4().hex}"
        settings = test_settings.model_copy(update={"lock_key_prefix": prefix})

        def build() -> AdmissionController:
            registry = ThrottleRegistry()
            registry.configure_throttle(
                "send_email", threshold=2, period=30, drop=True, key=lambda job: job.data["tenant_id"]
            )
            return AdmissionController(registry, redis_lock_service, settings=settings, metrics=metrics)

        worker_a, worker_b = build(), build()

        decisions = [
            await worker_a.before_execute(make_context(tenant_id="acme")),
            await worker_b.before_execute(make_context(tenant_id="acme")),
            await worker_a.before_execute(make_context(tenant_id="acme")),
            await worker_b.before_execute(make_context(tenant_id="globex")),
        ]

        assert [d.action for d in decisions] == [
            AdmissionAction.RUN,
            AdmissionAction.RUN,
            AdmissionAction.DROP,
            AdmissionAction.RUN,
        ]
