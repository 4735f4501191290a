"""
Lock service interface.

A lock service hands out at most ``resources`` concurrent slots per key.
Slots older than ``stale_lock_expiration`` seconds no longer count, so a
crashed worker never holds a slot forever.
"""

import logging
from typing import Protocol, runtime_checkable

from job_throttle.config import Settings, get_settings

logger = logging.getLogger(__name__)


@runtime_checkable
class LockService(Protocol):
    """Distributed slot service consumed by the admission controller."""

    async def acquire(
        self,
        key: str,
        resources: int,
        stale_lock_expiration: float,
    ) -> str | None:
        """
        Try to take one slot for ``key``.

        Returns:
            A token when a slot was granted, None when all slots are held.

        Raises:
            LockServiceError: If the service could not be reached.
        """
        ...

    async def release(self, key: str, token: str) -> None:
        """Give a slot back before its lease expires."""
        ...

    async def close(self) -> None:
        """Release client resources."""
        ...


def create_lock_service(settings: Settings | None = None) -> LockService:
    """
    Create the lock service selected by configuration.

    Uses Redis when ``redis_url`` is set, otherwise an in-process service
    that only throttles within the current process.
    """
    settings = settings or get_settings()

    if settings.redis_url:
        from job_throttle.locks.redis_lock import RedisLockService

        return RedisLockService.from_url(
            settings.redis_url,
            timeout=settings.lock_timeout_seconds,
        )

    from job_throttle.locks.memory_lock import InMemoryLockService

    logger.warning("No redis_url configured, throttling is limited to this process")
    return InMemoryLockService()
