"""
In-process lock service for tests and single-process deployments.
"""

import threading
import time
from collections.abc import Callable
from uuid import uuid4


class InMemoryLockService:
    """
    Slot service backed by a dictionary.

    Same semantics as the Redis service but only visible to one process.
    The clock is injectable so lease expiry can be tested without sleeping.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._slots: dict[str, dict[str, float]] = {}
        self._mutex = threading.Lock()

    async def acquire(
        self,
        key: str,
        resources: int,
        stale_lock_expiration: float,
    ) -> str | None:
        """Take a slot for ``key`` if fewer than ``resources`` are live."""
        with self._mutex:
            now = self._clock()
            slots = self._slots.setdefault(key, {})
            self._expire(slots, now - stale_lock_expiration)

            if len(slots) >= resources:
                return None

            token = uuid4().hex
            slots[token] = now
            return token

    async def release(self, key: str, token: str) -> None:
        """Drop a slot. Unknown keys and tokens are ignored."""
        with self._mutex:
            slots = self._slots.get(key)
            if slots is None:
                return
            slots.pop(token, None)
            if not slots:
                del self._slots[key]

    async def close(self) -> None:
        with self._mutex:
            self._slots.clear()

    def active_slots(self, key: str, stale_lock_expiration: float | None = None) -> int:
        """
        Count slots held for ``key``.

        Args:
            key: The lock key.
            stale_lock_expiration: When given, slots older than this are not counted.
        """
        with self._mutex:
            slots = self._slots.get(key, {})
            if stale_lock_expiration is None:
                return len(slots)
            cutoff = self._clock() - stale_lock_expiration
            return sum(1 for acquired_at in slots.values() if acquired_at > cutoff)

    @staticmethod
    def _expire(slots: dict[str, float], cutoff: float) -> None:
        for token in [token for token, acquired_at in slots.items() if acquired_at <= cutoff]:
            del slots[token]
