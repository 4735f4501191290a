"""
Lock service clients.
"""

from job_throttle.locks.base import LockService, create_lock_service
from job_throttle.locks.memory_lock import InMemoryLockService
from job_throttle.locks.redis_lock import RedisLockService

__all__ = [
    "LockService",
    "create_lock_service",
    "InMemoryLockService",
    "RedisLockService",
]
