"""
Redis backed lock service.

Each key is a sorted set of tokens scored by acquisition time in
milliseconds. Acquisition runs as one Lua script so expiry, counting and
insertion are atomic across workers. Time comes from the Redis server, so
worker clock skew does not affect lease expiry.
"""

import asyncio
import logging
from uuid import uuid4

from redis.asyncio import Redis
from redis.exceptions import RedisError

from job_throttle.exceptions import LockServiceError

logger = logging.getLogger(__name__)

ACQUIRE_SLOT_LUA = r"""
-- KEYS[1] = slots zset
-- ARGV[1] = token
-- ARGV[2] = resources (int)
-- ARGV[3] = stale_lock_expiration_ms (int)

local slots = KEYS[1]
local token = ARGV[1]
local resources = tonumber(ARGV[2])
local stale_ms = tonumber(ARGV[3])

local t = redis.call("TIME")
local now = tonumber(t[1]) * 1000 + math.floor(tonumber(t[2]) / 1000)

-- 1) Forget slots whose lease ran out
redis.call("ZREMRANGEBYSCORE", slots, "-inf", now - stale_ms)

-- 2) All slots taken
if redis.call("ZCARD", slots) >= resources then
  return false
end

-- 3) Take a slot; the whole set expires with its newest lease
redis.call("ZADD", slots, now, token)
redis.call("PEXPIRE", slots, stale_ms)

return token
"""


class RedisLockService:
    """
    Slot service shared by every worker connected to the same Redis.

    Failures and timeouts surface as LockServiceError.
    """

    def __init__(self, client: Redis, timeout: float | None = 5.0):
        """
        Initialize the service.

        Args:
            client: Redis client. Responses may be bytes or str.
            timeout: Seconds to wait for one round trip. None waits forever.
        """
        self._client = client
        self._timeout = timeout
        self._acquire_script = client.register_script(ACQUIRE_SLOT_LUA)

    @classmethod
    def from_url(cls, url: str, timeout: float | None = 5.0) -> "RedisLockService":
        """Create a service from a Redis URL."""
        return cls(Redis.from_url(url, decode_responses=True), timeout=timeout)

    async def acquire(
        self,
        key: str,
        resources: int,
        stale_lock_expiration: float,
    ) -> str | None:
        """Take a slot for ``key`` if fewer than ``resources`` are live."""
        token = uuid4().hex
        stale_ms = max(1, int(stale_lock_expiration * 1000))

        try:
            result = await asyncio.wait_for(
                self._acquire_script(keys=[key], args=[token, resources, stale_ms]),
                timeout=self._timeout,
            )
        except (RedisError, asyncio.TimeoutError) as e:
            raise LockServiceError(f"Failed to acquire slot for {key}: {e!r}", key=key) from e

        if not result:
            return None
        if isinstance(result, bytes):
            result = result.decode()
        return result

    async def release(self, key: str, token: str) -> None:
        """Remove a slot before its lease expires."""
        try:
            removed = await asyncio.wait_for(
                self._client.zrem(key, token),
                timeout=self._timeout,
            )
        except (RedisError, asyncio.TimeoutError) as e:
            raise LockServiceError(f"Failed to release slot for {key}: {e!r}", key=key) from e

        if not removed:
            logger.debug("Slot already expired", extra={"lock_key": key})

    async def close(self) -> None:
        await self._client.aclose()
