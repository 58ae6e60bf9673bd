"""Versioned read-through cache for leaderboard reads.

Flow:  get_leaderboard -> cache hit  -> return (no repository read)
                       -> cache miss -> repository -> populate -> return
       record_entry / set_status -> repository -> write through

Every value is stored with the competition version it was built from, and
``set`` refuses to replace a newer version with an older one.  A reader
that loaded the board before a concurrent write therefore cannot put the
pre-write board back after the writer stored the new one.  Entries still
expire after LEADERBOARD_CACHE_TTL seconds, so a lost write-through heals
within one TTL.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from app.db.redis import redis_pool


def leaderboard_key(competition_id: str) -> str:
    return f"leaderboard:{competition_id}"


@runtime_checkable
class CacheService(Protocol):
    async def get(self, key: str) -> str | None:
        """Fetch a cached value.  Returns None on cache miss."""
        ...

    async def set(self, key: str, value: str, ttl_seconds: int, *, version: int) -> bool:
        """Store ``value`` unless a newer version is already cached.

        Returns False when the write was refused.
        """
        ...


class InMemoryCacheService:
    """Process-local cache for dev and tests; TTL is not enforced.

    The autouse fixture in conftest.py clears the store between tests.
    """

    def __init__(self) -> None:
        self._store: dict[str, tuple[int, str]] = {}

    async def get(self, key: str) -> str | None:
        cached = self._store.get(key)
        return cached[1] if cached is not None else None

    async def set(self, key: str, value: str, ttl_seconds: int, *, version: int) -> bool:
        cached = self._store.get(key)
        if cached is not None and cached[0] > version:
            return False
        self._store[key] = (version, value)
        return True

    def clear(self) -> None:
        self._store.clear()


# Compare-and-set runs inside Redis so two API instances cannot interleave
# between the version check and the write.
_SET_IF_NEWER = """
local current = redis.call('HGET', KEYS[1], 'version')
if current and tonumber(current) > tonumber(ARGV[1]) then
    return 0
end
redis.call('HSET', KEYS[1], 'version', ARGV[1], 'value', ARGV[2])
redis.call('EXPIRE', KEYS[1], ARGV[3])
return 1
"""


class RedisCacheService:
    """Redis-backed cache shared by every API instance."""

    _PREFIX = "cache:"

    def __init__(self, redis_client) -> None:
        self._redis = redis_client
        self._set_if_newer = redis_client.register_script(_SET_IF_NEWER)

    async def get(self, key: str) -> str | None:
        return await self._redis.hget(f"{self._PREFIX}{key}", "value")

    async def set(self, key: str, value: str, ttl_seconds: int, *, version: int) -> bool:
        stored = await self._set_if_newer(
            keys=[f"{self._PREFIX}{key}"], args=[version, value, ttl_seconds]
        )
        return bool(stored)


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------

if redis_pool is not None:
    cache_service: CacheService = RedisCacheService(redis_pool)
else:
    cache_service = InMemoryCacheService()
