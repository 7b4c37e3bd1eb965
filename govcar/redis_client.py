import redis.asyncio as aioredis
from govcar.config import get_settings

settings = get_settings()

_redis_pool: aioredis.Redis | None = None


async def get_redis() -> aioredis.Redis:
    global _redis_pool
    if _redis_pool is None:
        _redis_pool = aioredis.from_url(
            settings.redis_url,
            encoding="utf-8",
            decode_responses=True,
            max_connections=50,
        )
    return _redis_pool


async def close_redis() -> None:
    global _redis_pool
    if _redis_pool:
        await _redis_pool.aclose()
        _redis_pool = None


# ---------------------------------------------------------------------------
# Lock helpers
# ---------------------------------------------------------------------------

async def acquire_lock(redis: aioredis.Redis, key: str, owner: str, ttl_seconds: int) -> bool:
    """SET NX with expiry. Returns True if this caller now holds the lock."""
    acquired = await redis.set(key, owner, nx=True, px=ttl_seconds * 1000)
    return bool(acquired)


async def release_lock(redis: aioredis.Redis, key: str, owner: str) -> None:
    """Delete the lock only if it is still held by `owner`."""
    current = await redis.get(key)
    if current == owner:
        await redis.delete(key)
