"""
Optional Redis read cache for the dashboard surfaces (class list, stats).

Disabled unless ``REDIS_URL`` is configured. Every failure degrades to a
cache miss; the store stays the source of truth.
"""
from __future__ import annotations

import json
import hashlib
from typing import Any, Optional, Tuple

from redis.asyncio import Redis, ConnectionPool
from redis.asyncio.retry import Retry
from redis.backoff import ExponentialBackoff
from redis.exceptions import RedisError

import structlog
from vplan.config import settings
from vplan.exceptions import CacheError

log = structlog.get_logger(__name__)

KEY_PREFIX = "vplan:v1"

_pool: Optional[ConnectionPool] = None


# ── Pool lifecycle ────────────────────────────────────────────────────────────

async def init_redis_pool() -> None:
    global _pool
    if not settings.CACHE_ENABLED:
        log.info("redis.disabled")
        return
    _pool = ConnectionPool.from_url(
        settings.REDIS_URL,
        max_connections=settings.REDIS_POOL_SIZE,
        socket_timeout=settings.REDIS_SOCKET_TIMEOUT,
        socket_connect_timeout=settings.REDIS_SOCKET_TIMEOUT,
        decode_responses=True,
        retry=Retry(ExponentialBackoff(), retries=2),
        retry_on_error=[RedisError],
    )
    log.info("redis.pool.initialized", pool_size=settings.REDIS_POOL_SIZE)


async def close_redis_pool() -> None:
    global _pool
    if _pool:
        await _pool.aclose()
        _pool = None
        log.info("redis.pool.closed")


def get_redis() -> Redis:
    if _pool is None:
        raise CacheError("Redis pool not initialized")
    return Redis(connection_pool=_pool)


# ── Key builder ───────────────────────────────────────────────────────────────

def build_key(*parts: Any) -> str:
    raw = ":".join(str(p) for p in parts)
    digest = hashlib.sha256(raw.encode()).hexdigest()[:12]
    slug = raw[:60].replace(" ", "_")
    return f"{KEY_PREFIX}:{digest}:{slug}"


# ── Read-through primitives ──────────────────────────────────────────────────
#
# Two keys per logical entry:
#   <key>         → the payload, kept CACHE_STALE_GRACE seconds past its TTL
#   <key>:fresh   → sentinel that expires after the TTL
#
# cache_get reports (value, is_stale); callers refresh stale values.

async def cache_get(key: str) -> Tuple[Optional[Any], bool]:
    if _pool is None:
        return None, False
    try:
        r = get_redis()
        pipe = r.pipeline()
        await pipe.get(key)
        await pipe.exists(f"{key}:fresh")
        value_raw, is_fresh = await pipe.execute()

        if value_raw is None:
            return None, False

        return json.loads(value_raw), not bool(is_fresh)
    except RedisError as e:
        log.warning("cache.get.error", key=key, error=str(e))
        return None, False


async def cache_set(key: str, value: Any, ttl: int) -> None:
    if _pool is None:
        return
    try:
        r = get_redis()
        serialized = json.dumps(value, default=str)
        pipe = r.pipeline()
        await pipe.setex(key, ttl + settings.CACHE_STALE_GRACE, serialized)
        await pipe.setex(f"{key}:fresh", ttl, "1")
        await pipe.execute()
    except RedisError as e:
        log.warning("cache.set.error", key=key, error=str(e))


async def invalidate_pattern(pattern: str = f"{KEY_PREFIX}:*") -> int:
    """SCAN rather than KEYS so Redis is never blocked."""
    if _pool is None:
        return 0
    try:
        r = get_redis()
        deleted = 0
        async for key in r.scan_iter(match=pattern, count=100):
            await r.delete(key)
            deleted += 1
        if deleted:
            log.info("cache.invalidated", pattern=pattern, count=deleted)
        return deleted
    except RedisError as e:
        log.warning("cache.invalidate.error", pattern=pattern, error=str(e))
        return 0
