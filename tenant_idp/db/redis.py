"""Redis connection management.

When REDIS_URL is configured we create one shared connection pool; when it
is unset (local dev, tests) the ephemeral store falls back to an in-process
implementation and no Redis server is needed.

Unlike a cache, Redis is load-bearing for the OAuth core: authorization
codes and refresh tokens live only there.  Every command carries a socket
timeout (REDIS_TIMEOUT_MS) so a slow or unreachable server turns into a
prompt store failure instead of a hung request.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import redis.asyncio as aioredis

from tenant_idp.core.config import SETTINGS

logger = logging.getLogger(__name__)

if SETTINGS.redis_url:
    _timeout = SETTINGS.redis_timeout_ms / 1000
    redis_pool: aioredis.Redis | None = aioredis.from_url(  # type: ignore[type-arg]
        SETTINGS.redis_url,
        decode_responses=True,  # return str instead of bytes - less casting
        max_connections=20,
        socket_timeout=_timeout,
        socket_connect_timeout=_timeout,
    )
else:
    redis_pool = None


async def redis_status() -> str:
    """Return "ok", "degraded" or "not_configured" for /health and /ready."""
    if redis_pool is None:
        return "not_configured"
    try:
        await redis_pool.ping()  # type: ignore[misc]
    except Exception:
        logger.warning("Redis ping failed", exc_info=True)
        return "degraded"
    return "ok"


@asynccontextmanager
async def lifespan_redis():
    """Startup/shutdown hook for Redis.

    An unreachable Redis is logged, not fatal: the process still starts so
    /health can report it, and /ready keeps the instance out of rotation.
    """
    if redis_pool is None:
        logger.info("No REDIS_URL configured - ephemeral store is in-process only")
        yield
        return

    if await redis_status() == "ok":
        logger.info("Redis connected: %s", SETTINGS.redis_url)
    else:
        logger.error("Redis unreachable on startup - OAuth grants will fail")

    yield

    await redis_pool.aclose()
    logger.info("Redis connection pool closed")
