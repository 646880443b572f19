"""Ephemeral key/value store with mandatory per-entry TTL.

Holds exactly two kinds of short-lived secret: one-time authorization
codes and rotating refresh tokens.  Keys are namespaced by purpose by the
caller (see repos/grant_repo.py).

Contract
--------
  put(key, value, ttl)  overwrite any prior value; expires after ttl seconds
  get(key)              value, or None if absent or expired
  delete(key)           no-op when absent
  take(key)             fetch-and-remove in ONE indivisible step

``take`` is what makes codes and refresh tokens single-use.  A separate
get followed by delete lets two concurrent redemptions both observe the
value; ``take`` guarantees at most one caller ever sees it.

Failure model
-------------
The backend being unreachable is never reported as "absent": every
operation raises StoreUnavailableError instead, so the caller can decide
between invalid_grant (redemption) and server_error (issuance).
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Protocol, runtime_checkable

from redis.exceptions import RedisError, ResponseError

from tenant_idp.core.metrics import STORE_OPERATIONS
from tenant_idp.db.redis import redis_pool

logger = logging.getLogger(__name__)


class StoreUnavailableError(Exception):
    """The backing store could not complete the operation."""


@runtime_checkable
class EphemeralStore(Protocol):
    async def put(self, key: str, value: str, ttl_seconds: int) -> None: ...

    async def get(self, key: str) -> str | None: ...

    async def delete(self, key: str) -> None: ...

    async def take(self, key: str) -> str | None: ...


def _check_ttl(ttl_seconds: int) -> None:
    if ttl_seconds <= 0:
        raise ValueError(f"ttl_seconds must be positive (got {ttl_seconds})")


def _record(operation: str, value: str | None) -> None:
    STORE_OPERATIONS.labels(
        operation=operation, result="miss" if value is None else "hit"
    ).inc()


class InMemoryEphemeralStore:
    """Per-process store for dev and tests.

    TTL is enforced lazily on read against an injectable monotonic clock,
    so tests can step time forward instead of sleeping.  There is no await
    between the lookup and the pop in ``take``, which makes it atomic with
    respect to other coroutines on the event loop.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        # key -> (value, expires_at on self._clock)
        self._entries: dict[str, tuple[str, float]] = {}

    def _live(self, key: str) -> str | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None
        return value

    async def put(self, key: str, value: str, ttl_seconds: int) -> None:
        _check_ttl(ttl_seconds)
        self._entries[key] = (value, self._clock() + ttl_seconds)
        STORE_OPERATIONS.labels(operation="put", result="ok").inc()

    async def get(self, key: str) -> str | None:
        value = self._live(key)
        _record("get", value)
        return value

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)
        STORE_OPERATIONS.labels(operation="delete", result="ok").inc()

    async def take(self, key: str) -> str | None:
        value = self._live(key)
        if value is not None:
            del self._entries[key]
        _record("take", value)
        return value

    def clear(self) -> None:
        self._entries.clear()


class RedisEphemeralStore:
    """Redis-backed store shared by every API instance.

    ``take`` uses GETDEL (Redis >= 6.2).  Servers without it get the same
    semantics from a Lua script, which Redis also executes atomically.
    """

    _TAKE_SCRIPT = """
    local value = redis.call('GET', KEYS[1])
    if value then
        redis.call('DEL', KEYS[1])
    end
    return value
    """

    def __init__(self, redis_client) -> None:
        self._redis = redis_client
        self._has_getdel = True

    def _fail(self, operation: str, exc: Exception) -> StoreUnavailableError:
        STORE_OPERATIONS.labels(operation=operation, result="error").inc()
        logger.error("Ephemeral store %s failed: %s", operation, exc)
        return StoreUnavailableError(f"{operation} failed: {exc}")

    async def put(self, key: str, value: str, ttl_seconds: int) -> None:
        _check_ttl(ttl_seconds)
        try:
            # SET with EX writes value and TTL in one command; an overwrite
            # gets exactly the requested TTL, never the old one extended.
            await self._redis.set(key, value, ex=ttl_seconds)
        except (RedisError, OSError) as e:
            raise self._fail("put", e) from e
        STORE_OPERATIONS.labels(operation="put", result="ok").inc()

    async def get(self, key: str) -> str | None:
        try:
            value = await self._redis.get(key)
        except (RedisError, OSError) as e:
            raise self._fail("get", e) from e
        _record("get", value)
        return value

    async def delete(self, key: str) -> None:
        try:
            await self._redis.delete(key)
        except (RedisError, OSError) as e:
            raise self._fail("delete", e) from e
        STORE_OPERATIONS.labels(operation="delete", result="ok").inc()

    async def take(self, key: str) -> str | None:
        try:
            value = await self._take(key)
        except (RedisError, OSError) as e:
            raise self._fail("take", e) from e
        _record("take", value)
        return value

    async def _take(self, key: str) -> str | None:
        if self._has_getdel:
            try:
                return await self._redis.getdel(key)
            except ResponseError as e:
                if "unknown command" not in str(e).lower():
                    raise
                logger.warning("Redis lacks GETDEL - using scripted take")
                self._has_getdel = False
        return await self._redis.eval(self._TAKE_SCRIPT, 1, key)


# ---------------------------------------------------------------------------
# Module-level singleton - conditional on Redis availability
# ---------------------------------------------------------------------------

if redis_pool is not None:
    ephemeral_store: EphemeralStore = RedisEphemeralStore(redis_pool)
else:
    ephemeral_store = InMemoryEphemeralStore()
