"""Keyed JSON store with per-entry expiry.

Backed by Redis when a client is available. Without Redis, entries live in a
dictionary owned by the store instance, so state is scoped to whoever holds
the store and is lost on restart (at most once per process).
"""

import time
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

import orjson
import structlog


if TYPE_CHECKING:
    from redis.asyncio import Redis

logger = structlog.get_logger(__name__)

# Expired memory entries are swept on write at most once per interval
SWEEP_INTERVAL_SECONDS = 60.0


class TTLStore:
    """Expiring key/value store for small JSON documents."""

    def __init__(
        self,
        redis: "Redis | None" = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.redis = redis
        self._clock = clock
        self._entries: dict[str, tuple[float, bytes]] = {}
        self._next_sweep_at = clock() + SWEEP_INTERVAL_SECONDS

    @property
    def backend(self) -> str:
        return "redis" if self.redis is not None else "memory"

    async def put(self, key: str, value: dict[str, Any], ttl_seconds: int) -> None:
        """Store ``value`` under ``key`` for ``ttl_seconds``."""
        payload = orjson.dumps(value)
        if self.redis is not None:
            await self.redis.set(key, payload, ex=ttl_seconds)
            return
        now = self._clock()
        if now >= self._next_sweep_at:
            self._sweep(now)
        self._entries[key] = (now + ttl_seconds, payload)

    async def get(self, key: str) -> dict[str, Any] | None:
        """Read a live entry without consuming it."""
        if self.redis is not None:
            raw = await self.redis.get(key)
            return orjson.loads(raw) if raw is not None else None
        entry = self._live_entry(key)
        return orjson.loads(entry) if entry is not None else None

    async def pop(self, key: str) -> dict[str, Any] | None:
        """Read and delete an entry atomically.

        Only one caller ever receives a given entry.
        """
        if self.redis is not None:
            raw = await self.redis.getdel(key)
            return orjson.loads(raw) if raw is not None else None
        entry = self._live_entry(key)
        self._entries.pop(key, None)
        return orjson.loads(entry) if entry is not None else None

    async def delete(self, key: str) -> bool:
        """Delete an entry. Returns True if something was removed."""
        if self.redis is not None:
            return bool(await self.redis.delete(key))
        return self._entries.pop(key, None) is not None

    def _live_entry(self, key: str) -> bytes | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, payload = entry
        if expires_at <= self._clock():
            del self._entries[key]
            logger.debug("ttl_store_entry_expired", key=key)
            return None
        return payload

    def _sweep(self, now: float) -> None:
        expired = [key for key, (exp, _) in self._entries.items() if exp <= now]
        for key in expired:
            del self._entries[key]
        self._next_sweep_at = now + SWEEP_INTERVAL_SECONDS
        if expired:
            logger.debug("ttl_store_swept", removed=len(expired))
