"""Short-lived per-participant cache of aggregated status views.

Shields the ledger from high-frequency status polling. Entries expire after
the configured TTL and are also dropped explicitly after any mutation for the
same address, so a participant who just registered never waits out a stale
"not registered" view.

Every invalidation also bumps a per-address generation. A reader takes the
generation before its ledger reads and stores its view with
``set_if_generation``, which refuses the write once the generation has moved
on. A slow read that started before an invalidation therefore cannot put its
stale view back.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from threading import Lock
from typing import Any

import redis.asyncio as redis_asyncio
from pydantic import ValidationError
from redis.exceptions import RedisError

from learn2earn.core.settings import Settings, settings
from learn2earn.schemas.status import StatusView
from learn2earn.utils.address import canonicalize_address
from learn2earn.utils.redaction import mask_address

logger = logging.getLogger(__name__)


class StatusCache:
    """Interface shared by the cache backends. Keys are canonical addresses."""

    ttl_seconds: float

    async def get(self, address: str) -> StatusView | None:
        raise NotImplementedError

    async def set(self, address: str, view: StatusView) -> None:
        raise NotImplementedError

    async def generation(self, address: str) -> Any:
        """Return an opaque token that changes whenever ``address`` is invalidated."""
        raise NotImplementedError

    async def set_if_generation(self, address: str, view: StatusView, generation: Any) -> bool:
        """Store ``view`` only if ``address`` is still at ``generation``.

        Returns:
            True if the view was stored.
        """
        raise NotImplementedError

    async def invalidate(self, address: str) -> bool:
        """Drop the entry for ``address``; return True if one existed."""
        raise NotImplementedError

    async def clear(self) -> None:
        raise NotImplementedError


class MemoryStatusCache(StatusCache):
    """In-process cache; one instance per process, per-key atomic under a lock."""

    def __init__(
        self,
        ttl_seconds: float,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, tuple[StatusView, float]] = {}
        self._generations: dict[str, int] = {}
        self._epoch = 0
        self._lock = Lock()

    async def get(self, address: str) -> StatusView | None:
        key = canonicalize_address(address)
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            view, captured_at = entry
            if now - captured_at >= self.ttl_seconds:
                self._entries.pop(key, None)
                return None
            return view

    async def set(self, address: str, view: StatusView) -> None:
        key = canonicalize_address(address)
        with self._lock:
            self._entries[key] = (view, self._clock())

    async def generation(self, address: str) -> tuple[int, int]:
        key = canonicalize_address(address)
        with self._lock:
            return self._epoch, self._generations.get(key, 0)

    async def set_if_generation(
        self,
        address: str,
        view: StatusView,
        generation: tuple[int, int],
    ) -> bool:
        key = canonicalize_address(address)
        with self._lock:
            if (self._epoch, self._generations.get(key, 0)) != generation:
                return False
            self._entries[key] = (view, self._clock())
            return True

    async def invalidate(self, address: str) -> bool:
        key = canonicalize_address(address)
        with self._lock:
            existed = self._entries.pop(key, None) is not None
            self._generations[key] = self._generations.get(key, 0) + 1
        if existed:
            logger.debug("Status cache cleared for %s", mask_address(key))
        return existed

    async def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._generations.clear()
            self._epoch += 1

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


# KEYS: epoch key, generation key, entry key. ARGV: expected token, payload, ttl ms.
_SET_IF_GENERATION_SCRIPT = """
local epoch = redis.call('GET', KEYS[1]) or '0'
local generation = redis.call('GET', KEYS[2]) or '0'
if epoch .. ':' .. generation ~= ARGV[1] then
    return 0
end
redis.call('SET', KEYS[3], ARGV[2], 'PX', ARGV[3])
return 1
"""


class RedisStatusCache(StatusCache):
    """Redis-backed cache for deployments running several API processes.

    Redis enforces the TTL through key expiry. Redis failures and unreadable
    payloads degrade to a cache miss on read and are logged on write; they
    never fail a request. Generations live under their own prefix so that
    ``clear`` never resets them.
    """

    def __init__(
        self,
        client: Any,
        ttl_seconds: float,
        *,
        prefix: str = "status:",
        generation_prefix: str = "status-gen:",
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self._redis = client
        self._prefix = prefix
        self._generation_prefix = generation_prefix

    def _key(self, address: str) -> str:
        return f"{self._prefix}{canonicalize_address(address)}"

    def _generation_key(self, address: str) -> str:
        return f"{self._generation_prefix}{canonicalize_address(address)}"

    @property
    def _epoch_key(self) -> str:
        return f"{self._generation_prefix}epoch"

    @property
    def _ttl_ms(self) -> int:
        return max(1, int(self.ttl_seconds * 1000))

    async def get(self, address: str) -> StatusView | None:
        try:
            payload = await self._redis.get(self._key(address))
        except RedisError as exc:
            logger.warning("Status cache read failed for %s: %s", mask_address(address), exc)
            return None
        if payload is None:
            return None
        try:
            return StatusView.model_validate_json(payload)
        except ValidationError:
            logger.warning("Discarding unreadable cached status for %s", mask_address(address))
            return None

    async def set(self, address: str, view: StatusView) -> None:
        try:
            await self._redis.set(
                self._key(address), view.model_dump_json(by_alias=True), px=self._ttl_ms
            )
        except RedisError as exc:
            logger.warning("Status cache write failed for %s: %s", mask_address(address), exc)

    async def generation(self, address: str) -> str | None:
        try:
            epoch, generation = await self._redis.mget(
                self._epoch_key, self._generation_key(address)
            )
        except RedisError as exc:
            logger.warning(
                "Status cache generation read failed for %s: %s", mask_address(address), exc
            )
            return None
        return f"{int(epoch or 0)}:{int(generation or 0)}"

    async def set_if_generation(
        self,
        address: str,
        view: StatusView,
        generation: str | None,
    ) -> bool:
        if generation is None:
            return False
        try:
            stored = await self._redis.eval(
                _SET_IF_GENERATION_SCRIPT,
                3,
                self._epoch_key,
                self._generation_key(address),
                self._key(address),
                generation,
                view.model_dump_json(by_alias=True),
                self._ttl_ms,
            )
        except RedisError as exc:
            logger.warning("Status cache write failed for %s: %s", mask_address(address), exc)
            return False
        return bool(stored)

    async def invalidate(self, address: str) -> bool:
        # Bump first: a reader that stores between these two calls is then
        # either refused or deleted.
        try:
            await self._redis.incr(self._generation_key(address))
            return bool(await self._redis.delete(self._key(address)))
        except RedisError as exc:
            logger.warning("Status cache delete failed for %s: %s", mask_address(address), exc)
            return False

    async def clear(self) -> None:
        try:
            await self._redis.incr(self._epoch_key)
            keys = [key async for key in self._redis.scan_iter(match=f"{self._prefix}*")]
            if keys:
                await self._redis.delete(*keys)
        except RedisError as exc:
            logger.warning("Status cache clear failed: %s", exc)


def build_status_cache(config: Settings | None = None) -> StatusCache:
    """Construct the cache backend selected in configuration."""
    config = config or settings
    if config.status_cache_backend == "redis":
        client = redis_asyncio.from_url(config.redis_url)
        return RedisStatusCache(client, config.status_cache_ttl_seconds)
    return MemoryStatusCache(config.status_cache_ttl_seconds)


class _StatusCacheSingleton:
    """Process-wide cache instance."""

    _instance: StatusCache | None = None

    @classmethod
    def get_instance(cls) -> StatusCache:
        if cls._instance is None:
            cls._instance = build_status_cache()
        return cls._instance


def get_status_cache() -> StatusCache:
    """Return the process-wide status cache."""
    return _StatusCacheSingleton.get_instance()
