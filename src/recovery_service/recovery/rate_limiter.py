"""Resend cooldown per composite key."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Protocol

from recovery_service.recovery.policy import RESEND_COOLDOWN_SECONDS, cooldown_remaining
from recovery_service.recovery.types import CompositeKey

if TYPE_CHECKING:
    from redis.asyncio import Redis


class RateLimiter(Protocol):
    async def should_block(self, key: CompositeKey, now: float) -> bool: ...

    async def cooldown_remaining(self, key: CompositeKey, now: float) -> int: ...

    async def mark(self, key: CompositeKey, now: float) -> None: ...

    async def clear(self, key: CompositeKey) -> None: ...


class InMemoryRateLimiter:
    """Remembers when each key last started an issuance.

    For single-instance deployments and tests.
    Use RedisRateLimiter when more than one instance serves requests.
    """

    def __init__(self, cooldown: float = RESEND_COOLDOWN_SECONDS) -> None:
        self.cooldown = cooldown
        self._lock = asyncio.Lock()
        self._last_issued: dict[CompositeKey, float] = {}

    async def should_block(self, key: CompositeKey, now: float) -> bool:
        return await self.cooldown_remaining(key, now) > 0

    async def cooldown_remaining(self, key: CompositeKey, now: float) -> int:
        async with self._lock:
            last = self._last_issued.get(key)
            remaining = cooldown_remaining(last, now, self.cooldown)
            if last is not None and remaining == 0:
                # Stale entry, drop it
                del self._last_issued[key]
        return remaining

    async def mark(self, key: CompositeKey, now: float) -> None:
        async with self._lock:
            self._last_issued[key] = now

    async def clear(self, key: CompositeKey) -> None:
        async with self._lock:
            self._last_issued.pop(key, None)

    def __contains__(self, key: object) -> bool:
        return key in self._last_issued


class RedisRateLimiter:
    """Redis-backed cooldown; entries expire with the cooldown window."""

    KEY_PREFIX = "recovery:rate:"

    def __init__(self, redis: Redis, cooldown: float = RESEND_COOLDOWN_SECONDS) -> None:
        self.redis = redis
        self.cooldown = cooldown

    def _key(self, key: CompositeKey) -> str:
        return f"{self.KEY_PREFIX}{key}"

    async def should_block(self, key: CompositeKey, now: float) -> bool:
        return await self.cooldown_remaining(key, now) > 0

    async def cooldown_remaining(self, key: CompositeKey, now: float) -> int:
        raw = await self.redis.get(self._key(key))
        last = float(raw) if raw is not None else None
        return cooldown_remaining(last, now, self.cooldown)

    async def mark(self, key: CompositeKey, now: float) -> None:
        await self.redis.set(self._key(key), repr(now), ex=max(1, int(self.cooldown)))

    async def clear(self, key: CompositeKey) -> None:
        await self.redis.delete(self._key(key))
