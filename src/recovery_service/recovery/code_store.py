"""Code store — composite key → issued recovery code.

Two backends share the ``CodeStore`` protocol: an in-memory dict for a
single-instance deployment, and Redis when several instances must agree on
which code is live.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
from typing import TYPE_CHECKING, Protocol

from recovery_service.recovery.policy import CODE_TTL_SECONDS, is_code_valid
from recovery_service.recovery.types import CodeRecord, CompositeKey

if TYPE_CHECKING:
    from redis.asyncio import Redis

logger = logging.getLogger(__name__)

CODE_MIN = 100000
CODE_MAX = 999999


def generate_code() -> str:
    """Draw a 6-digit code uniformly from [100000, 999999] using ``secrets``."""
    return str(CODE_MIN + secrets.randbelow(CODE_MAX - CODE_MIN + 1))


class CodeStore(Protocol):
    async def get(self, key: CompositeKey) -> CodeRecord | None: ...

    async def put_new(self, key: CompositeKey, code: str, now: float) -> CodeRecord: ...

    async def mark_delivered(self, key: CompositeKey) -> None: ...

    async def delete(self, key: CompositeKey) -> None: ...

    async def sweep_expired(self, now: float) -> list[CompositeKey]: ...

    async def items(
        self, prefix: str | None = None
    ) -> list[tuple[CompositeKey, CodeRecord]]: ...


class InMemoryCodeStore:
    """Lock-guarded in-memory code store.

    Each entry maps ``CompositeKey → CodeRecord``. Expired entries stay until
    :meth:`sweep_expired` runs; readers apply the TTL themselves.
    """

    def __init__(self, ttl: float = CODE_TTL_SECONDS) -> None:
        self._ttl = ttl
        self._lock = asyncio.Lock()
        self._records: dict[CompositeKey, CodeRecord] = {}

    async def get(self, key: CompositeKey) -> CodeRecord | None:
        async with self._lock:
            record = self._records.get(key)
            return record.model_copy() if record else None

    async def put_new(self, key: CompositeKey, code: str, now: float) -> CodeRecord:
        record = CodeRecord(code=code, issued_at=now, channel=key.channel)
        async with self._lock:
            self._records[key] = record
        return record.model_copy()

    async def mark_delivered(self, key: CompositeKey) -> None:
        async with self._lock:
            record = self._records.get(key)
            if record is not None:
                record.delivered = True

    async def delete(self, key: CompositeKey) -> None:
        async with self._lock:
            self._records.pop(key, None)

    async def sweep_expired(self, now: float) -> list[CompositeKey]:
        async with self._lock:
            expired = [
                key
                for key, record in self._records.items()
                if not is_code_valid(record.issued_at, now, self._ttl)
            ]
            for key in expired:
                del self._records[key]
        if expired:
            logger.info("Swept %d expired recovery code(s)", len(expired))
        return expired

    async def items(
        self, prefix: str | None = None
    ) -> list[tuple[CompositeKey, CodeRecord]]:
        async with self._lock:
            return [
                (key, record.model_copy())
                for key, record in self._records.items()
                if not prefix or key.account_id.startswith(prefix)
            ]

    def __len__(self) -> int:
        return len(self._records)


class RedisCodeStore:
    """Redis-backed code store shared by every service instance.

    Records are stored as JSON under ``recovery:code:<account>:<channel>``
    with an expiry equal to the code TTL, so Redis drops them on its own;
    :meth:`sweep_expired` catches anything left behind by clock skew.
    """

    KEY_PREFIX = "recovery:code:"

    def __init__(self, redis: Redis, ttl: float = CODE_TTL_SECONDS) -> None:
        self._redis = redis
        self._ttl = ttl

    def _key(self, key: CompositeKey) -> str:
        return f"{self.KEY_PREFIX}{key}"

    async def get(self, key: CompositeKey) -> CodeRecord | None:
        raw = await self._redis.get(self._key(key))
        if raw is None:
            return None
        return CodeRecord.model_validate_json(raw)

    async def put_new(self, key: CompositeKey, code: str, now: float) -> CodeRecord:
        record = CodeRecord(code=code, issued_at=now, channel=key.channel)
        await self._redis.set(
            self._key(key), record.model_dump_json(), ex=max(1, int(self._ttl))
        )
        return record

    async def mark_delivered(self, key: CompositeKey) -> None:
        record = await self.get(key)
        if record is None:
            return
        record.delivered = True
        await self._redis.set(self._key(key), record.model_dump_json(), keepttl=True)

    async def delete(self, key: CompositeKey) -> None:
        await self._redis.delete(self._key(key))

    async def sweep_expired(self, now: float) -> list[CompositeKey]:
        expired: list[CompositeKey] = []
        for key, record in await self.items():
            if not is_code_valid(record.issued_at, now, self._ttl):
                await self.delete(key)
                expired.append(key)
        if expired:
            logger.info("Swept %d expired recovery code(s) from Redis", len(expired))
        return expired

    async def items(
        self, prefix: str | None = None
    ) -> list[tuple[CompositeKey, CodeRecord]]:
        pattern = f"{self.KEY_PREFIX}{prefix or ''}*"
        found: list[tuple[CompositeKey, CodeRecord]] = []
        async for redis_key in self._redis.scan_iter(match=pattern):
            if isinstance(redis_key, bytes):
                redis_key = redis_key.decode()
            raw = await self._redis.get(redis_key)
            if raw is None:
                continue
            key = CompositeKey.parse(redis_key[len(self.KEY_PREFIX):])
            found.append((key, CodeRecord.model_validate_json(raw)))
        return found
