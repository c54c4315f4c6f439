"""In-flight coalescer — one owner per composite key, everyone else waits.

Concurrent ``request_code`` calls for the same key attach to the first
caller's work and receive the very same ``RecoveryResult``.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import TYPE_CHECKING

from recovery_service.recovery.types import CompositeKey, ErrorKind, RecoveryResult

if TYPE_CHECKING:
    from redis.asyncio import Redis

logger = logging.getLogger(__name__)

# KEYS: result key, lease key. ARGV: owner token, result JSON, result TTL.
# Deletes the lease only while it still holds the owner's token.
PUBLISH_AND_RELEASE = """
redis.call('SET', KEYS[1], ARGV[2], 'EX', ARGV[3])
if redis.call('GET', KEYS[2]) == ARGV[1] then
    return redis.call('DEL', KEYS[2])
end
return 0
"""


class InFlightHandle:
    """Awaitable view of the outcome of one owner invocation."""

    def __init__(self, key: CompositeKey, future: asyncio.Future[RecoveryResult]) -> None:
        self.key = key
        self._future = future

    async def wait(self) -> RecoveryResult:
        # Shielded: a waiter giving up must not cancel the shared future
        return await asyncio.shield(self._future)

    def resolve(self, result: RecoveryResult) -> None:
        if not self._future.done():
            self._future.set_result(result)


class InFlightCoalescer:
    """Process-local single-flight map guarded by an ``asyncio.Lock``."""

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._entries: dict[CompositeKey, InFlightHandle] = {}

    async def attach(self, key: CompositeKey) -> tuple[bool, InFlightHandle]:
        """Return ``(True, handle)`` for the first caller, ``(False, handle)`` afterwards."""
        async with self._lock:
            handle = self._entries.get(key)
            if handle is not None:
                return False, handle
            handle = InFlightHandle(key, asyncio.get_running_loop().create_future())
            self._entries[key] = handle
            return True, handle

    async def complete(self, key: CompositeKey, result: RecoveryResult) -> None:
        """Publish *result* to every waiter and forget the key."""
        async with self._lock:
            handle = self._entries.pop(key, None)
        if handle is not None:
            handle.resolve(result)

    def is_in_flight(self, key: CompositeKey) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)


class _RemoteHandle(InFlightHandle):
    """Waits for an owner running in another process.

    The local caller that created this handle also fans the remote result out
    to same-process waiters attached to the local future.
    """

    def __init__(
        self,
        coalescer: RedisInFlightCoalescer,
        local: InFlightHandle,
        owner_token: str,
    ) -> None:
        super().__init__(local.key, local._future)
        self._coalescer = coalescer
        self._owner_token = owner_token

    async def wait(self) -> RecoveryResult:
        result = RecoveryResult.failure(
            ErrorKind.TIMEOUT, "Timed out waiting for the request already in progress."
        )
        try:
            result = await self._coalescer._poll_result(self.key, self._owner_token)
        finally:
            await self._coalescer._local.complete(self.key, result)
        return result


class RedisInFlightCoalescer:
    """Single-flight across service instances using a Redis lease.

    The owner holds ``recovery:inflight:<key>`` (``SET NX PX``) and publishes
    its result under ``recovery:result:<token>`` when done, releasing the
    lease in the same script only if it still owns it. Waiters in other
    processes poll for that result; waiters in this process share a local
    future so only one of them polls.
    """

    LEASE_PREFIX = "recovery:inflight:"
    RESULT_PREFIX = "recovery:result:"

    def __init__(
        self,
        redis: Redis,
        lease_seconds: float = 30.0,
        result_ttl_seconds: int = 10,
        poll_interval: float = 0.1,
    ) -> None:
        self._redis = redis
        self._lease_ms = int(lease_seconds * 1000)
        self._result_ttl = result_ttl_seconds
        self._poll_interval = poll_interval
        self._local = InFlightCoalescer()
        self._tokens: dict[CompositeKey, str] = {}
        self._publish = redis.register_script(PUBLISH_AND_RELEASE)

    def _lease_key(self, key: CompositeKey) -> str:
        return f"{self.LEASE_PREFIX}{key}"

    def _result_key(self, token: str) -> str:
        return f"{self.RESULT_PREFIX}{token}"

    async def attach(self, key: CompositeKey) -> tuple[bool, InFlightHandle]:
        is_local_owner, handle = await self._local.attach(key)
        if not is_local_owner:
            return False, handle

        token = uuid.uuid4().hex
        while True:
            if await self._redis.set(self._lease_key(key), token, nx=True, px=self._lease_ms):
                self._tokens[key] = token
                return True, handle
            owner_token = await self._redis.get(self._lease_key(key))
            if owner_token is not None:
                if isinstance(owner_token, bytes):
                    owner_token = owner_token.decode()
                logger.debug("Key %s is in flight on another instance", key)
                return False, _RemoteHandle(self, handle, owner_token)
            # Lease released between SET and GET; try again

    async def complete(self, key: CompositeKey, result: RecoveryResult) -> None:
        token = self._tokens.pop(key, None)
        try:
            if token is not None:
                released = await self._publish(
                    keys=[self._result_key(token), self._lease_key(key)],
                    args=[token, result.model_dump_json(), self._result_ttl],
                )
                if not released:
                    logger.warning("Lease on %s had already passed to another owner", key)
        finally:
            await self._local.complete(key, result)

    async def _poll_result(self, key: CompositeKey, token: str) -> RecoveryResult:
        while True:
            raw = await self._redis.get(self._result_key(token))
            if raw is not None:
                return RecoveryResult.model_validate_json(raw)
            lease = await self._redis.get(self._lease_key(key))
            if isinstance(lease, bytes):
                lease = lease.decode()
            if lease != token:
                # Check once more: the owner may have published just now
                raw = await self._redis.get(self._result_key(token))
                if raw is not None:
                    return RecoveryResult.model_validate_json(raw)
                logger.error("Owner of %s vanished without publishing a result", key)
                return RecoveryResult.failure(
                    ErrorKind.INTERNAL_FAULT,
                    "The request in progress was interrupted. Please try again.",
                )
            await asyncio.sleep(self._poll_interval)

    def is_in_flight(self, key: CompositeKey) -> bool:
        return self._local.is_in_flight(key)

    def __len__(self) -> int:
        return len(self._local)
