"""Recovery coordinator — issues, delivers and reuses password recovery codes.

Per composite key the flow moves through::

    NO_CODE → PENDING_DELIVERY → DELIVERED → EXPIRED
              PENDING_DELIVERY → NO_CODE   (rollback after a failed send)

Only one invocation per key does the work at a time; every concurrent caller
for the same key attaches to it through the in-flight coalescer and receives
the same result.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from typing import TYPE_CHECKING, Protocol

from pydantic import BaseModel

from recovery_service.recovery.code_store import CodeStore, generate_code
from recovery_service.recovery.errors import (
    GatewayTimeout,
    IdentityLookupError,
    IdentityTimeout,
    RecoveryError,
)
from recovery_service.recovery.policy import RecoveryPolicy
from recovery_service.recovery.rate_limiter import RateLimiter
from recovery_service.recovery.types import (
    Channel,
    CodeRecord,
    CompositeKey,
    Contact,
    ErrorKind,
    RecoveryResult,
    digits_only,
    mask_destination,
)

if TYPE_CHECKING:
    from recovery_service.recovery.coalescer import InFlightCoalescer, InFlightHandle
    from recovery_service.services.dispatcher import DeliveryDispatcher

logger = logging.getLogger(__name__)

MAX_ACCOUNT_ID_DIGITS = 32
INTERNAL_FAULT_MESSAGE = "Something went wrong while sending the code. Please try again."


class IdentityResolver(Protocol):
    async def lookup(self, account_id: str) -> Contact: ...


class Coalescer(Protocol):
    async def attach(self, key: CompositeKey) -> tuple[bool, InFlightHandle]: ...

    async def complete(self, key: CompositeKey, result: RecoveryResult) -> None: ...

    def is_in_flight(self, key: CompositeKey) -> bool: ...


class PurgeReport(BaseModel):
    count: int
    keys: list[str]


class CodeInfo(BaseModel):
    """Operator view of one live code; the raw code only when revealed."""

    key: str
    account_id: str
    channel: Channel
    state: str
    issued_at: float
    age_seconds: int
    expires_in_seconds: int
    delivered: bool
    code_present: bool
    code_length: int
    code: str | None = None


def make_key(account_id: object, channel: object) -> CompositeKey:
    """Normalize raw request input into a composite key.

    Raises ``RecoveryError(InvalidInput)`` for anything unusable.
    """
    if not isinstance(account_id, str) or not isinstance(channel, str):
        raise RecoveryError(ErrorKind.INVALID_INPUT, "Card number and channel are required.")

    digits = digits_only(account_id)
    if not digits or len(digits) > MAX_ACCOUNT_ID_DIGITS:
        raise RecoveryError(ErrorKind.INVALID_INPUT, "A valid card number is required.")

    try:
        parsed = channel if isinstance(channel, Channel) else Channel(channel.strip().lower())
    except ValueError:
        raise RecoveryError(
            ErrorKind.INVALID_INPUT, "Channel must be one of: email, sms, whatsapp."
        ) from None
    return CompositeKey(account_id=digits, channel=parsed)


class RecoveryCoordinator:
    """Orchestrates identity lookup, coalescing, rate limiting, storage and delivery.

    Parameters
    ----------
    identity:
        Resolves an account id to contact details.
    dispatcher:
        Sends a code over a channel, returning a ``DeliveryOutcome``.
    code_store, rate_limiter, coalescer:
        Shared state; in-memory for one instance, Redis-backed for many.
    clock:
        Returns the current time in seconds; injectable for tests.
    code_factory:
        Produces fresh 6-digit codes.
    """

    def __init__(
        self,
        *,
        identity: IdentityResolver,
        dispatcher: DeliveryDispatcher,
        code_store: CodeStore,
        rate_limiter: RateLimiter,
        coalescer: Coalescer,
        policy: RecoveryPolicy | None = None,
        clock: Callable[[], float] = time.time,
        code_factory: Callable[[], str] = generate_code,
        identity_timeout: float = 10.0,
        delivery_timeout: float = 15.0,
        wait_timeout: float = 30.0,
        allow_reveal: bool = False,
    ) -> None:
        self._identity = identity
        self._dispatcher = dispatcher
        self._codes = code_store
        self._limiter = rate_limiter
        self._coalescer = coalescer
        self._policy = policy or RecoveryPolicy()
        self._clock = clock
        self._code_factory = code_factory
        self._identity_timeout = identity_timeout
        self._delivery_timeout = delivery_timeout
        self._wait_timeout = wait_timeout
        self._allow_reveal = allow_reveal
        self._tasks: set[asyncio.Task[RecoveryResult]] = set()

    # ── Public operations ────────────────────────────────

    async def request_code(self, account_id: object, channel: object) -> RecoveryResult:
        """Issue (or reuse) a recovery code for ``(account_id, channel)``.

        Never raises for expected outcomes; the failure is in the result.
        """
        try:
            key = make_key(account_id, channel)
            contact = await self._resolve(key)
            is_owner, handle = await self._coalescer.attach(key)
        except RecoveryError as exc:
            logger.info("Recovery request rejected: %s (%s)", exc.kind.value, exc.message)
            return exc.to_result()
        except Exception:
            logger.exception("Unexpected fault before issuing a recovery code")
            return RecoveryResult.failure(ErrorKind.INTERNAL_FAULT, INTERNAL_FAULT_MESSAGE)

        if not is_owner:
            logger.info("Request for %s attached to the one already in flight", key)
            try:
                return await asyncio.wait_for(handle.wait(), timeout=self._wait_timeout)
            except asyncio.TimeoutError:
                logger.warning("Gave up waiting for in-flight request on %s", key)
                return RecoveryResult.failure(
                    ErrorKind.TIMEOUT,
                    "Timed out waiting for the request already in progress.",
                )

        # The owner's work runs in its own task so a disconnecting client
        # only stops waiting; the dispatch itself always runs to the end.
        task = asyncio.create_task(self._run_owner(key, contact))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return await asyncio.shield(task)

    async def purge_expired(self) -> PurgeReport:
        """Delete every code older than the TTL. Cooldowns are left alone."""
        keys = await self._codes.sweep_expired(self._clock())
        return PurgeReport(count=len(keys), keys=[str(key) for key in keys])

    async def inspect(self, prefix: str | None = None, reveal: bool = False) -> list[CodeInfo]:
        """List live codes whose account id starts with *prefix*.

        The raw code is only included when *reveal* is requested and this
        deployment allows reveals; otherwise only its presence and length.
        """
        prefix_digits = None
        if prefix:
            prefix_digits = digits_only(prefix)
            if not prefix_digits:
                return []

        now = self._clock()
        show_code = reveal and self._allow_reveal
        entries = []
        for key, record in sorted(await self._codes.items(prefix_digits), key=lambda kv: str(kv[0])):
            if not self._policy.is_valid(record.issued_at, now):
                continue
            entries.append(self._describe(key, record, now, show_code))
        return entries

    async def wait_idle(self) -> None:
        """Wait for every owner task still running (used at shutdown)."""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    # ── Private helpers ──────────────────────────────────

    async def _resolve(self, key: CompositeKey) -> Contact:
        try:
            contact = await asyncio.wait_for(
                self._identity.lookup(key.account_id), timeout=self._identity_timeout
            )
        except (asyncio.TimeoutError, IdentityTimeout):
            raise RecoveryError(
                ErrorKind.TIMEOUT,
                "The account service did not answer in time. Please try again.",
            ) from None
        except IdentityLookupError as exc:
            logger.error("Account lookup failed for %s: %s", key.account_id, exc)
            raise RecoveryError(
                ErrorKind.INTERNAL_FAULT,
                "The account service is unavailable. Please try again later.",
            ) from None

        if contact is None or not contact.found:
            raise RecoveryError(ErrorKind.ACCOUNT_NOT_FOUND, "Card not found.")
        if contact.destination_for(key.channel) is None:
            what = "e-mail address" if key.channel is Channel.EMAIL else "mobile number"
            raise RecoveryError(
                ErrorKind.CHANNEL_NOT_AVAILABLE, f"No {what} is registered for this card."
            )
        return contact

    async def _run_owner(self, key: CompositeKey, contact: Contact) -> RecoveryResult:
        result = RecoveryResult.failure(ErrorKind.INTERNAL_FAULT, INTERNAL_FAULT_MESSAGE)
        try:
            result = await self._issue(key, contact)
        except RecoveryError as exc:
            result = exc.to_result()
        except Exception:
            logger.exception("Unexpected fault issuing a recovery code for %s", key)
        finally:
            # Must run on every path, or coalesced waiters hang forever
            await self._coalescer.complete(key, result)
        return result

    async def _issue(self, key: CompositeKey, contact: Contact) -> RecoveryResult:
        now = self._clock()
        masked = mask_destination(key.channel, contact)
        record = await self._codes.get(key)

        if (
            record is not None
            and record.delivered
            and self._policy.is_valid(record.issued_at, now)
        ):
            # Reuse is not a new send; only refresh the cooldown
            await self._limiter.mark(key, now)
            logger.info("Reusing delivered code for %s", key)
            return RecoveryResult.ok(masked, key.channel, reused=True)

        retry_after = await self._limiter.cooldown_remaining(key, now)
        if retry_after > 0:
            raise RecoveryError(
                ErrorKind.RATE_LIMITED,
                f"Please wait {retry_after} seconds before requesting a new code.",
                retry_after,
            )

        try:
            code = await self._code_to_send(key, record, now)
            await self._limiter.mark(key, now)
            outcome = await asyncio.wait_for(
                self._dispatcher.send(key.channel, contact, code, key.account_id),
                timeout=self._delivery_timeout,
            )
        except (asyncio.TimeoutError, GatewayTimeout):
            await self._rollback(key)
            logger.warning("Delivery via %s timed out for %s", key.channel.value, key.account_id)
            raise RecoveryError(
                ErrorKind.TIMEOUT,
                "The delivery service did not answer in time. Please try again.",
            ) from None
        except Exception:
            await self._rollback(key)
            raise

        if not outcome.success:
            await self._rollback(key)
            logger.warning(
                "Delivery via %s failed for %s: %s",
                key.channel.value,
                key.account_id,
                outcome.reason,
            )
            raise RecoveryError(
                ErrorKind.DELIVERY_FAILED,
                f"Could not send the recovery code. {outcome.reason}",
            )

        await self._codes.mark_delivered(key)
        logger.info("Recovery code delivered for %s", key)
        return RecoveryResult.ok(masked, key.channel)

    async def _code_to_send(
        self, key: CompositeKey, record: CodeRecord | None, now: float
    ) -> str:
        if record is not None:
            if self._policy.is_valid(record.issued_at, now) and not self._policy.is_abandoned(
                record.issued_at, record.delivered, now
            ):
                # Undelivered but recent: resend the same code, never two different ones
                return record.code
            logger.info("Discarding expired or abandoned code for %s", key)
            await self._codes.delete(key)

        code = self._code_factory()
        await self._codes.put_new(key, code, now)
        return code

    async def _rollback(self, key: CompositeKey) -> None:
        await self._codes.delete(key)
        await self._limiter.clear(key)
        logger.info("Rolled back code and cooldown for %s", key)

    def _describe(
        self, key: CompositeKey, record: CodeRecord, now: float, show_code: bool
    ) -> CodeInfo:
        age = now - record.issued_at
        return CodeInfo(
            key=str(key),
            account_id=key.account_id,
            channel=key.channel,
            state="DELIVERED" if record.delivered else "PENDING_DELIVERY",
            issued_at=record.issued_at,
            age_seconds=int(age),
            expires_in_seconds=max(0, int(self._policy.code_ttl - age)),
            delivered=record.delivered,
            code_present=bool(record.code),
            code_length=len(record.code),
            code=record.code if show_code else None,
        )
