"""Tests for the in-flight coalescer."""

from __future__ import annotations

import asyncio

import pytest

from recovery_service.recovery.coalescer import InFlightCoalescer
from recovery_service.recovery.types import Channel, CompositeKey, ErrorKind, RecoveryResult

KEY = CompositeKey("12345678901", Channel.SMS)
OTHER = CompositeKey("12345678901", Channel.EMAIL)


@pytest.mark.asyncio
async def test_first_caller_owns_the_key():
    coalescer = InFlightCoalescer()

    is_owner, handle = await coalescer.attach(KEY)
    again, same_handle = await coalescer.attach(KEY)
    other_owner, _ = await coalescer.attach(OTHER)

    assert is_owner is True
    assert again is False
    assert same_handle is handle
    assert other_owner is True
    assert len(coalescer) == 2


@pytest.mark.asyncio
async def test_complete_releases_every_waiter_and_forgets_key():
    coalescer = InFlightCoalescer()
    _, handle = await coalescer.attach(KEY)
    _, waiter = await coalescer.attach(KEY)
    result = RecoveryResult.ok("(**) *****-4321", Channel.SMS)

    waiters = [asyncio.create_task(waiter.wait()) for _ in range(3)]
    await asyncio.sleep(0)
    await coalescer.complete(KEY, result)

    assert await asyncio.gather(*waiters) == [result, result, result]
    assert await handle.wait() == result
    assert not coalescer.is_in_flight(KEY)

    is_owner, _ = await coalescer.attach(KEY)
    assert is_owner is True


@pytest.mark.asyncio
async def test_cancelled_waiter_does_not_cancel_the_outcome():
    coalescer = InFlightCoalescer()
    _, handle = await coalescer.attach(KEY)
    impatient = asyncio.create_task(handle.wait())
    patient = asyncio.create_task(handle.wait())
    await asyncio.sleep(0)

    impatient.cancel()
    await asyncio.sleep(0)
    result = RecoveryResult.failure(ErrorKind.DELIVERY_FAILED, "gateway down")
    await coalescer.complete(KEY, result)

    assert impatient.cancelled()
    assert await patient == result


@pytest.mark.asyncio
async def test_complete_unknown_key_is_a_no_op():
    coalescer = InFlightCoalescer()
    await coalescer.complete(KEY, RecoveryResult.ok("x", Channel.SMS))
    assert len(coalescer) == 0
