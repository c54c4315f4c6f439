"""Shared fixtures for the recovery tests."""

from __future__ import annotations

from itertools import count
from unittest.mock import AsyncMock

import pytest

from recovery_service.recovery.coalescer import InFlightCoalescer
from recovery_service.recovery.code_store import InMemoryCodeStore
from recovery_service.recovery.coordinator import RecoveryCoordinator
from recovery_service.recovery.rate_limiter import InMemoryRateLimiter
from recovery_service.recovery.types import Contact, DeliveryOutcome

START = 1_700_000_000.0


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, now: float = START) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def code_store():
    return InMemoryCodeStore()


@pytest.fixture
def rate_limiter():
    return InMemoryRateLimiter()


@pytest.fixture
def coalescer():
    return InFlightCoalescer()


@pytest.fixture
def identity():
    """Identity resolver that knows one account with both contacts."""
    resolver = AsyncMock()
    resolver.lookup.return_value = Contact(
        found=True, email="a@b.com", phone="(11) 98765-4321", name="Alice"
    )
    return resolver


@pytest.fixture
def dispatcher():
    """Dispatcher that confirms every send."""
    mock = AsyncMock()
    mock.send.return_value = DeliveryOutcome.confirmed()
    return mock


@pytest.fixture
def codes():
    """Deterministic code sequence: 100001, 100002, …"""
    sequence = count(100001)
    return lambda: str(next(sequence))


@pytest.fixture
def coordinator(identity, dispatcher, code_store, rate_limiter, coalescer, clock, codes):
    return RecoveryCoordinator(
        identity=identity,
        dispatcher=dispatcher,
        code_store=code_store,
        rate_limiter=rate_limiter,
        coalescer=coalescer,
        clock=clock,
        code_factory=codes,
        identity_timeout=1.0,
        delivery_timeout=1.0,
        wait_timeout=1.0,
    )
