"""Tests for the clock / TTL policy."""

from recovery_service.recovery.policy import (
    RecoveryPolicy,
    cooldown_remaining,
    is_abandoned,
    is_code_valid,
)


def test_code_valid_until_ttl():
    assert is_code_valid(issued_at=0, now=599.9)
    assert not is_code_valid(issued_at=0, now=600)


def test_cooldown_rounds_up():
    assert cooldown_remaining(None, now=100) == 0
    assert cooldown_remaining(0, now=10) == 50
    assert cooldown_remaining(0, now=59.5) == 1
    assert cooldown_remaining(0, now=60) == 0


def test_abandoned_only_when_undelivered_and_old():
    assert is_abandoned(issued_at=0, delivered=False, now=30)
    assert not is_abandoned(issued_at=0, delivered=False, now=29)
    assert not is_abandoned(issued_at=0, delivered=True, now=500)


def test_policy_uses_configured_windows():
    policy = RecoveryPolicy(code_ttl=10, resend_cooldown=5, in_flight_window=2)
    assert policy.is_valid(0, 9)
    assert not policy.is_valid(0, 10)
    assert policy.cooldown_remaining(0, 1) == 4
    assert policy.is_abandoned(0, False, 2)
