"""Tests for the DeliveryDispatcher — contact checks, phone normalization, result normalization."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from recovery_service.recovery.errors import GatewayError, GatewayTimeout
from recovery_service.recovery.types import Channel, Contact, DeliveryOutcome
from recovery_service.services.dispatcher import DeliveryDispatcher, normalize_phone

ACCOUNT = "12345678901"
CONTACT = Contact(found=True, email="alice@example.com", phone="(11) 98765-4321")


@pytest.fixture
def gateway():
    mock = AsyncMock()
    mock.send.return_value = DeliveryOutcome.confirmed()
    return mock


@pytest.fixture
def dispatcher(gateway):
    return DeliveryDispatcher({channel: gateway for channel in Channel})


def test_normalize_phone():
    assert normalize_phone("(11) 98765-4321", "55") == "5511987654321"
    assert normalize_phone("5521912345678", "55") == "5521912345678"
    assert normalize_phone("1133334444", "55") == "551133334444"
    assert normalize_phone("12345", "55") is None
    assert normalize_phone("12345678901234", "55") is None


@pytest.mark.asyncio
async def test_email_goes_to_address(dispatcher, gateway):
    outcome = await dispatcher.send(Channel.EMAIL, CONTACT, "123456", ACCOUNT)

    assert outcome.success is True
    gateway.send.assert_awaited_once_with("alice@example.com", "123456", ACCOUNT)


@pytest.mark.asyncio
async def test_sms_phone_gets_country_code(dispatcher, gateway):
    await dispatcher.send(Channel.SMS, CONTACT, "123456", ACCOUNT)

    gateway.send.assert_awaited_once_with("5511987654321", "123456", ACCOUNT)


@pytest.mark.asyncio
async def test_missing_contact_fails_without_calling_gateway(dispatcher, gateway):
    outcome = await dispatcher.send(
        Channel.WHATSAPP, Contact(found=True, email="a@b.com", phone="  "), "123456", ACCOUNT
    )

    assert outcome.success is False
    assert "mobile number" in outcome.reason
    gateway.send.assert_not_called()


@pytest.mark.asyncio
async def test_invalid_phone_fails_without_calling_gateway(dispatcher, gateway):
    outcome = await dispatcher.send(
        Channel.SMS, Contact(found=True, phone="12345"), "123456", ACCOUNT
    )

    assert outcome.success is False
    assert "contact support" in outcome.reason
    gateway.send.assert_not_called()


@pytest.mark.asyncio
async def test_gateway_error_becomes_failure(dispatcher, gateway):
    gateway.send.side_effect = GatewayError("sms delivery service unreachable (ConnectError)")

    outcome = await dispatcher.send(Channel.SMS, CONTACT, "123456", ACCOUNT)

    assert outcome == DeliveryOutcome.failed("sms delivery service unreachable (ConnectError)")


@pytest.mark.asyncio
async def test_ambiguous_gateway_reply_is_failure(dispatcher, gateway):
    gateway.send.return_value = "probably sent"

    outcome = await dispatcher.send(Channel.EMAIL, CONTACT, "123456", ACCOUNT)

    assert outcome.success is False


@pytest.mark.asyncio
async def test_failure_reason_never_contains_code(dispatcher, gateway):
    gateway.send.return_value = DeliveryOutcome.failed("could not deliver 123456 to handset")

    outcome = await dispatcher.send(Channel.SMS, CONTACT, "123456", ACCOUNT)

    assert "123456" not in outcome.reason
    assert "******" in outcome.reason


@pytest.mark.asyncio
async def test_missing_gateway_is_failure():
    dispatcher = DeliveryDispatcher({})

    outcome = await dispatcher.send(Channel.EMAIL, CONTACT, "123456", ACCOUNT)

    assert outcome.success is False


@pytest.mark.asyncio
async def test_registry_runs_before_gateway(gateway):
    registry = AsyncMock()
    registry.register.return_value = DeliveryOutcome.confirmed()
    dispatcher = DeliveryDispatcher({Channel.SMS: gateway}, registry=registry)

    outcome = await dispatcher.send(Channel.SMS, CONTACT, "123456", ACCOUNT)

    assert outcome.success is True
    registry.register.assert_awaited_once_with(ACCOUNT, Channel.SMS, "123456", "5511987654321")


@pytest.mark.asyncio
async def test_failed_registration_skips_delivery(gateway):
    registry = AsyncMock()
    registry.register.return_value = DeliveryOutcome.failed("invalid admin token")
    dispatcher = DeliveryDispatcher({Channel.EMAIL: gateway}, registry=registry)

    outcome = await dispatcher.send(Channel.EMAIL, CONTACT, "123456", ACCOUNT)

    assert outcome.success is False
    gateway.send.assert_not_called()


@pytest.mark.asyncio
async def test_gateway_timeout_propagates(dispatcher, gateway):
    gateway.send.side_effect = GatewayTimeout("sms delivery service timed out")

    with pytest.raises(GatewayTimeout):
        await dispatcher.send(Channel.SMS, CONTACT, "123456", ACCOUNT)
