"""Delivery dispatcher — picks the gateway for a channel and normalizes its result."""

from __future__ import annotations

import logging
from typing import Protocol

from recovery_service.recovery.errors import GatewayError, GatewayTimeout
from recovery_service.recovery.types import (
    Channel,
    Contact,
    DeliveryOutcome,
    digits_only,
    mask_destination,
)
from recovery_service.services.legacy_gateway import LegacyCodeRegistry

logger = logging.getLogger(__name__)

MIN_PHONE_DIGITS = 10
MAX_PHONE_DIGITS = 13
# Numbers this short carry area code + subscriber only
LOCAL_PHONE_DIGITS = 11


class DeliveryGateway(Protocol):
    async def send(self, destination: str, code: str, account_id: str) -> DeliveryOutcome: ...


def normalize_phone(phone: str, country_code: str) -> str | None:
    """Reduce *phone* to digits and prefix *country_code* when it is missing.

    Returns ``None`` for numbers that cannot be valid mobile numbers.
    """
    digits = digits_only(phone)
    if not MIN_PHONE_DIGITS <= len(digits) <= MAX_PHONE_DIGITS:
        return None
    if len(digits) <= LOCAL_PHONE_DIGITS:
        digits = country_code + digits
    return digits


class DeliveryDispatcher:
    """Sends a code over one channel and reports ``confirmed`` or ``failed(reason)``.

    Never assumes success: a gateway exception or an unconfirmed reply is a
    failure. ``GatewayTimeout`` is re-raised so the caller can report a
    timeout. Reasons never contain the code itself.
    """

    def __init__(
        self,
        gateways: dict[Channel, DeliveryGateway],
        default_country_code: str = "55",
        registry: LegacyCodeRegistry | None = None,
    ) -> None:
        self._gateways = gateways
        self._country_code = default_country_code
        self._registry = registry

    def destination_for(self, channel: Channel, contact: Contact) -> str | None:
        raw = contact.destination_for(channel)
        if raw is None:
            return None
        if channel is Channel.EMAIL:
            return raw
        return normalize_phone(raw, self._country_code)

    async def send(
        self, channel: Channel, contact: Contact, code: str, account_id: str
    ) -> DeliveryOutcome:
        masked = mask_destination(channel, contact)
        gateway = self._gateways.get(channel)
        if gateway is None:
            return DeliveryOutcome.failed(f"No gateway configured for {channel.value}")

        if contact.destination_for(channel) is None:
            field = "e-mail address" if channel is Channel.EMAIL else "mobile number"
            return DeliveryOutcome.failed(f"No {field} registered")

        destination = self.destination_for(channel, contact)
        if destination is None:
            logger.warning("Invalid mobile number on file for %s (%s)", account_id, masked)
            return DeliveryOutcome.failed(
                "The registered mobile number is invalid. Please contact support."
            )

        logger.info("Dispatching %s code for %s to %s", channel.value, account_id, masked)
        try:
            if self._registry is not None:
                registered = await self._registry.register(account_id, channel, code, destination)
                if not registered.success:
                    return self._redacted(registered, code)
            outcome = await gateway.send(destination, code, account_id)
        except GatewayTimeout:
            logger.warning("%s gateway timed out for %s", channel.value, account_id)
            raise
        except GatewayError as exc:
            outcome = DeliveryOutcome.failed(str(exc))

        if not isinstance(outcome, DeliveryOutcome):
            outcome = DeliveryOutcome.failed("Delivery gateway returned an unexpected reply")
        if outcome.success:
            logger.info("Delivery of %s code confirmed for %s", channel.value, account_id)
            return outcome
        return self._redacted(outcome, code)

    @staticmethod
    def _redacted(outcome: DeliveryOutcome, code: str) -> DeliveryOutcome:
        reason = (outcome.reason or "Delivery failed").replace(code, "******")
        return DeliveryOutcome.failed(reason)
