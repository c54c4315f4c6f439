"""WhatsApp Cloud API gateway — sends recovery codes as text messages."""

from __future__ import annotations

import logging

import httpx

from recovery_service.config import settings
from recovery_service.recovery.errors import GatewayError, GatewayTimeout
from recovery_service.recovery.types import DeliveryOutcome, mask_phone

logger = logging.getLogger(__name__)


class WhatsAppCloudGateway:
    """Delivers a code through the Meta WhatsApp Cloud API.

    A send counts as confirmed only on HTTP 200 with a message id in the reply.
    """

    def __init__(
        self,
        api_token: str | None = None,
        phone_number_id: str | None = None,
        base_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float | None = None,
    ) -> None:
        self._api_token = api_token or settings.whatsapp_api_token
        self._phone_number_id = phone_number_id or settings.whatsapp_phone_number_id
        self._base_url = (base_url or settings.whatsapp_api_base_url).rstrip("/")
        self._transport = transport
        self._timeout = httpx.Timeout(timeout or settings.delivery_timeout_seconds)

    async def send(self, destination: str, code: str, account_id: str) -> DeliveryOutcome:
        if not self._api_token:
            return DeliveryOutcome.failed("WhatsApp delivery is not configured")

        url = f"{self._base_url}/{self._phone_number_id}/messages"
        headers = {
            "Authorization": f"Bearer {self._api_token}",
            "Content-Type": "application/json",
        }
        payload = {
            "messaging_product": "whatsapp",
            "to": destination,
            "type": "text",
            "text": {
                "body": (
                    f"Your password recovery code for {settings.app_name} is {code}. "
                    "Do not share this code with anyone."
                )
            },
        }

        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=self._timeout) as client:
                resp = await client.post(url, json=payload, headers=headers)
        except httpx.TimeoutException as exc:
            raise GatewayTimeout("WhatsApp API timed out") from exc
        except httpx.HTTPError as exc:
            raise GatewayError(f"WhatsApp API unreachable ({type(exc).__name__})") from exc

        if resp.status_code != 200:
            logger.error(
                "WhatsApp API refused message for %s: %s", account_id, resp.status_code
            )
            return DeliveryOutcome.failed(f"WhatsApp API answered HTTP {resp.status_code}")

        try:
            messages = resp.json().get("messages") or []
        except (ValueError, AttributeError):
            messages = []
        if not messages or not isinstance(messages[0], dict) or not messages[0].get("id"):
            return DeliveryOutcome.failed("WhatsApp API did not return a message id")

        logger.info("WhatsApp message queued for %s (%s)", account_id, mask_phone(destination))
        return DeliveryOutcome.confirmed()
