"""Legacy backend delivery endpoint — one adapter per channel.

The legacy backend relays e-mail, SMS and WhatsApp messages through a single
form-encoded endpoint. Only two replies count as a confirmed send: the plain
text body ``enviado`` or a JSON object whose ``status`` is ``sucesso`` /
``success``. Anything else is a failure.
"""

from __future__ import annotations

import logging

import httpx

from recovery_service.config import settings
from recovery_service.recovery.errors import GatewayError, GatewayTimeout
from recovery_service.recovery.types import Channel, DeliveryOutcome

logger = logging.getLogger(__name__)

CONFIRMED_TEXT = "enviado"
CONFIRMED_STATUSES = {"sucesso", "success"}
MAX_REASON_LENGTH = 120
REJECTED_REASON = "The delivery service rejected the message. Please try another channel."


def interpret_reply(resp: httpx.Response) -> DeliveryOutcome:
    """Normalize a legacy backend reply to confirmed / failed."""
    if resp.status_code != 200:
        return DeliveryOutcome.failed(f"Delivery service answered HTTP {resp.status_code}")

    if resp.text.strip() == CONFIRMED_TEXT:
        return DeliveryOutcome.confirmed()

    try:
        data = resp.json()
    except ValueError:
        return DeliveryOutcome.failed("Delivery service did not confirm the send")

    if data == CONFIRMED_TEXT:
        return DeliveryOutcome.confirmed()
    if isinstance(data, dict):
        if str(data.get("status", "")).strip().lower() in CONFIRMED_STATUSES:
            return DeliveryOutcome.confirmed()
        for field in ("erro", "message", "error"):
            if data.get(field):
                # Provider text stays in the logs; callers only see a fixed reason
                logger.warning(
                    "Delivery service rejected the send: %s", str(data[field])[:MAX_REASON_LENGTH]
                )
                return DeliveryOutcome.failed(REJECTED_REASON)
    return DeliveryOutcome.failed("Delivery service did not confirm the send")


class LegacyDeliveryGateway:
    """Sends a recovery code through the legacy backend for one channel."""

    def __init__(
        self,
        channel: Channel,
        base_url: str | None = None,
        path: str | None = None,
        token: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float | None = None,
    ) -> None:
        self.channel = channel
        self._url = (base_url or settings.legacy_api_base_url).rstrip("/") + (
            path or settings.delivery_path
        )
        self._token = settings.legacy_api_token if token is None else token
        self._transport = transport
        self._timeout = httpx.Timeout(timeout or settings.delivery_timeout_seconds)

    def _form(self, destination: str, code: str, account_id: str) -> dict[str, str]:
        form = {
            "cartao": account_id,
            "metodo": self.channel.value,
            "codigo": code,
            "destino": destination,
        }
        if self.channel is Channel.EMAIL:
            form["email"] = destination
        else:
            form["celular"] = destination
            form["mensagem"] = (
                f"Your password recovery code is {code}. Do not share this code with anyone."
            )
            form[self.channel.value] = "true"
            if self._token:
                form["token"] = self._token
        return form

    async def send(self, destination: str, code: str, account_id: str) -> DeliveryOutcome:
        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=self._timeout) as client:
                resp = await client.post(self._url, data=self._form(destination, code, account_id))
        except httpx.TimeoutException as exc:
            raise GatewayTimeout(f"{self.channel.value} delivery service timed out") from exc
        except httpx.HTTPError as exc:
            raise GatewayError(
                f"{self.channel.value} delivery service unreachable ({type(exc).__name__})"
            ) from exc

        outcome = interpret_reply(resp)
        if not outcome.success:
            logger.debug("Legacy %s gateway reply status %s", self.channel.value, resp.status_code)
        return outcome


class LegacyCodeRegistry:
    """Registers issued codes with the legacy backend.

    The legacy password-change screen validates the code against its own
    table, so the code has to be inserted there before it is sent.
    """

    def __init__(
        self,
        base_url: str | None = None,
        path: str | None = None,
        token: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float | None = None,
    ) -> None:
        self._url = (base_url or settings.legacy_api_base_url).rstrip("/") + (
            path or settings.code_registry_path
        )
        self._token = settings.legacy_api_token if token is None else token
        self._transport = transport
        self._timeout = httpx.Timeout(timeout or settings.delivery_timeout_seconds)

    async def register(
        self, account_id: str, channel: Channel, code: str, destination: str
    ) -> DeliveryOutcome:
        form = {
            "cartao": account_id,
            "codigo": code,
            "operacao": "inserir",
            "admin_token": self._token,
            "metodo": channel.value,
            "destino": destination,
        }
        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=self._timeout) as client:
                resp = await client.post(self._url, data=form)
        except httpx.TimeoutException as exc:
            raise GatewayTimeout("Code registry timed out") from exc
        except httpx.HTTPError as exc:
            raise GatewayError(f"Code registry unreachable ({type(exc).__name__})") from exc
        return interpret_reply(resp)
