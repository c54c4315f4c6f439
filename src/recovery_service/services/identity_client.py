"""Identity resolver — async HTTP client for the legacy account lookup.

The legacy backend takes a form-encoded ``cartao`` (the member's card number)
and answers with a JSON document describing the account. ``situacao == 3`` or
a missing ``matricula`` means the card is unknown.
"""

from __future__ import annotations

import logging

import httpx

from recovery_service.config import settings
from recovery_service.recovery.errors import IdentityLookupError, IdentityTimeout
from recovery_service.recovery.types import Contact

logger = logging.getLogger(__name__)

SITUATION_NOT_FOUND = 3


class LegacyIdentityClient:
    """Async HTTP wrapper around the legacy account-lookup endpoint."""

    def __init__(
        self,
        base_url: str | None = None,
        lookup_path: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float | None = None,
    ) -> None:
        self._base_url = (base_url or settings.legacy_api_base_url).rstrip("/")
        self._lookup_path = lookup_path or settings.identity_lookup_path
        self._transport = transport
        self._timeout = httpx.Timeout(timeout or settings.identity_timeout_seconds)

    async def lookup(self, account_id: str) -> Contact:
        """Resolve *account_id* to contact details.

        Returns ``Contact(found=False)`` when the backend does not know the
        account; raises ``IdentityLookupError`` when it cannot tell.
        """
        url = f"{self._base_url}{self._lookup_path}"
        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=self._timeout) as client:
                resp = await client.post(url, data={"cartao": account_id})
        except httpx.TimeoutException as exc:
            logger.warning("Account lookup timed out for %s", account_id)
            raise IdentityTimeout("Account lookup timed out") from exc
        except httpx.HTTPError as exc:
            logger.exception("Account lookup request error: %s", exc)
            raise IdentityLookupError("Account service unavailable") from exc

        if resp.status_code == 404:
            return Contact(found=False)
        if resp.status_code != 200:
            logger.error("Account lookup failed: %s", resp.status_code)
            raise IdentityLookupError(f"Account service answered {resp.status_code}")

        try:
            data = resp.json()
        except ValueError as exc:
            logger.error("Account lookup returned a non-JSON body for %s", account_id)
            raise IdentityLookupError("Account service returned an unreadable reply") from exc

        if not isinstance(data, dict) or not data:
            return Contact(found=False)
        if data.get("situacao") in (SITUATION_NOT_FOUND, str(SITUATION_NOT_FOUND)):
            return Contact(found=False)
        if not data.get("matricula"):
            return Contact(found=False)

        return Contact(
            found=True,
            email=_clean(data.get("email")),
            phone=_clean(data.get("cel")),
            name=_clean(data.get("nome")),
        )


def _clean(value: object) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None
