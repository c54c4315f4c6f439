"""Value objects shared by the recovery components."""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

_NON_DIGITS = re.compile(r"\D")


def digits_only(value: str) -> str:
    return _NON_DIGITS.sub("", value or "")


class Channel(str, Enum):
    """Delivery channel for a recovery code."""

    EMAIL = "email"
    SMS = "sms"
    WHATSAPP = "whatsapp"

    @property
    def label(self) -> str:
        return _CHANNEL_LABELS[self]


_CHANNEL_LABELS = {
    Channel.EMAIL: "registered e-mail",
    Channel.SMS: "registered mobile via SMS",
    Channel.WHATSAPP: "registered WhatsApp",
}


class ErrorKind(str, Enum):
    INVALID_INPUT = "InvalidInput"
    ACCOUNT_NOT_FOUND = "AccountNotFound"
    CHANNEL_NOT_AVAILABLE = "ChannelNotAvailable"
    RATE_LIMITED = "RateLimited"
    DELIVERY_FAILED = "DeliveryFailed"
    TIMEOUT = "Timeout"
    INTERNAL_FAULT = "InternalFault"


@dataclass(frozen=True)
class CompositeKey:
    """Identifies one recovery flow: ``(account_id, channel)``."""

    account_id: str
    channel: Channel

    def __str__(self) -> str:
        return f"{self.account_id}:{self.channel.value}"

    @classmethod
    def parse(cls, raw: str) -> CompositeKey:
        account_id, _, channel = raw.rpartition(":")
        return cls(account_id=account_id, channel=Channel(channel))


@dataclass
class Contact:
    """Contact details returned by the identity resolver."""

    found: bool
    email: str | None = None
    phone: str | None = None
    name: str | None = None

    def destination_for(self, channel: Channel) -> str | None:
        """Return the raw destination for *channel*, or ``None`` when missing."""
        value = self.email if channel is Channel.EMAIL else self.phone
        value = (value or "").strip()
        return value or None


class CodeRecord(BaseModel):
    """A recovery code issued for one composite key."""

    code: str
    issued_at: float
    channel: Channel
    delivered: bool = False


@dataclass
class DeliveryOutcome:
    """Normalized result of one outbound delivery attempt."""

    success: bool
    reason: str = ""

    @classmethod
    def confirmed(cls) -> DeliveryOutcome:
        return cls(success=True)

    @classmethod
    def failed(cls, reason: str) -> DeliveryOutcome:
        return cls(success=False, reason=reason)


class RecoveryResult(BaseModel):
    """Response of ``request_code``; identical for every coalesced caller."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    success: bool
    message: str
    destination_masked: str | None = None
    reused: bool | None = None
    error_kind: ErrorKind | None = None
    retry_after_seconds: int | None = None

    @classmethod
    def ok(cls, destination_masked: str, channel: Channel, reused: bool = False) -> RecoveryResult:
        return cls(
            success=True,
            message=f"Recovery code sent to the {channel.label}.",
            destination_masked=destination_masked,
            reused=reused,
        )

    @classmethod
    def failure(
        cls, kind: ErrorKind, message: str, retry_after_seconds: int | None = None
    ) -> RecoveryResult:
        return cls(
            success=False,
            message=message,
            error_kind=kind,
            retry_after_seconds=retry_after_seconds,
        )

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# ── Masking ──────────────────────────────────────────────


def mask_email(email: str | None) -> str:
    """Mask an email for display: ``jo***@gm***.com``."""
    if not email or "@" not in email:
        return "***@***.com"
    local, _, domain = email.partition("@")
    name, dot, extension = domain.rpartition(".")
    if not dot:
        name, extension = domain, "com"
    return f"{local[:2]}***@{name[:2]}***.{extension}"


def mask_phone(phone: str | None) -> str:
    """Mask a phone number, keeping the last four digits: ``(**) *****-1234``."""
    digits = digits_only(phone or "")
    if len(digits) < 4:
        return "(**) *****-****"
    return f"(**) *****-{digits[-4:]}"


def mask_destination(channel: Channel, contact: Contact) -> str:
    if channel is Channel.EMAIL:
        return mask_email(contact.email)
    return mask_phone(contact.phone)
