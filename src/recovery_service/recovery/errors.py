"""Exceptions raised inside the recovery flow."""

from __future__ import annotations

from recovery_service.recovery.types import ErrorKind, RecoveryResult


class RecoveryError(Exception):
    """An expected, user-facing outcome that ends a ``request_code`` call."""

    def __init__(
        self, kind: ErrorKind, message: str, retry_after: int | None = None
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.retry_after = retry_after

    def to_result(self) -> RecoveryResult:
        return RecoveryResult.failure(self.kind, self.message, self.retry_after)


class IdentityLookupError(Exception):
    """The account lookup service could not be reached or answered garbage."""


class IdentityTimeout(IdentityLookupError):
    """The account lookup service did not answer in time."""


class GatewayError(Exception):
    """A delivery gateway failed; the message is safe to show to support staff."""


class GatewayTimeout(GatewayError):
    """A delivery gateway did not answer within the delivery budget."""
