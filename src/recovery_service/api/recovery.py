"""Recovery code endpoint consumed by the member portal UI."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel

from recovery_service.dependencies import get_coordinator
from recovery_service.recovery.coordinator import RecoveryCoordinator
from recovery_service.recovery.types import ErrorKind, RecoveryResult

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/recovery", tags=["recovery"])

STATUS_BY_KIND = {
    ErrorKind.INVALID_INPUT: 400,
    ErrorKind.CHANNEL_NOT_AVAILABLE: 400,
    ErrorKind.ACCOUNT_NOT_FOUND: 404,
    ErrorKind.RATE_LIMITED: 429,
    ErrorKind.DELIVERY_FAILED: 502,
    ErrorKind.TIMEOUT: 504,
    ErrorKind.INTERNAL_FAULT: 500,
}


class RecoveryCodeRequest(BaseModel):
    """Raw input; the coordinator normalizes and validates it.

    Fields accept any JSON value; the coordinator answers malformed ones
    with ``InvalidInput``.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    account_id: Any = None
    channel: Any = None

    @field_validator("account_id", mode="before")
    @classmethod
    def _numbers_as_text(cls, value: Any) -> Any:
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value


def _respond(result: RecoveryResult) -> JSONResponse:
    if result.success:
        return JSONResponse(content=result.to_wire())

    status_code = STATUS_BY_KIND.get(result.error_kind, 500)
    headers = None
    if result.retry_after_seconds:
        headers = {"Retry-After": str(result.retry_after_seconds)}
    return JSONResponse(content=result.to_wire(), status_code=status_code, headers=headers)


@router.post("/code")
async def request_recovery_code(
    request: Request,
    coordinator: RecoveryCoordinator = Depends(get_coordinator),
) -> JSONResponse:
    """Send (or reuse) a password recovery code over the requested channel.

    Expected body::

        { "accountId": "123.456.789-01", "channel": "email" | "sms" | "whatsapp" }
    """
    try:
        payload = await request.json()
    except ValueError:
        payload = None

    if not isinstance(payload, dict):
        logger.info("Recovery request rejected: body is not a JSON object")
        return _respond(
            RecoveryResult.failure(
                ErrorKind.INVALID_INPUT, "Card number and channel are required."
            )
        )

    body = RecoveryCodeRequest.model_validate(payload)
    result = await coordinator.request_code(body.account_id, body.channel)
    return _respond(result)
