"""Operator-only admin surface: inspect and purge recovery codes."""

from __future__ import annotations

import logging
import secrets

from fastapi import APIRouter, Depends, Header, HTTPException, Query

from recovery_service.config import settings
from recovery_service.dependencies import get_coordinator
from recovery_service.recovery.coordinator import CodeInfo, PurgeReport, RecoveryCoordinator

logger = logging.getLogger(__name__)


def require_operator(x_operator_token: str | None = Header(None)) -> None:
    """Reject callers that do not present the operator token."""
    if not settings.operator_token:
        raise HTTPException(status_code=503, detail="Admin surface is disabled")
    if not x_operator_token or not secrets.compare_digest(
        x_operator_token, settings.operator_token
    ):
        logger.warning("Rejected admin request with a missing or wrong operator token")
        raise HTTPException(status_code=401, detail="Operator authentication required")


router = APIRouter(
    prefix="/admin/recovery",
    tags=["admin"],
    dependencies=[Depends(require_operator)],
)


@router.get("/codes", response_model=list[CodeInfo], response_model_exclude_none=True)
async def inspect_codes(
    prefix: str | None = Query(None, description="Account id prefix"),
    reveal: bool = Query(False, description="Include raw codes if the deployment allows it"),
    coordinator: RecoveryCoordinator = Depends(get_coordinator),
) -> list[CodeInfo]:
    """List live codes; raw values are redacted unless reveals are enabled."""
    entries = await coordinator.inspect(prefix, reveal=reveal)
    logger.info("Operator inspected %d code(s) (prefix=%r, reveal=%s)", len(entries), prefix, reveal)
    return entries


@router.delete("/codes/expired", response_model=PurgeReport)
async def purge_expired_codes(
    coordinator: RecoveryCoordinator = Depends(get_coordinator),
) -> PurgeReport:
    """Remove every code older than the TTL."""
    report = await coordinator.purge_expired()
    logger.info("Operator purged %d expired code(s)", report.count)
    return report
