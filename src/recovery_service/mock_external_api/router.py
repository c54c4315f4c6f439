"""Mock legacy backend router — simulates the member database and message relay.

Endpoints (form-encoded, like the real backend)
-----------------------------------------------
POST /localiza_associado_app_cartao.php   → account details by card number
POST /envia_codigo_recuperacao.php        → relay a recovery code (answers ``enviado``)
POST /gerencia_codigo_recuperacao.php     → register a code (``operacao=inserir``)
GET  /outbox/{card_number}                → messages the relay accepted (operator token required)
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Form
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from recovery_service.api.admin import require_operator
from recovery_service.config import settings
from recovery_service.database.engine import get_session
from recovery_service.database.repository import AccountRepository
from recovery_service.mock_external_api.outbox import Outbox
from recovery_service.recovery.types import digits_only

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/external/v1", tags=["mock-legacy-backend"])

# Shared outbox (in-memory singleton)
outbox = Outbox()

SITUATION_ACTIVE = 1
SITUATION_NOT_FOUND = 3


# ── Response models ──────────────────────────────────────

class AccountLookupResponse(BaseModel):
    situacao: int
    matricula: str | None = None
    nome: str | None = None
    email: str | None = None
    cel: str | None = None


class OutboxEntry(BaseModel):
    channel: str
    destination: str
    code: str
    sent_at: float


# ── Endpoints ────────────────────────────────────────────

@router.post(settings.identity_lookup_path, response_model=AccountLookupResponse)
async def lookup_account(
    cartao: str = Form(""),
    session: AsyncSession = Depends(get_session),
) -> AccountLookupResponse:
    """Look up a member by card number."""
    account = await AccountRepository(session).find_by_card_number(digits_only(cartao))
    if not account:
        return AccountLookupResponse(situacao=SITUATION_NOT_FOUND)

    return AccountLookupResponse(
        situacao=SITUATION_ACTIVE,
        matricula=account.registration,
        nome=account.name,
        email=account.email or "",
        cel=account.mobile or "",
    )


@router.post(settings.delivery_path)
async def relay_code(
    cartao: str = Form(""),
    metodo: str = Form(""),
    codigo: str = Form(""),
    destino: str = Form(""),
    token: str = Form(""),
):
    """Pretend to deliver the code; in a real system this sends an email/SMS."""
    if not cartao or not codigo or not destino:
        return {"status": "erro", "erro": "cartao, codigo and destino are required"}
    if metodo not in ("email", "sms", "whatsapp"):
        return {"status": "erro", "erro": f"unknown method {metodo!r}"}
    if metodo != "email" and settings.legacy_api_token and token != settings.legacy_api_token:
        return {"status": "erro", "erro": "invalid token"}

    outbox.record(digits_only(cartao), metodo, destino, codigo)
    return PlainTextResponse("enviado")


@router.post(settings.code_registry_path)
async def register_code(
    cartao: str = Form(""),
    codigo: str = Form(""),
    operacao: str = Form(""),
    admin_token: str = Form(""),
    metodo: str = Form(""),
):
    """Store the code so the (mock) password-change screen could validate it."""
    if settings.legacy_api_token and admin_token != settings.legacy_api_token:
        return {"status": "erro", "erro": "invalid admin token"}
    if operacao != "inserir" or not cartao or not codigo:
        return {"status": "erro", "erro": "unsupported operation"}

    outbox.register(digits_only(cartao), metodo, codigo)
    return {"status": "sucesso"}


@router.get(
    "/outbox/{card_number}",
    response_model=list[OutboxEntry],
    dependencies=[Depends(require_operator)],
)
async def list_outbox(card_number: str) -> list[OutboxEntry]:
    """Messages accepted for a card, oldest first."""
    return [
        OutboxEntry(
            channel=message.channel,
            destination=message.destination,
            code=message.code,
            sent_at=message.sent_at,
        )
        for message in outbox.messages_for(digits_only(card_number))
    ]
