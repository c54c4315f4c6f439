"""HTTP tests for the recovery and admin routes."""

from __future__ import annotations

import httpx
import pytest
import pytest_asyncio

from recovery_service.config import Settings, settings
from recovery_service.dependencies import get_coordinator
from recovery_service.main import app
from recovery_service.recovery.types import Contact, DeliveryOutcome

OPERATOR = {"X-Operator-Token": "s3cret"}


@pytest_asyncio.fixture
async def client(coordinator):
    app.dependency_overrides[get_coordinator] = lambda: coordinator
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
        yield http
    app.dependency_overrides.clear()


@pytest.fixture
def operator_token(monkeypatch):
    monkeypatch.setattr(settings, "operator_token", "s3cret")


# ── POST /recovery/code ──────────────────────────────────

@pytest.mark.asyncio
async def test_request_code_success(client):
    resp = await client.post(
        "/recovery/code", json={"accountId": "123.456.789-01", "channel": "email"}
    )

    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["destinationMasked"] == "a***@b***.com"
    assert body["reused"] is False
    assert "errorKind" not in body


@pytest.mark.asyncio
async def test_numeric_account_id_is_accepted(client):
    resp = await client.post("/recovery/code", json={"accountId": 12345678901, "channel": "sms"})

    assert resp.status_code == 200


@pytest.mark.asyncio
async def test_invalid_channel_is_400(client):
    resp = await client.post("/recovery/code", json={"accountId": "12345678901", "channel": "fax"})

    assert resp.status_code == 400
    assert resp.json()["errorKind"] == "InvalidInput"


@pytest.mark.parametrize(
    "payload",
    [
        {"accountId": None, "channel": "email"},
        {"accountId": ["1"], "channel": "email"},
        {"accountId": "12345678901", "channel": 3},
        {"accountId": True, "channel": "sms"},
        {},
        ["12345678901", "email"],
    ],
)
@pytest.mark.asyncio
async def test_malformed_body_is_invalid_input(client, identity, payload):
    resp = await client.post("/recovery/code", json=payload)

    assert resp.status_code == 400
    body = resp.json()
    assert body["success"] is False
    assert body["errorKind"] == "InvalidInput"
    assert body["message"]
    identity.lookup.assert_not_called()


@pytest.mark.parametrize("content", [b"", b"not json", b"\xff\xfe"])
@pytest.mark.asyncio
async def test_missing_or_unreadable_body_is_invalid_input(client, content):
    resp = await client.post(
        "/recovery/code", content=content, headers={"Content-Type": "application/json"}
    )

    assert resp.status_code == 400
    assert resp.json()["errorKind"] == "InvalidInput"


@pytest.mark.asyncio
async def test_unknown_account_is_404(client, identity):
    identity.lookup.return_value = Contact(found=False)

    resp = await client.post("/recovery/code", json={"accountId": "1", "channel": "email"})

    assert resp.status_code == 404
    assert resp.json()["errorKind"] == "AccountNotFound"


@pytest.mark.asyncio
async def test_rate_limited_sets_retry_after(client, code_store, clock):
    payload = {"accountId": "12345678901", "channel": "sms"}
    await client.post("/recovery/code", json=payload)
    await code_store.delete(next(key for key, _ in await code_store.items()))
    clock.advance(15)

    resp = await client.post("/recovery/code", json=payload)

    assert resp.status_code == 429
    assert resp.headers["Retry-After"] == "45"
    assert resp.json()["retryAfterSeconds"] == 45


@pytest.mark.asyncio
async def test_delivery_failure_is_502(client, dispatcher):
    dispatcher.send.return_value = DeliveryOutcome.failed("relay down")

    resp = await client.post(
        "/recovery/code", json={"accountId": "12345678901", "channel": "whatsapp"}
    )

    assert resp.status_code == 502
    assert resp.json()["errorKind"] == "DeliveryFailed"


# ── Admin ────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_admin_disabled_without_configured_token(client, monkeypatch):
    monkeypatch.setattr(settings, "operator_token", "")

    resp = await client.get("/admin/recovery/codes", headers=OPERATOR)

    assert resp.status_code == 503


@pytest.mark.asyncio
async def test_admin_rejects_wrong_token(client, operator_token):
    resp = await client.get("/admin/recovery/codes", headers={"X-Operator-Token": "nope"})
    assert resp.status_code == 401

    resp = await client.delete("/admin/recovery/codes/expired")
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_admin_inspect_is_redacted(client, operator_token):
    await client.post("/recovery/code", json={"accountId": "12345678901", "channel": "email"})

    resp = await client.get(
        "/admin/recovery/codes", params={"prefix": "123", "reveal": "true"}, headers=OPERATOR
    )

    assert resp.status_code == 200
    [entry] = resp.json()
    assert entry["key"] == "12345678901:email"
    assert entry["state"] == "DELIVERED"
    assert entry["code_length"] == 6
    assert "code" not in entry
    assert "100001" not in resp.text


@pytest.mark.asyncio
async def test_admin_purge(client, operator_token, clock):
    await client.post("/recovery/code", json={"accountId": "12345678901", "channel": "email"})
    clock.advance(601)

    resp = await client.delete("/admin/recovery/codes/expired", headers=OPERATOR)

    assert resp.status_code == 200
    assert resp.json() == {"count": 1, "keys": ["12345678901:email"]}


@pytest.mark.asyncio
async def test_health(client):
    resp = await client.get("/health")
    assert resp.json()["status"] == "healthy"


def test_mock_backend_is_off_by_default():
    assert Settings.model_fields["mock_backend_enabled"].default is False
    assert not any(route.path.startswith("/external/") for route in app.routes)
