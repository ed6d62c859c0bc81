"""End-to-end tests: webhook detection through authorization."""

import pytest
from httpx import AsyncClient

from conftest import WALLET_ADDRESS, transfer_log, webhook_body


async def register_saver(client: AsyncClient) -> dict:
    response = await client.post("/api/wallets", json={"address": WALLET_ADDRESS.upper().replace("0X", "0x")})
    assert response.status_code == 201
    wallet = response.json()["data"]
    assert wallet["address"] == WALLET_ADDRESS
    return wallet


@pytest.mark.asyncio
async def test_transfer_is_detected_and_funded_on_approval(client: AsyncClient, gateway, create_wallet):
    await create_wallet(saving_percent_bps=1500)

    response = await client.post(
        "/api/quicknode-webhook",
        json=webhook_body(transfer_log(WALLET_ADDRESS, 2_000_000_000_000_000_000))
    )
    assert response.status_code == 200
    assert response.json() == {"success": True, "detected": 1}

    overview = (await client.get("/api/savings/overview", params={"address": WALLET_ADDRESS})).json()["data"]
    [pending] = overview["pendingTransactions"]
    assert pending["status"] == "PENDING"
    assert pending["saveAmountWei"] == "300000000000000000"
    assert pending["amountRaw"] == "2000000000000000000"
    assert pending["metadata"] == {"logIndex": 0, "transactionIndex": 1}

    response = await client.post(
        "/api/savings/authorize",
        json={"transactionId": pending["id"], "action": "approve"}
    )
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["data"]["status"] == "FUNDED"
    assert body["transactionHash"] == body["data"]["vaultTxHash"]
    assert gateway.calls_to("deposit_for_saver") == [(WALLET_ADDRESS, 300_000_000_000_000_000)]

    overview = (await client.get("/api/savings/overview", params={"address": WALLET_ADDRESS})).json()["data"]
    assert overview["pendingTransactions"] == []
    assert [e["action"] for e in overview["ledgerEntries"]] == ["DEPOSIT_CONFIRMED"]


@pytest.mark.asyncio
async def test_redelivered_webhook_is_idempotent(client: AsyncClient, create_wallet):
    await create_wallet()
    body = webhook_body(transfer_log(WALLET_ADDRESS, 10**18))

    for _ in range(3):
        response = await client.post("/api/quicknode-webhook", json=body)
        assert response.json()["detected"] == 1

    overview = (await client.get("/api/savings/overview", params={"address": WALLET_ADDRESS})).json()["data"]
    assert len(overview["pendingTransactions"]) == 1
    assert overview["stats"]["pendingTransactions"] == 1
    assert len(overview["ledgerEntries"]) == 1


@pytest.mark.asyncio
async def test_registration_is_seen_only_after_watchlist_ttl(client: AsyncClient, clock):
    body = webhook_body(transfer_log(WALLET_ADDRESS, 10**18))

    # Prime the cache before the wallet exists
    assert (await client.post("/api/quicknode-webhook", json=body)).json()["detected"] == 0
    await register_saver(client)

    assert (await client.post("/api/quicknode-webhook", json=body)).json()["detected"] == 0
    clock.advance(301)
    assert (await client.post("/api/quicknode-webhook", json=body)).json()["detected"] == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("payload", [
    {},
    {"data": []},
    {"data": "nope"},
    [1, 2, 3],
    {"data": [{"logs": [{"garbage": True}]}]},
])
async def test_malformed_payloads_still_acknowledged(client: AsyncClient, payload):
    response = await client.post("/api/quicknode-webhook", json=payload)

    assert response.status_code == 200
    assert response.json() == {"success": True, "detected": 0}


@pytest.mark.asyncio
async def test_non_json_body_acknowledged(client: AsyncClient):
    response = await client.post(
        "/api/quicknode-webhook",
        content=b"not json",
        headers={"content-type": "application/json"}
    )

    assert response.status_code == 200
    assert response.json()["detected"] == 0


@pytest.mark.asyncio
async def test_health_and_root(client: AsyncClient):
    health = await client.get("/health")
    assert health.status_code == 200
    assert health.json()["status"] == "healthy"

    root = await client.get("/")
    assert root.status_code == 200
    assert root.json()["docs"] == "/docs"


@pytest.mark.asyncio
async def test_watchlist_failure_still_acknowledged(client: AsyncClient, watchlist, create_wallet, monkeypatch):
    await create_wallet()

    async def broken_reload():
        raise RuntimeError("database unavailable")

    monkeypatch.setattr(watchlist, "_reload", broken_reload)

    response = await client.post(
        "/api/quicknode-webhook",
        json=webhook_body(transfer_log(WALLET_ADDRESS, 10**18))
    )

    assert response.status_code == 200
    assert response.json() == {"success": True, "detected": 0}
