"""Tests for wallet registration endpoints."""

import pytest
from httpx import AsyncClient

from conftest import WALLET_ADDRESS


@pytest.mark.asyncio
async def test_register_wallet_creates_owner(client: AsyncClient):
    response = await client.post(
        "/api/wallets",
        json={"address": WALLET_ADDRESS, "label": "Main"}
    )

    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    wallet = body["data"]
    assert wallet["address"] == WALLET_ADDRESS
    assert wallet["label"] == "Main"
    assert wallet["isActive"] is True
    assert wallet["chainId"] == 44787
    assert wallet["onchainConfigStatus"] == "NOT_CONFIGURED"
    assert wallet["user"]["email"] == f"{WALLET_ADDRESS}@wallet.autosave"
    assert wallet["user"]["savingPercentBps"] == 0
    assert wallet["user"]["withdrawalDelaySeconds"] == 86400


@pytest.mark.asyncio
async def test_register_duplicate_wallet_conflicts(client: AsyncClient):
    await client.post("/api/wallets", json={"address": WALLET_ADDRESS})

    response = await client.post("/api/wallets", json={"address": WALLET_ADDRESS.upper().replace("0X", "0x")})

    assert response.status_code == 409
    assert response.json()["success"] is False


@pytest.mark.asyncio
@pytest.mark.parametrize("address", ["0x1234", "abababababababababababababababababababab", "0x" + "zz" * 20])
async def test_register_rejects_malformed_address(client: AsyncClient, address):
    response = await client.post("/api/wallets", json={"address": address})

    assert response.status_code == 400
    assert response.json()["success"] is False


@pytest.mark.asyncio
async def test_list_wallets_newest_first(client: AsyncClient):
    other = "0x" + "cd" * 20
    await client.post("/api/wallets", json={"address": WALLET_ADDRESS})
    await client.post("/api/wallets", json={"address": other})

    response = await client.get("/api/wallets")

    assert response.status_code == 200
    assert [w["address"] for w in response.json()["data"]] == [other, WALLET_ADDRESS]


@pytest.mark.asyncio
async def test_auto_register_is_idempotent(client: AsyncClient):
    first = await client.post("/api/wallets/auto-register", json={"address": WALLET_ADDRESS})
    assert first.status_code == 201
    first_body = first.json()
    assert first_body["alreadyExists"] is False
    assert first_body["data"]["label"].startswith("Auto-registered ")

    second = await client.post("/api/wallets/auto-register", json={"address": WALLET_ADDRESS})
    assert second.status_code == 200
    second_body = second.json()
    assert second_body["alreadyExists"] is True
    assert second_body["data"]["id"] == first_body["data"]["id"]
    assert second_body["data"]["user"]["id"] == first_body["data"]["user"]["id"]
