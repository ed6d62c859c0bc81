"""Pytest configuration and fixtures for testing."""

import os

# Settings are read at import time; point them at SQLite before autosave loads
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./autosave_test.db")
os.environ.setdefault("ENVIRONMENT", "test")

from datetime import datetime
from typing import AsyncGenerator, Callable, Dict, List, Optional

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from autosave.api.deps import get_session_factory
from autosave.config import ERC20_TRANSFER_TOPIC
from autosave.database import Base
from autosave.main import app
from autosave.models.user import User
from autosave.models.wallet import Wallet
from autosave.services.transfer_detector import TransferCandidate, compute_save_amount
from autosave.services.vault_gateway import VaultAccount, VaultTxResult
from autosave.services.watchlist_cache import WatchedWallet, WatchListCache


WALLET_ADDRESS = "0x" + "ab" * 20
SENDER_ADDRESS = "0x" + "11" * 20
TOKEN_ADDRESS = "0x" + "22" * 20


def address_topic(address: str) -> str:
    """Left-pad an address into a 32-byte log topic."""
    return "0x" + "0" * 24 + address[2:]


def transfer_log(
    to: str,
    amount: int,
    tx_hash: str = "0x" + "aa" * 32,
    sender: str = SENDER_ADDRESS,
    token: str = TOKEN_ADDRESS,
    log_index: str = "0x0",
) -> dict:
    """An ERC-20 Transfer log as the webhook provider delivers it."""
    return {
        "address": token,
        "topics": [ERC20_TRANSFER_TOPIC, address_topic(sender), address_topic(to)],
        "data": hex(amount),
        "transactionHash": tx_hash,
        "logIndex": log_index,
        "transactionIndex": "0x1",
    }


def webhook_body(*logs: dict, block_number: str = "0x10") -> dict:
    return {"data": [{"blockNumber": block_number, "logs": list(logs)}]}


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeVaultGateway:
    """
    In-memory stand-in for the vault contract client.

    Every call is recorded in `calls`. An exception placed in
    `failures[method_name]` is raised by that method instead of succeeding.
    """

    def __init__(self):
        self.calls: List[tuple] = []
        self.failures: Dict[str, Exception] = {}
        self.account = VaultAccount(
            rate_bps=0,
            withdrawal_delay=86400,
            balance=0,
            total_deposited=0,
            total_withdrawn=0,
            pending_amount=0,
            pending_available_at=0,
        )
        self.account_error: Optional[Exception] = None
        self._counter = 0

    def next_hash(self) -> str:
        self._counter += 1
        return "0x" + f"{self._counter:064x}"

    def calls_to(self, name: str) -> List[tuple]:
        return [args for method, args in self.calls if method == name]

    async def _send(self, name: str, *args) -> VaultTxResult:
        self.calls.append((name, args))
        failure = self.failures.get(name)
        if failure is not None:
            raise failure
        return VaultTxResult(tx_hash=self.next_hash(), receipt={"status": 1})

    async def deposit_for_saver(self, saver, amount_wei, wait_for_receipt=True, timeout=None):
        return await self._send("deposit_for_saver", saver, amount_wei)

    async def configure_saver_on_chain(self, saver, rate_bps, withdrawal_delay_seconds, wait_for_receipt=True, timeout=None):
        return await self._send("configure_saver_on_chain", saver, rate_bps, withdrawal_delay_seconds)

    async def request_withdrawal_on_chain(self, saver, amount_wei, wait_for_receipt=True, timeout=None):
        return await self._send("request_withdrawal_on_chain", saver, amount_wei)

    async def cancel_withdrawal_on_chain(self, saver, wait_for_receipt=True, timeout=None):
        return await self._send("cancel_withdrawal_on_chain", saver)

    async def execute_withdrawal_on_chain(self, saver, wait_for_receipt=True, timeout=None):
        return await self._send("execute_withdrawal_on_chain", saver)

    async def fetch_vault_account(self, saver) -> VaultAccount:
        self.calls.append(("fetch_vault_account", (saver,)))
        if self.account_error is not None:
            raise self.account_error
        return self.account


@pytest.fixture
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """
    Fresh SQLite database per test.
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'autosave.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def gateway() -> FakeVaultGateway:
    return FakeVaultGateway()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def watchlist(session_factory, clock) -> WatchListCache:
    return WatchListCache(session_factory, ttl_seconds=300, clock=clock)


@pytest.fixture
def create_wallet(session_factory) -> Callable:
    """
    Factory inserting a user and wallet directly.

    Returns:
        async (address, saving_percent_bps, withdrawal_delay_seconds, is_active) -> Wallet
    """
    async def _create(
        address: str = WALLET_ADDRESS,
        saving_percent_bps: int = 1500,
        withdrawal_delay_seconds: int = 86400,
        is_active: bool = True,
    ) -> Wallet:
        async with session_factory() as session:
            user = User(
                email=f"{address}@wallet.autosave",
                name=f"User {address[:6]}",
                saving_percent_bps=saving_percent_bps,
                withdrawal_delay_seconds=withdrawal_delay_seconds,
            )
            session.add(user)
            await session.flush()
            wallet = Wallet(
                user_id=user.id,
                address=address,
                is_active=is_active,
                chain_id=44787,
                created_at=datetime.utcnow(),
            )
            session.add(wallet)
            await session.commit()
            return wallet

    return _create


@pytest.fixture
async def client(session_factory, gateway, watchlist) -> AsyncGenerator[AsyncClient, None]:
    """
    Create test client wired to the per-test database and fake vault.
    """
    previous_state = (app.state.watchlist, app.state.vault_gateway)
    app.state.watchlist = watchlist
    app.state.vault_gateway = gateway
    app.dependency_overrides[get_session_factory] = lambda: session_factory

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
    app.state.watchlist, app.state.vault_gateway = previous_state


def make_candidate(
    wallet: Wallet,
    amount_raw: int = 2 * 10**18,
    bps: int = 1500,
    tx_hash: str = "0x" + "aa" * 32,
    token: str = TOKEN_ADDRESS,
    log_index: int = 0,
) -> TransferCandidate:
    """A detected transfer into wallet, as the detector would produce it."""
    watched = WatchedWallet(
        wallet_id=wallet.id,
        user_id=wallet.user_id,
        address=wallet.address,
        chain_id=wallet.chain_id,
        saving_percent_bps=bps,
        withdrawal_delay_seconds=86400,
    )
    return TransferCandidate(
        wallet=watched,
        from_address=SENDER_ADDRESS,
        to_address=wallet.address,
        token_address=token,
        amount_raw=amount_raw,
        save_amount_wei=compute_save_amount(amount_raw, bps),
        tx_hash=tx_hash,
        block_number=16,
        log_index=log_index,
        transaction_index=1,
    )
