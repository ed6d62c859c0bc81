"""Tests for idempotent persistence of detected transfers."""

import pytest
from sqlalchemy import func, select, update

from autosave.models.incoming_transaction import IncomingTransaction, IncomingTransactionStatus
from autosave.models.savings_ledger import SavingsLedger, SavingsLedgerAction
from autosave.models.wallet import Wallet
from autosave.services.ledger_service import LedgerService

from conftest import WALLET_ADDRESS, make_candidate


async def count(session_factory, model) -> int:
    async with session_factory() as session:
        return (await session.execute(select(func.count()).select_from(model))).scalar_one()


@pytest.mark.asyncio
async def test_persists_pending_transaction_and_ledger_entry(session_factory, create_wallet):
    wallet = await create_wallet()
    service = LedgerService(session_factory)

    persisted = await service.persist_candidate(make_candidate(wallet))

    assert persisted.status == IncomingTransactionStatus.PENDING
    assert persisted.save_amount_wei == 300_000_000_000_000_000

    async with session_factory() as session:
        tx = await session.get(IncomingTransaction, persisted.transaction_id)
        assert tx.amount_raw == 2 * 10**18
        assert tx.to_address == WALLET_ADDRESS
        assert tx.transaction_metadata == {"logIndex": 0, "transactionIndex": 1}

        entry = (await session.execute(select(SavingsLedger))).scalar_one()
        assert entry.transaction_id == tx.id
        assert entry.action == SavingsLedgerAction.DEPOSIT_PENDING
        assert entry.amount_wei == 300_000_000_000_000_000

        refreshed_wallet = await session.get(Wallet, wallet.id)
        assert refreshed_wallet.last_detected_at is not None


@pytest.mark.asyncio
async def test_redelivery_creates_no_duplicate_rows(session_factory, create_wallet):
    wallet = await create_wallet()
    service = LedgerService(session_factory)
    candidate = make_candidate(wallet)

    first = await service.persist_candidate(candidate)
    for _ in range(3):
        again = await service.persist_candidate(candidate)
        assert again.transaction_id == first.transaction_id

    assert await count(session_factory, IncomingTransaction) == 1
    assert await count(session_factory, SavingsLedger) == 1


@pytest.mark.asyncio
async def test_redelivery_never_resets_a_settled_transaction(session_factory, create_wallet):
    wallet = await create_wallet()
    service = LedgerService(session_factory)
    first = await service.persist_candidate(make_candidate(wallet))

    async with session_factory() as session:
        await session.execute(
            update(IncomingTransaction)
            .where(IncomingTransaction.id == first.transaction_id)
            .values(status=IncomingTransactionStatus.FUNDED, save_amount_wei=123)
        )
        await session.execute(
            update(SavingsLedger)
            .where(SavingsLedger.transaction_id == first.transaction_id)
            .values(action=SavingsLedgerAction.DEPOSIT_CONFIRMED, amount_wei=123)
        )
        await session.commit()

    again = await service.persist_candidate(make_candidate(wallet, bps=2000))

    assert again.status == IncomingTransactionStatus.FUNDED
    assert again.save_amount_wei == 123
    async with session_factory() as session:
        entry = (await session.execute(select(SavingsLedger))).scalar_one()
        assert entry.action == SavingsLedgerAction.DEPOSIT_CONFIRMED
        assert entry.amount_wei == 123


@pytest.mark.asyncio
async def test_zero_save_amount_writes_no_ledger_entry(session_factory, create_wallet):
    wallet = await create_wallet(saving_percent_bps=0)
    service = LedgerService(session_factory)

    persisted = await service.persist_candidate(make_candidate(wallet, bps=0))

    assert persisted.save_amount_wei == 0
    assert await count(session_factory, IncomingTransaction) == 1
    assert await count(session_factory, SavingsLedger) == 0


@pytest.mark.asyncio
async def test_batch_persists_independent_candidates(session_factory, create_wallet):
    wallet = await create_wallet()
    service = LedgerService(session_factory)
    candidates = [
        make_candidate(wallet, tx_hash="0x" + "aa" * 32),
        make_candidate(wallet, tx_hash="0x" + "bb" * 32),
        make_candidate(wallet, tx_hash="0x" + "aa" * 32, token="0x" + "33" * 20),
    ]

    persisted = await service.persist_candidates(candidates)

    assert len({p.transaction_id for p in persisted}) == 3
    assert await count(session_factory, SavingsLedger) == 3
