"""Tests for the PENDING → FUNDED | REJECTED authorization state machine."""

import asyncio

import pytest
from sqlalchemy import select

from autosave.core.errors import (
    ConfirmationTimeoutError,
    GatewayError,
    NotFoundError,
    StateConflictError,
    TransactionRevertedError,
    ValidationError,
)
from autosave.models.incoming_transaction import IncomingTransaction, IncomingTransactionStatus
from autosave.models.savings_ledger import SavingsLedger, SavingsLedgerAction
from autosave.services.authorization_service import DEFAULT_REJECTION_NOTE, AuthorizationService
from autosave.services.ledger_service import LedgerService

from conftest import WALLET_ADDRESS, make_candidate


@pytest.fixture
async def pending_tx(session_factory, create_wallet) -> str:
    wallet = await create_wallet()
    persisted = await LedgerService(session_factory).persist_candidate(make_candidate(wallet))
    return persisted.transaction_id


@pytest.fixture
def service(session_factory, gateway) -> AuthorizationService:
    return AuthorizationService(session_factory, gateway, confirmation_timeout=5)


async def load(session_factory, transaction_id):
    async with session_factory() as session:
        tx = await session.get(IncomingTransaction, transaction_id)
        entry = (await session.execute(
            select(SavingsLedger).where(SavingsLedger.transaction_id == transaction_id)
        )).scalar_one_or_none()
        return tx, entry


@pytest.mark.asyncio
async def test_approve_deposits_save_amount_and_funds(service, gateway, session_factory, pending_tx):
    result = await service.approve(pending_tx)

    assert gateway.calls_to("deposit_for_saver") == [(WALLET_ADDRESS, 300_000_000_000_000_000)]
    assert result.already_processed is False
    assert result.transaction.status == IncomingTransactionStatus.FUNDED

    tx, entry = await load(session_factory, pending_tx)
    assert tx.status == IncomingTransactionStatus.FUNDED
    assert tx.vault_tx_hash == result.tx_hash
    assert tx.funded_at is not None
    assert entry.action == SavingsLedgerAction.DEPOSIT_CONFIRMED
    assert entry.tx_hash == result.tx_hash


@pytest.mark.asyncio
async def test_approve_with_override_amount(service, gateway, session_factory, pending_tx):
    await service.approve(pending_tx, amount_override=42)

    assert gateway.calls_to("deposit_for_saver") == [(WALLET_ADDRESS, 42)]
    tx, entry = await load(session_factory, pending_tx)
    assert tx.save_amount_wei == 42
    assert entry.amount_wei == 42


@pytest.mark.asyncio
async def test_non_positive_override_falls_back_to_stored_amount(service, gateway, pending_tx):
    await service.approve(pending_tx, amount_override=0)

    assert gateway.calls_to("deposit_for_saver") == [(WALLET_ADDRESS, 300_000_000_000_000_000)]


@pytest.mark.asyncio
async def test_approve_zero_amount_is_rejected_without_chain_call(
    session_factory, create_wallet, gateway, service
):
    wallet = await create_wallet(saving_percent_bps=0)
    persisted = await LedgerService(session_factory).persist_candidate(make_candidate(wallet, bps=0))

    with pytest.raises(ValidationError):
        await service.approve(persisted.transaction_id)

    assert gateway.calls == []
    tx, _ = await load(session_factory, persisted.transaction_id)
    assert tx.status == IncomingTransactionStatus.PENDING


@pytest.mark.asyncio
async def test_reject_records_reason(service, gateway, session_factory, pending_tx):
    result = await service.reject(pending_tx, reason="Not this one")

    assert gateway.calls == []
    assert result.transaction.status == IncomingTransactionStatus.REJECTED
    tx, entry = await load(session_factory, pending_tx)
    assert tx.rejection_reason == "Not this one"
    assert tx.rejected_at is not None
    assert entry.action == SavingsLedgerAction.DEPOSIT_FAILED
    assert entry.notes == "Not this one"


@pytest.mark.asyncio
async def test_reject_default_note(service, session_factory, pending_tx):
    await service.reject(pending_tx)

    _, entry = await load(session_factory, pending_tx)
    assert entry.notes == DEFAULT_REJECTION_NOTE


@pytest.mark.asyncio
async def test_repeating_a_decision_is_idempotent(service, gateway, pending_tx):
    first = await service.approve(pending_tx)
    again = await service.approve(pending_tx)

    assert again.already_processed is True
    assert again.tx_hash == first.tx_hash
    assert len(gateway.calls_to("deposit_for_saver")) == 1


@pytest.mark.asyncio
async def test_opposite_decision_conflicts(service, pending_tx):
    await service.reject(pending_tx)

    with pytest.raises(StateConflictError) as exc_info:
        await service.approve(pending_tx)
    assert exc_info.value.current_status == "REJECTED"

    again = await service.reject(pending_tx)
    assert again.already_processed is True


@pytest.mark.asyncio
async def test_unknown_transaction(service):
    with pytest.raises(NotFoundError):
        await service.approve("missing")
    with pytest.raises(NotFoundError):
        await service.reject("missing")


@pytest.mark.asyncio
async def test_concurrent_approve_and_reject_exactly_one_wins(service, session_factory, pending_tx):
    results = await asyncio.gather(
        service.approve(pending_tx),
        service.reject(pending_tx),
        return_exceptions=True,
    )

    conflicts = [r for r in results if isinstance(r, StateConflictError)]
    successes = [r for r in results if not isinstance(r, Exception)]
    assert len(conflicts) == 1
    assert len(successes) == 1

    tx, _ = await load(session_factory, pending_tx)
    assert tx.status in (IncomingTransactionStatus.FUNDED, IncomingTransactionStatus.REJECTED)


@pytest.mark.asyncio
async def test_concurrent_approvals_deposit_once(service, gateway, pending_tx):
    results = await asyncio.gather(
        *(service.approve(pending_tx) for _ in range(3)),
        return_exceptions=True,
    )

    assert len(gateway.calls_to("deposit_for_saver")) == 1
    assert sum(1 for r in results if not isinstance(r, Exception)) >= 1
    assert all(
        isinstance(r, StateConflictError) or r.transaction.status == IncomingTransactionStatus.FUNDED
        for r in results
    )


@pytest.mark.asyncio
@pytest.mark.parametrize("failure", [
    GatewayError("rpc down"),
    TransactionRevertedError("reverted", tx_hash="0x" + "ee" * 32),
])
async def test_failed_deposit_returns_to_pending(service, gateway, session_factory, pending_tx, failure):
    gateway.failures["deposit_for_saver"] = failure

    with pytest.raises(GatewayError):
        await service.approve(pending_tx)

    tx, entry = await load(session_factory, pending_tx)
    assert tx.status == IncomingTransactionStatus.PENDING
    assert tx.authorized_at is None
    assert entry.action == SavingsLedgerAction.DEPOSIT_PENDING

    # Retry succeeds once the vault is reachable again
    del gateway.failures["deposit_for_saver"]
    result = await service.approve(pending_tx)
    assert result.transaction.status == IncomingTransactionStatus.FUNDED


@pytest.mark.asyncio
async def test_unconfirmed_deposit_stays_authorized(service, gateway, session_factory, pending_tx):
    tx_hash = "0x" + "cc" * 32
    gateway.failures["deposit_for_saver"] = ConfirmationTimeoutError(tx_hash, 5)

    with pytest.raises(ConfirmationTimeoutError):
        await service.approve(pending_tx)

    tx, entry = await load(session_factory, pending_tx)
    assert tx.status == IncomingTransactionStatus.AUTHORIZED
    assert tx.vault_tx_hash == tx_hash
    assert entry.action == SavingsLedgerAction.DEPOSIT_PENDING
    assert entry.tx_hash == tx_hash

    with pytest.raises(StateConflictError):
        await service.approve(pending_tx)


@pytest.mark.asyncio
async def test_redelivery_keeps_unconfirmed_deposit_record(service, gateway, session_factory, create_wallet):
    wallet = await create_wallet()
    ledger = LedgerService(session_factory)
    persisted = await ledger.persist_candidate(make_candidate(wallet))
    tx_hash = "0x" + "cd" * 32
    gateway.failures["deposit_for_saver"] = ConfirmationTimeoutError(tx_hash, 5)

    with pytest.raises(ConfirmationTimeoutError):
        await service.approve(persisted.transaction_id, amount_override=7)

    again = await ledger.persist_candidate(make_candidate(wallet))

    assert again.status == IncomingTransactionStatus.AUTHORIZED
    tx, entry = await load(session_factory, persisted.transaction_id)
    assert tx.status == IncomingTransactionStatus.AUTHORIZED
    assert tx.vault_tx_hash == tx_hash
    assert entry.action == SavingsLedgerAction.DEPOSIT_PENDING
    assert entry.tx_hash == tx_hash
    assert entry.amount_wei == 7
    assert entry.notes == "Vault deposit submitted; awaiting confirmation"
