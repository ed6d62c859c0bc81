"""Authorization state machine: PENDING → FUNDED | REJECTED for detected transfers."""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from autosave.core.errors import (
    ConfirmationTimeoutError,
    GatewayError,
    NotFoundError,
    StateConflictError,
    ValidationError,
)
from autosave.database import unit_of_work
from autosave.models.incoming_transaction import IncomingTransaction, IncomingTransactionStatus
from autosave.models.savings_ledger import SavingsLedgerAction
from autosave.services.ledger_service import upsert_deposit_ledger_entry
from autosave.services.vault_gateway import VaultGateway

logger = logging.getLogger(__name__)

DEFAULT_REJECTION_NOTE = "Auto-savings rejected before funding transaction"

Status = IncomingTransactionStatus


@dataclass
class AuthorizationResult:
    transaction: IncomingTransaction
    tx_hash: Optional[str] = None
    already_processed: bool = False


class AuthorizationService:
    """
    Drives a detected transfer from PENDING to FUNDED (vault deposit) or REJECTED.

    Every transition is a status-guarded UPDATE, so of two concurrent
    decisions on the same transaction exactly one takes effect. Approval
    first claims the row (PENDING → AUTHORIZED) and only marks it FUNDED
    after the deposit is confirmed on-chain.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        gateway: VaultGateway,
        confirmation_timeout: Optional[float] = None,
    ):
        self.session_factory = session_factory
        self.gateway = gateway
        self.confirmation_timeout = confirmation_timeout

    async def _load(self, session: AsyncSession, transaction_id: str) -> IncomingTransaction:
        result = await session.execute(
            select(IncomingTransaction)
            .options(selectinload(IncomingTransaction.wallet))
            .where(IncomingTransaction.id == transaction_id)
        )
        record = result.scalar_one_or_none()
        if not record:
            raise NotFoundError("Transaction not found")
        return record

    async def get_transaction(self, transaction_id: str) -> IncomingTransaction:
        async with unit_of_work(self.session_factory) as session:
            return await self._load(session, transaction_id)

    async def _transition(
        self,
        session: AsyncSession,
        transaction_id: str,
        from_status: IncomingTransactionStatus,
        **values,
    ) -> bool:
        result = await session.execute(
            update(IncomingTransaction)
            .where(
                IncomingTransaction.id == transaction_id,
                IncomingTransaction.status == from_status,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    @staticmethod
    def _conflict(record: IncomingTransaction) -> StateConflictError:
        return StateConflictError(
            f"Transaction already processed with status {record.status.value}",
            current_status=record.status.value,
        )

    async def reject(self, transaction_id: str, reason: Optional[str] = None) -> AuthorizationResult:
        """
        Reject a PENDING transaction without touching the chain.

        Raises:
            NotFoundError: Unknown transaction
            StateConflictError: Transaction is no longer PENDING
        """
        now = datetime.utcnow()
        note = reason or DEFAULT_REJECTION_NOTE

        async with unit_of_work(self.session_factory) as session:
            moved = await self._transition(
                session,
                transaction_id,
                Status.PENDING,
                status=Status.REJECTED,
                rejected_at=now,
                rejection_reason=note,
            )
            record = await self._load(session, transaction_id)

            if not moved:
                if record.status == Status.REJECTED:
                    logger.info(f"Transaction {transaction_id} already rejected")
                    return AuthorizationResult(transaction=record, already_processed=True)
                raise self._conflict(record)

            await upsert_deposit_ledger_entry(
                session,
                transaction_id=record.id,
                user_id=record.user_id,
                wallet_id=record.wallet_id,
                action=SavingsLedgerAction.DEPOSIT_FAILED,
                amount_wei=record.save_amount_wei,
                notes=note,
            )

        logger.info(f"Transaction {transaction_id} rejected: {note}")
        return AuthorizationResult(transaction=record)

    async def approve(
        self,
        transaction_id: str,
        amount_override: Optional[int] = None,
    ) -> AuthorizationResult:
        """
        Approve a PENDING transaction and deposit its save amount into the vault.

        Args:
            transaction_id: Incoming transaction ID
            amount_override: Amount to deposit instead of the computed save amount (ignored unless positive)

        Raises:
            NotFoundError: Unknown transaction
            ValidationError: Resulting amount is not positive
            StateConflictError: Transaction is no longer PENDING
            GatewayError: Deposit failed; the transaction is PENDING again
            ConfirmationTimeoutError: Deposit submitted but unconfirmed; left AUTHORIZED
        """
        async with unit_of_work(self.session_factory) as session:
            record = await self._load(session, transaction_id)

        if record.status == Status.FUNDED:
            logger.info(f"Transaction {transaction_id} already funded ({record.vault_tx_hash})")
            return AuthorizationResult(
                transaction=record,
                tx_hash=record.vault_tx_hash,
                already_processed=True
            )
        if record.status != Status.PENDING:
            raise self._conflict(record)

        amount_wei = amount_override if amount_override and amount_override > 0 else record.save_amount_wei
        if amount_wei <= 0:
            raise ValidationError("amountWei must be greater than zero")

        saver = record.wallet.address

        # Claim: only one decision can leave PENDING
        async with unit_of_work(self.session_factory) as session:
            claimed = await self._transition(
                session,
                transaction_id,
                Status.PENDING,
                status=Status.AUTHORIZED,
                authorized_at=datetime.utcnow(),
            )
            if not claimed:
                raise self._conflict(await self._load(session, transaction_id))

        logger.info(f"Transaction {transaction_id} authorized; depositing {amount_wei} wei for {saver}")

        try:
            on_chain = await self.gateway.deposit_for_saver(
                saver,
                amount_wei,
                timeout=self.confirmation_timeout,
            )
        except ConfirmationTimeoutError as e:
            await self._record_unconfirmed(record, amount_wei, e.tx_hash)
            raise
        except GatewayError as e:
            logger.error(
                f"Vault deposit failed for transaction {transaction_id} "
                f"(saver={saver}, amount={amount_wei}): {e.message}"
            )
            await self._release_claim(transaction_id)
            raise

        now = datetime.utcnow()
        async with unit_of_work(self.session_factory) as session:
            funded = await self._transition(
                session,
                transaction_id,
                Status.AUTHORIZED,
                status=Status.FUNDED,
                funded_at=now,
                vault_tx_hash=on_chain.tx_hash,
                save_amount_wei=amount_wei,
            )
            if not funded:
                # Only this call holds the AUTHORIZED claim
                logger.error(f"Transaction {transaction_id} lost its claim before funding")
                raise self._conflict(await self._load(session, transaction_id))

            await upsert_deposit_ledger_entry(
                session,
                transaction_id=record.id,
                user_id=record.user_id,
                wallet_id=record.wallet_id,
                action=SavingsLedgerAction.DEPOSIT_CONFIRMED,
                amount_wei=amount_wei,
                tx_hash=on_chain.tx_hash,
                notes="Auto-savings funded on-chain",
            )
            updated = await self._load(session, transaction_id)

        logger.info(f"✅ Transaction {transaction_id} funded: {amount_wei} wei (tx: {on_chain.tx_hash})")
        return AuthorizationResult(transaction=updated, tx_hash=on_chain.tx_hash)

    async def _release_claim(self, transaction_id: str) -> None:
        async with unit_of_work(self.session_factory) as session:
            await self._transition(
                session,
                transaction_id,
                Status.AUTHORIZED,
                status=Status.PENDING,
                authorized_at=None,
            )

    async def _record_unconfirmed(self, record: IncomingTransaction, amount_wei: int, tx_hash: str) -> None:
        async with unit_of_work(self.session_factory) as session:
            await session.execute(
                update(IncomingTransaction)
                .where(IncomingTransaction.id == record.id)
                .values(vault_tx_hash=tx_hash)
                .execution_options(synchronize_session=False)
            )
            await upsert_deposit_ledger_entry(
                session,
                transaction_id=record.id,
                user_id=record.user_id,
                wallet_id=record.wallet_id,
                action=SavingsLedgerAction.DEPOSIT_PENDING,
                amount_wei=amount_wei,
                tx_hash=tx_hash,
                notes="Vault deposit submitted; awaiting confirmation",
            )
        logger.warning(
            f"Transaction {record.id} deposit {tx_hash} unconfirmed; "
            f"left AUTHORIZED for reconciliation"
        )
