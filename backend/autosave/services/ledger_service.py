"""Idempotent persistence of detected transfers and their savings-ledger entries."""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List

from sqlalchemy import and_, case, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from autosave.database import unit_of_work
from autosave.models.incoming_transaction import IncomingTransaction, IncomingTransactionStatus
from autosave.models.savings_ledger import SavingsLedger, SavingsLedgerAction
from autosave.models.wallet import Wallet
from autosave.services.transfer_detector import TransferCandidate

logger = logging.getLogger(__name__)


def dialect_insert(session: AsyncSession, model):
    """INSERT construct supporting ON CONFLICT for the session's backend."""
    if session.bind.dialect.name == "postgresql":
        return pg_insert(model)
    return sqlite_insert(model)


async def upsert_deposit_ledger_entry(
    session: AsyncSession,
    *,
    transaction_id: str,
    user_id: str,
    wallet_id: str,
    action: SavingsLedgerAction,
    amount_wei: int,
    tx_hash: str | None = None,
    notes: str | None = None,
    only_if_pending: bool = False,
) -> None:
    """
    Write the single deposit-side ledger row of an incoming transaction.

    With only_if_pending, an existing row is refreshed only while it is still
    DEPOSIT_PENDING with no deposit submitted, so redelivered webhooks never
    overwrite a settled or in-flight entry.
    """
    now = datetime.utcnow()
    stmt = dialect_insert(session, SavingsLedger).values(
        transaction_id=transaction_id,
        user_id=user_id,
        wallet_id=wallet_id,
        action=action,
        amount_wei=amount_wei,
        tx_hash=tx_hash,
        notes=notes,
        created_at=now,
    )
    where = None
    if only_if_pending:
        where = and_(
            SavingsLedger.action == SavingsLedgerAction.DEPOSIT_PENDING,
            SavingsLedger.tx_hash.is_(None),
        )
    stmt = stmt.on_conflict_do_update(
        index_elements=[SavingsLedger.transaction_id],
        set_={
            "action": stmt.excluded.action,
            "amount_wei": stmt.excluded.amount_wei,
            "tx_hash": stmt.excluded.tx_hash,
            "notes": stmt.excluded.notes,
            "created_at": stmt.excluded.created_at,
        },
        where=where,
    )
    await session.execute(stmt)


@dataclass(frozen=True)
class PersistedTransfer:
    transaction_id: str
    status: IncomingTransactionStatus
    save_amount_wei: int


class LedgerService:
    """Persists transfer candidates, one unit of work per candidate."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def persist_candidate(self, candidate: TransferCandidate) -> PersistedTransfer:
        """
        Upsert the incoming transaction, touch the wallet and record the pending save.

        The natural key (tx_hash, wallet_id, token_address) makes webhook
        redelivery a refresh of denormalized fields. Status is never written
        on conflict, and the save amount only changes while still PENDING.
        """
        now = datetime.utcnow()
        wallet = candidate.wallet

        async with unit_of_work(self.session_factory) as session:
            stmt = dialect_insert(session, IncomingTransaction).values(
                user_id=wallet.user_id,
                wallet_id=wallet.wallet_id,
                tx_hash=candidate.tx_hash,
                token_address=candidate.token_address,
                from_address=candidate.from_address,
                to_address=candidate.to_address,
                amount_raw=candidate.amount_raw,
                save_amount_wei=candidate.save_amount_wei,
                status=IncomingTransactionStatus.PENDING,
                block_number=candidate.block_number,
                detected_at=now,
                transaction_metadata=candidate.metadata,
            )
            still_pending = IncomingTransaction.status == IncomingTransactionStatus.PENDING
            stmt = stmt.on_conflict_do_update(
                index_elements=[
                    IncomingTransaction.tx_hash,
                    IncomingTransaction.wallet_id,
                    IncomingTransaction.token_address,
                ],
                set_={
                    "from_address": stmt.excluded.from_address,
                    "amount_raw": stmt.excluded.amount_raw,
                    "save_amount_wei": case(
                        (still_pending, stmt.excluded.save_amount_wei),
                        else_=IncomingTransaction.save_amount_wei,
                    ),
                    "block_number": stmt.excluded.block_number,
                    "detected_at": stmt.excluded.detected_at,
                    "transaction_metadata": stmt.excluded.transaction_metadata,
                },
            ).returning(
                IncomingTransaction.id,
                IncomingTransaction.status,
                IncomingTransaction.save_amount_wei,
            )
            row = (await session.execute(stmt)).one()
            transaction_id, status, save_amount_wei = row

            await session.execute(
                update(Wallet)
                .where(Wallet.id == wallet.wallet_id)
                .values(last_detected_at=now)
            )

            # Once a decision has claimed the row its ledger entry belongs to that decision
            still_undecided = IncomingTransactionStatus(status) == IncomingTransactionStatus.PENDING
            if candidate.save_amount_wei > 0 and still_undecided:
                await upsert_deposit_ledger_entry(
                    session,
                    transaction_id=transaction_id,
                    user_id=wallet.user_id,
                    wallet_id=wallet.wallet_id,
                    action=SavingsLedgerAction.DEPOSIT_PENDING,
                    amount_wei=save_amount_wei,
                    notes="Auto-savings detected; awaiting authorization",
                    only_if_pending=True,
                )

        logger.info(
            f"Persisted transfer {candidate.tx_hash} → {wallet.address}: "
            f"amount={candidate.amount_raw} save={save_amount_wei} (tx {transaction_id}, {status})"
        )
        return PersistedTransfer(
            transaction_id=transaction_id,
            status=IncomingTransactionStatus(status),
            save_amount_wei=save_amount_wei,
        )

    async def persist_candidates(self, candidates: List[TransferCandidate]) -> List[PersistedTransfer]:
        """
        Persist every candidate concurrently, each in its own unit of work.

        All candidates are attempted; the first failure is re-raised once the
        others have settled.
        """
        if not candidates:
            return []

        results = await asyncio.gather(
            *(self.persist_candidate(candidate) for candidate in candidates),
            return_exceptions=True,
        )

        persisted: List[PersistedTransfer] = []
        errors: List[BaseException] = []
        for candidate, result in zip(candidates, results):
            if isinstance(result, BaseException):
                logger.error(
                    f"Failed to persist transfer {candidate.tx_hash} to {candidate.to_address}: {result}",
                    exc_info=result,
                )
                errors.append(result)
            else:
                persisted.append(result)

        if errors:
            raise errors[0]
        return persisted
