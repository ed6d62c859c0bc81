"""Read-side aggregation of a saver's wallets, pending transfers, ledger and withdrawals."""

from dataclasses import dataclass, field
from typing import List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from autosave.core.errors import NotFoundError
from autosave.models.incoming_transaction import IncomingTransaction, IncomingTransactionStatus
from autosave.models.savings_ledger import SavingsLedger
from autosave.models.user import User
from autosave.models.wallet import Wallet
from autosave.models.withdrawal_request import WithdrawalRequest, WithdrawalStatus

OVERVIEW_LIMIT = 50


@dataclass
class Overview:
    user: User
    wallets: List[Wallet] = field(default_factory=list)
    pending_transactions: List[IncomingTransaction] = field(default_factory=list)
    ledger_entries: List[SavingsLedger] = field(default_factory=list)
    withdrawal_requests: List[WithdrawalRequest] = field(default_factory=list)


async def get_overview(db: AsyncSession, address: str) -> Overview:
    """
    Collect everything the dashboard shows for the owner of address.

    Raises:
        NotFoundError: If the wallet is not registered
    """
    result = await db.execute(
        select(Wallet)
        .options(selectinload(Wallet.user).selectinload(User.wallets))
        .where(Wallet.address == address.lower())
    )
    wallet = result.scalar_one_or_none()
    if not wallet:
        raise NotFoundError("Wallet not found")

    user = wallet.user
    wallets = sorted(user.wallets, key=lambda w: w.created_at, reverse=True)

    pending = await db.execute(
        select(IncomingTransaction)
        .where(
            IncomingTransaction.user_id == user.id,
            IncomingTransaction.status.in_([
                IncomingTransactionStatus.PENDING,
                IncomingTransactionStatus.AUTHORIZED,
            ])
        )
        .order_by(IncomingTransaction.detected_at.desc())
        .limit(OVERVIEW_LIMIT)
    )

    ledger = await db.execute(
        select(SavingsLedger)
        .where(SavingsLedger.user_id == user.id)
        .order_by(SavingsLedger.created_at.desc())
        .limit(OVERVIEW_LIMIT)
    )

    withdrawals = await db.execute(
        select(WithdrawalRequest)
        .where(
            WithdrawalRequest.user_id == user.id,
            WithdrawalRequest.status == WithdrawalStatus.PENDING
        )
        .order_by(WithdrawalRequest.requested_at.desc())
        .limit(OVERVIEW_LIMIT)
    )

    return Overview(
        user=user,
        wallets=wallets,
        pending_transactions=list(pending.scalars().all()),
        ledger_entries=list(ledger.scalars().all()),
        withdrawal_requests=list(withdrawals.scalars().all()),
    )
