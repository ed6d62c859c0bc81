"""Savings ledger: audit trail of every deposit and withdrawal action."""

from datetime import datetime
from enum import Enum
import uuid

from sqlalchemy import String, Text, ForeignKey, TIMESTAMP, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column

from autosave.database import Base
from autosave.models.types import WeiAmount


class SavingsLedgerAction(str, Enum):
    """Savings ledger action types."""
    DEPOSIT_PENDING = "DEPOSIT_PENDING"
    DEPOSIT_CONFIRMED = "DEPOSIT_CONFIRMED"
    DEPOSIT_FAILED = "DEPOSIT_FAILED"
    WITHDRAW_REQUESTED = "WITHDRAW_REQUESTED"
    WITHDRAW_CANCELLED = "WITHDRAW_CANCELLED"
    WITHDRAW_COMPLETED = "WITHDRAW_COMPLETED"


class SavingsLedger(Base):
    """
    Savings ledger entry. Rows are never deleted.

    Deposit actions share one row per incoming transaction (upserted on
    transaction_id); withdrawal actions are independent rows with no
    transaction_id.
    """

    __tablename__ = "savings_ledger"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4())
    )

    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    wallet_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("wallets.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    transaction_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("incoming_transactions.id", ondelete="SET NULL"),
        nullable=True,
        unique=True
    )

    action: Mapped[SavingsLedgerAction] = mapped_column(
        SQLEnum(SavingsLedgerAction),
        nullable=False,
        index=True
    )

    amount_wei: Mapped[int] = mapped_column(WeiAmount, nullable=False)
    tx_hash: Mapped[str | None] = mapped_column(String(66), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP,
        nullable=False,
        default=datetime.utcnow,
        index=True
    )

    def __repr__(self) -> str:
        return f"<SavingsLedger(id={self.id}, action={self.action}, amount_wei={self.amount_wei})>"
