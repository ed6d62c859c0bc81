"""Incoming transaction model for detected inbound transfers."""

from datetime import datetime
from enum import Enum
import uuid

from sqlalchemy import (
    String, Text, BigInteger, ForeignKey, TIMESTAMP, JSON, UniqueConstraint, Enum as SQLEnum
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from autosave.database import Base
from autosave.models.types import WeiAmount


class IncomingTransactionStatus(str, Enum):
    """Incoming transaction status enum."""
    PENDING = "PENDING"
    AUTHORIZED = "AUTHORIZED"  # Approved, vault deposit in flight
    REJECTED = "REJECTED"
    FUNDED = "FUNDED"


class IncomingTransaction(Base):
    """One inbound transfer to a watched wallet, detected from a chain log."""

    __tablename__ = "incoming_transactions"
    __table_args__ = (
        # Redelivered webhooks must land on the same row
        UniqueConstraint("tx_hash", "wallet_id", "token_address", name="uq_incoming_tx_wallet_token"),
    )

    # Primary Key
    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4())
    )

    # Ownership
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

    # Transfer details
    tx_hash: Mapped[str] = mapped_column(String(66), nullable=False, index=True)
    token_address: Mapped[str] = mapped_column(String(42), nullable=False)
    from_address: Mapped[str] = mapped_column(String(42), nullable=False)
    to_address: Mapped[str] = mapped_column(String(42), nullable=False)
    block_number: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    # Amounts (wei)
    amount_raw: Mapped[int] = mapped_column(WeiAmount, nullable=False)
    save_amount_wei: Mapped[int] = mapped_column(WeiAmount, nullable=False, default=0)

    # Status
    status: Mapped[IncomingTransactionStatus] = mapped_column(
        SQLEnum(IncomingTransactionStatus),
        nullable=False,
        default=IncomingTransactionStatus.PENDING,
        index=True
    )

    # Vault deposit
    vault_tx_hash: Mapped[str | None] = mapped_column(String(66), nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Log reference (logIndex, transactionIndex)
    transaction_metadata: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    # Timestamps
    detected_at: Mapped[datetime] = mapped_column(
        TIMESTAMP,
        nullable=False,
        default=datetime.utcnow,
        index=True
    )
    authorized_at: Mapped[datetime | None] = mapped_column(TIMESTAMP, nullable=True)
    funded_at: Mapped[datetime | None] = mapped_column(TIMESTAMP, nullable=True)
    rejected_at: Mapped[datetime | None] = mapped_column(TIMESTAMP, nullable=True)

    # Relationships
    wallet: Mapped["Wallet"] = relationship(
        "Wallet",
        back_populates="incoming_transactions"
    )

    def __repr__(self) -> str:
        return f"<IncomingTransaction(id={self.id}, tx_hash={self.tx_hash}, status={self.status})>"
