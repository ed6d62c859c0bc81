"""Wallet database model."""

from datetime import datetime
from enum import Enum
from typing import List
import uuid

from sqlalchemy import String, Integer, Boolean, Text, ForeignKey, TIMESTAMP, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from autosave.database import Base


class OnchainConfigStatus(str, Enum):
    """Whether the wallet's savings configuration has reached the vault."""
    NOT_CONFIGURED = "NOT_CONFIGURED"
    PENDING = "PENDING"  # Committed locally, chain call not yet made
    SUBMITTED = "SUBMITTED"  # Sent, confirmation timed out
    SYNCED = "SYNCED"
    FAILED = "FAILED"


class Wallet(Base):
    """A watched wallet address. Inbound transfers to it are detected from webhooks."""

    __tablename__ = "wallets"

    # Primary Key
    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4())
    )

    # Foreign Key
    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    # Address is always stored lower-case; the watch-list keys on it
    address: Mapped[str] = mapped_column(String(42), unique=True, nullable=False, index=True)
    label: Mapped[str | None] = mapped_column(String(255), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)
    chain_id: Mapped[int] = mapped_column(Integer, nullable=False, default=44787)

    # On-chain configuration sync
    onchain_config_status: Mapped[OnchainConfigStatus] = mapped_column(
        SQLEnum(OnchainConfigStatus),
        nullable=False,
        default=OnchainConfigStatus.NOT_CONFIGURED
    )
    onchain_config_tx_hash: Mapped[str | None] = mapped_column(String(66), nullable=True)
    onchain_config_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Timestamps
    last_detected_at: Mapped[datetime | None] = mapped_column(TIMESTAMP, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP,
        nullable=False,
        default=datetime.utcnow
    )

    # Relationships
    user: Mapped["User"] = relationship(
        "User",
        back_populates="wallets"
    )
    incoming_transactions: Mapped[List["IncomingTransaction"]] = relationship(
        "IncomingTransaction",
        back_populates="wallet",
        cascade="all, delete-orphan"
    )
    withdrawal_requests: Mapped[List["WithdrawalRequest"]] = relationship(
        "WithdrawalRequest",
        back_populates="wallet",
        cascade="all, delete-orphan"
    )

    @validates("address")
    def _lowercase_address(self, key: str, value: str) -> str:
        return value.strip().lower()

    def __repr__(self) -> str:
        return f"<Wallet(id={self.id}, address={self.address}, is_active={self.is_active})>"
