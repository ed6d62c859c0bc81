"""Withdrawal request database model."""

from datetime import datetime
from enum import Enum
import uuid

from sqlalchemy import String, ForeignKey, TIMESTAMP, JSON, Index, Enum as SQLEnum, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from autosave.database import Base
from autosave.models.types import WeiAmount


class WithdrawalStatus(str, Enum):
    """
    Withdrawal request status enum.

    READY is never stored: it is derived from PENDING once available_at has
    passed (see withdrawal_service.derive_status).
    """
    PENDING = "PENDING"
    READY = "READY"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class WithdrawalRequest(Base):
    """Withdrawal request model for the vault's request → cooldown → execute flow."""

    __tablename__ = "withdrawal_requests"
    __table_args__ = (
        # At most one active request per wallet
        Index(
            "uq_withdrawal_requests_active_wallet",
            "wallet_id",
            unique=True,
            postgresql_where=text("status = 'PENDING'"),
            sqlite_where=text("status = 'PENDING'"),
        ),
    )

    # Primary Key
    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4())
    )

    # Foreign Keys
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

    # Amount
    amount_wei: Mapped[int] = mapped_column(WeiAmount, nullable=False)

    # Status
    status: Mapped[WithdrawalStatus] = mapped_column(
        SQLEnum(WithdrawalStatus),
        nullable=False,
        default=WithdrawalStatus.PENDING,
        index=True
    )
    in_flight_action: Mapped[str | None] = mapped_column(
        String(20),
        nullable=True
    )  # request|cancel|execute while the vault call is outstanding

    # Transaction Hashes
    request_tx_hash: Mapped[str | None] = mapped_column(String(66), nullable=True)
    execute_tx_hash: Mapped[str | None] = mapped_column(String(66), nullable=True)
    cancel_tx_hash: Mapped[str | None] = mapped_column(String(66), nullable=True)

    transaction_metadata: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    # Timestamps
    requested_at: Mapped[datetime] = mapped_column(
        TIMESTAMP,
        nullable=False,
        default=datetime.utcnow
    )
    available_at: Mapped[datetime] = mapped_column(TIMESTAMP, nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(TIMESTAMP, nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(TIMESTAMP, nullable=True)

    # Relationships
    wallet: Mapped["Wallet"] = relationship(
        "Wallet",
        back_populates="withdrawal_requests"
    )

    def __repr__(self) -> str:
        return f"<WithdrawalRequest(id={self.id}, wallet_id={self.wallet_id}, status={self.status})>"
