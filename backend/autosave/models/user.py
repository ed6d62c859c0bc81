"""User database model."""

from datetime import datetime
from typing import List
import uuid

from sqlalchemy import String, Integer, TIMESTAMP
from sqlalchemy.orm import Mapped, mapped_column, relationship

from autosave.database import Base


class User(Base):
    """Owner of one or more watched wallets and their savings configuration."""

    __tablename__ = "users"

    # Primary Key
    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4())
    )

    # Basic Info
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    name: Mapped[str | None] = mapped_column(String(100), nullable=True)

    # Savings configuration
    saving_percent_bps: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0
    )  # 0-5000 basis points of each inbound transfer
    withdrawal_delay_seconds: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=86400
    )  # 3600-31536000, cooldown between request and execute

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP,
        nullable=False,
        default=datetime.utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP,
        nullable=False,
        default=datetime.utcnow,
        onupdate=datetime.utcnow
    )

    # Relationships
    wallets: Mapped[List["Wallet"]] = relationship(
        "Wallet",
        back_populates="user",
        cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email}, saving_percent_bps={self.saving_percent_bps})>"
