"""Wallet and user request/response schemas."""

from datetime import datetime
from typing import Optional

from pydantic import Field, field_validator

from autosave.core.codec import normalize_address
from autosave.core.errors import ValidationError as SavingsValidationError
from autosave.models.wallet import OnchainConfigStatus
from autosave.schemas.common import CamelModel


def _validated_address(value) -> str:
    try:
        return normalize_address(value)
    except SavingsValidationError as exc:
        raise ValueError(exc.message) from exc


class WalletCreate(CamelModel):
    """Request to register a wallet for monitoring."""

    address: str = Field(..., description="20-byte hex wallet address")
    label: Optional[str] = Field(None, max_length=255)
    is_active: bool = True
    chain_id: Optional[int] = Field(None, gt=0)

    @field_validator("address", mode="before")
    @classmethod
    def validate_address(cls, v) -> str:
        return _validated_address(v)


class WalletAutoRegister(CamelModel):
    """Request sent by the dashboard when a browser wallet connects."""

    address: str
    label: Optional[str] = Field(None, max_length=255)
    chain_id: Optional[int] = Field(None, gt=0)

    @field_validator("address", mode="before")
    @classmethod
    def validate_address(cls, v) -> str:
        return _validated_address(v)


class UserResponse(CamelModel):
    """Savings owner with their configuration."""

    id: str
    email: str
    name: Optional[str]
    saving_percent_bps: int
    withdrawal_delay_seconds: int
    created_at: datetime


class WalletResponse(CamelModel):
    """Registered wallet."""

    id: str
    user_id: str
    address: str
    label: Optional[str]
    is_active: bool
    chain_id: int
    onchain_config_status: OnchainConfigStatus
    onchain_config_tx_hash: Optional[str]
    onchain_config_error: Optional[str]
    last_detected_at: Optional[datetime]
    created_at: datetime


class WalletWithUserResponse(WalletResponse):
    """Registered wallet including its owner."""

    user: Optional[UserResponse] = None


class AutoRegisterResponse(CamelModel):
    """Response after auto-registering a wallet."""

    success: bool = True
    data: WalletWithUserResponse
    message: str
    already_exists: bool
