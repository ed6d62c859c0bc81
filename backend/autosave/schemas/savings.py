"""Savings configuration, authorization, withdrawal and overview schemas."""

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import Field, field_validator

from autosave.models.incoming_transaction import IncomingTransactionStatus
from autosave.models.savings_ledger import SavingsLedgerAction
from autosave.models.withdrawal_request import WithdrawalStatus
from autosave.schemas.common import CamelModel, WeiStr
from autosave.schemas.wallet import UserResponse, WalletResponse, _validated_address


MAX_SAVING_PERCENT_BPS = 50
MIN_WITHDRAWAL_DELAY_SECONDS = 60 * 60  # 1 hour
MAX_WITHDRAWAL_DELAY_SECONDS = 365 * 24 * 60 * 60  # 1 year


class SavingsConfigRequest(CamelModel):
    """Request to set a wallet owner's save rate and withdrawal cooldown."""

    wallet_address: str
    saving_percent_bps: int = Field(..., ge=0, le=MAX_SAVING_PERCENT_BPS)
    withdrawal_delay_seconds: int = Field(
        ...,
        ge=MIN_WITHDRAWAL_DELAY_SECONDS,
        le=MAX_WITHDRAWAL_DELAY_SECONDS
    )

    @field_validator("wallet_address", mode="before")
    @classmethod
    def validate_address(cls, v) -> str:
        return _validated_address(v)


class SavingsConfigResult(CamelModel):
    user: UserResponse
    wallet: WalletResponse
    transaction_hash: Optional[str] = None


class AuthorizeRequest(CamelModel):
    """Approve or reject a detected transfer's auto-save."""

    transaction_id: str = Field(..., min_length=1)
    action: Literal["approve", "reject"]
    amount_wei: Optional[int] = Field(None, description="Override the computed save amount")
    reason: Optional[str] = Field(None, max_length=500)

    @field_validator("action", mode="before")
    @classmethod
    def lowercase_action(cls, v):
        return v.strip().lower() if isinstance(v, str) else v


class IncomingTransactionResponse(CamelModel):
    """Detected inbound transfer."""

    id: str
    user_id: str
    wallet_id: str
    tx_hash: str
    token_address: str
    from_address: str
    to_address: str
    amount_raw: WeiStr
    save_amount_wei: WeiStr
    status: IncomingTransactionStatus
    block_number: Optional[int]
    vault_tx_hash: Optional[str]
    rejection_reason: Optional[str]
    transaction_metadata: Optional[dict] = Field(None, serialization_alias="metadata")
    detected_at: datetime
    authorized_at: Optional[datetime]
    funded_at: Optional[datetime]
    rejected_at: Optional[datetime]


class AuthorizeResponse(CamelModel):
    success: bool = True
    data: IncomingTransactionResponse
    transaction_hash: Optional[str] = None
    already_processed: bool = False


class WithdrawRequest(CamelModel):
    """Request, execute or cancel a vault withdrawal for a wallet."""

    action: Literal["request", "execute", "cancel"]
    wallet_address: str
    user_id: Optional[str] = None
    amount_wei: Optional[int] = None

    @field_validator("action", mode="before")
    @classmethod
    def lowercase_action(cls, v):
        return v.strip().lower() if isinstance(v, str) else v

    @field_validator("wallet_address", mode="before")
    @classmethod
    def validate_address(cls, v) -> str:
        return _validated_address(v)


class WithdrawalRequestResponse(CamelModel):
    """Withdrawal request with its derived status (READY once the cooldown passed)."""

    id: str
    user_id: str
    wallet_id: str
    amount_wei: WeiStr
    status: WithdrawalStatus
    available_at: datetime
    requested_at: datetime
    request_tx_hash: Optional[str]
    execute_tx_hash: Optional[str]
    cancel_tx_hash: Optional[str]
    completed_at: Optional[datetime]
    cancelled_at: Optional[datetime]


class WithdrawResponse(CamelModel):
    success: bool = True
    data: WithdrawalRequestResponse
    transaction_hash: Optional[str] = None


class LedgerEntryResponse(CamelModel):
    id: str
    user_id: str
    wallet_id: str
    transaction_id: Optional[str]
    action: SavingsLedgerAction
    amount_wei: WeiStr
    tx_hash: Optional[str]
    notes: Optional[str]
    created_at: datetime


class OverviewStats(CamelModel):
    total_wallets: int
    pending_transactions: int
    pending_withdrawals: int


class OverviewResponse(CamelModel):
    user: UserResponse
    wallets: List[WalletResponse]
    pending_transactions: List[IncomingTransactionResponse]
    ledger_entries: List[LedgerEntryResponse]
    withdrawal_requests: List[WithdrawalRequestResponse]
    stats: OverviewStats


class VaultAccountResponse(CamelModel):
    """On-chain vault account state for a saver."""

    address: str
    rate_bps: int
    withdrawal_delay: int
    balance: WeiStr
    total_deposited: WeiStr
    total_withdrawn: WeiStr
    pending_amount: WeiStr
    pending_available_at: int
