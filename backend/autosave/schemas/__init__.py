"""Pydantic schemas package."""

from autosave.schemas.common import ApiResponse, CamelModel, WeiStr
from autosave.schemas.webhook import WebhookLog, WebhookPayload, WebhookReceipt, WebhookResponse
from autosave.schemas.wallet import (
    WalletCreate,
    WalletAutoRegister,
    UserResponse,
    WalletResponse,
    WalletWithUserResponse,
    AutoRegisterResponse,
)
from autosave.schemas.savings import (
    SavingsConfigRequest,
    SavingsConfigResult,
    AuthorizeRequest,
    AuthorizeResponse,
    IncomingTransactionResponse,
    WithdrawRequest,
    WithdrawalRequestResponse,
    WithdrawResponse,
    LedgerEntryResponse,
    OverviewResponse,
    VaultAccountResponse,
)

__all__ = [
    # Common
    "ApiResponse",
    "CamelModel",
    "WeiStr",
    # Webhook schemas
    "WebhookLog",
    "WebhookPayload",
    "WebhookReceipt",
    "WebhookResponse",
    # Wallet schemas
    "WalletCreate",
    "WalletAutoRegister",
    "UserResponse",
    "WalletResponse",
    "WalletWithUserResponse",
    "AutoRegisterResponse",
    # Savings schemas
    "SavingsConfigRequest",
    "SavingsConfigResult",
    "AuthorizeRequest",
    "AuthorizeResponse",
    "IncomingTransactionResponse",
    "WithdrawRequest",
    "WithdrawalRequestResponse",
    "WithdrawResponse",
    "LedgerEntryResponse",
    "OverviewResponse",
    "VaultAccountResponse",
]
