"""Business logic services package."""

from autosave.services.authorization_service import AuthorizationService, AuthorizationResult
from autosave.services.ledger_service import LedgerService, PersistedTransfer, upsert_deposit_ledger_entry
from autosave.services.overview_service import Overview, get_overview
from autosave.services.transfer_detector import (
    TransferCandidate,
    compute_save_amount,
    detect_transfers,
    parse_webhook_payload,
)
from autosave.services.vault_gateway import VaultAccount, VaultGateway, VaultTxResult
from autosave.services.wallet_service import ConfigureResult, WalletService
from autosave.services.watchlist_cache import WatchedWallet, WatchListCache
from autosave.services.withdrawal_service import WithdrawalResult, WithdrawalService, derive_status

__all__ = [
    # Detection
    "TransferCandidate",
    "compute_save_amount",
    "detect_transfers",
    "parse_webhook_payload",
    "WatchedWallet",
    "WatchListCache",
    # Persistence
    "LedgerService",
    "PersistedTransfer",
    "upsert_deposit_ledger_entry",
    # Vault
    "VaultAccount",
    "VaultGateway",
    "VaultTxResult",
    # State machines
    "AuthorizationService",
    "AuthorizationResult",
    "WithdrawalService",
    "WithdrawalResult",
    "derive_status",
    # Registry and read side
    "WalletService",
    "ConfigureResult",
    "Overview",
    "get_overview",
]
