"""Database models package."""

from autosave.models.user import User
from autosave.models.wallet import Wallet, OnchainConfigStatus
from autosave.models.incoming_transaction import IncomingTransaction, IncomingTransactionStatus
from autosave.models.savings_ledger import SavingsLedger, SavingsLedgerAction
from autosave.models.withdrawal_request import WithdrawalRequest, WithdrawalStatus

__all__ = [
    "User",
    "Wallet",
    "OnchainConfigStatus",
    "IncomingTransaction",
    "IncomingTransactionStatus",
    "SavingsLedger",
    "SavingsLedgerAction",
    "WithdrawalRequest",
    "WithdrawalStatus",
]
