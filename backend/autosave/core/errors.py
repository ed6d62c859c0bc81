"""Error taxonomy shared by services and mapped to HTTP responses in main."""

from typing import Any, Dict, Optional


class SavingsError(Exception):
    """Base class for all domain errors raised by the savings services."""

    status_code: int = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(SavingsError):
    """Malformed input: address format, out-of-range config, non-positive amount."""

    status_code = 400


class NotFoundError(SavingsError):
    """Unknown wallet, transaction or withdrawal request."""

    status_code = 404


class StateConflictError(SavingsError):
    """The requested transition is not valid from the record's current status."""

    status_code = 409

    def __init__(
        self,
        message: str,
        current_status: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, details)
        self.current_status = current_status
        if current_status is not None:
            self.details.setdefault("currentStatus", current_status)


class ConflictError(StateConflictError):
    """A wallet already has an active withdrawal request, or a wallet is already registered."""


class CooldownActiveError(StateConflictError):
    """Withdrawal execution attempted before the request's cooldown elapsed."""


class GatewayError(SavingsError):
    """On-chain submission or confirmation failed."""

    status_code = 500

    def __init__(
        self,
        message: str,
        tx_hash: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, details)
        self.tx_hash = tx_hash
        if tx_hash is not None:
            self.details.setdefault("transactionHash", tx_hash)


class TransactionRevertedError(GatewayError):
    """The vault transaction was mined but reverted."""


class ConfirmationTimeoutError(SavingsError):
    """
    A vault transaction was submitted but not confirmed within the caller's timeout.

    Not a failure: the transaction may still land. The affected record is left
    in its in-flight state and needs reconciliation against the vault account.
    """

    status_code = 202

    def __init__(self, tx_hash: str, timeout: Optional[float] = None):
        super().__init__(
            f"Transaction {tx_hash} submitted but not confirmed"
            + (f" within {timeout:g}s" if timeout is not None else ""),
            {"transactionHash": tx_hash},
        )
        self.tx_hash = tx_hash
        self.timeout = timeout


class ParseError(SavingsError):
    """A webhook payload entry could not be decoded. Never surfaced over HTTP."""

    status_code = 400
