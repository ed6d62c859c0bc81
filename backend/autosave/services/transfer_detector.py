"""Detect inbound transfers to watched wallets from webhook-delivered chain logs."""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from pydantic import ValidationError as PydanticValidationError

from autosave.core.codec import decode_address, hex_to_int
from autosave.core.errors import ParseError
from autosave.schemas.webhook import WebhookLog, WebhookPayload, WebhookReceipt
from autosave.services.watchlist_cache import WatchedWallet

logger = logging.getLogger(__name__)

BPS_DENOMINATOR = 10_000


@dataclass(frozen=True)
class TransferCandidate:
    """A matched inbound transfer ready for persistence."""

    wallet: WatchedWallet
    from_address: str
    to_address: str
    token_address: str
    amount_raw: int
    save_amount_wei: int
    tx_hash: str
    block_number: Optional[int]
    log_index: Optional[int] = None
    transaction_index: Optional[int] = None
    log: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @property
    def metadata(self) -> Dict[str, Any]:
        return {
            "logIndex": self.log_index,
            "transactionIndex": self.transaction_index,
        }


def compute_save_amount(amount_raw: int, saving_percent_bps: int) -> int:
    """floor(amount_raw * bps / 10000); zero or negative bps saves nothing."""
    if saving_percent_bps <= 0 or amount_raw <= 0:
        return 0
    return amount_raw * saving_percent_bps // BPS_DENOMINATOR


def parse_webhook_payload(body: Any) -> WebhookPayload:
    """
    Validate a raw webhook body into typed receipts.

    Malformed receipts and logs are logged and dropped individually so that
    one bad entry never aborts the batch.

    Raises:
        ParseError: If the body itself is not `{ "data": [...] }`
    """
    if not isinstance(body, Mapping):
        raise ParseError("Webhook body must be a JSON object")
    raw_receipts = body.get("data") or []
    if not isinstance(raw_receipts, list):
        raise ParseError("Webhook 'data' must be a list")

    receipts: List[WebhookReceipt] = []
    for receipt_index, raw_receipt in enumerate(raw_receipts):
        if not isinstance(raw_receipt, Mapping):
            logger.warning(f"Skipping webhook receipt #{receipt_index}: not an object")
            continue

        raw_logs = raw_receipt.get("logs") or []
        if not isinstance(raw_logs, list):
            logger.warning(f"Skipping webhook receipt #{receipt_index}: 'logs' is not a list")
            continue

        logs: List[WebhookLog] = []
        for log_position, raw_log in enumerate(raw_logs):
            try:
                logs.append(WebhookLog.model_validate(raw_log))
            except PydanticValidationError as exc:
                logger.warning(
                    f"Skipping malformed log #{log_position} in receipt #{receipt_index}: "
                    f"{exc.error_count()} validation error(s)"
                )

        try:
            receipts.append(WebhookReceipt.model_validate({
                "blockNumber": raw_receipt.get("blockNumber"),
                "logs": logs,
            }))
        except PydanticValidationError:
            logger.warning(f"Skipping webhook receipt #{receipt_index}: invalid blockNumber")

    return WebhookPayload(data=receipts)


def _decode_log(log: WebhookLog) -> tuple[str, str, int]:
    if len(log.topics) < 3:
        raise ParseError(f"Transfer log in {log.transaction_hash} has {len(log.topics)} topics, expected 3")
    return decode_address(log.topics[1]), decode_address(log.topics[2]), hex_to_int(log.data)


def detect_transfers(
    receipts: List[WebhookReceipt],
    watched: Mapping[str, WatchedWallet],
    transfer_signature: str,
) -> List[TransferCandidate]:
    """
    Filter logs down to transfers into watched wallets.

    Args:
        receipts: Parsed webhook receipts
        watched: Watch-list mapping keyed by lower-case address
        transfer_signature: Event signature topic to match (compared case-insensitively)

    Returns:
        Candidates in delivery order
    """
    signature = transfer_signature.lower()
    candidates: List[TransferCandidate] = []

    for receipt in receipts:
        if not receipt.logs:
            continue

        for log in receipt.logs:
            if not log.topics or log.topics[0].lower() != signature:
                continue

            try:
                from_address, to_address, amount_raw = _decode_log(log)
            except ParseError as exc:
                logger.warning(f"Skipping undecodable transfer log: {exc}")
                continue

            wallet = watched.get(to_address)
            if wallet is None:
                continue

            candidates.append(TransferCandidate(
                wallet=wallet,
                from_address=from_address,
                to_address=to_address,
                token_address=log.address,
                amount_raw=amount_raw,
                save_amount_wei=compute_save_amount(amount_raw, wallet.saving_percent_bps),
                tx_hash=log.transaction_hash,
                block_number=receipt.block_number,
                log_index=log.log_index,
                transaction_index=log.transaction_index,
                log=log.model_dump(by_alias=True),
            ))

    return candidates
