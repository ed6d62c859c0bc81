"""Webhook ingestion endpoint for chain-log deliveries."""

import json
import logging

from fastapi import APIRouter, Depends, Request

from autosave.api.deps import get_ledger_service, get_watchlist
from autosave.config import settings
from autosave.core.errors import ParseError
from autosave.schemas.webhook import WebhookResponse
from autosave.services.ledger_service import LedgerService
from autosave.services.transfer_detector import detect_transfers, parse_webhook_payload
from autosave.services.watchlist_cache import WatchListCache

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/quicknode-webhook", response_model=WebhookResponse)
async def receive_webhook(
    request: Request,
    watchlist: WatchListCache = Depends(get_watchlist),
    ledger: LedgerService = Depends(get_ledger_service)
):
    """
    Detect inbound transfers to watched wallets and record them as PENDING savings.

    Always answers 200 so the provider does not redeliver. Parsing, detection
    and persistence failures are logged, not surfaced.
    """
    try:
        body = await request.json()
        payload = parse_webhook_payload(body)
    except (ParseError, json.JSONDecodeError, UnicodeDecodeError) as e:
        logger.warning(f"Ignoring malformed webhook body: {e}")
        return WebhookResponse(detected=0)

    try:
        watched = await watchlist.get()
        candidates = detect_transfers(payload.data, watched, settings.TRANSFER_EVENT_SIGNATURE)
    except Exception as e:
        logger.error(f"Webhook detection failed: {e}", exc_info=True)
        return WebhookResponse(detected=0)

    if not candidates:
        logger.debug("Webhook delivered no transfers to watched wallets")
        return WebhookResponse(detected=0)

    logger.info(f"💸 {len(candidates)} incoming transfer(s) detected")
    try:
        await ledger.persist_candidates(candidates)
    except Exception as e:
        # Already logged per candidate; the provider must still get a 2xx
        logger.error(f"Webhook persistence incomplete: {e}")

    return WebhookResponse(detected=len(candidates))
