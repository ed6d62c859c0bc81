"""Savings configuration, authorization, withdrawal and overview API router."""

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from autosave.api.deps import (
    get_authorization_service,
    get_db,
    get_vault_gateway,
    get_wallet_service,
    get_withdrawal_service,
)
from autosave.core.codec import normalize_address
from autosave.schemas.common import ApiResponse
from autosave.schemas.savings import (
    AuthorizeRequest,
    AuthorizeResponse,
    IncomingTransactionResponse,
    LedgerEntryResponse,
    OverviewResponse,
    OverviewStats,
    SavingsConfigRequest,
    SavingsConfigResult,
    VaultAccountResponse,
    WithdrawRequest,
    WithdrawalRequestResponse,
    WithdrawResponse,
)
from autosave.schemas.wallet import UserResponse, WalletResponse
from autosave.services.authorization_service import AuthorizationService
from autosave.services.overview_service import get_overview
from autosave.services.vault_gateway import VaultGateway
from autosave.services.wallet_service import WalletService
from autosave.services.withdrawal_service import WithdrawalService, derive_status

logger = logging.getLogger(__name__)

router = APIRouter()


def _withdrawal_response(request, now: datetime) -> WithdrawalRequestResponse:
    response = WithdrawalRequestResponse.model_validate(request)
    response.status = derive_status(request, now)
    return response


@router.post("/config", response_model=ApiResponse[SavingsConfigResult])
async def configure_savings(
    config: SavingsConfigRequest,
    service: WalletService = Depends(get_wallet_service)
):
    """
    Set the owner's save rate (0-50 bps) and withdrawal delay, then push them to the vault.

    The local change is committed first; the wallet's onchainConfigStatus
    shows whether the vault has caught up.
    """
    result = await service.configure_savings(
        config.wallet_address,
        config.saving_percent_bps,
        config.withdrawal_delay_seconds
    )
    return ApiResponse(
        data=SavingsConfigResult(
            user=UserResponse.model_validate(result.user),
            wallet=WalletResponse.model_validate(result.wallet),
            transaction_hash=result.tx_hash
        ),
        message="Savings configuration synced on-chain"
    )


@router.post("/authorize", response_model=AuthorizeResponse)
async def authorize_transaction(
    decision: AuthorizeRequest,
    service: AuthorizationService = Depends(get_authorization_service)
):
    """
    Approve (deposit into the vault) or reject a detected transfer's auto-save.

    Repeating a decision that already took effect returns the stored
    transaction with alreadyProcessed=true.
    """
    if decision.action == "approve":
        result = await service.approve(decision.transaction_id, amount_override=decision.amount_wei)
    else:
        result = await service.reject(decision.transaction_id, reason=decision.reason)

    return AuthorizeResponse(
        data=IncomingTransactionResponse.model_validate(result.transaction),
        transaction_hash=result.tx_hash,
        already_processed=result.already_processed
    )


@router.post("/withdraw", response_model=WithdrawResponse)
async def withdraw(
    body: WithdrawRequest,
    service: WithdrawalService = Depends(get_withdrawal_service)
):
    """
    Drive the wallet's vault withdrawal.

    - request: open a request for amountWei; executable after the owner's delay
    - execute: withdraw once the cooldown has elapsed
    - cancel: drop the active request
    """
    if body.action == "request":
        result = await service.request(body.wallet_address, body.amount_wei, user_id=body.user_id)
    elif body.action == "cancel":
        result = await service.cancel(body.wallet_address, user_id=body.user_id)
    else:
        result = await service.execute(body.wallet_address, user_id=body.user_id)

    return WithdrawResponse(
        data=_withdrawal_response(result.request, datetime.utcnow()),
        transaction_hash=result.tx_hash
    )


@router.get("/overview", response_model=ApiResponse[OverviewResponse])
async def savings_overview(
    address: str = Query(..., description="Any wallet address of the owner"),
    db: AsyncSession = Depends(get_db)
):
    """Dashboard summary for the owner of the given wallet."""
    overview = await get_overview(db, normalize_address(address))
    now = datetime.utcnow()

    withdrawals = [_withdrawal_response(w, now) for w in overview.withdrawal_requests]
    return ApiResponse(
        data=OverviewResponse(
            user=UserResponse.model_validate(overview.user),
            wallets=[WalletResponse.model_validate(w) for w in overview.wallets],
            pending_transactions=[
                IncomingTransactionResponse.model_validate(t) for t in overview.pending_transactions
            ],
            ledger_entries=[LedgerEntryResponse.model_validate(e) for e in overview.ledger_entries],
            withdrawal_requests=withdrawals,
            stats=OverviewStats(
                total_wallets=len(overview.wallets),
                pending_transactions=len(overview.pending_transactions),
                pending_withdrawals=len(withdrawals)
            )
        )
    )


@router.get("/vault-account", response_model=ApiResponse[VaultAccountResponse])
async def vault_account(
    address: str = Query(..., description="Saver wallet address"),
    gateway: VaultGateway = Depends(get_vault_gateway)
):
    """Read the saver's on-chain vault account, for reconciling in-flight records."""
    saver = normalize_address(address)
    account = await gateway.fetch_vault_account(saver)
    return ApiResponse(
        data=VaultAccountResponse(
            address=saver,
            rate_bps=account.rate_bps,
            withdrawal_delay=account.withdrawal_delay,
            balance=account.balance,
            total_deposited=account.total_deposited,
            total_withdrawn=account.total_withdrawn,
            pending_amount=account.pending_amount,
            pending_available_at=account.pending_available_at
        )
    )
