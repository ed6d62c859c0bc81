"""Wallet registry API router."""

from typing import List

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from autosave.api.deps import get_wallet_service
from autosave.schemas.common import ApiResponse
from autosave.schemas.wallet import (
    AutoRegisterResponse,
    WalletAutoRegister,
    WalletCreate,
    WalletWithUserResponse,
)
from autosave.services.wallet_service import WalletService

router = APIRouter()


@router.get("", response_model=ApiResponse[List[WalletWithUserResponse]])
async def list_wallets(service: WalletService = Depends(get_wallet_service)):
    """List all registered wallets, newest first."""
    wallets = await service.list_wallets()
    return ApiResponse(data=[WalletWithUserResponse.model_validate(w) for w in wallets])


@router.post(
    "",
    response_model=ApiResponse[WalletWithUserResponse],
    status_code=status.HTTP_201_CREATED
)
async def register_wallet(
    wallet_data: WalletCreate,
    service: WalletService = Depends(get_wallet_service)
):
    """
    Register a wallet for monitoring.

    The owning user is created on first registration. Watched-address
    matching picks the wallet up after the watch-list's next reload.
    """
    wallet = await service.register_wallet(
        wallet_data.address,
        label=wallet_data.label,
        is_active=wallet_data.is_active,
        chain_id=wallet_data.chain_id
    )
    return ApiResponse(
        data=WalletWithUserResponse.model_validate(wallet),
        message="Wallet registered"
    )


@router.post("/auto-register", response_model=AutoRegisterResponse)
async def auto_register_wallet(
    wallet_data: WalletAutoRegister,
    service: WalletService = Depends(get_wallet_service)
):
    """
    Register the connecting wallet if it is new (201), or return it (200).
    """
    wallet, already_exists = await service.auto_register_wallet(
        wallet_data.address,
        label=wallet_data.label,
        chain_id=wallet_data.chain_id
    )
    response = AutoRegisterResponse(
        data=WalletWithUserResponse.model_validate(wallet),
        message="Wallet already registered" if already_exists else "Wallet registered successfully",
        already_exists=already_exists
    )
    return JSONResponse(
        status_code=status.HTTP_200_OK if already_exists else status.HTTP_201_CREATED,
        content=response.model_dump(mode="json", by_alias=True)
    )
