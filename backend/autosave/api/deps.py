"""API dependencies: database access and shared application services."""

from typing import AsyncGenerator

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from autosave.config import settings
from autosave.database import AsyncSessionLocal
from autosave.services.authorization_service import AuthorizationService
from autosave.services.ledger_service import LedgerService
from autosave.services.vault_gateway import VaultGateway
from autosave.services.wallet_service import WalletService
from autosave.services.watchlist_cache import WatchListCache
from autosave.services.withdrawal_service import WithdrawalService


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Session factory used by services that manage their own units of work."""
    return AsyncSessionLocal


async def get_db(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory)
) -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency that yields a database session, committed when the route returns.

    Usage in FastAPI routes:
        @router.get("/")
        async def route(db: AsyncSession = Depends(get_db)):
            ...
    """
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def get_watchlist(request: Request) -> WatchListCache:
    """The application-wide watch-list cache."""
    return request.app.state.watchlist


def get_vault_gateway(request: Request) -> VaultGateway:
    """The application-wide vault gateway (one relayer, one nonce lock)."""
    return request.app.state.vault_gateway


def get_ledger_service(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory)
) -> LedgerService:
    return LedgerService(session_factory)


def get_authorization_service(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    gateway: VaultGateway = Depends(get_vault_gateway)
) -> AuthorizationService:
    return AuthorizationService(
        session_factory,
        gateway,
        confirmation_timeout=settings.VAULT_CONFIRMATION_TIMEOUT_SECONDS
    )


def get_withdrawal_service(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    gateway: VaultGateway = Depends(get_vault_gateway)
) -> WithdrawalService:
    return WithdrawalService(
        session_factory,
        gateway,
        confirmation_timeout=settings.VAULT_CONFIRMATION_TIMEOUT_SECONDS
    )


def get_wallet_service(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    gateway: VaultGateway = Depends(get_vault_gateway)
) -> WalletService:
    return WalletService(
        session_factory,
        gateway,
        confirmation_timeout=settings.VAULT_CONFIRMATION_TIMEOUT_SECONDS
    )
