"""Wallet registry and savings configuration."""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from autosave.config import settings
from autosave.core.codec import normalize_address
from autosave.core.errors import (
    ConfirmationTimeoutError,
    ConflictError,
    GatewayError,
    NotFoundError,
    ValidationError,
)
from autosave.database import unit_of_work
from autosave.models.user import User
from autosave.models.wallet import OnchainConfigStatus, Wallet
from autosave.schemas.savings import (
    MAX_SAVING_PERCENT_BPS,
    MAX_WITHDRAWAL_DELAY_SECONDS,
    MIN_WITHDRAWAL_DELAY_SECONDS,
)
from autosave.services.vault_gateway import VaultGateway

logger = logging.getLogger(__name__)


def wallet_user_email(address: str) -> str:
    """Placeholder email for users created from a wallet address."""
    return f"{address}@wallet.autosave"


@dataclass
class ConfigureResult:
    user: User
    wallet: Wallet
    tx_hash: Optional[str] = None


class WalletService:
    """Registers watched wallets and pushes their owners' savings config to the vault."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        gateway: Optional[VaultGateway] = None,
        confirmation_timeout: Optional[float] = None,
    ):
        self.session_factory = session_factory
        self.gateway = gateway
        self.confirmation_timeout = confirmation_timeout

    async def _find_wallet(self, session: AsyncSession, address: str) -> Optional[Wallet]:
        result = await session.execute(
            select(Wallet)
            .options(selectinload(Wallet.user))
            .where(Wallet.address == address)
        )
        return result.scalar_one_or_none()

    async def _get_or_create_user(self, session: AsyncSession, address: str) -> User:
        email = wallet_user_email(address)
        result = await session.execute(select(User).where(User.email == email))
        user = result.scalar_one_or_none()
        if user:
            return user

        user = User(
            email=email,
            name=f"User {address[:6]}",
            saving_percent_bps=0,
            withdrawal_delay_seconds=settings.DEFAULT_WITHDRAWAL_DELAY_SECONDS,
        )
        session.add(user)
        await session.flush()
        logger.info(f"Created user {user.id} for wallet {address}")
        return user

    async def list_wallets(self) -> List[Wallet]:
        """All registered wallets, newest first."""
        async with unit_of_work(self.session_factory) as session:
            result = await session.execute(
                select(Wallet)
                .options(selectinload(Wallet.user))
                .order_by(Wallet.created_at.desc())
            )
            return list(result.scalars().all())

    async def register_wallet(
        self,
        address: str,
        label: Optional[str] = None,
        is_active: bool = True,
        chain_id: Optional[int] = None,
    ) -> Wallet:
        """
        Register a wallet for monitoring, creating its owner on first sight.

        Raises:
            ValidationError: Malformed address
            ConflictError: Address already registered
        """
        address = normalize_address(address)
        try:
            async with unit_of_work(self.session_factory) as session:
                if await self._find_wallet(session, address):
                    raise ConflictError("Wallet already registered")

                user = await self._get_or_create_user(session, address)
                wallet = Wallet(
                    user_id=user.id,
                    address=address,
                    label=label,
                    is_active=is_active,
                    chain_id=chain_id or settings.DEFAULT_CHAIN_ID,
                )
                session.add(wallet)
                await session.flush()
                wallet.user = user
        except IntegrityError as e:
            raise ConflictError("Wallet already registered") from e

        logger.info(f"Registered wallet {address} for user {user.id}")
        return wallet

    async def auto_register_wallet(
        self,
        address: str,
        label: Optional[str] = None,
        chain_id: Optional[int] = None,
    ) -> Tuple[Wallet, bool]:
        """
        Return the wallet for address, registering it if needed.

        Returns:
            (wallet, already_exists)
        """
        address = normalize_address(address)

        async with unit_of_work(self.session_factory) as session:
            existing = await self._find_wallet(session, address)
        if existing:
            return existing, True

        label = label or f"Auto-registered {datetime.utcnow().date().isoformat()}"
        try:
            wallet = await self.register_wallet(address, label=label, chain_id=chain_id)
        except ConflictError:
            # Registered concurrently between the lookup and the insert
            async with unit_of_work(self.session_factory) as session:
                existing = await self._find_wallet(session, address)
            if not existing:
                raise
            return existing, True

        return wallet, False

    async def configure_savings(
        self,
        address: str,
        saving_percent_bps: int,
        withdrawal_delay_seconds: int,
    ) -> ConfigureResult:
        """
        Update the owner's save rate and cooldown, then push them to the vault.

        The local change is committed before the vault call. The wallet's
        onchain_config_status records the outcome: SYNCED on confirmation,
        SUBMITTED when confirmation timed out, FAILED when the call failed.
        Posting the same configuration again retries the vault call.

        Raises:
            ValidationError: Address or values out of range
            NotFoundError: Wallet not registered
            GatewayError: Vault call failed (local change kept)
            ConfirmationTimeoutError: Vault call submitted but unconfirmed
        """
        address = normalize_address(address)
        if isinstance(saving_percent_bps, bool) or not isinstance(saving_percent_bps, int):
            raise ValidationError("savingPercentBps must be an integer")
        if not 0 <= saving_percent_bps <= MAX_SAVING_PERCENT_BPS:
            raise ValidationError(f"savingPercentBps must be between 0 and {MAX_SAVING_PERCENT_BPS}")
        if isinstance(withdrawal_delay_seconds, bool) or not isinstance(withdrawal_delay_seconds, int):
            raise ValidationError("withdrawalDelaySeconds must be an integer")
        if not MIN_WITHDRAWAL_DELAY_SECONDS <= withdrawal_delay_seconds <= MAX_WITHDRAWAL_DELAY_SECONDS:
            raise ValidationError(
                f"withdrawalDelaySeconds must be between {MIN_WITHDRAWAL_DELAY_SECONDS} "
                f"and {MAX_WITHDRAWAL_DELAY_SECONDS}"
            )
        if self.gateway is None:
            raise GatewayError("Vault gateway not configured")

        async with unit_of_work(self.session_factory) as session:
            wallet = await self._find_wallet(session, address)
            if not wallet:
                raise NotFoundError("Wallet not found")
            user = wallet.user
            user.saving_percent_bps = saving_percent_bps
            user.withdrawal_delay_seconds = withdrawal_delay_seconds
            wallet.is_active = True
            wallet.onchain_config_status = OnchainConfigStatus.PENDING
            wallet.onchain_config_error = None
            wallet_id = wallet.id

        logger.info(
            f"Savings config for {address} saved: {saving_percent_bps} bps, "
            f"{withdrawal_delay_seconds}s delay; pushing to vault"
        )

        try:
            on_chain = await self.gateway.configure_saver_on_chain(
                address,
                saving_percent_bps,
                withdrawal_delay_seconds,
                timeout=self.confirmation_timeout,
            )
        except ConfirmationTimeoutError as e:
            await self._record_sync(wallet_id, OnchainConfigStatus.SUBMITTED, tx_hash=e.tx_hash)
            raise
        except GatewayError as e:
            logger.error(f"Vault configuration failed for {address}: {e.message}")
            await self._record_sync(wallet_id, OnchainConfigStatus.FAILED, tx_hash=e.tx_hash, error=e.message)
            raise

        wallet = await self._record_sync(wallet_id, OnchainConfigStatus.SYNCED, tx_hash=on_chain.tx_hash)
        logger.info(f"✅ Savings config for {address} synced on-chain (tx: {on_chain.tx_hash})")
        return ConfigureResult(user=wallet.user, wallet=wallet, tx_hash=on_chain.tx_hash)

    async def _record_sync(
        self,
        wallet_id: str,
        status: OnchainConfigStatus,
        tx_hash: Optional[str] = None,
        error: Optional[str] = None,
    ) -> Wallet:
        async with unit_of_work(self.session_factory) as session:
            result = await session.execute(
                select(Wallet).options(selectinload(Wallet.user)).where(Wallet.id == wallet_id)
            )
            wallet = result.scalar_one()
            wallet.onchain_config_status = status
            wallet.onchain_config_tx_hash = tx_hash
            wallet.onchain_config_error = error
        return wallet
