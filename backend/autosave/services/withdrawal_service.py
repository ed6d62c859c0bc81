"""Withdrawal lifecycle: request → cooldown → execute, or cancel."""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from autosave.core.errors import (
    ConfirmationTimeoutError,
    ConflictError,
    CooldownActiveError,
    GatewayError,
    NotFoundError,
    StateConflictError,
    ValidationError,
)
from autosave.database import unit_of_work
from autosave.models.savings_ledger import SavingsLedger, SavingsLedgerAction
from autosave.models.wallet import Wallet
from autosave.models.withdrawal_request import WithdrawalRequest, WithdrawalStatus
from autosave.services.vault_gateway import VaultGateway, VaultTxResult

logger = logging.getLogger(__name__)


def derive_status(request: WithdrawalRequest, now: Optional[datetime] = None) -> WithdrawalStatus:
    """Status as presented to callers: a PENDING request past its cooldown is READY."""
    now = now or datetime.utcnow()
    if request.status == WithdrawalStatus.PENDING and now >= request.available_at:
        return WithdrawalStatus.READY
    return request.status


@dataclass
class WithdrawalResult:
    request: WithdrawalRequest
    tx_hash: Optional[str] = None


class WithdrawalService:
    """
    Drives vault withdrawals for a wallet.

    A wallet has at most one active (PENDING) request, enforced by a partial
    unique index. While a vault call is outstanding the request carries an
    in_flight_action claim, so a second cancel or execute on the same
    request is rejected instead of reaching the chain.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        gateway: VaultGateway,
        confirmation_timeout: Optional[float] = None,
    ):
        self.session_factory = session_factory
        self.gateway = gateway
        self.confirmation_timeout = confirmation_timeout

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def _load_wallet(
        self,
        session: AsyncSession,
        wallet_address: str,
        user_id: Optional[str] = None,
    ) -> Wallet:
        query = (
            select(Wallet)
            .options(selectinload(Wallet.user))
            .where(Wallet.address == wallet_address.lower())
        )
        if user_id:
            query = query.where(Wallet.user_id == user_id)
        wallet = (await session.execute(query)).scalar_one_or_none()
        if not wallet:
            raise NotFoundError("Wallet not found")
        return wallet

    async def _active_request(self, session: AsyncSession, wallet_id: str) -> Optional[WithdrawalRequest]:
        result = await session.execute(
            select(WithdrawalRequest).where(
                WithdrawalRequest.wallet_id == wallet_id,
                WithdrawalRequest.status == WithdrawalStatus.PENDING,
            )
        )
        return result.scalar_one_or_none()

    def _add_ledger(
        self,
        session: AsyncSession,
        request: WithdrawalRequest,
        action: SavingsLedgerAction,
        tx_hash: Optional[str],
        notes: str,
    ) -> None:
        session.add(
            SavingsLedger(
                user_id=request.user_id,
                wallet_id=request.wallet_id,
                action=action,
                amount_wei=request.amount_wei,
                tx_hash=tx_hash,
                notes=notes,
            )
        )

    # ------------------------------------------------------------------
    # Request
    # ------------------------------------------------------------------

    async def request(
        self,
        wallet_address: str,
        amount_wei: Optional[int],
        user_id: Optional[str] = None,
    ) -> WithdrawalResult:
        """
        Open a withdrawal request and submit it to the vault.

        Raises:
            NotFoundError: Wallet unknown (or not owned by user_id)
            ValidationError: amount_wei missing or not positive
            ConflictError: Wallet already has an active request
            GatewayError: Vault call failed; no request is left behind
            ConfirmationTimeoutError: Submitted but unconfirmed; request kept
        """
        if amount_wei is None or amount_wei <= 0:
            raise ValidationError("amountWei must be greater than zero")

        now = datetime.utcnow()
        try:
            async with unit_of_work(self.session_factory) as session:
                wallet = await self._load_wallet(session, wallet_address, user_id)
                if await self._active_request(session, wallet.id):
                    raise ConflictError(
                        "Wallet already has an active withdrawal request",
                        current_status=WithdrawalStatus.PENDING.value,
                    )
                delay = wallet.user.withdrawal_delay_seconds
                reservation = WithdrawalRequest(
                    user_id=wallet.user_id,
                    wallet_id=wallet.id,
                    amount_wei=amount_wei,
                    status=WithdrawalStatus.PENDING,
                    in_flight_action="request",
                    requested_at=now,
                    available_at=now + timedelta(seconds=delay),
                )
                session.add(reservation)
                await session.flush()
                request_id = reservation.id
        except IntegrityError as e:
            # Lost the race against a concurrent request on the same wallet
            raise ConflictError(
                "Wallet already has an active withdrawal request",
                current_status=WithdrawalStatus.PENDING.value,
            ) from e

        saver = wallet.address
        try:
            on_chain = await self.gateway.request_withdrawal_on_chain(
                saver,
                amount_wei,
                timeout=self.confirmation_timeout,
            )
        except ConfirmationTimeoutError as e:
            async with unit_of_work(self.session_factory) as session:
                request = await session.get(WithdrawalRequest, request_id)
                request.request_tx_hash = e.tx_hash
            logger.warning(f"Withdrawal request {request_id} for {saver} unconfirmed ({e.tx_hash})")
            raise
        except GatewayError as e:
            logger.error(f"Withdrawal request for {saver} failed: {e.message}")
            async with unit_of_work(self.session_factory) as session:
                await session.execute(
                    delete(WithdrawalRequest).where(WithdrawalRequest.id == request_id)
                )
            raise

        confirmed_at = datetime.utcnow()
        async with unit_of_work(self.session_factory) as session:
            request = await session.get(WithdrawalRequest, request_id)
            request.available_at = confirmed_at + timedelta(seconds=delay)
            request.request_tx_hash = on_chain.tx_hash
            request.in_flight_action = None
            self._add_ledger(
                session,
                request,
                SavingsLedgerAction.WITHDRAW_REQUESTED,
                on_chain.tx_hash,
                "Withdrawal request submitted on-chain",
            )

        logger.info(
            f"Withdrawal of {amount_wei} wei requested for {saver}, "
            f"available at {request.available_at.isoformat()} (tx: {on_chain.tx_hash})"
        )
        return WithdrawalResult(request=request, tx_hash=on_chain.tx_hash)

    # ------------------------------------------------------------------
    # Cancel / execute
    # ------------------------------------------------------------------

    async def _find_active(self, wallet_address: str, user_id: Optional[str]) -> tuple[Wallet, WithdrawalRequest]:
        async with unit_of_work(self.session_factory) as session:
            wallet = await self._load_wallet(session, wallet_address, user_id)
            request = await self._active_request(session, wallet.id)
            if not request:
                raise NotFoundError("No active withdrawal request for wallet")
            return wallet, request

    async def _claim(self, request: WithdrawalRequest, action: str) -> None:
        async with unit_of_work(self.session_factory) as session:
            result = await session.execute(
                update(WithdrawalRequest)
                .where(
                    WithdrawalRequest.id == request.id,
                    WithdrawalRequest.status == WithdrawalStatus.PENDING,
                    WithdrawalRequest.in_flight_action.is_(None),
                )
                .values(in_flight_action=action)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 1:
                return
            current = await session.get(WithdrawalRequest, request.id)

        if current is None or current.status != WithdrawalStatus.PENDING:
            status = current.status.value if current else None
            raise StateConflictError(
                f"Withdrawal request is no longer active ({status})",
                current_status=status,
            )
        raise StateConflictError(
            f"Withdrawal request is already being processed ({current.in_flight_action})",
            current_status=derive_status(current).value,
        )

    async def _release(self, request_id: str) -> None:
        async with unit_of_work(self.session_factory) as session:
            await session.execute(
                update(WithdrawalRequest)
                .where(WithdrawalRequest.id == request_id)
                .values(in_flight_action=None)
                .execution_options(synchronize_session=False)
            )

    async def _run_claimed(self, request: WithdrawalRequest, action: str, call, hash_field: str) -> VaultTxResult:
        """Invoke the vault call for a claimed request, handling failure and timeout."""
        try:
            return await call()
        except ConfirmationTimeoutError as e:
            # Claim stays so the request is not acted on again before reconciliation
            async with unit_of_work(self.session_factory) as session:
                current = await session.get(WithdrawalRequest, request.id)
                setattr(current, hash_field, e.tx_hash)
            logger.warning(f"Withdrawal {action} for request {request.id} unconfirmed ({e.tx_hash})")
            raise
        except GatewayError as e:
            logger.error(f"Withdrawal {action} for request {request.id} failed: {e.message}")
            await self._release(request.id)
            raise

    async def cancel(self, wallet_address: str, user_id: Optional[str] = None) -> WithdrawalResult:
        """
        Cancel the wallet's active withdrawal request.

        Raises:
            NotFoundError: Wallet unknown or no active request
            StateConflictError: Another call is acting on the request
            GatewayError: Vault call failed; request stays active
        """
        wallet, request = await self._find_active(wallet_address, user_id)
        await self._claim(request, "cancel")

        on_chain = await self._run_claimed(
            request,
            "cancel",
            lambda: self.gateway.cancel_withdrawal_on_chain(wallet.address, timeout=self.confirmation_timeout),
            "cancel_tx_hash",
        )

        async with unit_of_work(self.session_factory) as session:
            current = await session.get(WithdrawalRequest, request.id)
            current.status = WithdrawalStatus.CANCELLED
            current.cancel_tx_hash = on_chain.tx_hash
            current.cancelled_at = datetime.utcnow()
            current.in_flight_action = None
            self._add_ledger(
                session,
                current,
                SavingsLedgerAction.WITHDRAW_CANCELLED,
                on_chain.tx_hash,
                "Withdrawal request cancelled",
            )

        logger.info(f"Withdrawal request {request.id} for {wallet.address} cancelled (tx: {on_chain.tx_hash})")
        return WithdrawalResult(request=current, tx_hash=on_chain.tx_hash)

    async def execute(self, wallet_address: str, user_id: Optional[str] = None) -> WithdrawalResult:
        """
        Execute the wallet's withdrawal once its cooldown has elapsed.

        Raises:
            NotFoundError: Wallet unknown or no active request
            CooldownActiveError: available_at not reached; the vault is not called
            StateConflictError: Another call is acting on the request
            GatewayError: Vault call failed; request stays active
        """
        wallet, request = await self._find_active(wallet_address, user_id)

        now = datetime.utcnow()
        if now < request.available_at:
            raise await self._cooldown_error(wallet.address, request)

        await self._claim(request, "execute")

        on_chain = await self._run_claimed(
            request,
            "execute",
            lambda: self.gateway.execute_withdrawal_on_chain(wallet.address, timeout=self.confirmation_timeout),
            "execute_tx_hash",
        )

        async with unit_of_work(self.session_factory) as session:
            current = await session.get(WithdrawalRequest, request.id)
            current.status = WithdrawalStatus.COMPLETED
            current.execute_tx_hash = on_chain.tx_hash
            current.completed_at = datetime.utcnow()
            current.in_flight_action = None
            self._add_ledger(
                session,
                current,
                SavingsLedgerAction.WITHDRAW_COMPLETED,
                on_chain.tx_hash,
                "Withdrawal executed on-chain",
            )

        logger.info(
            f"✅ Withdrawal of {current.amount_wei} wei executed for {wallet.address} "
            f"(tx: {on_chain.tx_hash})"
        )
        return WithdrawalResult(request=current, tx_hash=on_chain.tx_hash)

    async def _cooldown_error(self, saver: str, request: WithdrawalRequest) -> CooldownActiveError:
        details = {
            "amountWei": str(request.amount_wei),
            "availableAt": request.available_at.isoformat(),
        }
        try:
            account = await self.gateway.fetch_vault_account(saver)
        except GatewayError as e:
            logger.warning(f"Could not read vault account for {saver} during cooldown check: {e.message}")
        else:
            details["onChainPendingAmount"] = str(account.pending_amount)
            details["onChainAvailableAt"] = account.pending_available_at

        return CooldownActiveError(
            f"Withdrawal cooldown active until {request.available_at.isoformat()}",
            current_status=WithdrawalStatus.PENDING.value,
            details=details,
        )
