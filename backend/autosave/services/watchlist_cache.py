"""Time-bounded cache of watched wallet addresses and their owners' savings config."""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from autosave.models.user import User
from autosave.models.wallet import Wallet

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 5 * 60


@dataclass(frozen=True)
class WatchedWallet:
    """Snapshot of an active wallet joined with its owner's configuration."""

    wallet_id: str
    user_id: str
    address: str
    chain_id: int
    saving_percent_bps: int
    withdrawal_delay_seconds: int


class WatchListCache:
    """
    Address → WatchedWallet mapping, rebuilt wholesale from the store on expiry.

    Staleness is bounded by the TTL: a wallet registered, deactivated or
    reconfigured inside the window is observed only after the next reload.
    Concurrent callers that find the cache expired share one reload.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._session_factory = session_factory
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: Optional[Dict[str, WatchedWallet]] = None
        self._expires_at = 0.0
        self._lock = asyncio.Lock()
        self.reload_count = 0

    def _is_fresh(self) -> bool:
        return self._entries is not None and self._clock() < self._expires_at

    async def get(self) -> Dict[str, WatchedWallet]:
        """Return the current mapping, reloading it first if absent or expired."""
        if self._is_fresh():
            return self._entries
        async with self._lock:
            # Another caller may have reloaded while we waited
            if self._is_fresh():
                return self._entries
            return await self._reload()

    async def is_watched(self, address: str) -> bool:
        entries = await self.get()
        return address.lower() in entries

    async def lookup(self, address: str) -> Optional[WatchedWallet]:
        entries = await self.get()
        return entries.get(address.lower())

    def invalidate(self) -> None:
        """Drop the cached mapping; the next get() reloads."""
        self._entries = None
        self._expires_at = 0.0

    async def refresh(self) -> Dict[str, WatchedWallet]:
        """Force a reload regardless of expiry."""
        async with self._lock:
            return await self._reload()

    async def _reload(self) -> Dict[str, WatchedWallet]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(Wallet, User)
                .join(User, Wallet.user_id == User.id)
                .where(Wallet.is_active.is_(True))
            )
            rows = result.all()

        entries = {
            wallet.address.lower(): WatchedWallet(
                wallet_id=wallet.id,
                user_id=user.id,
                address=wallet.address.lower(),
                chain_id=wallet.chain_id,
                saving_percent_bps=user.saving_percent_bps,
                withdrawal_delay_seconds=user.withdrawal_delay_seconds,
            )
            for wallet, user in rows
        }

        # Replace mapping and expiry together
        self._entries, self._expires_at = entries, self._clock() + self._ttl
        self.reload_count += 1
        logger.info(f"Watch-list reloaded: {len(entries)} active wallets")
        return entries
