"""Relayer-signed client for the on-chain savings vault."""

import asyncio
import logging
import threading
from dataclasses import dataclass
from typing import Any, Optional

from web3 import AsyncHTTPProvider, AsyncWeb3, Web3
from web3.exceptions import TimeExhausted

from autosave.config import settings
from autosave.core.errors import (
    ConfirmationTimeoutError,
    GatewayError,
    TransactionRevertedError,
)

logger = logging.getLogger(__name__)


# Reduced ABI: the relayer entry points and the account view
SAVINGS_VAULT_ABI = [
    {
        "inputs": [{"name": "saver", "type": "address"}],
        "name": "depositFor",
        "outputs": [],
        "stateMutability": "payable",
        "type": "function"
    },
    {
        "inputs": [
            {"name": "saver", "type": "address"},
            {"name": "rateBps", "type": "uint16"},
            {"name": "withdrawalDelay", "type": "uint64"}
        ],
        "name": "configureFor",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function"
    },
    {
        "inputs": [
            {"name": "saver", "type": "address"},
            {"name": "amount", "type": "uint256"}
        ],
        "name": "requestWithdrawalFor",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function"
    },
    {
        "inputs": [{"name": "saver", "type": "address"}],
        "name": "cancelWithdrawalFor",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function"
    },
    {
        "inputs": [{"name": "saver", "type": "address"}],
        "name": "executeWithdrawalFor",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function"
    },
    {
        "inputs": [{"name": "saver", "type": "address"}],
        "name": "getAccount",
        "outputs": [
            {"name": "rateBps", "type": "uint16"},
            {"name": "withdrawalDelay", "type": "uint64"},
            {"name": "balance", "type": "uint256"},
            {"name": "totalDeposited", "type": "uint256"},
            {"name": "totalWithdrawn", "type": "uint256"},
            {"name": "pendingAmount", "type": "uint256"},
            {"name": "pendingAvailableAt", "type": "uint64"}
        ],
        "stateMutability": "view",
        "type": "function"
    }
]


@dataclass(frozen=True)
class VaultAccount:
    """On-chain savings account state of one saver."""

    rate_bps: int
    withdrawal_delay: int
    balance: int
    total_deposited: int
    total_withdrawn: int
    pending_amount: int
    pending_available_at: int  # unix seconds, 0 when nothing is pending


@dataclass(frozen=True)
class VaultTxResult:
    """Hash of a submitted vault transaction and, once confirmed, its receipt."""

    tx_hash: str
    receipt: Optional[Any] = None


@dataclass
class _VaultClients:
    web3: AsyncWeb3
    contract: Any
    account: Any


def _require(value, key: str):
    if value in (None, ""):
        raise GatewayError(f"Missing required configuration: {key}")
    return value


class VaultGateway:
    """
    Thin client over the savings vault contract.

    Connection objects are built on first use and then shared. Every write is
    signed by the relayer key; nonce assignment and submission are serialized
    so concurrent calls never reuse a nonce.
    """

    def __init__(
        self,
        chain_id: Optional[int],
        rpc_url: str,
        vault_address: str,
        relayer_private_key: str,
        confirmations: int = 1,
        poll_latency: float = 0.5,
    ):
        self.chain_id = chain_id
        self.rpc_url = rpc_url
        self.vault_address = vault_address
        self.relayer_private_key = relayer_private_key
        self.confirmations = max(1, confirmations)
        self.poll_latency = poll_latency

        self._clients: Optional[_VaultClients] = None
        self._init_lock = threading.Lock()
        self._nonce_lock = asyncio.Lock()

    @classmethod
    def from_settings(cls) -> "VaultGateway":
        return cls(
            chain_id=settings.SAVINGS_CHAIN_ID,
            rpc_url=settings.SAVINGS_RPC_URL,
            vault_address=settings.SAVINGS_VAULT_ADDRESS,
            relayer_private_key=settings.SAVINGS_RELAYER_PRIVATE_KEY,
            confirmations=settings.VAULT_CONFIRMATIONS,
        )

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    def _get_clients(self) -> _VaultClients:
        if self._clients is not None:
            return self._clients
        with self._init_lock:
            if self._clients is None:
                self._clients = self._init_clients()
        return self._clients

    def _init_clients(self) -> _VaultClients:
        _require(self.chain_id, "SAVINGS_CHAIN_ID")
        rpc_url = _require(self.rpc_url, "SAVINGS_RPC_URL")
        vault_address = _require(self.vault_address, "SAVINGS_VAULT_ADDRESS")
        private_key = _require(self.relayer_private_key, "SAVINGS_RELAYER_PRIVATE_KEY")
        if not private_key.startswith("0x"):
            private_key = f"0x{private_key}"

        web3 = AsyncWeb3(AsyncHTTPProvider(rpc_url))
        contract = web3.eth.contract(
            address=Web3.to_checksum_address(vault_address),
            abi=SAVINGS_VAULT_ABI
        )
        account = web3.eth.account.from_key(private_key)

        logger.info(
            f"Vault gateway initialised: chain={self.chain_id} vault={vault_address} "
            f"relayer={account.address}"
        )
        return _VaultClients(web3=web3, contract=contract, account=account)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def _submit(self, function_name: str, *args, value: int = 0) -> str:
        clients = self._get_clients()
        try:
            async with self._nonce_lock:
                nonce = await clients.web3.eth.get_transaction_count(clients.account.address, "pending")
                contract_function = getattr(clients.contract.functions, function_name)(*args)
                tx = await contract_function.build_transaction({
                    "from": clients.account.address,
                    "nonce": nonce,
                    "value": value,
                    "chainId": self.chain_id,
                })
                signed = clients.account.sign_transaction(tx)
                raw_hash = await clients.web3.eth.send_raw_transaction(signed.raw_transaction)
        except GatewayError:
            raise
        except Exception as e:
            logger.error(f"Vault {function_name} submission failed: {e}", exc_info=True)
            raise GatewayError(f"Vault {function_name} submission failed: {e}") from e

        tx_hash = Web3.to_hex(raw_hash)
        logger.info(f"Vault {function_name} submitted: {tx_hash} (nonce {nonce})")
        return tx_hash

    async def wait_for_receipt(self, tx_hash: str, timeout: Optional[float] = None):
        """
        Wait until the transaction is mined with the configured confirmations.

        There is no timeout unless the caller passes one.

        Raises:
            ConfirmationTimeoutError: The timeout elapsed first (the transaction may still land)
            TransactionRevertedError: The transaction was mined but reverted
            GatewayError: The node could not be queried
        """
        clients = self._get_clients()
        try:
            receipt = await asyncio.wait_for(self._await_confirmations(clients, tx_hash), timeout)
        except (asyncio.TimeoutError, TimeExhausted):
            logger.warning(f"Vault transaction {tx_hash} not confirmed within {timeout}s")
            raise ConfirmationTimeoutError(tx_hash, timeout)
        except Exception as e:
            logger.error(f"Error waiting for vault transaction {tx_hash}: {e}", exc_info=True)
            raise GatewayError(f"Could not confirm vault transaction: {e}", tx_hash=tx_hash) from e

        if receipt["status"] != 1:
            logger.error(f"Vault transaction reverted: {tx_hash}")
            raise TransactionRevertedError("Vault transaction reverted on-chain", tx_hash=tx_hash)
        return receipt

    async def _await_confirmations(self, clients: _VaultClients, tx_hash: str):
        receipt = await clients.web3.eth.wait_for_transaction_receipt(
            tx_hash,
            timeout=None,
            poll_latency=self.poll_latency
        )
        target_block = receipt["blockNumber"] + self.confirmations - 1
        while await clients.web3.eth.block_number < target_block:
            await asyncio.sleep(self.poll_latency)
        return receipt

    async def _send(
        self,
        function_name: str,
        *args,
        value: int = 0,
        wait_for_receipt: bool = True,
        timeout: Optional[float] = None,
    ) -> VaultTxResult:
        tx_hash = await self._submit(function_name, *args, value=value)
        if not wait_for_receipt:
            return VaultTxResult(tx_hash=tx_hash)
        receipt = await self.wait_for_receipt(tx_hash, timeout=timeout)
        return VaultTxResult(tx_hash=tx_hash, receipt=receipt)

    async def deposit_for_saver(
        self,
        saver: str,
        amount_wei: int,
        wait_for_receipt: bool = True,
        timeout: Optional[float] = None,
    ) -> VaultTxResult:
        """Fund the saver's vault balance with amount_wei of the native asset."""
        return await self._send(
            "depositFor",
            Web3.to_checksum_address(saver),
            value=amount_wei,
            wait_for_receipt=wait_for_receipt,
            timeout=timeout,
        )

    async def configure_saver_on_chain(
        self,
        saver: str,
        rate_bps: int,
        withdrawal_delay_seconds: int,
        wait_for_receipt: bool = True,
        timeout: Optional[float] = None,
    ) -> VaultTxResult:
        return await self._send(
            "configureFor",
            Web3.to_checksum_address(saver),
            rate_bps,
            withdrawal_delay_seconds,
            wait_for_receipt=wait_for_receipt,
            timeout=timeout,
        )

    async def request_withdrawal_on_chain(
        self,
        saver: str,
        amount_wei: int,
        wait_for_receipt: bool = True,
        timeout: Optional[float] = None,
    ) -> VaultTxResult:
        return await self._send(
            "requestWithdrawalFor",
            Web3.to_checksum_address(saver),
            amount_wei,
            wait_for_receipt=wait_for_receipt,
            timeout=timeout,
        )

    async def cancel_withdrawal_on_chain(
        self,
        saver: str,
        wait_for_receipt: bool = True,
        timeout: Optional[float] = None,
    ) -> VaultTxResult:
        return await self._send(
            "cancelWithdrawalFor",
            Web3.to_checksum_address(saver),
            wait_for_receipt=wait_for_receipt,
            timeout=timeout,
        )

    async def execute_withdrawal_on_chain(
        self,
        saver: str,
        wait_for_receipt: bool = True,
        timeout: Optional[float] = None,
    ) -> VaultTxResult:
        return await self._send(
            "executeWithdrawalFor",
            Web3.to_checksum_address(saver),
            wait_for_receipt=wait_for_receipt,
            timeout=timeout,
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def fetch_vault_account(self, saver: str) -> VaultAccount:
        """Read the saver's account from the vault."""
        clients = self._get_clients()
        try:
            data = await clients.contract.functions.getAccount(
                Web3.to_checksum_address(saver)
            ).call()
        except Exception as e:
            logger.error(f"Vault getAccount failed for {saver}: {e}", exc_info=True)
            raise GatewayError(f"Could not read vault account: {e}") from e

        return VaultAccount(
            rate_bps=int(data[0]),
            withdrawal_delay=int(data[1]),
            balance=int(data[2]),
            total_deposited=int(data[3]),
            total_withdrawn=int(data[4]),
            pending_amount=int(data[5]),
            pending_available_at=int(data[6]),
        )
