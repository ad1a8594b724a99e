"""Ethereum-style wallet backend.

Keys are generated and used locally with eth_account; the node is only
reached over JSON-RPC (httpx) for balance, nonce, gas price and broadcast.

Transfers are optimistic: the hash is returned as soon as the node accepts
the raw transaction. Confirmation is watched by a detached task that only
logs; nobody waits on it.
"""

import asyncio
import logging
from typing import Any, Optional

import httpx
from eth_account import Account
from web3 import Web3

from tokenswallet.errors import (
    ChainDispatchError,
    InsufficientFunds,
    InvalidAddress,
    NoSecret,
    SubmissionUnconfirmed,
    TransportError,
)
from tokenswallet.units import ETHER_DECIMALS, format_units, parse_positive_units
from tokenswallet.wallets.base import (
    Chain,
    GeneratedWallet,
    Signer,
    SubmittedTransfer,
    WalletBackend,
)

logger = logging.getLogger(__name__)

# Plain value transfer
TRANSFER_GAS_LIMIT = 21000


class RpcError(Exception):
    """JSON-RPC error object returned by the node."""

    def __init__(self, code: int, message: str):
        super().__init__(message)
        self.code = code
        self.message = message


class EthereumRpcClient:
    """Minimal async JSON-RPC client over one shared httpx.AsyncClient.

    Create once at startup and share between requests; httpx pools
    connections and is safe for concurrent use.
    """

    def __init__(
        self,
        rpc_url: str,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.rpc_url = rpc_url
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._request_id = 0
        self._chain_id: Optional[int] = None

    async def _call(self, method: str, params: list) -> Any:
        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params,
            "id": self._request_id,
        }

        try:
            response = await self._client.post(self.rpc_url, json=payload)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as e:
            logger.error(f"RPC {method} failed: {e}")
            raise TransportError(f"Ethereum node unreachable: {e}") from e
        except ValueError as e:
            raise TransportError(f"Invalid JSON-RPC response for {method}") from e

        if data.get("error"):
            error = data["error"]
            raise RpcError(error.get("code", 0), error.get("message", str(error)))

        return data.get("result")

    async def get_balance(self, address: str) -> int:
        """Get balance in wei at the latest block."""
        result = await self._call("eth_getBalance", [address, "latest"])
        return int(result, 16)

    async def get_transaction_count(self, address: str) -> int:
        """Get pending nonce for address."""
        result = await self._call("eth_getTransactionCount", [address, "pending"])
        return int(result, 16)

    async def gas_price(self) -> int:
        """Get current gas price in wei."""
        return int(await self._call("eth_gasPrice", []), 16)

    async def chain_id(self) -> int:
        """Get chain id (cached after first call)."""
        if self._chain_id is None:
            self._chain_id = int(await self._call("eth_chainId", []), 16)
        return self._chain_id

    async def send_raw_transaction(self, raw_tx_hex: str) -> str:
        """Broadcast a signed transaction, returning its hash."""
        return await self._call("eth_sendRawTransaction", [raw_tx_hex])

    async def get_transaction_receipt(self, tx_hash: str) -> Optional[dict]:
        """Get receipt, or None while the transaction is pending."""
        return await self._call("eth_getTransactionReceipt", [tx_hash])

    async def close(self) -> None:
        await self._client.aclose()


class EthereumWalletBackend(WalletBackend):
    """Ethereum-style wallet backend.

    Example:
        rpc = EthereumRpcClient("https://rpc-opal.unique.network")
        backend = EthereumWalletBackend(rpc)
        wallet = backend.generate_wallet()
    """

    chain = Chain.ETHEREUM
    decimals = ETHER_DECIMALS

    def __init__(
        self,
        rpc: EthereumRpcClient,
        confirmation_timeout: float = 300.0,
        poll_interval: float = 3.0,
    ):
        """Initialize backend.

        Args:
            rpc: Shared JSON-RPC client
            confirmation_timeout: How long the watcher polls for a receipt
            poll_interval: Seconds between receipt polls
        """
        self.rpc = rpc
        self.confirmation_timeout = confirmation_timeout
        self.poll_interval = poll_interval
        self._watchers: set[asyncio.Task] = set()

    def generate_wallet(self) -> GeneratedWallet:
        account = Account.create()
        return GeneratedWallet(
            address=account.address,
            secret={"privateKey": Web3.to_hex(account.key)},
        )

    def restore_signer(self, secret: dict) -> Signer:
        private_key = (secret or {}).get("privateKey")
        if not private_key:
            raise NoSecret("Stored secret has no privateKey")

        try:
            account = Account.from_key(private_key)
        except (ValueError, TypeError) as e:
            raise NoSecret(f"Stored private key is unreadable: {type(e).__name__}") from e

        return Signer(chain=self.chain, address=account.address, handle=account)

    def validate_address(self, address: str) -> bool:
        if not isinstance(address, str) or not address.startswith("0x"):
            return False
        return Web3.is_address(address)

    def parse_amount(self, amount: str) -> int:
        return parse_positive_units(amount, self.decimals)

    async def send_tokens(
        self,
        signer: Signer,
        to: str,
        amount: str,
        asset_id: Optional[str] = None,
    ) -> SubmittedTransfer:
        """Send native tokens from the signer's account.

        Returns as soon as the node accepts the transaction.

        Raises:
            InvalidAddress: Malformed recipient
            InvalidAmount: Amount not positive or too precise
            InsufficientFunds: Balance below amount (nothing submitted)
            ChainDispatchError: Node rejected the transaction
            TransportError: Node unreachable before broadcast
            SubmissionUnconfirmed: Broadcast sent but not acknowledged
        """
        if not self.validate_address(to):
            raise InvalidAddress(f"Invalid Ethereum address: {to}")
        value = self.parse_amount(amount)

        balance = await self._rpc(self.rpc.get_balance(signer.address))
        if balance < value:
            logger.info(
                f"Rejecting transfer from {signer.address}: balance "
                f"{format_units(balance, self.decimals)} < {amount}"
            )
            raise InsufficientFunds("Insufficient funds for this transaction")

        nonce = await self._rpc(self.rpc.get_transaction_count(signer.address))
        gas_price = await self._rpc(self.rpc.gas_price())
        chain_id = await self._rpc(self.rpc.chain_id())

        tx = {
            "nonce": nonce,
            "gasPrice": gas_price,
            "gas": TRANSFER_GAS_LIMIT,
            "to": Web3.to_checksum_address(to),
            "value": value,
            "chainId": chain_id,
        }
        signed = signer.handle.sign_transaction(tx)
        # eth-account >= 0.13 renamed rawTransaction to raw_transaction
        raw_tx = getattr(signed, "raw_transaction", None) or signed.rawTransaction
        local_hash = Web3.to_hex(signed.hash)

        logger.info(f"[Blockchain] Sending {amount} from {signer.address} -> {to}")

        try:
            tx_hash = await self.rpc.send_raw_transaction(Web3.to_hex(raw_tx))
        except RpcError as e:
            logger.error(f"Broadcast rejected for {signer.address}: {e.message}")
            if "insufficient funds" in e.message.lower():
                raise InsufficientFunds("Insufficient funds for this transaction") from e
            raise ChainDispatchError(e.message) from e
        except TransportError as e:
            # The node may have accepted it before the response was lost
            logger.error(f"Broadcast of {local_hash} not acknowledged: {e}")
            raise SubmissionUnconfirmed(
                f"Transaction {local_hash} may have been submitted: {e}",
                tx_hash=local_hash,
            ) from e

        logger.info(f"Transaction sent: {tx_hash} - waiting for confirmation...")
        self._spawn_watcher(tx_hash)

        return SubmittedTransfer(
            chain=self.chain,
            tx_hash=tx_hash,
            from_address=signer.address,
            to_address=to,
            amount=amount,
            base_units=value,
        )

    async def get_balance(self, address: str) -> str:
        if not self.validate_address(address):
            raise InvalidAddress(f"Invalid Ethereum address: {address}")
        balance = await self._rpc(self.rpc.get_balance(address))
        return format_units(balance, self.decimals)

    async def _rpc(self, call):
        """Await a read-only RPC call, mapping node errors to TransportError."""
        try:
            return await call
        except RpcError as e:
            raise TransportError(f"Ethereum node error: {e.message}") from e

    def _spawn_watcher(self, tx_hash: str) -> None:
        task = asyncio.create_task(self._watch_confirmation(tx_hash))
        self._watchers.add(task)
        task.add_done_callback(self._watchers.discard)

    async def _watch_confirmation(self, tx_hash: str) -> None:
        """Poll for the receipt and log the outcome. Never raises."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.confirmation_timeout

        while loop.time() < deadline:
            try:
                receipt = await self.rpc.get_transaction_receipt(tx_hash)
            except (TransportError, RpcError) as e:
                # The transfer was submitted; a failed poll says nothing about it
                logger.warning(f"Could not poll receipt for {tx_hash}: {e}")
                receipt = None

            if receipt:
                status = int(receipt.get("status") or "0x0", 16)
                block = receipt.get("blockNumber")
                block_number = int(block, 16) if block else None
                if status == 1:
                    logger.info(f"Transaction confirmed: {tx_hash} (block: {block_number})")
                else:
                    logger.error(f"Transaction failed: {tx_hash} (block: {block_number})")
                return

            await asyncio.sleep(self.poll_interval)

        logger.warning(
            f"No receipt for {tx_hash} after {self.confirmation_timeout}s - still pending"
        )

    async def close(self) -> None:
        for task in list(self._watchers):
            task.cancel()
        await self.rpc.close()
