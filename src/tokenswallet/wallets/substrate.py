"""Substrate-style wallet backend.

Keys are sr25519 keypairs derived from a BIP39 mnemonic; addresses are SS58
encoded with the configured network prefix.

Which extrinsic moves value depends on the runtime the node exposes. The
connection probes the metadata once, in this order, and caches the result:
1. Tokens.transfer           multi-asset (ORML), unless USE_BALANCES is set
2. Balances.transfer_*       native balance
3. Unique.transfer           custom pallet; recipient is a CrossAccountId and
                             the balance + fee check happens here, not on-chain
If none exist the backend refuses to submit.

Unlike the Ethereum path, a transfer returns only once the extrinsic is
included in a block. The extrinsic is broadcast without waiting and new
blocks are then scanned for its hash, so the shared connection is never held
for the length of a block time.
"""

import asyncio
import functools
import logging
import re
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional

from substrateinterface import Keypair, KeypairType, SubstrateInterface
from substrateinterface.exceptions import SubstrateRequestException
from substrateinterface.utils.ss58 import is_valid_ss58_address
from websocket import WebSocketException

from tokenswallet.errors import (
    ChainDispatchError,
    ConfigurationError,
    InsufficientFunds,
    InvalidAddress,
    InvalidAmount,
    NoSecret,
    SubmissionUnconfirmed,
    TransportError,
)
from tokenswallet.units import format_units, is_positive_decimal, parse_positive_units
from tokenswallet.wallets.base import (
    Chain,
    GeneratedWallet,
    Signer,
    SubmittedTransfer,
    WalletBackend,
)

logger = logging.getLogger(__name__)

NATIVE_TRANSFER_CALLS = ("transfer_keep_alive", "transfer_allow_death", "transfer")

_H160_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")


class TransferMechanism(str, Enum):
    """How value moves on the connected chain."""

    MULTI_ASSET = "multi_asset"        # Tokens.transfer
    NATIVE_BALANCE = "native_balance"  # Balances.transfer_*
    CUSTOM_PALLET = "custom_pallet"    # Unique.transfer
    NONE = "none"


@dataclass(frozen=True)
class TransferRoute:
    """Probed transfer mechanism and the call that implements it."""

    mechanism: TransferMechanism
    module: Optional[str] = None
    function: Optional[str] = None


@dataclass
class ExtrinsicOutcome:
    """Result of submitting an extrinsic and waiting for inclusion."""

    success: bool
    extrinsic_hash: Optional[str] = None
    block_hash: Optional[str] = None
    error: Optional[str] = None


def detect_transfer_route(
    has_call: Callable[[str, str], bool], force_native: bool = False
) -> TransferRoute:
    """Pick the transfer call from what the runtime exposes.

    Args:
        has_call: Predicate (module, function) -> bool over runtime metadata
        force_native: Skip the multi-asset pallet (USE_BALANCES)
    """
    if not force_native and has_call("Tokens", "transfer"):
        return TransferRoute(TransferMechanism.MULTI_ASSET, "Tokens", "transfer")

    for function in NATIVE_TRANSFER_CALLS:
        if has_call("Balances", function):
            return TransferRoute(TransferMechanism.NATIVE_BALANCE, "Balances", function)

    if has_call("Unique", "transfer"):
        return TransferRoute(TransferMechanism.CUSTOM_PALLET, "Unique", "transfer")

    return TransferRoute(TransferMechanism.NONE)


def is_h160_address(address: str) -> bool:
    """Ethereum-format (20-byte hex) address, as embedded by Unique chains."""
    return bool(_H160_RE.match(address or ""))


def cross_account_id(address: str) -> dict:
    """Tag a recipient with its address family for the Unique pallet."""
    if is_h160_address(address):
        return {"Ethereum": address}
    return {"Substrate": address}


def format_dispatch_error(error: Any) -> str:
    """Render a receipt's error_message into readable chain error text."""
    if isinstance(error, dict):
        name = error.get("name") or error.get("type") or "DispatchError"
        docs = error.get("docs") or []
        if isinstance(docs, (list, tuple)):
            docs = " ".join(str(d) for d in docs)
        kind = error.get("type")
        label = f"{kind}.{name}" if kind and kind != name else name
        return f"{label}: {docs}" if docs else label
    return str(error)


class SubstrateConnection:
    """One long-lived websocket connection to a Substrate node.

    Created once at startup and shared by every request. SubstrateInterface
    keeps a single websocket that cannot multiplex concurrent calls, so all
    access goes through one lock; callers run these blocking methods in an
    executor.
    """

    def __init__(
        self,
        url: str,
        ss58_format: int = 42,
        decimals: Optional[int] = None,
        interface_factory: Callable[..., Any] = SubstrateInterface,
    ):
        """Initialize (does not connect).

        Args:
            url: Node websocket URL
            ss58_format: Network SS58 prefix
            decimals: Override for the chain's token decimals
            interface_factory: Builds the underlying SubstrateInterface
        """
        self.url = url
        self.ss58_format = ss58_format
        self.decimals = decimals
        self.route: Optional[TransferRoute] = None
        self._factory = interface_factory
        self._interface = None
        self._lock = threading.Lock()

    @property
    def is_ready(self) -> bool:
        return self._interface is not None and self.route is not None

    def connect(self, force_native: bool = False) -> TransferRoute:
        """Open the connection and probe the transfer mechanism (blocking)."""
        with self._lock:
            if self._interface is None:
                self._interface = self._factory(url=self.url, ss58_format=self.ss58_format)
                logger.info(f"Connected to Substrate node at {self.url}")

            if self.decimals is None:
                self.decimals = self._chain_decimals()

            if self.route is None:
                self.route = detect_transfer_route(self._has_call, force_native)
                logger.info(
                    f"Substrate transfer mechanism: {self.route.mechanism.value}"
                    + (f" ({self.route.module}.{self.route.function})" if self.route.module else "")
                )

            return self.route

    def _chain_decimals(self) -> Optional[int]:
        decimals = self._interface.token_decimals
        if isinstance(decimals, (list, tuple)):
            decimals = decimals[0] if decimals else None
        return int(decimals) if decimals is not None else None

    def _has_call(self, module: str, function: str) -> bool:
        try:
            return self._interface.get_metadata_call_function(module, function) is not None
        except (ValueError, KeyError):
            return False

    def free_balance(self, address: str) -> int:
        """Free balance of an account in base units (blocking)."""
        with self._lock:
            account = self._interface.query("System", "Account", [address])
        return int(account.value["data"]["free"])

    def compose_call(self, module: str, function: str, params: dict) -> Any:
        """Build a call against the runtime metadata (blocking)."""
        with self._lock:
            return self._interface.compose_call(
                call_module=module,
                call_function=function,
                call_params=params,
            )

    def partial_fee(self, call: Any, keypair: Keypair) -> int:
        """Estimated inclusion fee for a call in base units (blocking)."""
        with self._lock:
            info = self._interface.get_payment_info(call=call, keypair=keypair) or {}
        fee = info.get("partial_fee", info.get("partialFee", 0))
        return int(fee)

    def sign(self, call: Any, keypair: Keypair) -> tuple[Any, str]:
        """Sign a call; returns the extrinsic and its hash (blocking)."""
        with self._lock:
            extrinsic = self._interface.create_signed_extrinsic(call=call, keypair=keypair)
        return extrinsic, _hex_hash(extrinsic.extrinsic_hash)

    def head_number(self) -> int:
        """Number of the current best block (blocking)."""
        with self._lock:
            return int(self._interface.get_block_number(None))

    def broadcast(self, extrinsic: Any) -> Optional[ExtrinsicOutcome]:
        """Hand a signed extrinsic to the node without waiting (blocking).

        Returns a failed outcome if the node refused it outright (it will
        never be included), otherwise None.
        """
        with self._lock:
            try:
                self._interface.submit_extrinsic(extrinsic, wait_for_inclusion=False)
            except SubstrateRequestException as e:
                return ExtrinsicOutcome(success=False, error=_request_error_text(e))
        return None

    def find_inclusion(
        self, extrinsic_hash: str, first_block: int, last_block: int
    ) -> Optional[ExtrinsicOutcome]:
        """Look for the extrinsic in blocks first..last (blocking).

        The lock is taken per block so other requests interleave with a scan.
        """
        for number in range(first_block, last_block + 1):
            with self._lock:
                block = self._interface.get_block(block_number=number)
                if not block:
                    continue
                hashes = [_hex_hash(getattr(ex, "extrinsic_hash", None)) for ex in block["extrinsics"]]
                if extrinsic_hash not in hashes:
                    continue

                block_hash = block["header"]["hash"]
                receipt = self._interface.retrieve_extrinsic_by_hash(block_hash, extrinsic_hash)
                # is_success reads the block's events, so it stays under the lock
                if not receipt.is_success:
                    return ExtrinsicOutcome(
                        success=False,
                        extrinsic_hash=extrinsic_hash,
                        block_hash=block_hash,
                        error=format_dispatch_error(receipt.error_message),
                    )
                return ExtrinsicOutcome(
                    success=True, extrinsic_hash=extrinsic_hash, block_hash=block_hash
                )
        return None

    def close(self) -> None:
        with self._lock:
            if self._interface is not None:
                self._interface.close()
                self._interface = None


def _hex_hash(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    value = str(value)
    return value if value.startswith("0x") else "0x" + value


def _request_error_text(error: SubstrateRequestException) -> str:
    detail = error.args[0] if error.args else error
    if isinstance(detail, dict):
        message = detail.get("message", "")
        data = detail.get("data")
        return f"{message}: {data}" if data else message
    return str(detail)


class SubstrateWalletBackend(WalletBackend):
    """Substrate-style wallet backend over a shared SubstrateConnection."""

    chain = Chain.SUBSTRATE

    def __init__(
        self,
        connection: SubstrateConnection,
        token_id: str = "OPAL",
        force_native: bool = False,
        collection_id: int = 0,
        inclusion_timeout: float = 60.0,
        request_timeout: float = 30.0,
        poll_interval: float = 2.0,
    ):
        """Initialize backend.

        Args:
            connection: Shared node connection
            token_id: Default currency id for Tokens.transfer
            force_native: Prefer Balances over Tokens (USE_BALANCES)
            collection_id: Collection used by Unique.transfer
            inclusion_timeout: Upper bound on waiting for block inclusion
            request_timeout: Upper bound on other node calls
            poll_interval: Pause between block scans while waiting for inclusion
        """
        self.connection = connection
        self.ss58_prefix = connection.ss58_format
        self.token_id = token_id
        self.force_native = force_native
        self.collection_id = collection_id
        self.inclusion_timeout = inclusion_timeout
        self.request_timeout = request_timeout
        self.poll_interval = poll_interval

    @property
    def decimals(self) -> int:
        if self.connection.decimals is None:
            raise ConfigurationError("Chain decimals unknown; set SUBSTRATE_DECIMALS")
        return self.connection.decimals

    def generate_wallet(self) -> GeneratedWallet:
        mnemonic = Keypair.generate_mnemonic()
        keypair = self._keypair(mnemonic)
        return GeneratedWallet(address=keypair.ss58_address, secret={"mnemonic": mnemonic})

    def restore_signer(self, secret: dict) -> Signer:
        secret = secret or {}
        # Older records stored the mnemonic under "privateKey"
        mnemonic = secret.get("mnemonic") or secret.get("privateKey")
        if not mnemonic:
            raise NoSecret("Stored secret has no mnemonic")

        try:
            keypair = self._keypair(mnemonic)
        except ValueError as e:
            raise NoSecret("Stored mnemonic is unreadable") from e

        return Signer(chain=self.chain, address=keypair.ss58_address, handle=keypair)

    def _keypair(self, mnemonic: str) -> Keypair:
        return Keypair.create_from_mnemonic(
            mnemonic,
            ss58_format=self.ss58_prefix,
            crypto_type=KeypairType.SR25519,
        )

    def validate_address(self, address: str) -> bool:
        if not isinstance(address, str) or not address:
            return False
        if is_h160_address(address):
            # Only the Unique pallet can address an Ethereum-format account
            route = self.connection.route
            return route is not None and route.mechanism == TransferMechanism.CUSTOM_PALLET
        try:
            return bool(is_valid_ss58_address(address, valid_ss58_format=self.ss58_prefix))
        except ValueError:
            return False

    def parse_amount(self, amount: str) -> int:
        return parse_positive_units(amount, self.decimals)

    async def send_tokens(
        self,
        signer: Signer,
        to: str,
        amount: str,
        asset_id: Optional[str] = None,
    ) -> SubmittedTransfer:
        """Transfer from the signer's account and wait for block inclusion.

        Raises:
            InvalidAddress: Malformed recipient
            InvalidAmount: Amount not positive or too precise
            ConfigurationError: Chain exposes no transfer call
            InsufficientFunds: Custom-pallet pre-flight check failed
            ChainDispatchError: Node or runtime rejected the extrinsic
            TransportError: Node unreachable before broadcast
            SubmissionUnconfirmed: Broadcast not acknowledged or inclusion timed out
        """
        if not is_positive_decimal(amount):
            raise InvalidAmount("Amount must be greater than 0")

        await self.ensure_ready()
        if not self.validate_address(to):
            raise InvalidAddress(f"Invalid Substrate address: {to}")

        route = self.connection.route
        if route.mechanism == TransferMechanism.NONE:
            raise ConfigurationError(
                "No transfer mechanism on connected chain (Tokens, Balances, Unique)"
            )

        value = self.parse_amount(amount)
        keypair = signer.handle

        if asset_id and route.mechanism != TransferMechanism.MULTI_ASSET:
            logger.debug(f"Ignoring asset id {asset_id}: chain uses {route.mechanism.value}")

        if route.mechanism == TransferMechanism.MULTI_ASSET:
            params = {
                "dest": to,
                "currency_id": self._currency_id(asset_id or self.token_id),
                "amount": value,
            }
        elif route.mechanism == TransferMechanism.NATIVE_BALANCE:
            params = {"dest": to, "value": value}
        else:
            params = {
                "recipient": cross_account_id(to),
                "collection_id": self.collection_id,
                "item_id": 0,
                "value": value,
            }

        call = await self._run(self.connection.compose_call, route.module, route.function, params)

        if route.mechanism == TransferMechanism.CUSTOM_PALLET:
            # Unique.transfer does not reject an underfunded sender on its own
            free = await self._run(self.connection.free_balance, signer.address)
            fee = await self._run(self.connection.partial_fee, call, keypair)
            if free < value + fee:
                logger.info(
                    f"Rejecting transfer from {signer.address}: free "
                    f"{format_units(free, self.decimals)} < amount + fee "
                    f"{format_units(value + fee, self.decimals)}"
                )
                raise InsufficientFunds("Insufficient balance to cover amount and fees")

        logger.info(
            f"Submitting {route.module}.{route.function}: {amount} from {signer.address} -> {to}"
        )
        extrinsic, extrinsic_hash = await self._run(self.connection.sign, call, keypair)
        start_block = await self._run(self.connection.head_number)

        try:
            rejected = await self._run(self.connection.broadcast, extrinsic)
        except TransportError as e:
            # The node may have received it before the connection failed
            logger.error(f"Broadcast of {extrinsic_hash} not acknowledged: {e}")
            raise SubmissionUnconfirmed(
                f"Transfer {extrinsic_hash} may have been submitted: {e}",
                tx_hash=extrinsic_hash,
            ) from e

        outcome = rejected or await self._wait_for_inclusion(extrinsic_hash, start_block + 1)

        if not outcome.success:
            logger.error(f"Transfer failed: {outcome.error}")
            raise ChainDispatchError(outcome.error or "Extrinsic rejected")

        logger.info(f"Transfer {extrinsic_hash} included in block {outcome.block_hash}")
        return SubmittedTransfer(
            chain=self.chain,
            tx_hash=extrinsic_hash,
            from_address=signer.address,
            to_address=to,
            amount=amount,
            base_units=value,
            block_hash=outcome.block_hash,
        )

    async def _wait_for_inclusion(self, extrinsic_hash: str, first_block: int) -> ExtrinsicOutcome:
        """Scan new blocks for the extrinsic until ``inclusion_timeout``.

        Raises:
            SubmissionUnconfirmed: Not seen in time; it may still be included
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.inclusion_timeout
        next_block = first_block

        while loop.time() < deadline:
            try:
                head = await self._run(self.connection.head_number)
                if head >= next_block:
                    outcome = await self._run(
                        self.connection.find_inclusion, extrinsic_hash, next_block, head
                    )
                    if outcome:
                        return outcome
                    next_block = head + 1
            except TransportError as e:
                logger.warning(f"Could not scan blocks for {extrinsic_hash}: {e}")

            await asyncio.sleep(self.poll_interval)

        logger.error(
            f"Transfer {extrinsic_hash} not included after {self.inclusion_timeout}s"
        )
        raise SubmissionUnconfirmed(
            f"Transfer {extrinsic_hash} not included within {self.inclusion_timeout}s; "
            "it may still be included",
            tx_hash=extrinsic_hash,
        )

    async def get_balance(self, address: str) -> str:
        await self.ensure_ready()
        if not self.validate_address(address) or is_h160_address(address):
            raise InvalidAddress(f"Invalid Substrate address: {address}")
        free = await self._run(self.connection.free_balance, address)
        return format_units(free, self.decimals)

    async def ensure_ready(self) -> None:
        """Connect and probe on first use if startup could not."""
        if not self.connection.is_ready:
            await self._run(self.connection.connect, self.force_native)

    @staticmethod
    def _currency_id(token_id: str) -> Any:
        if token_id.isdigit():
            return int(token_id)
        return {"Token": token_id}

    async def _run(self, fn, *args, timeout: Optional[float] = None):
        """Run a blocking connection method in the executor with a deadline."""
        loop = asyncio.get_running_loop()
        deadline = timeout or self.request_timeout
        try:
            return await asyncio.wait_for(
                loop.run_in_executor(None, functools.partial(fn, *args)),
                timeout=deadline,
            )
        except asyncio.TimeoutError:
            logger.error(f"Substrate call {fn.__name__} timed out after {deadline}s")
            raise TransportError(f"Substrate node did not respond within {deadline}s")
        except (SubstrateRequestException, WebSocketException, OSError) as e:
            logger.error(f"Substrate call {fn.__name__} failed: {e}")
            raise TransportError(f"Substrate node unreachable: {e}") from e

    async def close(self) -> None:
        await asyncio.get_running_loop().run_in_executor(None, self.connection.close)
