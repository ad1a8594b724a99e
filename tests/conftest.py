"""Pytest configuration and fixtures."""

import hashlib
import os
from types import SimpleNamespace
from typing import AsyncGenerator, Optional
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# Set test environment
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["SECRET_STORE_BACKEND"] = "memory"
os.environ["ADMIN_TOKEN"] = ""
os.environ["DEBUG"] = "true"

from tokenswallet.ledger.models import Base
from tokenswallet.ledger.repository import AccountRepository, ReceiptRepository
from tokenswallet.services import AccountService, KeyCustodian, TransferCoordinator
from tokenswallet.utils.locks import clear_provision_locks
from tokenswallet.vault.memory import MemorySecretStore
from tokenswallet.wallets.base import Chain
from tokenswallet.wallets.ethereum import EthereumRpcClient, EthereumWalletBackend
from tokenswallet.wallets.substrate import (
    SubstrateConnection,
    SubstrateWalletBackend,
    TransferMechanism,
)


@pytest_asyncio.fixture
async def db_engine():
    """Create in-memory database engine for testing."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create database session for testing."""
    session_factory = async_sessionmaker(
        bind=db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with session_factory() as session:
        yield session


@pytest.fixture(autouse=True)
def _reset_locks():
    yield
    clear_provision_locks()


@pytest.fixture
def accounts(db_session) -> AccountRepository:
    return AccountRepository(db_session)


@pytest.fixture
def receipts(db_session) -> ReceiptRepository:
    return ReceiptRepository(db_session)


@pytest.fixture
def store() -> MemorySecretStore:
    return MemorySecretStore()


@pytest.fixture
def eth_rpc():
    """Ethereum JSON-RPC client with every network method mocked."""
    rpc = AsyncMock(spec=EthereumRpcClient)
    rpc.get_balance.return_value = 10**18
    rpc.get_transaction_count.return_value = 0
    rpc.gas_price.return_value = 10**9
    rpc.chain_id.return_value = 8882
    rpc.send_raw_transaction.return_value = "0x" + "ab" * 32
    rpc.get_transaction_receipt.return_value = {"status": "0x1", "blockNumber": "0x10"}
    return rpc


@pytest.fixture
def eth_backend(eth_rpc) -> EthereumWalletBackend:
    return EthereumWalletBackend(eth_rpc, confirmation_timeout=1.0, poll_interval=0.01)


class FakeExtrinsic:
    def __init__(self, call, extrinsic_hash: bytes):
        self.call = call
        self.extrinsic_hash = extrinsic_hash


class FakeSubstrate:
    """In-process stand-in for SubstrateInterface.

    Submitted extrinsics land in the next block unless ``include`` is off.
    ``dispatch_error`` makes the receipt of every included extrinsic fail
    with that error; ``submit_error`` is raised from submit_extrinsic.
    """

    def __init__(self, url="ws://node.test", ss58_format=42, calls=(), token_decimals=(12,)):
        self.url = url
        self.calls = set(calls)
        self.token_decimals = list(token_decimals)
        self.free = 10 * 10**18
        self.fee = 10**15
        self.head = 100
        self.blocks: dict[int, list] = {}
        self.submitted: list[FakeExtrinsic] = []
        self.include = True
        self.dispatch_error = None
        self.submit_error: Optional[Exception] = None
        self.closed = False

    def get_metadata_call_function(self, module, function):
        return object() if (module, function) in self.calls else None

    def compose_call(self, call_module, call_function, call_params):
        return {"module": call_module, "function": call_function, "params": call_params}

    def query(self, module, storage_function, params):
        return SimpleNamespace(value={"data": {"free": self.free, "reserved": 0}})

    def get_payment_info(self, call, keypair):
        return {"partial_fee": self.fee, "weight": 1}

    def create_signed_extrinsic(self, call, keypair):
        seed = f"{keypair.ss58_address}:{len(self.submitted)}:{call}".encode()
        return FakeExtrinsic(call, hashlib.blake2b(seed, digest_size=32).digest())

    def get_block_number(self, block_hash):
        return self.head

    def submit_extrinsic(self, extrinsic, wait_for_inclusion=False):
        assert not wait_for_inclusion
        if self.submit_error:
            raise self.submit_error
        self.submitted.append(extrinsic)
        if self.include:
            self.head += 1
            self.blocks[self.head] = [extrinsic]
        return SimpleNamespace(extrinsic_hash="0x" + extrinsic.extrinsic_hash.hex())

    def get_block(self, block_number=None):
        if block_number not in self.blocks and block_number > self.head:
            return None
        return {
            "header": {"hash": f"0xblock{block_number}", "number": block_number},
            "extrinsics": self.blocks.get(block_number, []),
        }

    def retrieve_extrinsic_by_hash(self, block_hash, extrinsic_hash):
        return SimpleNamespace(
            is_success=self.dispatch_error is None,
            error_message=self.dispatch_error,
        )

    def close(self):
        self.closed = True


TRANSFER_CALLS = {
    TransferMechanism.MULTI_ASSET: [("Tokens", "transfer")],
    TransferMechanism.NATIVE_BALANCE: [("Balances", "transfer_keep_alive")],
    TransferMechanism.CUSTOM_PALLET: [("Unique", "transfer")],
    TransferMechanism.NONE: [],
}


def make_substrate_backend(mechanism=TransferMechanism.NATIVE_BALANCE, **kwargs):
    """Substrate backend connected to a FakeSubstrate offering one transfer call.

    The fake is reachable as ``backend.connection._interface``.
    """
    chain = FakeSubstrate(calls=TRANSFER_CALLS[mechanism])
    connection = SubstrateConnection(
        "ws://node.test:9944",
        ss58_format=42,
        decimals=18,
        interface_factory=lambda url, ss58_format: chain,
    )
    connection.connect()
    kwargs.setdefault("poll_interval", 0.01)
    kwargs.setdefault("inclusion_timeout", 1.0)
    return SubstrateWalletBackend(connection, **kwargs)


@pytest.fixture
def substrate_backend() -> SubstrateWalletBackend:
    return make_substrate_backend()


@pytest.fixture
def backends(eth_backend, substrate_backend) -> dict:
    return {Chain.ETHEREUM: eth_backend, Chain.SUBSTRATE: substrate_backend}


@pytest.fixture
def custodian(store, backends, accounts) -> KeyCustodian:
    return KeyCustodian(store, backends, accounts)


@pytest.fixture
def coordinator(custodian, backends, receipts, accounts) -> TransferCoordinator:
    return TransferCoordinator(custodian, backends, receipts, accounts)


@pytest.fixture
def account_service(accounts, custodian) -> AccountService:
    return AccountService(accounts, custodian)
