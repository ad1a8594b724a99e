"""Tests for KeyCustodian provisioning and signer loading."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from tokenswallet.errors import NoSecret, SecretStoreUnavailable, UserUnknown
from tokenswallet.ledger.models import User
from tokenswallet.services.custodian import secret_path
from tokenswallet.wallets.base import Chain


@pytest.fixture
async def user(accounts):
    return await accounts.create(email="alice@example.com")


class TestSecretPath:
    def test_paths(self):
        assert secret_path(Chain.ETHEREUM, "u1") == "ethereum/u1"
        assert secret_path(Chain.SUBSTRATE, "u1") == "substrate/u1"
        assert secret_path("substrate", "u1") == "substrate/u1"


class TestProvision:
    """Tests for provision."""

    async def test_first_provision_stores_key_and_address(self, custodian, store, user):
        address = await custodian.provision(user.id, Chain.ETHEREUM)

        secret = await store.get(f"ethereum/{user.id}")
        assert secret["privateKey"].startswith("0x")
        assert user.ethereum_address == address
        assert user.substrate_address is None

    async def test_provision_is_idempotent(self, custodian, store, user):
        first = await custodian.provision(user.id, Chain.ETHEREUM)
        second = await custodian.provision(user.id, Chain.ETHEREUM)

        assert first == second
        assert await store.get(f"ethereum/{user.id}", version=2) is None

    async def test_concurrent_provision_single_key(self, custodian, store, user):
        addresses = await asyncio.gather(
            *[custodian.provision(user.id, Chain.SUBSTRATE) for _ in range(5)]
        )

        assert len(set(addresses)) == 1
        assert await store.get(f"substrate/{user.id}", version=2) is None

    async def test_both_chains(self, custodian, user):
        eth = await custodian.provision(user.id, Chain.ETHEREUM)
        sub = await custodian.provision(user.id, Chain.SUBSTRATE)

        assert eth.startswith("0x")
        assert user.ethereum_address == eth
        assert user.substrate_address == sub

    async def test_unknown_user(self, custodian, store):
        with pytest.raises(UserUnknown):
            await custodian.provision("missing", Chain.ETHEREUM)
        assert await store.get("ethereum/missing") is None

    async def test_existing_secret_reused(self, custodian, store, user, eth_backend):
        wallet = eth_backend.generate_wallet()
        await store.put(f"ethereum/{user.id}", wallet.secret)

        address = await custodian.provision(user.id, Chain.ETHEREUM)

        assert address == wallet.address
        assert user.ethereum_address == wallet.address

    async def test_failed_put_records_nothing(self, custodian, store, user):
        store.put = AsyncMock(side_effect=SecretStoreUnavailable("Vault unreachable"))

        with pytest.raises(SecretStoreUnavailable):
            await custodian.provision(user.id, Chain.ETHEREUM)
        assert user.ethereum_address is None

    async def test_put_conflict_reuses_stored_secret(self, custodian, store, user, eth_backend):
        # Store that answers "not found" to the first read although a key is there
        wallet = eth_backend.generate_wallet()
        await store.put(f"ethereum/{user.id}", wallet.secret)
        real_get = store.get
        store.get = AsyncMock(side_effect=[None, await real_get(f"ethereum/{user.id}")])

        address = await custodian.provision(user.id, Chain.ETHEREUM)

        assert address == wallet.address
        assert user.ethereum_address == wallet.address

    async def test_reprovision_after_lost_record(self, custodian, accounts, user):
        address = await custodian.provision(user.id, Chain.SUBSTRATE)
        user.substrate_address = None
        await accounts.save(user)

        again = await custodian.provision(user.id, Chain.SUBSTRATE)
        assert again == address
        assert user.substrate_address == address


class TestLoadSigner:
    """Tests for load_signer."""

    async def test_signer_matches_recorded_address(self, custodian, user):
        address = await custodian.provision(user.id, Chain.ETHEREUM)

        signer = await custodian.load_signer(user.id, Chain.ETHEREUM)
        assert signer.address == address

    async def test_unknown_user(self, custodian):
        with pytest.raises(UserUnknown):
            await custodian.load_signer("missing", Chain.ETHEREUM)

    async def test_existing_user_without_secret(self, custodian, user):
        with pytest.raises(NoSecret):
            await custodian.load_signer(user.id, Chain.ETHEREUM)

    async def test_user_u1_key_at_ethereum_u1(self, custodian, store, accounts):
        await accounts.save(User(id="u1", email="u1@example.com"))

        address = await custodian.provision("u1", Chain.ETHEREUM)
        secret = await store.get("ethereum/u1")
        signer = await custodian.load_signer("u1", "ethereum")

        assert set(secret) == {"privateKey"}
        assert signer.address == address

    async def test_secret_never_logged(self, custodian, store, user, caplog):
        with caplog.at_level("DEBUG"):
            await custodian.provision(user.id, Chain.SUBSTRATE)
            await custodian.load_signer(user.id, Chain.SUBSTRATE)

        mnemonic = (await store.get(f"substrate/{user.id}"))["mnemonic"]
        assert mnemonic not in caplog.text
