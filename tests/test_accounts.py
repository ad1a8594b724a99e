"""Tests for AccountService."""

import base64
import hashlib

import pytest

from tokenswallet.errors import AccountExists, InvalidInput, SecretStoreUnavailable
from tokenswallet.services.accounts import PBKDF2_ITERATIONS, hash_password
from tokenswallet.wallets.base import Chain


def pbkdf2_matches(password: str, encoded: str) -> bool:
    algorithm, iterations, salt_b64, key_b64 = encoded.split("$")
    key = hashlib.pbkdf2_hmac(
        "sha256", password.encode(), base64.b64decode(salt_b64), int(iterations), dklen=32
    )
    return algorithm == "pbkdf2_sha256" and key == base64.b64decode(key_b64)


class TestPasswords:
    def test_encoding(self):
        encoded = hash_password("hunter22")

        assert encoded.startswith(f"pbkdf2_sha256${PBKDF2_ITERATIONS}$")
        assert pbkdf2_matches("hunter22", encoded)
        assert not pbkdf2_matches("hunter23", encoded)

    def test_salted(self):
        assert hash_password("same") != hash_password("same")

    def test_fixed_salt_is_deterministic(self):
        assert hash_password("same", salt=b"\x00" * 16) == hash_password("same", salt=b"\x00" * 16)


class TestRegister:
    """Tests for register."""

    async def test_creates_user_then_wallet(self, account_service, store):
        user = await account_service.register("Alice@Example.com ", "hunter22")

        assert user.email == "alice@example.com"
        assert pbkdf2_matches("hunter22", user.password_hash)
        assert user.ethereum_address
        assert await store.get(f"ethereum/{user.id}")

    async def test_duplicate(self, account_service):
        await account_service.register("alice@example.com", "hunter22")

        with pytest.raises(AccountExists):
            await account_service.register("alice@example.com", "other-pass")

    async def test_duplicate_differing_in_case(self, account_service):
        await account_service.register("alice@example.com", "hunter22")

        with pytest.raises(AccountExists):
            await account_service.register(" ALICE@example.com", "other-pass")

    async def test_lookup_ignores_case_and_whitespace(self, account_service, accounts):
        user = await account_service.register("Dave@Example.com", "hunter22")

        assert (await accounts.find_by_email("  DAVE@example.COM ")).id == user.id

    async def test_missing_fields(self, account_service):
        with pytest.raises(InvalidInput):
            await account_service.register("", "hunter22")

    async def test_store_down_propagates(self, account_service, store):
        async def unavailable(*args, **kwargs):
            raise SecretStoreUnavailable("Vault unreachable")

        store.put = unavailable

        with pytest.raises(SecretStoreUnavailable):
            await account_service.register("alice@example.com", "hunter22", chain=Chain.SUBSTRATE)


class TestGoogleLogin:
    """Tests for find_or_create_from_google."""

    async def test_creates_and_provisions(self, account_service):
        user = await account_service.find_or_create_from_google("g-1", "bob@example.com", "Bob")

        assert user.google_id == "g-1"
        assert user.display_name == "Bob"
        assert user.ethereum_address

    async def test_second_login_same_user(self, account_service, store):
        first = await account_service.find_or_create_from_google("g-1", "bob@example.com")
        second = await account_service.find_or_create_from_google("g-1", "bob@example.com")

        assert first.id == second.id
        assert await store.get(f"ethereum/{first.id}", version=2) is None

    async def test_links_by_email(self, account_service):
        registered = await account_service.register("carol@example.com", "hunter22")

        user = await account_service.find_or_create_from_google(
            "g-carol", "carol@example.com", chain=Chain.SUBSTRATE
        )

        assert user.id == registered.id
        assert user.google_id == "g-carol"
        assert user.substrate_address
        assert user.ethereum_address == registered.ethereum_address

    async def test_requires_ids(self, account_service):
        with pytest.raises(InvalidInput):
            await account_service.find_or_create_from_google("", "x@example.com")
