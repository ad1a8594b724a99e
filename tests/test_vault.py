"""Tests for secret stores."""

import json

import httpx
import pytest

from tokenswallet.config import Settings
from tokenswallet.errors import ConfigurationError, SecretAlreadyExists, SecretStoreUnavailable
from tokenswallet.vault import MemorySecretStore, SecretStoreType, VaultSecretStore, create_secret_store


class TestMemorySecretStore:
    """Tests for the in-memory store."""

    async def test_missing_path_returns_none(self):
        store = MemorySecretStore()
        assert await store.get("ethereum/nobody") is None

    async def test_put_then_get(self):
        store = MemorySecretStore()
        version = await store.put("ethereum/u1", {"privateKey": "0xabc"})

        assert version == 1
        assert await store.get("ethereum/u1") == {"privateKey": "0xabc"}

    async def test_versions_kept(self):
        store = MemorySecretStore()
        await store.put("substrate/u1", {"mnemonic": "one"})
        await store.put("substrate/u1", {"mnemonic": "two"})

        assert await store.get("substrate/u1") == {"mnemonic": "two"}
        assert await store.get("substrate/u1", version=1) == {"mnemonic": "one"}
        assert await store.get("substrate/u1", version=3) is None

    async def test_create_only_conflict(self):
        store = MemorySecretStore()
        await store.put("ethereum/u1", {"privateKey": "0x1"}, create_only=True)

        with pytest.raises(SecretAlreadyExists):
            await store.put("ethereum/u1", {"privateKey": "0x2"}, create_only=True)
        assert await store.get("ethereum/u1") == {"privateKey": "0x1"}

    async def test_returns_copies(self):
        store = MemorySecretStore()
        await store.put("ethereum/u1", {"privateKey": "0x1"})

        secret = await store.get("ethereum/u1")
        secret["privateKey"] = "tampered"
        assert await store.get("ethereum/u1") == {"privateKey": "0x1"}


def vault_with(handler) -> VaultSecretStore:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return VaultSecretStore("http://vault.test:8200", token="s.test", client=client)


class TestVaultSecretStore:
    """Tests for the Vault KV v2 store against a mock transport."""

    async def test_put_sends_kv2_write(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["method"] = request.method
            seen["url"] = str(request.url)
            seen["token"] = request.headers.get("X-Vault-Token")
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"data": {"version": 3}})

        store = vault_with(handler)
        version = await store.put("ethereum/u1", {"privateKey": "0xabc"}, create_only=True)

        assert version == 3
        assert seen["method"] == "POST"
        assert seen["url"] == "http://vault.test:8200/v1/secret/data/ethereum/u1"
        assert seen["token"] == "s.test"
        assert seen["body"] == {"data": {"privateKey": "0xabc"}, "options": {"cas": 0}}

    async def test_plain_put_has_no_cas(self):
        bodies = []

        def handler(request):
            bodies.append(json.loads(request.content))
            return httpx.Response(200, json={"data": {"version": 1}})

        await vault_with(handler).put("ethereum/u1", {"privateKey": "0xabc"})
        assert "options" not in bodies[0]

    async def test_get_returns_data(self):
        def handler(request):
            return httpx.Response(
                200, json={"data": {"data": {"mnemonic": "word " * 12}, "metadata": {}}}
            )

        secret = await vault_with(handler).get("substrate/u1")
        assert secret == {"mnemonic": "word " * 12}

    async def test_get_passes_version(self):
        seen = {}

        def handler(request):
            seen["version"] = request.url.params.get("version")
            return httpx.Response(200, json={"data": {"data": {"privateKey": "0x1"}}})

        await vault_with(handler).get("ethereum/u1", version=2)
        assert seen["version"] == "2"

    async def test_get_404_is_none(self):
        store = vault_with(lambda request: httpx.Response(404, json={"errors": []}))
        assert await store.get("ethereum/u1") is None

    async def test_get_deleted_version_is_none(self):
        store = vault_with(
            lambda request: httpx.Response(200, json={"data": {"data": None, "metadata": {}}})
        )
        assert await store.get("ethereum/u1") is None

    async def test_cas_conflict(self):
        def handler(request):
            return httpx.Response(
                400,
                json={"errors": ["check-and-set parameter did not match the current version"]},
            )

        with pytest.raises(SecretAlreadyExists):
            await vault_with(handler).put("ethereum/u1", {"privateKey": "0x1"}, create_only=True)

    async def test_server_error_is_unavailable(self):
        store = vault_with(lambda request: httpx.Response(500, text="sealed"))

        with pytest.raises(SecretStoreUnavailable):
            await store.get("ethereum/u1")
        with pytest.raises(SecretStoreUnavailable):
            await store.put("ethereum/u1", {"privateKey": "0x1"})

    async def test_non_json_body_is_unavailable(self):
        # A proxy in front of Vault answering with an HTML page
        store = vault_with(lambda request: httpx.Response(200, text="<html>login</html>"))

        with pytest.raises(SecretStoreUnavailable):
            await store.get("ethereum/u1")
        with pytest.raises(SecretStoreUnavailable):
            await store.put("ethereum/u1", {"privateKey": "0x1"})

    async def test_non_object_json_is_unavailable(self):
        store = vault_with(lambda request: httpx.Response(200, json=["unexpected"]))

        with pytest.raises(SecretStoreUnavailable):
            await store.get("ethereum/u1")

    async def test_permission_denied_is_unavailable(self):
        store = vault_with(lambda request: httpx.Response(403, json={"errors": ["permission denied"]}))

        with pytest.raises(SecretStoreUnavailable):
            await store.get("ethereum/u1")

    async def test_transport_error_is_unavailable(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        store = vault_with(handler)
        with pytest.raises(SecretStoreUnavailable) as exc_info:
            await store.get("ethereum/u1")
        assert exc_info.value.retryable


class TestSecretStoreFactory:
    """Tests for create_secret_store."""

    def test_memory_default(self):
        store = create_secret_store(Settings(secret_store_backend="memory"))
        assert store.store_type == SecretStoreType.MEMORY

    def test_vault_requires_token(self):
        with pytest.raises(ConfigurationError):
            create_secret_store(Settings(secret_store_backend="vault", vault_token=""))

    async def test_vault_backend(self):
        store = create_secret_store(
            Settings(secret_store_backend="vault", vault_token="s.x", vault_mount="kv")
        )
        assert isinstance(store, VaultSecretStore)
        assert store.mount == "kv"
        await store.close()

    def test_unknown_backend(self):
        with pytest.raises(ConfigurationError):
            create_secret_store(Settings(secret_store_backend="s3"))
