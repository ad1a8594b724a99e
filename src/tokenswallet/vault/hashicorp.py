"""HashiCorp Vault KV v2 secret store.

Talks to Vault's HTTP API directly with httpx:
- write: POST /v1/{mount}/data/{path}  {"data": {...}, "options": {"cas": 0}}
- read:  GET  /v1/{mount}/data/{path}?version=N

Every write creates a new version; reads return the latest unless a version
is requested. A create-only write uses check-and-set 0, which Vault rejects
if the path already holds any version. That keeps "one key per user per
chain" even when a read right after a write still answers 404.
"""

import logging
from typing import Optional

import httpx

from tokenswallet.errors import SecretAlreadyExists, SecretStoreUnavailable
from tokenswallet.vault.base import SecretStore, SecretStoreType

logger = logging.getLogger(__name__)

CAS_MISMATCH_MARKER = "check-and-set"


class VaultSecretStore(SecretStore):
    """Secret store backed by a Vault KV v2 engine.

    Example:
        store = VaultSecretStore("http://127.0.0.1:8200", token="s.xxx")
        await store.put("ethereum/42", {"privateKey": "0x..."})
        secret = await store.get("ethereum/42")
    """

    def __init__(
        self,
        endpoint: str,
        token: str,
        mount: str = "secret",
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize Vault store.

        Args:
            endpoint: Vault address, e.g. http://127.0.0.1:8200
            token: Vault token sent as X-Vault-Token
            mount: KV v2 mount point
            timeout: Per-request timeout in seconds
            client: Pre-built client (tests inject one with a mock transport)
        """
        super().__init__(SecretStoreType.VAULT)
        self.endpoint = endpoint.rstrip("/")
        self.mount = mount.strip("/")
        self._client = client or httpx.AsyncClient(
            base_url=self.endpoint,
            timeout=timeout,
        )
        self._headers = {"X-Vault-Token": token}

    def _data_url(self, path: str) -> str:
        return f"{self.endpoint}/v1/{self.mount}/data/{path.strip('/')}"

    async def put(self, path: str, payload: dict, create_only: bool = False) -> int:
        body: dict = {"data": payload}
        if create_only:
            body["options"] = {"cas": 0}

        try:
            response = await self._client.post(
                self._data_url(path), json=body, headers=self._headers
            )
        except httpx.HTTPError as e:
            logger.error(f"Vault write to {path} failed: {e}")
            raise SecretStoreUnavailable(f"Vault unreachable: {e}") from e

        if response.status_code == 400 and CAS_MISMATCH_MARKER in response.text:
            raise SecretAlreadyExists(f"Secret already exists at {path}")

        if response.status_code not in (200, 204):
            logger.error(f"Vault write to {path} returned {response.status_code}")
            raise SecretStoreUnavailable(
                f"Vault write failed with status {response.status_code}"
            )

        if response.status_code == 204 or not response.content:
            return 0
        version = (self._json(response, path).get("data") or {}).get("version", 0)
        logger.info(f"Stored secret at {self.mount}/{path} (version {version})")
        return version

    async def get(self, path: str, version: Optional[int] = None) -> Optional[dict]:
        params = {"version": version} if version is not None else None

        try:
            response = await self._client.get(
                self._data_url(path), params=params, headers=self._headers
            )
        except httpx.HTTPError as e:
            logger.error(f"Vault read of {path} failed: {e}")
            raise SecretStoreUnavailable(f"Vault unreachable: {e}") from e

        if response.status_code == 404:
            return None

        if response.status_code != 200:
            logger.error(f"Vault read of {path} returned {response.status_code}")
            raise SecretStoreUnavailable(
                f"Vault read failed with status {response.status_code}"
            )

        # Deleted versions come back with data set to null
        data = (self._json(response, path).get("data") or {}).get("data")
        return data or None

    def _json(self, response: httpx.Response, path: str) -> dict:
        """Decode a Vault response body; anything but a JSON object is an outage."""
        try:
            body = response.json()
        except ValueError as e:
            logger.error(f"Vault returned a non-JSON body for {path}")
            raise SecretStoreUnavailable("Vault returned an unreadable response") from e
        if not isinstance(body, dict):
            raise SecretStoreUnavailable("Vault returned an unreadable response")
        return body

    async def close(self) -> None:
        await self._client.aclose()
