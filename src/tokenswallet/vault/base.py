"""Base interface for secret storage.

Secrets are opaque dict payloads addressed by string paths such as
``ethereum/<user_id>``. A missing path is not an error: ``get`` returns
None. Anything that stops the store from answering raises
``SecretStoreUnavailable`` so callers can tell "no secret yet" apart from
"store is down".
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Optional


class SecretStoreType(str, Enum):
    """Type of secret storage backend."""

    MEMORY = "memory"  # Process memory (development/testing)
    VAULT = "vault"    # HashiCorp Vault KV v2


class SecretStore(ABC):
    """Abstract path-keyed secret store."""

    def __init__(self, store_type: SecretStoreType):
        self.store_type = store_type

    @abstractmethod
    async def put(self, path: str, payload: dict, create_only: bool = False) -> int:
        """Write a secret payload.

        Args:
            path: Secret path
            payload: Secret data (e.g. {"privateKey": ...} or {"mnemonic": ...})
            create_only: Fail with SecretAlreadyExists if any version exists

        Returns:
            Version number of the written secret

        Raises:
            SecretAlreadyExists: create_only and the path already holds a secret
            SecretStoreUnavailable: Store unreachable or refused the write
        """
        pass

    @abstractmethod
    async def get(self, path: str, version: Optional[int] = None) -> Optional[dict]:
        """Read a secret payload.

        Args:
            path: Secret path
            version: Specific version to read (latest if None)

        Returns:
            Payload dict, or None if nothing is stored at the path

        Raises:
            SecretStoreUnavailable: Store unreachable or refused the read
        """
        pass

    async def close(self) -> None:
        """Release any held connections."""
        return None

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(type={self.store_type.value})"
