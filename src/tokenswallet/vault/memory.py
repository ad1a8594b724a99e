"""In-memory secret store.

Mirrors the versioned semantics of the Vault backend so both behave the same
under test. Not persisted across restarts; development and testing only.
"""

import logging
from typing import Optional

from tokenswallet.errors import SecretAlreadyExists
from tokenswallet.vault.base import SecretStore, SecretStoreType

logger = logging.getLogger(__name__)


class MemorySecretStore(SecretStore):
    """Secret store backed by a dict of path -> list of versions."""

    def __init__(self):
        super().__init__(SecretStoreType.MEMORY)
        self._versions: dict[str, list[dict]] = {}

    async def put(self, path: str, payload: dict, create_only: bool = False) -> int:
        versions = self._versions.setdefault(path, [])
        if create_only and versions:
            raise SecretAlreadyExists(f"Secret already exists at {path}")

        versions.append(dict(payload))
        logger.debug(f"Stored secret at {path} (version {len(versions)})")
        return len(versions)

    async def get(self, path: str, version: Optional[int] = None) -> Optional[dict]:
        versions = self._versions.get(path)
        if not versions:
            return None

        if version is None:
            return dict(versions[-1])
        if 1 <= version <= len(versions):
            return dict(versions[version - 1])
        return None

    def clear(self) -> None:
        """Drop all stored secrets (useful for testing)."""
        self._versions.clear()
