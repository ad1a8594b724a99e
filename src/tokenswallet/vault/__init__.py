"""Secret storage for private keys and mnemonics."""

from tokenswallet.vault.base import SecretStore, SecretStoreType
from tokenswallet.vault.factory import create_secret_store
from tokenswallet.vault.hashicorp import VaultSecretStore
from tokenswallet.vault.memory import MemorySecretStore

__all__ = [
    "SecretStore",
    "SecretStoreType",
    "MemorySecretStore",
    "VaultSecretStore",
    "create_secret_store",
]
