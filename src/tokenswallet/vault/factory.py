"""Secret store factory.

Creates the configured secret store backend.
"""

import logging
from typing import Optional

from tokenswallet.config import Settings, get_settings
from tokenswallet.errors import ConfigurationError
from tokenswallet.vault.base import SecretStore, SecretStoreType

logger = logging.getLogger(__name__)


def get_secret_store_type(settings: Settings) -> SecretStoreType:
    """Resolve SECRET_STORE_BACKEND into a SecretStoreType."""
    try:
        return SecretStoreType(settings.secret_store_backend.lower())
    except ValueError:
        raise ConfigurationError(
            f"Unknown secret store backend: {settings.secret_store_backend}"
        )


def create_secret_store(settings: Optional[Settings] = None) -> SecretStore:
    """Create a secret store for the given (or cached) settings."""
    settings = settings or get_settings()
    store_type = get_secret_store_type(settings)

    if store_type == SecretStoreType.VAULT:
        from tokenswallet.vault.hashicorp import VaultSecretStore

        if not settings.vault_token:
            raise ConfigurationError("VAULT_TOKEN is required for the vault backend")
        logger.info(f"Using Vault secret store at {settings.vault_endpoint}")
        return VaultSecretStore(
            endpoint=settings.vault_endpoint,
            token=settings.vault_token,
            mount=settings.vault_mount,
            timeout=settings.vault_timeout,
        )

    from tokenswallet.vault.memory import MemorySecretStore

    if settings.is_production:
        logger.warning("In-memory secret store in production - secrets are lost on restart")
    else:
        logger.info("Using in-memory secret store")
    return MemorySecretStore()
