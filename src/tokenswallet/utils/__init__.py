"""Utility modules for tokenswallet."""

from tokenswallet.utils.locks import LockTimeoutError, ProvisionLock, get_provision_lock

__all__ = ["LockTimeoutError", "ProvisionLock", "get_provision_lock"]
