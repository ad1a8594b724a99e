"""Per-user serialization of wallet provisioning.

Two concurrent provisioning calls for the same (user, chain) must not both
see "no secret yet" and generate two different keys. Within one process this
lock orders them; across processes the account table's unique constraints
and the secret store's create-only write do.
"""

import asyncio
import logging
from typing import Optional

from tokenswallet.errors import WalletError

logger = logging.getLogger(__name__)

# (user_id, chain) -> asyncio.Lock
_provision_locks: dict[tuple[str, str], asyncio.Lock] = {}
# (user_id, chain) -> number of holders and waiters
_lock_users: dict[tuple[str, str], int] = {}


class LockTimeoutError(WalletError):
    """Raised when a lock cannot be acquired within the timeout period."""

    status_code = 409
    retryable = True


def get_provision_lock(user_id: str, chain: str) -> asyncio.Lock:
    """Get or create the lock for a (user, chain) pair."""
    key = (user_id, chain)
    lock = _provision_locks.get(key)
    if lock is None:
        lock = _provision_locks[key] = asyncio.Lock()
    return lock


def _checkout(key: tuple[str, str]) -> asyncio.Lock:
    _lock_users[key] = _lock_users.get(key, 0) + 1
    return get_provision_lock(*key)


def _checkin(key: tuple[str, str]) -> None:
    """Forget the lock once nobody holds or waits on it."""
    remaining = _lock_users.get(key, 0) - 1
    if remaining > 0:
        _lock_users[key] = remaining
        return
    _lock_users.pop(key, None)
    _provision_locks.pop(key, None)


class ProvisionLock:
    """Async context manager holding the provisioning lock for a user/chain.

    Example:
        async with ProvisionLock(user.id, "ethereum"):
            secret = await store.get(path)
            ...
    """

    def __init__(self, user_id: str, chain: str, timeout: Optional[float] = 30.0):
        self.user_id = user_id
        self.chain = chain
        self.timeout = timeout
        self._lock: Optional[asyncio.Lock] = None
        self._acquired = False

    async def __aenter__(self) -> "ProvisionLock":
        key = (self.user_id, self.chain)
        self._lock = _checkout(key)

        try:
            if self.timeout:
                await asyncio.wait_for(self._lock.acquire(), timeout=self.timeout)
            else:
                await self._lock.acquire()
        except asyncio.TimeoutError:
            _checkin(key)
            logger.warning(
                f"Provision lock timeout for user {self.user_id} ({self.chain}) after {self.timeout}s"
            )
            raise LockTimeoutError(
                f"Wallet provisioning already in progress for user {self.user_id}"
            )
        except BaseException:
            _checkin(key)
            raise

        self._acquired = True
        logger.debug(f"Provision lock acquired for user {self.user_id} ({self.chain})")
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self._acquired and self._lock:
            self._lock.release()
            self._acquired = False
            _checkin((self.user_id, self.chain))
            logger.debug(f"Provision lock released for user {self.user_id} ({self.chain})")
        return False


def clear_provision_locks() -> None:
    """Clear all provisioning locks (useful for testing)."""
    _provision_locks.clear()
    _lock_users.clear()
