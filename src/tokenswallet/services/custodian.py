"""Key custody: generate-if-absent provisioning and signer reconstruction.

Secrets live in the secret store at a deterministic path per (chain, user);
only the derived address is kept on the account record. The write order is
fixed: secret first (create-only), address second. An address is therefore
never recorded for a secret that was not stored, and a secret stored without
its address is picked up again on the next provisioning call.
"""

import logging

from tokenswallet.errors import NoSecret, SecretAlreadyExists, UserUnknown
from tokenswallet.ledger.repository import AccountRepository
from tokenswallet.utils.locks import ProvisionLock
from tokenswallet.vault.base import SecretStore
from tokenswallet.wallets.base import Chain, Signer, WalletBackend

logger = logging.getLogger(__name__)


def secret_path(chain: Chain, user_id: str) -> str:
    """Secret store path for a user's key on a chain, e.g. ``ethereum/<id>``."""
    return f"{Chain(chain).value}/{user_id}"


class KeyCustodian:
    """Provision wallets and load signers for users."""

    def __init__(
        self,
        store: SecretStore,
        backends: dict[Chain, WalletBackend],
        accounts: AccountRepository,
    ):
        self.store = store
        self.backends = backends
        self.accounts = accounts

    def _backend(self, chain: Chain) -> WalletBackend:
        return self.backends[Chain(chain)]

    async def provision(self, user_id: str, chain: Chain) -> str:
        """Ensure the user has a wallet on ``chain`` and return its address.

        Idempotent: an existing secret is reused and its address re-derived,
        so repeated calls never generate a second key.

        Raises:
            UserUnknown: No account with this id
            SecretStoreUnavailable: Secret store unreachable (nothing recorded)
        """
        chain = Chain(chain)
        backend = self._backend(chain)
        path = secret_path(chain, user_id)

        async with ProvisionLock(user_id, chain.value):
            user = await self.accounts.find_by_id(user_id)
            if not user:
                raise UserUnknown(f"User {user_id} not found")

            existing = await self.store.get(path)
            if existing:
                address = backend.restore_signer(existing).address
                logger.debug(f"Reusing stored {chain.value} key for user {user_id}")
            else:
                wallet = backend.generate_wallet()
                try:
                    await self.store.put(path, wallet.secret, create_only=True)
                    address = wallet.address
                    logger.info(f"Stored new {chain.value} key for user {user_id}")
                except SecretAlreadyExists:
                    # Another writer got there first, or the store had not
                    # yet made an earlier write visible to reads
                    stored = await self.store.get(path)
                    if not stored:
                        raise
                    address = backend.restore_signer(stored).address
                    logger.warning(
                        f"Secret for user {user_id} already existed at {path}; reusing it"
                    )

            if user.address_for(chain) != address:
                if user.address_for(chain):
                    logger.warning(
                        f"Recorded {chain.value} address for user {user_id} "
                        f"differs from stored key; using {address}"
                    )
                user.set_address(chain, address)
                await self.accounts.save(user)
                logger.info(f"Provisioned {chain.value} wallet {address} for user {user_id}")

            return address

    async def load_signer(self, user_id: str, chain: Chain) -> Signer:
        """Rebuild the user's signer from the stored secret.

        Raises:
            UserUnknown: No account with this id
            NoSecret: Account exists but no key is stored for it
            SecretStoreUnavailable: Secret store unreachable
        """
        chain = Chain(chain)
        user = await self.accounts.find_by_id(user_id)
        if not user:
            raise UserUnknown(f"User {user_id} not found")

        secret = await self.store.get(secret_path(chain, user_id))
        if not secret:
            logger.error(f"No {chain.value} secret stored for existing user {user_id}")
            raise NoSecret(f"No {chain.value} wallet key stored for user {user_id}")

        return self._backend(chain).restore_signer(secret)
