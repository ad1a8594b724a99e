"""Account registration and OAuth find-or-create."""

import base64
import hashlib
import logging
import secrets
from typing import Optional

from tokenswallet.errors import InvalidInput
from tokenswallet.ledger.models import User
from tokenswallet.ledger.repository import AccountRepository
from tokenswallet.services.custodian import KeyCustodian
from tokenswallet.wallets.base import Chain

logger = logging.getLogger(__name__)

PBKDF2_ITERATIONS = 100_000


def hash_password(password: str, salt: Optional[bytes] = None) -> str:
    """Hash a password with PBKDF2-HMAC-SHA256.

    Returns ``pbkdf2_sha256$<iterations>$<salt>$<hash>`` with base64 parts.
    """
    if salt is None:
        salt = secrets.token_bytes(16)

    key = hashlib.pbkdf2_hmac(
        "sha256",
        password.encode(),
        salt,
        PBKDF2_ITERATIONS,
        dklen=32,
    )
    return "$".join(
        [
            "pbkdf2_sha256",
            str(PBKDF2_ITERATIONS),
            base64.b64encode(salt).decode(),
            base64.b64encode(key).decode(),
        ]
    )


class AccountService:
    """Create accounts and give them a wallet on the requested chain."""

    def __init__(self, accounts: AccountRepository, custodian: KeyCustodian):
        self.accounts = accounts
        self.custodian = custodian

    async def register(
        self,
        email: str,
        password: str,
        chain: Chain = Chain.ETHEREUM,
        display_name: Optional[str] = None,
    ) -> User:
        """Register with email and password, then provision a wallet.

        The account row is created before the wallet so a secret is never
        stored for a user id that does not exist.

        Raises:
            InvalidInput: Missing email or password
            AccountExists: Email already registered
        """
        if not email or not password:
            raise InvalidInput("Email and password are required")

        user = await self.accounts.create(
            email=email,
            password_hash=hash_password(password),
            display_name=display_name,
        )
        logger.info(f"Registered user {user.id}")

        await self.custodian.provision(user.id, chain)
        return user

    async def find_or_create_from_google(
        self,
        google_id: str,
        email: str,
        display_name: Optional[str] = None,
        chain: Chain = Chain.ETHEREUM,
    ) -> User:
        """Resolve a Google login to an account with a wallet on ``chain``.

        Lookup order is Google id, then email. An existing email account gets
        the Google id linked to it.
        """
        if not google_id or not email:
            raise InvalidInput("Google id and email are required")

        email = email.strip().lower()
        user = await self.accounts.find_by_google_id(google_id)

        if not user:
            user = await self.accounts.find_by_email(email)
            if user:
                user.google_id = google_id
                if display_name and not user.display_name:
                    user.display_name = display_name
                await self.accounts.save(user)
                logger.info(f"Linked Google account to user {user.id}")
            else:
                user = await self.accounts.create(
                    email=email,
                    google_id=google_id,
                    display_name=display_name,
                )
                logger.info(f"Created user {user.id} from Google login")

        if not user.address_for(Chain(chain)):
            await self.custodian.provision(user.id, chain)

        return user
