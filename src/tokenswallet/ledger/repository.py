"""Repositories for accounts and transaction receipts."""

from typing import Optional

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from tokenswallet.errors import AccountExists
from tokenswallet.ledger.models import TransactionReceipt, User


def normalize_email(email: str) -> str:
    return email.strip().lower()


class AccountRepository:
    """Keyed record store for user accounts."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def find_by_id(self, user_id: str) -> Optional[User]:
        """Get user by system ID."""
        return await self.session.get(User, user_id)

    async def find_by_email(self, email: str) -> Optional[User]:
        """Get user by email, ignoring case and surrounding whitespace."""
        stmt = select(User).where(User.email == normalize_email(email))
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def find_by_google_id(self, google_id: str) -> Optional[User]:
        """Get user by linked Google ID."""
        stmt = select(User).where(User.google_id == google_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def create(
        self,
        email: str,
        password_hash: Optional[str] = None,
        google_id: Optional[str] = None,
        display_name: Optional[str] = None,
    ) -> User:
        """Insert a new account.

        The unique email constraint decides the winner when two registrations
        race; the loser gets AccountExists.

        Raises:
            AccountExists: Email or Google ID already taken
        """
        email = normalize_email(email)
        user = User(
            email=email,
            password_hash=password_hash,
            google_id=google_id,
            display_name=display_name,
        )
        self.session.add(user)
        try:
            await self.session.flush()
        except IntegrityError as e:
            await self.session.rollback()
            raise AccountExists(f"User with email {email} already exists") from e
        return user

    async def save(self, user: User) -> User:
        """Persist changes to an account."""
        self.session.add(user)
        await self.session.flush()
        return user


class ReceiptRepository:
    """Append-only store for transaction receipts."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def save(
        self,
        chain: str,
        from_address: str,
        to_address: str,
        amount: str,
        tx_hash: str,
        block_hash: Optional[str] = None,
    ) -> TransactionReceipt:
        """Record a submitted transfer."""
        receipt = TransactionReceipt(
            chain=chain,
            from_address=from_address,
            to_address=to_address,
            amount=amount,
            tx_hash=tx_hash,
            block_hash=block_hash,
        )
        self.session.add(receipt)
        await self.session.flush()
        return receipt

    async def list_for_address(self, address: str, limit: int = 100) -> list[TransactionReceipt]:
        """Receipts sent from or to an address, newest first."""
        stmt = (
            select(TransactionReceipt)
            .where(
                or_(
                    TransactionReceipt.from_address == address,
                    TransactionReceipt.to_address == address,
                )
            )
            .order_by(TransactionReceipt.timestamp.desc())
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
