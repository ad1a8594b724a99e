"""SQLAlchemy models for accounts and transaction receipts."""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import DateTime, Index, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from tokenswallet.wallets.base import Chain


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class User(Base):
    """User account with its custodial wallet addresses.

    An address column is set only after the wallet's secret was written to
    the secret store.
    """

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    password_hash: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    google_id: Mapped[Optional[str]] = mapped_column(String(255), unique=True, nullable=True)
    display_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    ethereum_address: Mapped[Optional[str]] = mapped_column(String(42), unique=True, nullable=True)
    substrate_address: Mapped[Optional[str]] = mapped_column(String(64), unique=True, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    def address_for(self, chain: Chain) -> Optional[str]:
        """Wallet address on a chain, if provisioned."""
        if chain == Chain.ETHEREUM:
            return self.ethereum_address
        return self.substrate_address

    def set_address(self, chain: Chain, address: str) -> None:
        if chain == Chain.ETHEREUM:
            self.ethereum_address = address
        else:
            self.substrate_address = address


class TransactionReceipt(Base):
    """Record of a submitted transfer. Never updated after insert."""

    __tablename__ = "transactions"
    __table_args__ = (Index("ix_transactions_chain_hash", "chain", "tx_hash"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    chain: Mapped[str] = mapped_column(String(20), nullable=False)
    from_address: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    to_address: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    amount: Mapped[str] = mapped_column(String(80), nullable=False)  # Human units
    tx_hash: Mapped[str] = mapped_column(String(66), nullable=False)
    block_hash: Mapped[Optional[str]] = mapped_column(String(66), nullable=True)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now()
    )
