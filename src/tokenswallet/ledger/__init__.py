"""Account and transaction receipt storage."""

from tokenswallet.ledger.database import get_db, init_db
from tokenswallet.ledger.models import TransactionReceipt, User
from tokenswallet.ledger.repository import AccountRepository, ReceiptRepository

__all__ = [
    # Models
    "User",
    "TransactionReceipt",
    # Database
    "get_db",
    "init_db",
    # Repositories
    "AccountRepository",
    "ReceiptRepository",
]
