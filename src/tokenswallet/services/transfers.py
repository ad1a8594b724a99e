"""Transfer coordination: validation, signing delegation and receipts."""

import logging
from typing import Optional

from tokenswallet.errors import InvalidAddress, InvalidAmount, SubmissionUnconfirmed, UserUnknown
from tokenswallet.ledger.models import TransactionReceipt
from tokenswallet.ledger.repository import AccountRepository, ReceiptRepository
from tokenswallet.services.custodian import KeyCustodian
from tokenswallet.units import is_positive_decimal, normalize_amount
from tokenswallet.wallets.base import Chain, WalletBackend

logger = logging.getLogger(__name__)


class TransferCoordinator:
    """Run a transfer end to end for an authenticated user.

    Flow:
    1. Reject malformed amount / address (no network call)
    2. Load the sender's signer from custody
    3. Hand off to the chain backend (balance checks happen there)
    4. Record exactly one receipt for the accepted submission
    """

    def __init__(
        self,
        custodian: KeyCustodian,
        backends: dict[Chain, WalletBackend],
        receipts: ReceiptRepository,
        accounts: AccountRepository,
    ):
        self.custodian = custodian
        self.backends = backends
        self.receipts = receipts
        self.accounts = accounts

    async def transfer(
        self,
        user_id: str,
        to_address: str,
        amount: str,
        chain: Chain,
        asset_id: Optional[str] = None,
    ) -> TransactionReceipt:
        """Transfer ``amount`` (human units) from the user's wallet.

        Raises:
            InvalidAmount, InvalidAddress: Before anything else is touched
            UserUnknown, NoSecret: Sender cannot sign
            InsufficientFunds, ChainDispatchError: Chain side rejection
            TransportError: Secret store or node unreachable
            SubmissionUnconfirmed: Broadcast but not confirmed; no receipt is
                recorded and the caller must not resend
        """
        chain = Chain(chain)
        backend = self.backends[chain]

        if not is_positive_decimal(amount):
            raise InvalidAmount("Amount must be a positive decimal number")
        if not backend.validate_address(to_address):
            raise InvalidAddress(f"Invalid {chain.value} address: {to_address}")

        signer = await self.custodian.load_signer(user_id, chain)
        try:
            submitted = await backend.send_tokens(signer, to_address, amount, asset_id=asset_id)
        except SubmissionUnconfirmed as e:
            logger.error(
                f"Unconfirmed {chain.value} transfer {e.tx_hash} from user {user_id} "
                f"needs reconciliation: {amount} -> {to_address}"
            )
            raise

        receipt = await self.receipts.save(
            chain=chain.value,
            from_address=submitted.from_address,
            to_address=submitted.to_address,
            amount=normalize_amount(submitted.amount),
            tx_hash=submitted.tx_hash,
            block_hash=submitted.block_hash,
        )
        logger.info(
            f"Recorded {chain.value} transfer {submitted.tx_hash}: "
            f"{submitted.amount} {submitted.from_address} -> {submitted.to_address}"
        )
        return receipt

    async def transfer_from_email(
        self,
        email: str,
        to_address: str,
        amount: str,
        chain: Chain,
        asset_id: Optional[str] = None,
    ) -> TransactionReceipt:
        """Transfer on behalf of the account registered under ``email``."""
        user = await self.accounts.find_by_email(email)
        if not user:
            raise UserUnknown(f"User with email {email} not found")
        return await self.transfer(user.id, to_address, amount, chain, asset_id=asset_id)

    async def get_balance(self, user_id: str, chain: Chain) -> tuple[str, str]:
        """Return ``(address, balance)`` for the user's own wallet."""
        chain = Chain(chain)
        signer = await self.custodian.load_signer(user_id, chain)
        balance = await self.backends[chain].get_balance(signer.address)
        return signer.address, balance

    async def get_address_balance(self, address: str, chain: Chain) -> str:
        return await self.backends[Chain(chain)].get_balance(address)

    async def list_transactions(self, address: str, limit: int = 100) -> list[TransactionReceipt]:
        """Receipts sent from or to an address, newest first."""
        return await self.receipts.list_for_address(address, limit=limit)
