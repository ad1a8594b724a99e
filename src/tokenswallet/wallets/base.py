"""Base interface for chain wallet backends.

Each chain family (Ethereum-style, Substrate-style) implements the same
capability interface:
1. generate_wallet - create a keypair locally, return address + secret
2. restore_signer  - rebuild a signing object from a stored secret
3. send_tokens     - validate, sign and submit a value transfer
4. get_balance     - query a balance in human units

Backends never touch the secret store; KeyCustodian hands them secrets and
signers.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class Chain(str, Enum):
    """Supported chain families."""

    ETHEREUM = "ethereum"
    SUBSTRATE = "substrate"


@dataclass
class GeneratedWallet:
    """A freshly generated keypair.

    Attributes:
        address: Public address derived from the secret
        secret: Payload to store, {"privateKey": ...} or {"mnemonic": ...}
    """

    address: str
    secret: dict = field(repr=False)


@dataclass
class Signer:
    """Request-scoped signing object rebuilt from a stored secret.

    Never persisted. ``handle`` is the chain library's key object
    (eth_account LocalAccount or substrate Keypair) and is kept out of repr.
    """

    chain: Chain
    address: str
    handle: Any = field(repr=False)


@dataclass
class SubmittedTransfer:
    """Outcome of a successful submission."""

    chain: Chain
    tx_hash: str
    from_address: str
    to_address: str
    amount: str                      # Human units, as requested
    base_units: int                  # wei / planck
    block_hash: Optional[str] = None  # Set once included (Substrate)


class WalletBackend(ABC):
    """Abstract chain wallet backend."""

    chain: Chain
    decimals: int

    @abstractmethod
    def generate_wallet(self) -> GeneratedWallet:
        """Generate a new keypair. Purely local, no chain access."""
        pass

    @abstractmethod
    def restore_signer(self, secret: dict) -> Signer:
        """Rebuild a signer from a stored secret payload.

        Raises:
            NoSecret: Payload lacks the expected key material
        """
        pass

    @abstractmethod
    def validate_address(self, address: str) -> bool:
        """Check that an address is well-formed for this chain."""
        pass

    @abstractmethod
    def parse_amount(self, amount: str) -> int:
        """Convert a positive human decimal to base units.

        Raises:
            InvalidAmount: Not a positive decimal within chain precision
        """
        pass

    @abstractmethod
    async def send_tokens(
        self,
        signer: Signer,
        to: str,
        amount: str,
        asset_id: Optional[str] = None,
    ) -> SubmittedTransfer:
        """Validate and submit a transfer from the signer's account."""
        pass

    @abstractmethod
    async def get_balance(self, address: str) -> str:
        """Return the balance of an address as a human decimal string."""
        pass

    async def close(self) -> None:
        """Release chain connections."""
        return None

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(chain={self.chain.value})"
