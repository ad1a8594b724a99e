"""Chain wallet backends (Ethereum-style and Substrate-style)."""

from tokenswallet.wallets.base import (
    Chain,
    GeneratedWallet,
    Signer,
    SubmittedTransfer,
    WalletBackend,
)
from tokenswallet.wallets.factory import create_backends, parse_chain

__all__ = [
    "Chain",
    "GeneratedWallet",
    "Signer",
    "SubmittedTransfer",
    "WalletBackend",
    "create_backends",
    "parse_chain",
]
