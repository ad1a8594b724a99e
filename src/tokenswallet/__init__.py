"""Tokens wallet - custodial key custody and transfers for Ethereum and Substrate chains."""

__version__ = "0.1.0"
