"""Factory for chain wallet backends.

Builds one backend per chain family around a single long-lived connection
each. Call once at startup and pass the resulting registry around.
"""

import logging
from typing import Optional

from tokenswallet.config import Settings, get_settings
from tokenswallet.errors import InvalidInput
from tokenswallet.wallets.base import Chain, WalletBackend

logger = logging.getLogger(__name__)


def parse_chain(value: str) -> Chain:
    """Parse a chain name from a request."""
    try:
        return Chain(value.lower())
    except ValueError:
        raise InvalidInput(f"Unsupported chain: {value}")


def create_ethereum_backend(settings: Settings) -> WalletBackend:
    """Create the Ethereum backend with its shared JSON-RPC client."""
    from tokenswallet.wallets.ethereum import EthereumRpcClient, EthereumWalletBackend

    rpc = EthereumRpcClient(settings.eth_rpc_url, timeout=settings.eth_rpc_timeout)
    logger.info(f"Ethereum backend using {settings.eth_rpc_url}")
    return EthereumWalletBackend(rpc, confirmation_timeout=settings.eth_confirmation_timeout)


def create_substrate_backend(settings: Settings) -> WalletBackend:
    """Create the Substrate backend with its shared websocket connection.

    The connection is opened lazily; see SubstrateWalletBackend.ensure_ready.
    """
    from tokenswallet.wallets.substrate import SubstrateConnection, SubstrateWalletBackend

    connection = SubstrateConnection(
        settings.substrate_rpc_url,
        ss58_format=settings.substrate_ss58_prefix,
        decimals=settings.substrate_decimals,
    )
    logger.info(
        f"Substrate backend using {settings.substrate_rpc_url} "
        f"(SS58={settings.substrate_ss58_prefix}, token={settings.substrate_token_id}, "
        f"use_balances={settings.use_balances})"
    )
    return SubstrateWalletBackend(
        connection,
        token_id=settings.substrate_token_id,
        force_native=settings.use_balances,
        collection_id=settings.substrate_collection_id,
        inclusion_timeout=settings.substrate_inclusion_timeout,
    )


def create_backends(settings: Optional[Settings] = None) -> dict[Chain, WalletBackend]:
    """Create backends for all supported chains."""
    settings = settings or get_settings()
    return {
        Chain.ETHEREUM: create_ethereum_backend(settings),
        Chain.SUBSTRATE: create_substrate_backend(settings),
    }
