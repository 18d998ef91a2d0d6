"""Builds the default chain client from settings."""

from __future__ import annotations

from theta_connector.core.config import NetworkProfile, Settings
from theta_connector.core.errors import ConfigError
from theta_connector.core.interfaces import IChainClient

from .abi import load_abi
from .web3_client import Web3ChainClient


def create_chain_client(profile: NetworkProfile, settings: Settings) -> IChainClient:
    """Create a web3 client bound to *profile*.

    Raises ``ConfigError`` when no signing key is available.
    """
    private_key = settings.private_key
    if not private_key:
        raise ConfigError(
            f"Signing key not found: set the {settings.private_key_env} "
            "environment variable."
        )
    tx = settings.transactions
    return Web3ChainClient(
        url=profile.url,
        contract_address=profile.contract_address,
        abi=load_abi(settings.abi_path),
        private_key=private_key,
        chain_id=profile.chain_id,
        gas_limit=tx.gas_limit,
        receipt_timeout=tx.receipt_timeout_s,
        receipt_poll=tx.receipt_poll_s,
        poll_interval=settings.subscriptions.poll_interval_s,
    )
