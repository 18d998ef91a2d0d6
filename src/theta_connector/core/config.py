"""Configuration management.

Loads from TOML config files + environment variables.
Uses pydantic-settings for validation and env var overriding.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings

from .enums import DuplicatePolicy, NetworkName
from .errors import ConfigError


# ---------------------------------------------------------------------------
# Network profiles
# ---------------------------------------------------------------------------

class NetworkProfile(BaseModel):
    name: NetworkName
    url: str
    contract_address: str = ""
    chain_id: int | None = None  # None: ask the node at connect time


NETWORK_PROFILES: dict[NetworkName, NetworkProfile] = {
    NetworkName.LOCAL_HARDHAT: NetworkProfile(
        name=NetworkName.LOCAL_HARDHAT,
        url="http://127.0.0.1:8545/",
        contract_address="0x5FbDB2315678afecb367f032d93F642f64180aa3",
    ),
    NetworkName.THETA_PRIVATENET: NetworkProfile(
        name=NetworkName.THETA_PRIVATENET,
        url="http://127.0.0.1:18888/rpc",
        contract_address="0x52d2878492EF30d625fc54EC52c4dB7f010d471e",
        chain_id=366,
    ),
    NetworkName.THETA_TESTNET: NetworkProfile(
        name=NetworkName.THETA_TESTNET,
        url="https://eth-rpc-api-testnet.thetatoken.org/rpc",
        chain_id=365,
    ),
    NetworkName.THETA_MAINNET: NetworkProfile(
        name=NetworkName.THETA_MAINNET,
        url="https://eth-rpc-api.thetatoken.org/rpc",
        chain_id=361,
    ),
}


# ---------------------------------------------------------------------------
# Sub-configs
# ---------------------------------------------------------------------------

class TransactionConfig(BaseModel):
    gas_limit: int = 500_000  # Fixed ceiling for every contract-mutating call
    receipt_timeout_s: float = 120.0
    receipt_poll_s: float = 0.5


class SubscriptionConfig(BaseModel):
    poll_interval_s: float = 2.0  # Log polling cadence of the web3 client


class CorrelationConfig(BaseModel):
    duplicate_policy: DuplicatePolicy = DuplicatePolicy.OVERWRITE
    cleanup_on_failure: bool = True
    event_timeout_s: float | None = None  # None: wait for the event forever


class ObservabilityConfig(BaseModel):
    log_level: str = "INFO"
    log_format: str = "json"  # "json" or "console"


# ---------------------------------------------------------------------------
# Top-level settings
# ---------------------------------------------------------------------------

class Settings(BaseSettings):
    """Top-level connector settings.

    Loaded from TOML config files, overridden by environment variables.
    """

    network: NetworkName = NetworkName.LOCAL_HARDHAT
    contract_address: str = ""  # Overrides the profile's address when set
    private_key_env: str = "PRIVATE_KEY"  # Name of env var holding the signing key
    abi_path: str = ""  # Compiled contract artifact; bundled ABI when empty

    # Sub-configs
    transactions: TransactionConfig = Field(default_factory=TransactionConfig)
    subscriptions: SubscriptionConfig = Field(default_factory=SubscriptionConfig)
    correlation: CorrelationConfig = Field(default_factory=CorrelationConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)

    model_config = {"env_prefix": "THETA_", "env_nested_delimiter": "__"}

    @property
    def private_key(self) -> str:
        return os.environ.get(self.private_key_env, "")

    def resolve_network(self) -> NetworkProfile:
        """Return the selected network profile with overrides applied.

        Raises ``ConfigError`` when no contract address is known for the
        selected network.
        """
        profile = NETWORK_PROFILES[self.network]
        if self.contract_address:
            profile = profile.model_copy(
                update={"contract_address": self.contract_address}
            )
        if not profile.contract_address:
            raise ConfigError(
                f"No contract address configured for network {self.network.value}; "
                "set THETA_CONTRACT_ADDRESS."
            )
        return profile


def load_settings(
    config_path: str | Path | None = None,
    overrides: dict[str, Any] | None = None,
) -> Settings:
    """Load settings from TOML file + env vars.

    Args:
        config_path: Path to TOML config file (optional).
        overrides: Dict of overrides to apply on top.
    """
    data: dict[str, Any] = {}

    if config_path:
        path = Path(config_path)
        if path.exists():
            import tomli

            with open(path, "rb") as f:
                data = tomli.load(f)

    if overrides:
        data.update(overrides)

    return Settings(**data)
