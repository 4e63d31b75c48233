"""Sui ledger configuration values."""

from __future__ import annotations

import os
from dataclasses import dataclass

from .env import env_float, require_env_vars
from .errors import ConfigurationError
from .http_resilience import RateLimit, ResilienceConfig, RetryPolicy

SUI_FULLNODE_URLS = {
    "mainnet": "https://fullnode.mainnet.sui.io:443",
    "testnet": "https://fullnode.testnet.sui.io:443",
    "devnet": "https://fullnode.devnet.sui.io:443",
    "localnet": "http://127.0.0.1:9000",
}
DEFAULT_SUI_NETWORK = "testnet"
DEFAULT_SUI_MODULE = "license"
SUI_TIMEOUT_SECONDS = 15.0


@dataclass(frozen=True, slots=True)
class SuiConfig:
    """Holds the Sui RPC endpoint and the contract whose events are synced."""

    package_id: str
    network: str
    module: str
    resilience: ResilienceConfig

    @property
    def rpc_url(self) -> str:
        return self.resilience.base_url or SUI_FULLNODE_URLS[self.network]

    def event_type(self, name: str) -> str:
        """Return the fully qualified Move event type for ``name``."""

        return f"{self.package_id}::{self.module}::{name}"


def get_sui_config(*, resilience: ResilienceConfig | None = None) -> SuiConfig:
    values = require_env_vars(("SUI_PACKAGE_ID",))
    network = os.getenv("SUI_NETWORK", DEFAULT_SUI_NETWORK).strip() or DEFAULT_SUI_NETWORK
    rpc_url = os.getenv("SUI_RPC_URL")
    if not rpc_url and network not in SUI_FULLNODE_URLS:
        raise ConfigurationError(
            f"Unknown SUI_NETWORK {network!r}; set SUI_RPC_URL for custom networks",
            variables=["SUI_NETWORK", "SUI_RPC_URL"],
        )
    module = os.getenv("SUI_MODULE", DEFAULT_SUI_MODULE).strip() or DEFAULT_SUI_MODULE

    return SuiConfig(
        package_id=values["SUI_PACKAGE_ID"].strip(),
        network=network,
        module=module,
        resilience=resilience
        or ResilienceConfig(
            name="sui",
            base_url=rpc_url or SUI_FULLNODE_URLS[network],
            timeout_seconds=env_float("SUI_TIMEOUT_SECONDS", SUI_TIMEOUT_SECONDS),
            retry=RetryPolicy(total=3),
            ratelimit=RateLimit(max_calls=10, per_seconds=1.0),
            default_headers={"Content-Type": "application/json"},
        ),
    )
