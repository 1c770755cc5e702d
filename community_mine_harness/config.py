"""
Harness Configuration

Network endpoints, fork point and compiler settings.

Credentials live in an untracked ``.config.json`` next to the project
(or wherever ``COMMUNITY_MINE_CONFIG`` points). Single values can be
overridden through environment variables:

    FORK_URL               full upstream RPC URL for the local fork
    FORK_BLOCK_NUMBER      pinned fork height
    ANVIL_PORT             port of the local node
    DEPLOYER_PRIVATE_KEY   key used by the deployment task
"""

import json
import os
import string
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

from .errors import ConfigurationError

CONFIG_FILE_NAME = ".config.json"

DEFAULT_FORK_NETWORK = "hardhat"
DEFAULT_ANVIL_PORT = 8545

SOLC_VERSION = "0.8.9"
SOLC_OPTIMIZER_RUNS = 1


@dataclass(frozen=True)
class NetworkConfig:
    """A named network: chain id, templated RPC URL and optional fork height"""
    name: str
    chain_id: int
    url_template: str
    fork_block: Optional[int] = None

    def url(self, credentials: Dict[str, Any]) -> str:
        """Render the RPC URL, failing loudly when a credential key is missing"""
        keys = [fname for _, fname, _, _ in string.Formatter().parse(self.url_template) if fname]
        missing = [k for k in keys if not credentials.get(k)]
        if missing:
            raise ConfigurationError(
                f"Network '{self.name}' needs {', '.join(missing)} in {CONFIG_FILE_NAME}"
            )
        return self.url_template.format(**credentials)


@dataclass(frozen=True)
class ForkPoint:
    """(network, block height) the local chain is forked from"""
    network: str
    url: str
    block_number: Optional[int]


NETWORKS: Dict[str, NetworkConfig] = {
    # Local fork of Arbitrum One
    "hardhat": NetworkConfig(
        name="hardhat",
        chain_id=42161,
        url_template="https://arb-mainnet.g.alchemy.com/v2/{alchemyKey}",
        fork_block=5746555,
    ),
    "eth": NetworkConfig(
        name="eth",
        chain_id=1,
        url_template="https://eth-mainnet.alchemyapi.io/v2/{alchemyKey}",
    ),
    "rinkeby": NetworkConfig(
        name="rinkeby",
        chain_id=4,
        url_template="https://eth-rinkeby.alchemyapi.io/v2/{alchemyKey}",
    ),
    "arb": NetworkConfig(
        name="arb",
        chain_id=42161,
        url_template="https://speedy-nodes-nyc.moralis.io/{moralisKey}/arbitrum/mainnet",
    ),
}


@dataclass
class HarnessConfig:
    """Resolved harness settings"""
    credentials: Dict[str, Any] = field(default_factory=dict)
    fork_network: str = DEFAULT_FORK_NETWORK
    fork_url_override: Optional[str] = None
    fork_block_override: Optional[int] = None
    anvil_port: int = DEFAULT_ANVIL_PORT
    project_root: Path = field(default_factory=Path.cwd)

    def network(self, name: str) -> NetworkConfig:
        try:
            return NETWORKS[name]
        except KeyError:
            raise ConfigurationError(
                f"Unknown network '{name}' (available: {', '.join(sorted(NETWORKS))})"
            ) from None

    def rpc_url(self, name: str) -> str:
        return self.network(name).url(self.credentials)

    def fork_point(self) -> ForkPoint:
        """Upstream URL and pinned height of the local fork"""
        network = self.network(self.fork_network)
        url = self.fork_url_override or network.url(self.credentials)
        block = self.fork_block_override
        if block is None:
            block = network.fork_block
        return ForkPoint(network=network.name, url=url, block_number=block)

    @property
    def deployer_private_key(self) -> str:
        key = self.credentials.get("deployerPrivateKey")
        if not key:
            raise ConfigurationError(
                f"deployerPrivateKey missing from {CONFIG_FILE_NAME} "
                f"(or set DEPLOYER_PRIVATE_KEY)"
            )
        return key


def _config_path(path: Optional[os.PathLike]) -> Path:
    if path is not None:
        return Path(path)
    env_path = os.getenv("COMMUNITY_MINE_CONFIG")
    if env_path:
        return Path(env_path)
    return Path.cwd() / CONFIG_FILE_NAME


def _int_env(name: str) -> Optional[int]:
    value = os.getenv(name)
    if value is None or value == "":
        return None
    try:
        return int(value, 0)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {value!r}") from None


def load_config(path: Optional[os.PathLike] = None, fork_network: str = DEFAULT_FORK_NETWORK) -> HarnessConfig:
    """
    Load credentials and apply environment overrides

    A missing config file is not an error: the fork can still run from
    FORK_URL. Credentials are only checked when a URL is rendered.

    Args:
        path: Explicit config file, defaults to COMMUNITY_MINE_CONFIG or ./.config.json
        fork_network: Network the local node forks from

    Returns:
        HarnessConfig
    """
    config_path = _config_path(path)
    credentials: Dict[str, Any] = {}

    if config_path.exists():
        try:
            with open(config_path, "r", encoding="utf-8") as f:
                credentials = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid JSON in {config_path}: {e}") from e
        if not isinstance(credentials, dict):
            raise ConfigurationError(f"{config_path} must contain a JSON object")

    if os.getenv("DEPLOYER_PRIVATE_KEY"):
        credentials["deployerPrivateKey"] = os.environ["DEPLOYER_PRIVATE_KEY"]

    port = _int_env("ANVIL_PORT")

    return HarnessConfig(
        credentials=credentials,
        fork_network=fork_network,
        fork_url_override=os.getenv("FORK_URL") or None,
        fork_block_override=_int_env("FORK_BLOCK_NUMBER"),
        anvil_port=port if port is not None else DEFAULT_ANVIL_PORT,
        project_root=config_path.parent,
    )
