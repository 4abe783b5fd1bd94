"""
Environment configuration and static contract tables for Kaia mainnet.
"""

import os
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

from dotenv import load_dotenv

# Load environment variables
load_dotenv()


class AgentMode(str, Enum):
    READONLY = "readonly"
    TRANSACTION = "transaction"


@dataclass
class NetworkConfig:
    """Configuration for a supported network"""
    chain_id: int
    name: str
    rpc_url: str
    explorer_url: str
    native_currency: str
    multicall_address: str


NETWORK_CONFIGS: Dict[str, NetworkConfig] = {
    "kaia": NetworkConfig(
        chain_id=8217,
        name="Kaia Mainnet",
        rpc_url="https://public-en.node.kaia.io",
        explorer_url="https://www.kaiascan.io",
        native_currency="KAIA",
        multicall_address="0xcA11bde05977b3631167028862bE2a173976CA11",
    )
}

# DragonSwap V3 contracts on Kaia mainnet
DRAGONSWAP_CONTRACTS = {
    "swap_router": "0xA324880f884036E3d21a09B90269E1aC57c7EC8a",
    "factory": "0x7431A23897ecA6913D5c81666345D39F27d946A4",
}

# KiloLend protocol contracts
KILOLEND_COMPTROLLER = "0x0B5f0Ba5F13eA4Cb9C8Ee48FB75aa22B451470C2"

KILOLEND_CTOKENS = {
    "USDT": "0x20A2Cbc68fbee094754b2F03d15B1F5466f1F649",
    "SIX": "0x287770f1236AdbE3F4dA4f29D0f1a776f303C966",
    "BORA": "0xA7247a6f5EaC85354642e0E90B515E2dC027d5F4",
    "MBX": "0xa024B1DE3a6022FB552C2ED9a8050926Fb22d7b6",
    "KAIA": "0x2029f3E3C667EBd68b1D29dbd61dc383BdbB56e5",
    "STAKED_KAIA": "0x8A424cCf2D2B7D85F1DFb756307411D2BBc73e07",
}

# Trading constants
MAX_UINT256 = 2**256 - 1
GAS_MULTIPLIER = 3  # Divide by this for 33% gas buffer
DEFAULT_SLIPPAGE_BPS = 50  # 0.5%
DEFAULT_DEADLINE_MINUTES = 20
BLOCKS_PER_YEAR = 31_536_000  # one block per second

DEFAULT_PRICE_URL = "https://kvxdikvk5b.execute-api.ap-southeast-1.amazonaws.com/prod/prices"
DEFAULT_API_BASE_URL = "https://kvxdikvk5b.execute-api.ap-southeast-1.amazonaws.com/prod"


@dataclass
class Settings:
    """Runtime settings resolved from the environment."""
    rpc_url: str
    network: NetworkConfig
    agent_mode: AgentMode = AgentMode.READONLY
    private_key: Optional[str] = None
    price_url: str = DEFAULT_PRICE_URL
    api_base_url: str = DEFAULT_API_BASE_URL
    price_timeout: float = 10.0
    transport: str = "stdio"
    log_level: str = "INFO"

    @property
    def is_transaction_mode(self) -> bool:
        return self.agent_mode == AgentMode.TRANSACTION


def normalize_private_key(private_key: str) -> str:
    private_key = private_key.strip()
    return private_key if private_key.startswith("0x") else f"0x{private_key}"


def load_settings(environ: Optional[Dict[str, str]] = None) -> Settings:
    """Build Settings from environment variables.

    Raises:
        ValueError: when a required variable is missing or a value is invalid.
    """
    env = os.environ if environ is None else environ

    rpc_url = env.get("KAIA_RPC_URL")
    if not rpc_url:
        raise ValueError("KAIA_RPC_URL environment variable is required")

    network_name = env.get("KAIA_NETWORK", "kaia")
    if network_name not in NETWORK_CONFIGS:
        raise ValueError(f"Invalid network: {network_name}. Only 'kaia' is supported.")
    network = NETWORK_CONFIGS[network_name]

    multicall_address = env.get("MULTICALL_ADDRESS")
    if multicall_address:
        network = NetworkConfig(
            chain_id=network.chain_id,
            name=network.name,
            rpc_url=network.rpc_url,
            explorer_url=network.explorer_url,
            native_currency=network.native_currency,
            multicall_address=multicall_address,
        )

    mode_value = env.get("KAIA_AGENT_MODE", AgentMode.READONLY.value).lower()
    try:
        agent_mode = AgentMode(mode_value)
    except ValueError:
        raise ValueError(f"Invalid KAIA_AGENT_MODE: {mode_value}. Use 'readonly' or 'transaction'.")

    private_key = env.get("KAIA_PRIVATE_KEY")
    if private_key:
        private_key = normalize_private_key(private_key)
    elif agent_mode == AgentMode.TRANSACTION:
        raise ValueError("KAIA_PRIVATE_KEY environment variable is required in transaction mode")

    try:
        price_timeout = float(env.get("PRICE_API_TIMEOUT", "10"))
    except ValueError:
        raise ValueError(f"Invalid PRICE_API_TIMEOUT: {env.get('PRICE_API_TIMEOUT')}")

    transport = env.get("TRANSPORT", "stdio")
    if transport not in ("stdio", "sse"):
        raise ValueError(f"Unsupported transport: {transport}")

    return Settings(
        rpc_url=rpc_url,
        network=network,
        agent_mode=agent_mode,
        private_key=private_key,
        price_url=env.get("PRICE_URL", DEFAULT_PRICE_URL),
        api_base_url=env.get("API_BASE_URL", DEFAULT_API_BASE_URL),
        price_timeout=price_timeout,
        transport=transport,
        log_level=env.get("LOG_LEVEL", "INFO").upper(),
    )
