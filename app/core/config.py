"""
Application configuration for SkillBadge Backend.
Settings are read from the environment once at startup and then shared
read-only through FastAPI dependencies.
"""

import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Tuple

from dotenv import load_dotenv


class NetworkType(Enum):
    """Supported blockchain networks"""
    LOCAL = "local"
    SEPOLIA = "sepolia"
    AMOY = "amoy"
    POLYGON = "polygon"


@dataclass(frozen=True)
class NetworkConfig:
    """Network configuration for blockchain interactions"""
    name: str
    rpc_url: str
    chain_id: int
    currency: str
    explorer_url: str
    uses_poa: bool = False


NETWORKS: Dict[NetworkType, NetworkConfig] = {
    NetworkType.LOCAL: NetworkConfig(
        name="localhost",
        rpc_url="http://127.0.0.1:8545",
        chain_id=31337,
        currency="ETH",
        explorer_url="http://localhost:8545",
    ),
    NetworkType.SEPOLIA: NetworkConfig(
        name="sepolia",
        rpc_url="https://rpc.sepolia.org",
        chain_id=11155111,
        currency="ETH",
        explorer_url="https://sepolia.etherscan.io",
    ),
    NetworkType.AMOY: NetworkConfig(
        name="amoy",
        rpc_url="https://rpc-amoy.polygon.technology",
        chain_id=80002,
        currency="POL",
        explorer_url="https://amoy.polygonscan.com",
        uses_poa=True,
    ),
    NetworkType.POLYGON: NetworkConfig(
        name="polygon",
        rpc_url="https://polygon-rpc.com",
        chain_id=137,
        currency="POL",
        explorer_url="https://polygonscan.com",
        uses_poa=True,
    ),
}


def get_network_config(network_type: NetworkType) -> NetworkConfig:
    """Get network configuration by type"""
    return NETWORKS[network_type]


@dataclass(frozen=True)
class Settings:
    """Complete, immutable service configuration."""

    service_name: str = "SkillBadge Backend"
    version: str = "1.0.0"
    log_level: str = "INFO"

    # Record store
    mongodb_url: str = "mongodb://localhost:27017"
    database_name: str = "skillbadge"

    # Ledger
    network: NetworkConfig = NETWORKS[NetworkType.AMOY]
    private_key: Optional[str] = None
    test_registry_address: Optional[str] = None
    badge_nft_address: Optional[str] = None
    gas_limit: int = 500000
    poll_max_attempts: int = 30
    poll_interval: float = 1.0

    # Object store
    storage_backend: str = "local"
    storage_base_url: str = "http://localhost:8000/uploads"
    storage_bucket: str = "skillbadge-assets"
    storage_api_key: Optional[str] = None
    upload_root: str = "uploads"
    max_upload_size: int = 5 * 1024 * 1024
    metadata_folder: str = "badge-metadata"
    default_badge_image: str = "https://skillbadge.app/static/badge.svg"

    cors_origins: Tuple[str, ...] = field(default_factory=lambda: ("*",))

    @property
    def has_signer(self) -> bool:
        return bool(self.private_key)


def _optional(name: str) -> Optional[str]:
    value = os.getenv(name, "").strip()
    return value or None


def load_settings() -> Settings:
    """
    Build the settings object from environment variables.

    A `.env` file in the working directory is honoured. Unknown network
    names fall back to Amoy.

    Returns:
        Settings: frozen configuration shared by the whole process
    """
    load_dotenv()

    network_name = os.getenv("BLOCKCHAIN_NETWORK", NetworkType.AMOY.value).lower()
    try:
        network = get_network_config(NetworkType(network_name))
    except ValueError:
        network = get_network_config(NetworkType.AMOY)

    rpc_override = _optional("BLOCKCHAIN_RPC_URL")
    chain_override = _optional("BLOCKCHAIN_CHAIN_ID")
    if rpc_override or chain_override:
        network = NetworkConfig(
            name=network.name,
            rpc_url=rpc_override or network.rpc_url,
            chain_id=int(chain_override) if chain_override else network.chain_id,
            currency=network.currency,
            explorer_url=network.explorer_url,
            uses_poa=network.uses_poa,
        )

    origins = os.getenv("CORS_ORIGINS", "*")

    return Settings(
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        mongodb_url=os.getenv("MONGODB_URL", "mongodb://localhost:27017"),
        database_name=os.getenv("DATABASE_NAME", "skillbadge"),
        network=network,
        private_key=_optional("BLOCKCHAIN_PRIVATE_KEY"),
        test_registry_address=_optional("TEST_REGISTRY_ADDRESS"),
        badge_nft_address=_optional("BADGE_NFT_ADDRESS"),
        gas_limit=int(os.getenv("BLOCKCHAIN_GAS_LIMIT", "500000")),
        poll_max_attempts=int(os.getenv("LEDGER_POLL_ATTEMPTS", "30")),
        poll_interval=float(os.getenv("LEDGER_POLL_INTERVAL", "1.0")),
        storage_backend=os.getenv("STORAGE_BACKEND", "local").lower(),
        storage_base_url=os.getenv("STORAGE_BASE_URL", "http://localhost:8000/uploads").rstrip("/"),
        storage_bucket=os.getenv("STORAGE_BUCKET", "skillbadge-assets"),
        storage_api_key=_optional("STORAGE_API_KEY"),
        upload_root=os.getenv("UPLOAD_ROOT", "uploads"),
        max_upload_size=int(os.getenv("MAX_UPLOAD_SIZE", str(5 * 1024 * 1024))),
        default_badge_image=os.getenv("DEFAULT_BADGE_IMAGE", "https://skillbadge.app/static/badge.svg"),
        cors_origins=tuple(o.strip() for o in origins.split(",") if o.strip()),
    )
