"""Configuration helpers for the BitHedge policy backend."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path

from dotenv import load_dotenv

from .errors import ConfigurationError

load_dotenv()

DATA_DIR = Path("data")
RAW_DATA_DIR = DATA_DIR / "raw"
CACHE_DIR = DATA_DIR / "cache"
DUCKDB_PATH = Path(os.getenv("BITHEDGE_DB_PATH", str(CACHE_DIR / "bithedge.duckdb")))

COINGECKO_BASE = os.getenv("COINGECKO_BASE", "https://api.coingecko.com/api/v3")
COINGECKO_API_KEY = os.getenv("COIN_GECKO_KEY")
HIRO_API_KEY_ENV = "HIRO_API_KEY"
STACKS_NETWORK_ENV = "STACKS_NETWORK"

BLOCKS_PER_DAY = 144

RAW_DATA_DIR.mkdir(parents=True, exist_ok=True)
CACHE_DIR.mkdir(parents=True, exist_ok=True)
DUCKDB_PATH.parent.mkdir(parents=True, exist_ok=True)


class NetworkEnvironment(StrEnum):
    MAINNET = "mainnet"
    TESTNET = "testnet"
    DEVNET = "devnet"


DEFAULT_API_URLS: dict[NetworkEnvironment, str] = {
    NetworkEnvironment.MAINNET: "https://api.mainnet.hiro.so",
    NetworkEnvironment.TESTNET: "https://api.testnet.hiro.so",
    NetworkEnvironment.DEVNET: "http://localhost:3999",
}

API_URL_OVERRIDE_ENV: dict[NetworkEnvironment, str] = {
    NetworkEnvironment.MAINNET: "STACKS_MAINNET_API_URL",
    NetworkEnvironment.TESTNET: "STACKS_TESTNET_API_URL",
    NetworkEnvironment.DEVNET: "STACKS_DEVNET_API_URL",
}

CHAIN_IDS: dict[NetworkEnvironment, int] = {
    NetworkEnvironment.MAINNET: 1,
    NetworkEnvironment.TESTNET: 2147483648,
    NetworkEnvironment.DEVNET: 2147483649,
}


@dataclass(frozen=True)
class RetryConfig:
    """Settings for HTTP retry/backoff behaviour."""

    wait_min_seconds: float = 0.5
    wait_max_seconds: float = 8.0
    max_attempts: int = 4
    status_forcelist: tuple[int, ...] = field(
        default_factory=lambda: (429, 500, 502, 503, 504)
    )


DEFAULT_RETRY_CONFIG = RetryConfig()


@dataclass(frozen=True)
class NetworkConfig:
    environment: NetworkEnvironment
    api_url: str
    chain_id: int

    @property
    def is_mainnet(self) -> bool:
        return self.environment is NetworkEnvironment.MAINNET

    @property
    def is_testnet(self) -> bool:
        return self.environment is NetworkEnvironment.TESTNET

    @property
    def is_devnet(self) -> bool:
        return self.environment is NetworkEnvironment.DEVNET


def get_network_environment() -> NetworkEnvironment:
    """Resolve the Stacks network from ``STACKS_NETWORK``.

    ``mocknet`` is accepted as an older spelling of ``devnet``. A missing or
    unknown value raises ``ConfigurationError``.
    """
    raw = os.getenv(STACKS_NETWORK_ENV)
    if not raw:
        raise ConfigurationError(
            "Stacks network is not configured. Set STACKS_NETWORK "
            "(e.g. 'devnet', 'testnet', 'mainnet')."
        )
    value = raw.strip().lower()
    if value == "mocknet":
        return NetworkEnvironment.DEVNET
    try:
        return NetworkEnvironment(value)
    except ValueError:
        raise ConfigurationError(
            f"Invalid STACKS_NETWORK. Use 'devnet', 'testnet', or 'mainnet'. Found: {value}"
        ) from None


def get_api_url(env: NetworkEnvironment) -> str:
    override = os.getenv(API_URL_OVERRIDE_ENV[env])
    if override:
        return override.rstrip("/")
    return DEFAULT_API_URLS[env]


def get_network_config(env: NetworkEnvironment | None = None) -> NetworkConfig:
    environment = env or get_network_environment()
    return NetworkConfig(
        environment=environment,
        api_url=get_api_url(environment),
        chain_id=CHAIN_IDS[environment],
    )


def resolve_cache_path(prefix: str, key: str, suffix: str = ".json") -> Path:
    """Return a deterministic cache path under data/raw for a given key."""
    sanitized_prefix = prefix.replace("/", "_")
    filename = f"{sanitized_prefix}_{key}{suffix}"
    return RAW_DATA_DIR / filename
