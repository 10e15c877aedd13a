"""Deployed contract registry and contract-call option objects."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, replace
from enum import StrEnum
from typing import Any

from . import clarity
from .config import NetworkEnvironment, get_network_environment
from .errors import ConfigurationError

LOGGER = logging.getLogger(__name__)

_MAINNET_DEFAULT = "SP000000000000000000002Q6VF78"
_TESTNET_DEFAULT = "ST000000000000000000002AMW42H"
_DEVNET_DEFAULT = "ST1PQHQKV0RJXZFY1DGX8MNSNYVE3VGZJSRTPGZGM"


@dataclass(frozen=True)
class Contract:
    name: str
    address: str
    decimals: int | None = None

    @property
    def identifier(self) -> str:
        return f"{self.address}.{self.name}"


@dataclass(frozen=True)
class _ContractSpec:
    name: str
    env_prefix: str
    defaults: dict[NetworkEnvironment, str]
    decimals: int | None = None


_SPECS: dict[str, _ContractSpec] = {
    "policy-registry": _ContractSpec(
        "policy-registry",
        "POLICY_REGISTRY",
        {
            NetworkEnvironment.MAINNET: _MAINNET_DEFAULT,
            NetworkEnvironment.TESTNET: _TESTNET_DEFAULT,
            NetworkEnvironment.DEVNET: _DEVNET_DEFAULT,
        },
    ),
    "liquidity-pool-vault": _ContractSpec(
        "liquidity-pool-vault",
        "LIQUIDITY_POOL",
        {
            NetworkEnvironment.MAINNET: _MAINNET_DEFAULT,
            NetworkEnvironment.TESTNET: _TESTNET_DEFAULT,
            NetworkEnvironment.DEVNET: _DEVNET_DEFAULT,
        },
    ),
    "btc-oracle": _ContractSpec(
        "btc-oracle",
        "ORACLE",
        {
            NetworkEnvironment.MAINNET: _MAINNET_DEFAULT,
            NetworkEnvironment.TESTNET: _TESTNET_DEFAULT,
            NetworkEnvironment.DEVNET: _DEVNET_DEFAULT,
        },
    ),
}

# sBTC addresses are full contract identifiers.
_SBTC_DEFAULTS = {
    NetworkEnvironment.MAINNET: "SP3Y2ZSH8P7D50FF03D63M6Q9T6132G35S5K2M7C.sbtc",
    NetworkEnvironment.TESTNET: "ST1F7QA2MDF17S807EPA36TSS8AMEFY4KA9TVGWXT.sbtc-token",
    NetworkEnvironment.DEVNET: "ST1PQHQKV0RJXZFY1DGX8MNSNYVE3VGZJSRTPGZGM.sbtc-token",
}

STX_TOKEN = Contract(name="STX", address="STX", decimals=6)


def _resolve(spec: _ContractSpec, env: NetworkEnvironment | None) -> Contract:
    network = env or get_network_environment()
    address = (
        os.getenv(f"{spec.env_prefix}_CONTRACT_ADDRESS")
        or os.getenv(f"{spec.env_prefix}_CONTRACT_ADDRESS_{network.name}")
        or spec.defaults.get(network, "")
    )
    name = os.getenv(f"{spec.env_prefix}_CONTRACT_NAME") or spec.name
    if not address:
        LOGGER.error("%s contract address not found for %s", spec.name, network)
        raise ConfigurationError(f"{spec.name} contract address not configured for {network}")
    return Contract(name=name, address=address, decimals=spec.decimals)


def get_policy_registry_contract(env: NetworkEnvironment | None = None) -> Contract:
    return _resolve(_SPECS["policy-registry"], env)


def get_liquidity_pool_contract(env: NetworkEnvironment | None = None) -> Contract:
    return _resolve(_SPECS["liquidity-pool-vault"], env)


def get_oracle_contract(env: NetworkEnvironment | None = None) -> Contract:
    return _resolve(_SPECS["btc-oracle"], env)


def get_stx_token_contract(env: NetworkEnvironment | None = None) -> Contract:
    return STX_TOKEN


def get_sbtc_token_contract(env: NetworkEnvironment | None = None) -> Contract:
    network = env or get_network_environment()
    identifier = os.getenv(f"SBTC_CONTRACT_ADDRESS_{network.name}") or _SBTC_DEFAULTS[network]
    address, _, name = identifier.partition(".")
    return Contract(name=name or "sbtc-token", address=address, decimals=8)


def get_contract_by_name(name: str, env: NetworkEnvironment | None = None) -> Contract:
    if name == "STX":
        return get_stx_token_contract(env)
    if name == "sbtc-token":
        return get_sbtc_token_contract(env)
    try:
        spec = _SPECS[name]
    except KeyError:
        raise ConfigurationError(f"Unknown contract: {name}") from None
    return _resolve(spec, env)


class PostConditionMode(StrEnum):
    ALLOW = "allow"
    DENY = "deny"


@dataclass
class ContractCallOptions:
    """Everything a wallet or signer needs to build a contract-call transaction."""

    contract_address: str
    contract_name: str
    function_name: str
    function_args: list[clarity.ClarityValue]
    network: NetworkEnvironment
    post_conditions: list[dict[str, Any]] = field(default_factory=list)
    post_condition_mode: PostConditionMode = PostConditionMode.DENY
    fee: str | None = None
    nonce: int | None = None
    sponsored: bool = False

    @property
    def contract_identifier(self) -> str:
        return f"{self.contract_address}.{self.contract_name}"

    def with_nonce(self, nonce: int) -> ContractCallOptions:
        return replace(self, nonce=nonce)

    def to_dict(self) -> dict[str, Any]:
        """JSON-safe form stored in pending transaction payloads."""
        return {
            "contractAddress": self.contract_address,
            "contractName": self.contract_name,
            "functionName": self.function_name,
            "functionArgs": [clarity.cv_to_json(arg) for arg in self.function_args],
            "network": str(self.network),
            "postConditions": list(self.post_conditions),
            "postConditionMode": str(self.post_condition_mode),
            "fee": self.fee,
            "nonce": self.nonce,
            "sponsored": self.sponsored,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ContractCallOptions:
        return cls(
            contract_address=data["contractAddress"],
            contract_name=data["contractName"],
            function_name=data["functionName"],
            function_args=[clarity.cv_from_json(arg) for arg in data.get("functionArgs", [])],
            network=NetworkEnvironment(data["network"]),
            post_conditions=list(data.get("postConditions") or []),
            post_condition_mode=PostConditionMode(data.get("postConditionMode", "deny")),
            fee=data.get("fee"),
            nonce=data.get("nonce"),
            sponsored=bool(data.get("sponsored", False)),
        )
