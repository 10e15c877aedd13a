from __future__ import annotations

import pytest

from bithedge import clarity, contracts
from bithedge.config import NetworkEnvironment
from bithedge.errors import ConfigurationError

DEVNET_DEPLOYER = "ST1PQHQKV0RJXZFY1DGX8MNSNYVE3VGZJSRTPGZGM"


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for prefix in ("POLICY_REGISTRY", "LIQUIDITY_POOL", "ORACLE"):
        monkeypatch.delenv(f"{prefix}_CONTRACT_ADDRESS", raising=False)
        monkeypatch.delenv(f"{prefix}_CONTRACT_NAME", raising=False)
        for env in NetworkEnvironment:
            monkeypatch.delenv(f"{prefix}_CONTRACT_ADDRESS_{env.name}", raising=False)
    for env in NetworkEnvironment:
        monkeypatch.delenv(f"SBTC_CONTRACT_ADDRESS_{env.name}", raising=False)
    monkeypatch.setenv("STACKS_NETWORK", "devnet")


def test_defaults_follow_network():
    registry = contracts.get_policy_registry_contract()
    assert registry.identifier == f"{DEVNET_DEPLOYER}.policy-registry"
    pool = contracts.get_liquidity_pool_contract(NetworkEnvironment.MAINNET)
    assert pool.address.startswith("SP")
    assert pool.name == "liquidity-pool-vault"


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("ORACLE_CONTRACT_ADDRESS_TESTNET", "ST2CY5V39NHDPWSXMW9QDT3HC3GD6Q6XX4CFRK9AG")
    monkeypatch.setenv("ORACLE_CONTRACT_NAME", "oracle-v2")
    oracle = contracts.get_oracle_contract(NetworkEnvironment.TESTNET)
    assert oracle.identifier == "ST2CY5V39NHDPWSXMW9QDT3HC3GD6Q6XX4CFRK9AG.oracle-v2"

    monkeypatch.setenv("ORACLE_CONTRACT_ADDRESS", DEVNET_DEPLOYER)
    assert contracts.get_oracle_contract(NetworkEnvironment.TESTNET).address == DEVNET_DEPLOYER


def test_token_contracts():
    assert contracts.get_stx_token_contract().decimals == 6
    sbtc = contracts.get_sbtc_token_contract(NetworkEnvironment.DEVNET)
    assert sbtc.identifier == f"{DEVNET_DEPLOYER}.sbtc-token"
    assert sbtc.decimals == 8
    assert contracts.get_contract_by_name("sbtc-token").name == "sbtc-token"


def test_unknown_contract_raises():
    with pytest.raises(ConfigurationError):
        contracts.get_contract_by_name("governance")


def test_missing_network_raises(monkeypatch):
    monkeypatch.delenv("STACKS_NETWORK")
    with pytest.raises(ConfigurationError):
        contracts.get_policy_registry_contract()


def test_call_options_dict_round_trip():
    options = contracts.ContractCallOptions(
        contract_address=DEVNET_DEPLOYER,
        contract_name="policy-registry",
        function_name="accept-policy-offer",
        function_args=[clarity.string_utf8_cv("abc"), clarity.uint_cv(7)],
        network=NetworkEnvironment.DEVNET,
        fee="5000",
    )
    data = options.to_dict()
    assert data["contractName"] == "policy-registry"
    assert data["network"] == "devnet"
    assert data["postConditionMode"] == "deny"
    assert data["functionArgs"][1] == {"type": "uint", "value": "7"}
    assert contracts.ContractCallOptions.from_dict(data) == options
    assert options.with_nonce(3).nonce == 3
    assert options.nonce is None
