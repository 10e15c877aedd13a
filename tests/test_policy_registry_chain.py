from __future__ import annotations

import pytest
import requests

from bithedge import clarity, policy_registry_chain as chain
from bithedge.config import NetworkConfig, NetworkEnvironment
from bithedge.contracts import PostConditionMode
from bithedge.errors import BlockchainError, BlockchainErrorCode
from bithedge.models import PolicyStatus

DEPLOYER = "ST1PQHQKV0RJXZFY1DGX8MNSNYVE3VGZJSRTPGZGM"
BUYER = "ST2CY5V39NHDPWSXMW9QDT3HC3GD6Q6XX4CFRK9AG"
NETWORK = NetworkConfig(NetworkEnvironment.DEVNET, "http://node.test", 2147483649)


class DummyResponse:
    def __init__(self, status_code: int, payload: object):
        self.status_code = status_code
        self._payload = payload
        self.headers: dict[str, str] = {}

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"HTTP {self.status_code}", response=self)

    def json(self):
        return self._payload


class DummySession:
    def __init__(self, result: clarity.ClarityValue):
        self.result = result
        self.calls: list[str] = []

    def request(self, method, url, params=None, json=None, data=None, headers=None, timeout=None):
        self.calls.append(url)
        return DummyResponse(200, {"okay": True, "result": clarity.cv_to_hex(self.result)})


@pytest.fixture(autouse=True)
def devnet(monkeypatch):
    monkeypatch.setenv("STACKS_NETWORK", "devnet")
    monkeypatch.delenv("POLICY_REGISTRY_CONTRACT_ADDRESS", raising=False)
    monkeypatch.delenv("POLICY_REGISTRY_CONTRACT_NAME", raising=False)


def test_creation_call_scales_amounts():
    call = chain.build_policy_creation_call(
        chain.PolicyCreationParams(
            owner=BUYER,
            policy_type="PUT",
            risk_tier="balanced",
            protected_asset_name="BTC",
            collateral_token_name="STX",
            strike_price=45_000.25,
            amount=0.5,
            expiration_height=5_000,
            premium=312.5,
        )
    )
    assert call.function_name == "create-protection-policy"
    assert call.contract_identifier == f"{DEPLOYER}.policy-registry"
    args = call.function_args
    assert args[0] == clarity.standard_principal_cv(BUYER)
    assert args[5] == clarity.uint_cv(4_500_025)
    assert args[6] == clarity.uint_cv(50_000_000)
    assert args[7] == clarity.uint_cv(5_000)
    assert args[8] == clarity.uint_cv(312_500_000)


def test_accept_call_carries_fee_and_nonce():
    call = chain.build_accept_policy_offer_call(
        policy_id="abc123", counterparty=BUYER, position_type="SHORT_PUT"
    )
    assert call.function_name == "accept-policy-offer"
    assert call.fee == chain.ACCEPTANCE_FEE
    assert call.nonce == 0
    assert call.function_args[2] == clarity.string_ascii_cv("SHORT_PUT")


def test_update_status_exercised_requires_settlement():
    with pytest.raises(BlockchainError) as excinfo:
        chain.build_update_policy_status_call(on_chain_policy_id=1, new_status=PolicyStatus.EXERCISED)
    assert excinfo.value.code is BlockchainErrorCode.INVALID_PARAMS

    call = chain.build_update_policy_status_call(
        on_chain_policy_id=1,
        new_status=PolicyStatus.EXERCISED,
        settlement_amount=0.1,
        settlement_price=40_000,
    )
    assert call.function_args[1] == clarity.uint_cv(1)
    assert call.function_args[2] == clarity.some_cv(clarity.uint_cv(10_000_000))

    expired = chain.build_update_policy_status_call(
        on_chain_policy_id=1, new_status=PolicyStatus.EXPIRED
    )
    assert expired.function_args[2] == clarity.none_cv()


def test_update_status_rejects_non_terminal_status():
    with pytest.raises(BlockchainError):
        chain.build_update_policy_status_call(on_chain_policy_id=1, new_status=PolicyStatus.ACTIVE)


def test_batch_expire_and_settlement_calls():
    batch = chain.build_expire_policies_batch_call(on_chain_policy_ids=[1, 2, 3], current_block_height=900)
    assert batch.function_args[0] == clarity.list_cv([clarity.uint_cv(i) for i in (1, 2, 3)])

    settle = chain.build_settlement_call(policy_id="p1", settlement_amount=0.05, current_price=40_000)
    assert settle.function_name == "settle-policy"
    assert settle.post_condition_mode is PostConditionMode.ALLOW
    assert settle.function_args[1] == clarity.uint_cv(5_000_000)
    assert settle.function_args[2] == clarity.uint_cv(4_000_000)


def test_premium_distribution_call():
    call = chain.build_premium_distribution_call(
        on_chain_policy_id=4, amount=12.34, token="STX", recipient=DEPLOYER
    )
    assert call.function_name == "distribute-premium"
    assert call.function_args[1] == clarity.uint_cv(1_234)


@pytest.mark.parametrize(
    "value, expected",
    [
        (0, PolicyStatus.ACTIVE),
        (1, PolicyStatus.EXERCISED),
        ("2", PolicyStatus.EXPIRED),
        ("settled", PolicyStatus.SETTLED),
        (99, PolicyStatus.ACTIVE),
    ],
)
def test_map_contract_status(value, expected):
    assert chain.map_contract_status(value) is expected


def test_get_policy_by_id_parses_tuple():
    policy_cv = clarity.ok_cv(
        clarity.some_cv(
            clarity.tuple_cv(
                {
                    "owner": clarity.standard_principal_cv(BUYER),
                    "counterparty": clarity.standard_principal_cv(DEPLOYER),
                    "policy-type": clarity.string_ascii_cv("PUT"),
                    "position-type": clarity.string_ascii_cv("LONG_PUT"),
                    "strike-price": clarity.uint_cv(4_500_000),
                    "amount": clarity.uint_cv(50_000_000),
                    "premium": clarity.uint_cv(25_000),
                    "status": clarity.uint_cv(2),
                    "creation-height": clarity.uint_cv(100),
                    "expiration-height": clarity.uint_cv(4_420),
                    "premium-distributed": clarity.false_cv(),
                    "collateral-token": clarity.string_ascii_cv("STX"),
                    "settlement-token": clarity.string_ascii_cv("STX"),
                }
            )
        )
    )
    session = DummySession(policy_cv)
    policy = chain.get_policy_by_id(7, network=NETWORK, session=session)
    assert policy.id == 7
    assert policy.owner == BUYER
    assert policy.strike_price == 45_000
    assert policy.amount == 0.5
    assert policy.premium == 250
    assert policy.status is PolicyStatus.EXPIRED
    assert policy.expiration_height == 4_420
    assert policy.settlement_amount is None
    assert session.calls[0].endswith("/policy-registry/get-policy")


def test_get_policy_by_id_missing_returns_none():
    session = DummySession(clarity.ok_cv(clarity.none_cv()))
    assert chain.get_policy_by_id(7, network=NETWORK, session=session) is None


def test_get_policy_by_id_err_raises():
    session = DummySession(clarity.err_cv(clarity.uint_cv(404)))
    with pytest.raises(BlockchainError):
        chain.get_policy_by_id(7, network=NETWORK, session=session)


def test_readers_unwrap_results():
    assert chain.is_policy_active(1, network=NETWORK, session=DummySession(clarity.ok_cv(clarity.true_cv())))
    count = chain.get_policy_count(network=NETWORK, session=DummySession(clarity.uint_cv(12)))
    assert count == 12


class BroadcastSession:
    def __init__(self):
        self.calls: list[dict] = []

    def request(self, method, url, params=None, json=None, data=None, headers=None, timeout=None):
        self.calls.append({"method": method, "url": url, "data": data})
        return DummyResponse(200, "0xfeed")


def test_submit_contract_call_returns_txid():
    session = BroadcastSession()
    assert chain.submit_contract_call("0x0a0b", network=NETWORK, session=session) == "0xfeed"
    assert session.calls[0]["url"] == "http://node.test/v2/transactions"
    assert session.calls[0]["data"] == b"\x0a\x0b"
