from __future__ import annotations

import pytest
import requests

from bithedge import clarity, stacks_node
from bithedge.config import NetworkConfig, NetworkEnvironment
from bithedge.errors import BlockchainError, BlockchainErrorCode
from bithedge.models import TransactionStatus

NETWORK = NetworkConfig(NetworkEnvironment.DEVNET, "http://node.test", 2147483649)
DEPLOYER = "ST1PQHQKV0RJXZFY1DGX8MNSNYVE3VGZJSRTPGZGM"


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
    def __init__(self, response: DummyResponse):
        self.response = response
        self.calls: list[dict[str, object]] = []

    def request(self, method, url, params=None, json=None, data=None, headers=None, timeout=None):
        self.calls.append(
            {"method": method, "url": url, "params": params, "json": json, "data": data, "headers": headers}
        )
        return self.response


def test_fetch_account_nonce():
    session = DummySession(DummyResponse(200, {"nonce": 12, "balance": "0x0"}))
    assert stacks_node.fetch_account_nonce(DEPLOYER, network=NETWORK, session=session) == 12
    call = session.calls[0]
    assert call["url"] == f"http://node.test/v2/accounts/{DEPLOYER}"
    assert call["params"] == {"proof": 0}


def test_latest_block_height():
    session = DummySession(DummyResponse(200, {"stacks_tip_height": 1234, "burn_block_height": 99}))
    assert stacks_node.get_latest_block_height(network=NETWORK, session=session) == 1234


def test_call_read_only_decodes_result():
    result = clarity.ok_cv(clarity.uint_cv(5))
    session = DummySession(DummyResponse(200, {"okay": True, "result": clarity.cv_to_hex(result)}))
    value = stacks_node.call_read_only(
        DEPLOYER, "policy-registry", "get-policy-count", network=NETWORK, session=session
    )
    assert value == result
    call = session.calls[0]
    assert call["url"].endswith(f"/v2/contracts/call-read/{DEPLOYER}/policy-registry/get-policy-count")
    assert call["json"] == {"sender": DEPLOYER, "arguments": []}


def test_call_read_only_not_okay_raises_contract_error():
    session = DummySession(DummyResponse(200, {"okay": False, "cause": "NoSuchContract"}))
    with pytest.raises(BlockchainError) as excinfo:
        stacks_node.call_read_only(DEPLOYER, "missing", "get", network=NETWORK, session=session)
    assert excinfo.value.code is BlockchainErrorCode.CONTRACT_ERROR
    assert excinfo.value.details["cause"] == "NoSuchContract"


def test_broadcast_posts_raw_bytes():
    session = DummySession(DummyResponse(200, "0xabc123"))
    result = stacks_node.broadcast_transaction("0x0001ff", network=NETWORK, session=session)
    assert result.txid == "0xabc123"
    call = session.calls[0]
    assert call["data"] == b"\x00\x01\xff"
    assert call["headers"] == {"Content-Type": "application/octet-stream"}


def test_broadcast_bad_nonce_surfaces_expected_nonce():
    body = {
        "error": "transaction rejected",
        "reason": "BadNonce",
        "reason_data": {"expected": 7, "actual": 5, "is_origin": True},
        "txid": "0xdead",
    }
    session = DummySession(DummyResponse(400, body))
    with pytest.raises(BlockchainError) as excinfo:
        stacks_node.broadcast_transaction("00", network=NETWORK, session=session)
    assert excinfo.value.code is BlockchainErrorCode.TRANSACTION_REJECTED
    assert excinfo.value.details["expected_nonce"] == 7
    assert "BadNonce" in str(excinfo.value)


def test_broadcast_other_rejection():
    body = {"error": "transaction rejected", "reason": "FeeTooLow", "txid": "0xbeef"}
    session = DummySession(DummyResponse(400, body))
    with pytest.raises(BlockchainError) as excinfo:
        stacks_node.broadcast_transaction("00", network=NETWORK, session=session)
    assert excinfo.value.details["reason"] == "FeeTooLow"
    assert "expected_nonce" not in excinfo.value.details


@pytest.mark.parametrize(
    "tx_status, expected",
    [
        ("success", TransactionStatus.CONFIRMED),
        ("pending", TransactionStatus.PENDING),
        ("abort_by_response", TransactionStatus.FAILED),
        ("abort_by_post_condition", TransactionStatus.FAILED),
        ("dropped_replace_by_fee", TransactionStatus.REPLACED),
    ],
)
def test_check_transaction_status_mapping(tx_status, expected):
    payload = {"tx_status": tx_status, "block_height": 88, "tx_result": {"repr": "(err u1)"}}
    session = DummySession(DummyResponse(200, payload))
    result = stacks_node.check_transaction_status("0x01", network=NETWORK, session=session)
    assert result.status is expected
    if expected is TransactionStatus.CONFIRMED:
        assert result.block_height == 88
    if tx_status == "abort_by_response":
        assert result.error == "(err u1)"


def test_unknown_transaction_is_pending():
    session = DummySession(DummyResponse(404, {"error": "not found"}))
    result = stacks_node.check_transaction_status("0x01", network=NETWORK, session=session)
    assert result.status is TransactionStatus.PENDING
    assert result.error is None


def test_unrecognised_tx_status_is_pending_with_error():
    session = DummySession(DummyResponse(200, {"tx_status": "mystery"}))
    result = stacks_node.check_transaction_status("0x01", network=NETWORK, session=session)
    assert result.status is TransactionStatus.PENDING
    assert "mystery" in result.error


def test_server_error_becomes_network_error():
    session = DummySession(DummyResponse(400, {"error": "bad request"}))
    with pytest.raises(BlockchainError) as excinfo:
        stacks_node.get_latest_block_height(network=NETWORK, session=session)
    assert excinfo.value.code is BlockchainErrorCode.NETWORK_ERROR
