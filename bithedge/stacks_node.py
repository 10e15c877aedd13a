"""Stacks node API helpers: nonces, read-only calls, broadcasts and tx status."""

from __future__ import annotations

import logging
import os
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

import requests

from . import clarity
from .config import HIRO_API_KEY_ENV, NetworkConfig, get_network_config
from .errors import BlockchainError, BlockchainErrorCode
from .http_utils import RequestOptions, TransientHTTPError, build_session, json_request
from .models import TransactionStatus

LOGGER = logging.getLogger(__name__)

_TX_STATUS_MAP = {
    "success": TransactionStatus.CONFIRMED,
    "pending": TransactionStatus.PENDING,
    "failed": TransactionStatus.FAILED,
    "abort_by_response": TransactionStatus.FAILED,
    "abort_by_post_condition": TransactionStatus.FAILED,
    "dropped_replace_by_fee": TransactionStatus.REPLACED,
}


@dataclass(frozen=True)
class BroadcastResult:
    txid: str


@dataclass(frozen=True)
class TransactionStatusResult:
    status: TransactionStatus
    block_height: int | None = None
    error: str | None = None


def _node_session() -> requests.Session:
    headers = {"User-Agent": "bithedge/1.0", "Accept": "application/json"}
    api_key = os.getenv(HIRO_API_KEY_ENV)
    if api_key:
        headers["X-API-Key"] = api_key
    return build_session(headers)


def _resolve(network: NetworkConfig | None, session: requests.Session | None):
    return network or get_network_config(), session or _node_session()


def _status_code(exc: requests.HTTPError) -> int | None:
    response = getattr(exc, "response", None)
    return getattr(response, "status_code", None)


def fetch_account_nonce(
    address: str,
    *,
    network: NetworkConfig | None = None,
    session: requests.Session | None = None,
) -> int:
    network, session = _resolve(network, session)
    try:
        payload = json_request(
            RequestOptions(
                prefix="stacks_account",
                session=session,
                method="GET",
                url=f"{network.api_url}/v2/accounts/{address}",
                params={"proof": 0},
            )
        )
    except (requests.HTTPError, TransientHTTPError) as exc:
        LOGGER.error("Failed to fetch nonce for %s: %s", address, exc)
        raise BlockchainError(
            f"Failed to fetch nonce: {exc}", BlockchainErrorCode.NETWORK_ERROR
        ) from exc
    nonce = int(payload.get("nonce") or 0)
    LOGGER.debug("Current nonce for %s: %d", address, nonce)
    return nonce


def get_latest_block_height(
    *, network: NetworkConfig | None = None, session: requests.Session | None = None
) -> int:
    network, session = _resolve(network, session)
    try:
        payload = json_request(
            RequestOptions(
                prefix="stacks_info",
                session=session,
                method="GET",
                url=f"{network.api_url}/v2/info",
            )
        )
    except (requests.HTTPError, TransientHTTPError) as exc:
        LOGGER.error("Failed to fetch node info: %s", exc)
        raise BlockchainError(
            f"Failed to fetch block height: {exc}", BlockchainErrorCode.NETWORK_ERROR
        ) from exc
    return int(payload["stacks_tip_height"])


def call_read_only(
    contract_address: str,
    contract_name: str,
    function_name: str,
    args: Sequence[clarity.ClarityValue] = (),
    *,
    sender: str | None = None,
    network: NetworkConfig | None = None,
    session: requests.Session | None = None,
) -> clarity.ClarityValue:
    """Evaluate a read-only contract function and decode its result."""
    network, session = _resolve(network, session)
    url = (
        f"{network.api_url}/v2/contracts/call-read/"
        f"{contract_address}/{contract_name}/{function_name}"
    )
    body = {
        "sender": sender or contract_address,
        "arguments": [clarity.cv_to_hex(arg) for arg in args],
    }
    try:
        payload = json_request(
            RequestOptions(
                prefix="stacks_call_read",
                session=session,
                method="POST",
                url=url,
                json_body=body,
            )
        )
    except (requests.HTTPError, TransientHTTPError) as exc:
        LOGGER.error("Read-only call %s.%s::%s failed: %s", contract_address, contract_name, function_name, exc)
        raise BlockchainError(
            f"Read-only call failed: {exc}", BlockchainErrorCode.NETWORK_ERROR
        ) from exc
    if not payload.get("okay"):
        cause = payload.get("cause", "unknown cause")
        LOGGER.warning("Read-only call %s returned error: %s", function_name, cause)
        raise BlockchainError(
            f"Read-only call {function_name} failed: {cause}",
            BlockchainErrorCode.CONTRACT_ERROR,
            {"cause": cause},
        )
    return clarity.deserialize_cv(payload["result"])


def _broadcast_error(body: Any) -> BlockchainError:
    if not isinstance(body, dict):
        return BlockchainError(
            f"Transaction broadcast failed: {body}", BlockchainErrorCode.TRANSACTION_REJECTED
        )
    reason = body.get("reason") or "Unknown reason"
    txid = body.get("txid") or "No txid in error"
    reason_data = body.get("reason_data") or {}
    details: dict[str, Any] = {"reason": reason, "txid": txid, "reason_data": reason_data}
    if reason == "BadNonce" and "expected" in reason_data and "actual" in reason_data:
        details["expected_nonce"] = int(reason_data["expected"])
        message = (
            f"Transaction rejected due to BadNonce. Expected: {reason_data['expected']}, "
            f"Actual: {reason_data['actual']}. TxID: {txid}."
        )
    else:
        message = (
            f"Transaction broadcast failed: {body.get('error')}. Reason: {reason}. "
            f"TxID: {txid}. Data: {reason_data or 'No reason data'}"
        )
    return BlockchainError(message, BlockchainErrorCode.TRANSACTION_REJECTED, details)


def broadcast_transaction(
    signed_tx_hex: str,
    *,
    network: NetworkConfig | None = None,
    session: requests.Session | None = None,
) -> BroadcastResult:
    """Submit a signed, serialized transaction and return its txid."""
    network, session = _resolve(network, session)
    raw = bytes.fromhex(signed_tx_hex[2:] if signed_tx_hex.startswith("0x") else signed_tx_hex)
    try:
        payload = json_request(
            RequestOptions(
                prefix="stacks_broadcast",
                session=session,
                method="POST",
                url=f"{network.api_url}/v2/transactions",
                data=raw,
                headers={"Content-Type": "application/octet-stream"},
            )
        )
    except requests.HTTPError as exc:
        try:
            body = exc.response.json()
        except (AttributeError, ValueError):
            body = str(exc)
        error = _broadcast_error(body)
        LOGGER.error("%s", error)
        raise error from exc
    except TransientHTTPError as exc:
        LOGGER.error("Broadcast failed: %s", exc)
        raise BlockchainError(
            f"Failed to broadcast transaction: {exc}", BlockchainErrorCode.NETWORK_ERROR
        ) from exc

    if isinstance(payload, dict):
        if payload.get("error"):
            error = _broadcast_error(payload)
            LOGGER.error("%s", error)
            raise error
        payload = payload.get("txid")
    if not payload:
        raise BlockchainError(
            "Transaction broadcast status uncertain: txid missing from response.",
            BlockchainErrorCode.UNKNOWN_ERROR,
        )
    txid = str(payload).strip('"')
    LOGGER.info("Transaction broadcast successful. TxId: %s", txid)
    return BroadcastResult(txid=txid)


def check_transaction_status(
    txid: str,
    *,
    network: NetworkConfig | None = None,
    session: requests.Session | None = None,
) -> TransactionStatusResult:
    """Map the API's ``tx_status`` onto ``TransactionStatus``.

    Transactions the API does not know about yet are reported as pending.
    """
    network, session = _resolve(network, session)
    try:
        payload = json_request(
            RequestOptions(
                prefix="stacks_tx",
                session=session,
                method="GET",
                url=f"{network.api_url}/extended/v1/tx/{txid}",
            )
        )
    except requests.HTTPError as exc:
        if _status_code(exc) == 404:
            return TransactionStatusResult(TransactionStatus.PENDING)
        LOGGER.error("Error fetching status for %s: %s", txid, exc)
        raise BlockchainError(
            f"Failed to fetch transaction status: {exc}", BlockchainErrorCode.NETWORK_ERROR
        ) from exc
    except TransientHTTPError as exc:
        LOGGER.error("Error fetching status for %s: %s", txid, exc)
        raise BlockchainError(
            f"Failed to fetch transaction status: {exc}", BlockchainErrorCode.NETWORK_ERROR
        ) from exc

    tx_status = payload.get("tx_status")
    status = _TX_STATUS_MAP.get(tx_status)
    if status is None:
        return TransactionStatusResult(
            TransactionStatus.PENDING, error=f"Unknown transaction status: {tx_status}"
        )
    if status is TransactionStatus.CONFIRMED:
        return TransactionStatusResult(status, block_height=payload.get("block_height"))
    if status is TransactionStatus.FAILED:
        error = "Transaction aborted by post condition"
        if tx_status != "abort_by_post_condition":
            result = payload.get("tx_result")
            error = (result.get("repr") if isinstance(result, dict) else result) or (
                "Transaction execution failed"
            )
        return TransactionStatusResult(status, error=error)
    if status is TransactionStatus.REPLACED:
        return TransactionStatusResult(
            status, error="Transaction was replaced by a higher fee transaction"
        )
    return TransactionStatusResult(status)
