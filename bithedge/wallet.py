"""Wallet-connect request wrapper for contract calls the user signs."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from . import clarity
from .contracts import ContractCallOptions
from .errors import BlockchainError, BlockchainErrorCode, WalletCancelledError

LOGGER = logging.getLogger(__name__)

CALL_CONTRACT_METHOD = "stx_callContract"

WalletRequest = Callable[[str, dict[str, Any]], dict[str, Any]]


def build_call_contract_params(options: ContractCallOptions) -> dict[str, Any]:
    return {
        "contract": options.contract_identifier,
        "functionName": options.function_name,
        "functionArgs": [clarity.cv_to_hex(arg) for arg in options.function_args],
        "network": str(options.network),
        "postConditions": list(options.post_conditions),
        "postConditionMode": str(options.post_condition_mode),
        "sponsored": options.sponsored,
    }


def open_contract_call(
    options: ContractCallOptions,
    request: WalletRequest,
    *,
    on_finish: Callable[[dict[str, Any]], None] | None = None,
    on_cancel: Callable[[], None] | None = None,
) -> str:
    """Ask the wallet to sign and broadcast ``options``; return the txid.

    ``request`` is the wallet's ``request(method, params)`` function. When the
    user dismisses the popup, ``on_cancel`` runs and ``WalletCancelledError``
    is raised.
    """
    params = build_call_contract_params(options)
    LOGGER.info("Requesting wallet signature for %s::%s", params["contract"], options.function_name)
    try:
        response = request(CALL_CONTRACT_METHOD, params)
    except Exception as exc:
        if "cancel" in str(exc).lower():
            LOGGER.info("User cancelled %s", options.function_name)
            if on_cancel is not None:
                on_cancel()
            raise WalletCancelledError(str(exc)) from exc
        LOGGER.error("Wallet request for %s failed: %s", options.function_name, exc)
        raise

    txid = (response or {}).get("txid") or (response or {}).get("txId")
    if not txid:
        raise BlockchainError(
            "Wallet response did not include a transaction id",
            BlockchainErrorCode.UNKNOWN_ERROR,
            {"response": response},
        )
    if on_finish is not None:
        on_finish(response)
    return txid
