"""Builders and readers for the policy-registry Clarity contract.

Writers return ``ContractCallOptions`` ready for a wallet or backend signer;
nothing here signs. Amounts are scaled to on-chain units: USD to cents,
BTC to satoshis and STX premiums to micro-STX.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import requests

from . import clarity
from .config import NetworkConfig, NetworkEnvironment, get_network_environment
from .contracts import (
    ContractCallOptions,
    PostConditionMode,
    get_policy_registry_contract,
)
from .errors import BlockchainError, BlockchainErrorCode, format_contract_error
from .formatters import (
    btc_to_sats,
    cents_to_usd,
    sats_to_btc,
    stx_to_micro_stx,
    usd_to_cents,
)
from .models import PolicyStatus
from . import stacks_node

LOGGER = logging.getLogger(__name__)

ON_CHAIN_STATUS_CODES = {
    PolicyStatus.ACTIVE: 0,
    PolicyStatus.EXERCISED: 1,
    PolicyStatus.EXPIRED: 2,
    PolicyStatus.SETTLED: 3,
}
_STATUS_BY_CODE = {code: status for status, code in ON_CHAIN_STATUS_CODES.items()}
_STATUS_BY_NAME = {status.value.lower(): status for status in ON_CHAIN_STATUS_CODES}

ACCEPTANCE_FEE = "5000"


@dataclass(frozen=True)
class PolicyCreationParams:
    owner: str
    policy_type: str
    risk_tier: str
    protected_asset_name: str
    collateral_token_name: str
    strike_price: float  # USD
    amount: float  # BTC
    expiration_height: int
    premium: float


@dataclass(frozen=True)
class OnChainPolicy:
    id: int
    policy_type: str | None
    position_type: str | None
    owner: str | None
    counterparty: str | None
    strike_price: float
    amount: float
    premium: float
    status: PolicyStatus
    creation_height: int | None
    expiration_height: int | None
    premium_distributed: bool
    collateral_token: str | None
    settlement_token: str | None
    settlement_amount: float | None = None
    settlement_price: float | None = None
    settlement_block_height: int | None = None


def map_contract_status(value: int | str) -> PolicyStatus:
    """Translate a numeric or textual on-chain status; unknown values read as ACTIVE."""
    if isinstance(value, int):
        return _STATUS_BY_CODE.get(value, PolicyStatus.ACTIVE)
    text = str(value).strip().lower()
    if text.isdigit():
        return _STATUS_BY_CODE.get(int(text), PolicyStatus.ACTIVE)
    return _STATUS_BY_NAME.get(text, PolicyStatus.ACTIVE)


def _options(
    function_name: str,
    args: list[clarity.ClarityValue],
    network: NetworkEnvironment | None,
    **extra: Any,
) -> ContractCallOptions:
    env = network or get_network_environment()
    contract = get_policy_registry_contract(env)
    return ContractCallOptions(
        contract_address=contract.address,
        contract_name=contract.name,
        function_name=function_name,
        function_args=args,
        network=env,
        **extra,
    )


def build_policy_creation_call(
    params: PolicyCreationParams, *, network: NetworkEnvironment | None = None
) -> ContractCallOptions:
    args = [
        clarity.standard_principal_cv(params.owner),
        clarity.string_ascii_cv(params.policy_type),
        clarity.string_ascii_cv(params.risk_tier),
        clarity.string_ascii_cv(params.protected_asset_name),
        clarity.string_ascii_cv(params.collateral_token_name),
        clarity.uint_cv(usd_to_cents(params.strike_price)),
        clarity.uint_cv(btc_to_sats(params.amount)),
        clarity.uint_cv(params.expiration_height),
        clarity.uint_cv(stx_to_micro_stx(params.premium)),
    ]
    return _options("create-protection-policy", args, network)


def build_accept_policy_offer_call(
    *,
    policy_id: str,
    counterparty: str,
    position_type: str,
    network: NetworkEnvironment | None = None,
) -> ContractCallOptions:
    args = [
        clarity.string_utf8_cv(policy_id),
        clarity.standard_principal_cv(counterparty),
        clarity.string_ascii_cv(position_type),
    ]
    return _options("accept-policy-offer", args, network, fee=ACCEPTANCE_FEE, nonce=0)


def build_update_policy_status_call(
    *,
    on_chain_policy_id: int,
    new_status: PolicyStatus,
    settlement_amount: float | None = None,
    settlement_price: float | None = None,
    network: NetworkEnvironment | None = None,
) -> ContractCallOptions:
    status = PolicyStatus(new_status)
    if status not in (PolicyStatus.EXERCISED, PolicyStatus.EXPIRED, PolicyStatus.SETTLED):
        raise BlockchainError(
            f"Unsupported on-chain status update: {status}", BlockchainErrorCode.INVALID_PARAMS
        )
    if status is PolicyStatus.EXERCISED:
        if settlement_amount is None or settlement_price is None:
            raise BlockchainError(
                "Settlement amount and price are required for exercised status",
                BlockchainErrorCode.INVALID_PARAMS,
            )
        amount_cv = clarity.some_cv(clarity.uint_cv(btc_to_sats(settlement_amount)))
        price_cv = clarity.some_cv(clarity.uint_cv(usd_to_cents(settlement_price)))
    else:
        amount_cv = price_cv = clarity.none_cv()
    args = [
        clarity.uint_cv(on_chain_policy_id),
        clarity.uint_cv(ON_CHAIN_STATUS_CODES[status]),
        amount_cv,
        price_cv,
    ]
    return _options("update-policy-status", args, network)


def build_expire_policies_batch_call(
    *,
    on_chain_policy_ids: list[int],
    current_block_height: int,
    network: NetworkEnvironment | None = None,
) -> ContractCallOptions:
    args = [
        clarity.list_cv(clarity.uint_cv(policy_id) for policy_id in on_chain_policy_ids),
        clarity.uint_cv(current_block_height),
    ]
    return _options("expire-policies-batch", args, network)


def build_premium_distribution_call(
    *,
    on_chain_policy_id: int,
    amount: float,
    token: str,
    recipient: str,
    network: NetworkEnvironment | None = None,
) -> ContractCallOptions:
    args = [
        clarity.uint_cv(on_chain_policy_id),
        clarity.uint_cv(usd_to_cents(amount)),
        clarity.string_ascii_cv(token),
        clarity.standard_principal_cv(recipient),
    ]
    return _options("distribute-premium", args, network)


def build_settlement_call(
    *,
    policy_id: str,
    settlement_amount: float,
    current_price: float,
    network: NetworkEnvironment | None = None,
) -> ContractCallOptions:
    args = [
        clarity.string_utf8_cv(policy_id),
        clarity.uint_cv(btc_to_sats(settlement_amount)),
        clarity.uint_cv(usd_to_cents(current_price)),
    ]
    return _options(
        "settle-policy", args, network, post_condition_mode=PostConditionMode.ALLOW
    )


# --- readers ---


def _read(
    function_name: str,
    args: list[clarity.ClarityValue],
    *,
    network: NetworkConfig | None,
    session: requests.Session | None,
) -> clarity.ClarityValue:
    env = network.environment if network else None
    contract = get_policy_registry_contract(env)
    try:
        return stacks_node.call_read_only(
            contract.address,
            contract.name,
            function_name,
            args,
            network=network,
            session=session,
        )
    except BlockchainError:
        raise
    except (requests.RequestException, ValueError) as exc:
        error = format_contract_error(exc)
        LOGGER.error("policy-registry %s failed: %s", function_name, error)
        raise error from exc


def _parse_policy(policy_id: int, data: dict[str, Any]) -> OnChainPolicy:
    settlement = data.get("settlement_details") or data.get("settlement-details") or {}

    def field(name: str) -> Any:
        return data.get(name, data.get(name.replace("_", "-")))

    return OnChainPolicy(
        id=policy_id,
        policy_type=field("policy_type"),
        position_type=field("position_type"),
        owner=field("owner"),
        counterparty=field("counterparty"),
        strike_price=cents_to_usd(field("strike_price") or field("protected_value") or 0),
        amount=sats_to_btc(field("amount") or field("protection_amount") or 0),
        premium=cents_to_usd(field("premium") or 0),
        status=map_contract_status(field("status") if field("status") is not None else 0),
        creation_height=field("creation_height"),
        expiration_height=field("expiration_height"),
        premium_distributed=bool(field("premium_distributed")),
        collateral_token=field("collateral_token"),
        settlement_token=field("settlement_token"),
        settlement_amount=sats_to_btc(settlement["amount"]) if settlement else None,
        settlement_price=cents_to_usd(settlement["price"]) if settlement else None,
        settlement_block_height=settlement.get("block_height") if settlement else None,
    )


def get_policy_by_id(
    on_chain_policy_id: int,
    *,
    network: NetworkConfig | None = None,
    session: requests.Session | None = None,
) -> OnChainPolicy | None:
    """Fetch a policy from the registry; ``None`` when the registry has no such id."""
    result = _read(
        "get-policy", [clarity.uint_cv(on_chain_policy_id)], network=network, session=session
    )
    if result.type is clarity.ClarityType.RESPONSE_ERR:
        raise BlockchainError(
            f"Failed to get policy with ID {on_chain_policy_id}",
            BlockchainErrorCode.CONTRACT_ERROR,
        )
    value = clarity.cv_to_value(result)
    if value is None:
        return None
    return _parse_policy(on_chain_policy_id, value)


def is_policy_active(
    on_chain_policy_id: int,
    *,
    network: NetworkConfig | None = None,
    session: requests.Session | None = None,
) -> bool:
    result = _read(
        "is-policy-active", [clarity.uint_cv(on_chain_policy_id)], network=network, session=session
    )
    if result.type is clarity.ClarityType.RESPONSE_ERR:
        raise BlockchainError(
            f"Failed to check status of policy {on_chain_policy_id}",
            BlockchainErrorCode.CONTRACT_ERROR,
        )
    return bool(clarity.cv_to_value(result))


def get_policy_count(
    *, network: NetworkConfig | None = None, session: requests.Session | None = None
) -> int:
    result = _read("get-policy-count", [], network=network, session=session)
    return int(clarity.cv_to_value(result) or 0)


def submit_contract_call(
    signed_tx_hex: str,
    *,
    network: NetworkConfig | None = None,
    session: requests.Session | None = None,
) -> str:
    """Broadcast a signed contract-call transaction and return its txid."""
    return stacks_node.broadcast_transaction(signed_tx_hex, network=network, session=session).txid
