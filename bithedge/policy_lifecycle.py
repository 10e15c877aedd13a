"""Write-side policy handlers: creation, acceptance, settlement, expiry and premiums.

Each public handler runs inside one ``store.transaction``; any exception it
raises leaves the stored policies, pending transactions and events untouched.
The ``apply_*`` helpers work on an open connection and are driven by
``bithedge.transactions`` when a tracked blockchain action resolves.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import duckdb

from . import policy_registry_chain as chain
from . import prices, stacks_node, store
from .config import BLOCKS_PER_DAY, NetworkEnvironment, get_network_environment
from .contracts import ContractCallOptions, get_liquidity_pool_contract
from .errors import (
    BitHedgeError,
    InvalidPolicyStatusError,
    PolicyNotFoundError,
    PolicyValidationError,
    UnauthorizedCounterpartyError,
    UnauthorizedOwnerError,
)
from .models import (
    Identity,
    PendingPolicyTransaction,
    Policy,
    PolicyEventType,
    PolicyStatus,
    PolicyType,
    PositionType,
    TokenType,
    TransactionAction,
    determine_position_type,
    require_identity,
)
from .premium import MarketData, calculate_premium_for_policy_creation

LOGGER = logging.getLogger(__name__)

DEFAULT_VOLATILITY = 0.3
DEFAULT_RISK_TIER = "balanced"
PROTECTED_ASSET = "BTC"


@dataclass
class PolicyCreationRequest:
    protected_value_usd: float
    protection_amount_btc: float
    policy_type: PolicyType
    duration_days: int
    premium_usd: float | None = None
    counterparty: str | None = None
    collateral_token: TokenType | None = None
    settlement_token: TokenType | None = None
    display_name: str | None = None
    description: str | None = None
    tags: list[str] = field(default_factory=list)
    risk_tier: str = DEFAULT_RISK_TIER


@dataclass(frozen=True)
class PolicyCreationResult:
    pending_tx_id: str
    transaction: ContractCallOptions
    estimated_premium: float
    position_type: PositionType


@dataclass(frozen=True)
class AcceptanceResult:
    pending_tx_id: str
    transaction: ContractCallOptions
    position_type: PositionType


@dataclass(frozen=True)
class EligibilityResult:
    eligible: bool
    reason: str | None = None
    settlement_amount: float | None = None


@dataclass(frozen=True)
class SettlementRequestResult:
    pending_tx_id: str
    transaction: ContractCallOptions
    settlement_amount: float


@dataclass(frozen=True)
class PremiumDistributionResult:
    success: bool
    reason: str
    pending_tx_id: str | None = None


# --- helpers ---


def validate_policy_parameters(owner: str | None, request: PolicyCreationRequest) -> None:
    """Raise ``PolicyValidationError`` for a request that cannot become a policy."""
    if not owner:
        raise PolicyValidationError("Owner is required.")
    if request.protected_value_usd is None or request.protected_value_usd <= 0:
        raise PolicyValidationError("Protected value must be greater than 0.")
    if request.protection_amount_btc is None or request.protection_amount_btc <= 0:
        raise PolicyValidationError("Protection amount must be greater than 0.")
    if request.duration_days is None or request.duration_days <= 0:
        raise PolicyValidationError("Duration must be greater than 0 days.")
    try:
        PolicyType(request.policy_type)
    except ValueError:
        raise PolicyValidationError(f"Invalid policy type: {request.policy_type}") from None
    if request.premium_usd is not None and request.premium_usd < 0:
        raise PolicyValidationError("Premium cannot be negative.")


def days_to_block_height(days: int, current_block_height: int) -> int:
    return current_block_height + int(days * BLOCKS_PER_DAY)


def default_token(policy_type: PolicyType) -> TokenType:
    return TokenType.STX if PolicyType(policy_type) is PolicyType.PUT else TokenType.SBTC


def calculate_settlement_amount(
    policy_type: PolicyType,
    protected_value: float,
    protection_amount: float,
    current_price: float,
) -> float:
    """Proportional loss (PUT) or gain (CALL) of the protected amount, capped at that amount."""
    if protected_value <= 0:
        return 0.0
    if PolicyType(policy_type) is PolicyType.PUT:
        difference = protected_value - current_price
    else:
        difference = current_price - protected_value
    if difference <= 0:
        return 0.0
    return min(difference / protected_value * protection_amount, protection_amount)


def _get_policy_or_raise(conn: duckdb.DuckDBPyConnection, policy_id: str) -> Policy:
    policy = store.get_policy(conn, policy_id)
    if policy is None:
        raise PolicyNotFoundError(f"Policy with ID {policy_id} not found")
    return policy


def set_policy_status(
    conn: duckdb.DuckDBPyConnection,
    policy: Policy,
    new_status: PolicyStatus,
    *,
    reason: str | None = None,
    data: dict[str, Any] | None = None,
) -> bool:
    """Patch the status and record a ``StatusUpdate`` event; False when unchanged."""
    new_status = PolicyStatus(new_status)
    if policy.status is new_status:
        LOGGER.debug("Policy %s already has status %s", policy.id, new_status)
        return False
    LOGGER.info("Updating policy %s status from %s to %s", policy.id, policy.status, new_status)
    store.patch_policy(conn, policy.id, status=new_status, updated_at=store.now_ms())
    store.insert_policy_event(
        conn,
        policy.id,
        PolicyEventType.STATUS_UPDATE,
        {
            "previousStatus": str(policy.status),
            "newStatus": str(new_status),
            "reason": reason or "Status updated",
            "additionalData": data or {},
        },
    )
    policy.status = new_status
    return True


# --- creation ---


def request_policy_creation(
    identity: Identity | None,
    request: PolicyCreationRequest,
    *,
    current_block_height: int | None = None,
    market: MarketData | None = None,
    network: NetworkEnvironment | None = None,
    db_path: Path | None = None,
) -> PolicyCreationResult:
    """Validate a purchase, price it and record a ``Create`` pending transaction.

    The returned contract call is what the owner's wallet signs. The policy
    record itself is written when the transaction is confirmed.
    """
    owner = require_identity(identity, "Not authenticated")
    validate_policy_parameters(owner, request)
    policy_type = PolicyType(request.policy_type)

    premium = request.premium_usd
    if premium is None:
        if market is None:
            market = MarketData(price=prices.fetch_btc_price(), volatility=DEFAULT_VOLATILITY)
        premium = calculate_premium_for_policy_creation(
            policy_type=policy_type,
            strike_price_usd=request.protected_value_usd,
            duration_days=request.duration_days,
            protection_amount=request.protection_amount_btc,
            market=market,
        )

    collateral_token = TokenType(request.collateral_token or default_token(policy_type))
    settlement_token = TokenType(request.settlement_token or default_token(policy_type))
    position_type = determine_position_type(policy_type, is_buyer=True)
    if current_block_height is None:
        current_block_height = stacks_node.get_latest_block_height()
    expiration_height = days_to_block_height(request.duration_days, current_block_height)

    env = network or get_network_environment()
    call = chain.build_policy_creation_call(
        chain.PolicyCreationParams(
            owner=owner,
            policy_type=str(policy_type),
            risk_tier=request.risk_tier,
            protected_asset_name=PROTECTED_ASSET,
            collateral_token_name=str(collateral_token),
            strike_price=request.protected_value_usd,
            amount=request.protection_amount_btc,
            expiration_height=expiration_height,
            premium=premium,
        ),
        network=env,
    )
    params = {
        "owner": owner,
        "counterparty": request.counterparty,
        "protectedValueUSD": request.protected_value_usd,
        "protectionAmountBTC": request.protection_amount_btc,
        "policyType": str(policy_type),
        "positionType": str(position_type),
        "durationDays": request.duration_days,
        "premiumUSD": premium,
        "collateralToken": str(collateral_token),
        "settlementToken": str(settlement_token),
        "expirationHeight": expiration_height,
        "displayName": request.display_name,
        "description": request.description,
        "tags": list(request.tags),
    }
    with store.transaction(db_path) as conn:
        pending = store.new_pending_transaction(
            conn,
            action_type=TransactionAction.CREATE,
            payload={"params": params, "txOptions": call.to_dict()},
            user_id=owner,
        )
    LOGGER.info("Recorded Create pending transaction %s for %s", pending.id, owner)
    return PolicyCreationResult(
        pending_tx_id=pending.id,
        transaction=call,
        estimated_premium=premium,
        position_type=position_type,
    )


def update_policy_status(
    policy_id: str,
    new_status: PolicyStatus,
    *,
    reason: str | None = None,
    data: dict[str, Any] | None = None,
    db_path: Path | None = None,
) -> Policy:
    with store.transaction(db_path) as conn:
        policy = _get_policy_or_raise(conn, policy_id)
        set_policy_status(conn, policy, new_status, reason=reason, data=data)
        return policy


# --- acceptance ---


def accept_policy_offer_by_counterparty(
    identity: Identity | None,
    policy_id: str,
    *,
    network: NetworkEnvironment | None = None,
    db_path: Path | None = None,
) -> AcceptanceResult:
    """Let a liquidity provider take the other side of a pending policy offer."""
    counterparty = require_identity(
        identity, "Counterparty must be authenticated to accept policy offers"
    )
    with store.transaction(db_path) as conn:
        policy = _get_policy_or_raise(conn, policy_id)
        if policy.status is not PolicyStatus.PENDING_COUNTERPARTY_ACCEPTANCE:
            raise InvalidPolicyStatusError(
                "Policy is not in pending counterparty acceptance status "
                f"(current: {policy.status})"
            )
        if policy.counterparty and policy.counterparty != counterparty:
            raise UnauthorizedCounterpartyError(
                "You are not the specified counterparty for this policy"
            )

        position_type = determine_position_type(policy.policy_type, is_buyer=False)
        call = chain.build_accept_policy_offer_call(
            policy_id=policy.id,
            counterparty=counterparty,
            position_type=str(position_type),
            network=network,
        )
        pending = store.new_pending_transaction(
            conn,
            action_type=TransactionAction.ACCEPT,
            payload={
                "policyId": policy.id,
                "counterparty": counterparty,
                "positionType": str(position_type),
                "txOptions": call.to_dict(),
            },
            user_id=counterparty,
            policy_id=policy.id,
        )
        store.patch_policy(
            conn,
            policy.id,
            status=PolicyStatus.PENDING_COUNTERPARTY_SIGNATURE,
            updated_at=store.now_ms(),
        )
    LOGGER.info("Counterparty %s accepting policy %s (%s)", counterparty, policy_id, pending.id)
    return AcceptanceResult(pending_tx_id=pending.id, transaction=call, position_type=position_type)


# --- settlement ---


def _eligibility(
    policy: Policy | None, current_price: float, current_block_height: int
) -> EligibilityResult:
    if policy is None:
        return EligibilityResult(False, "Policy not found.")
    if policy.status is not PolicyStatus.ACTIVE:
        return EligibilityResult(False, f"Policy is not Active. Current status: {policy.status}")
    if policy.expiration_height < current_block_height:
        return EligibilityResult(
            False,
            f"Policy has expired at block {policy.expiration_height}. "
            f"Current: {current_block_height}",
        )
    if policy.policy_type is PolicyType.PUT and current_price >= policy.protected_value:
        return EligibilityResult(
            False,
            f"PUT Option: Current price ({current_price}) is not below strike price "
            f"({policy.protected_value}).",
        )
    if policy.policy_type is PolicyType.CALL and current_price <= policy.protected_value:
        return EligibilityResult(
            False,
            f"CALL Option: Current price ({current_price}) is not above strike price "
            f"({policy.protected_value}).",
        )
    amount = calculate_settlement_amount(
        policy.policy_type, policy.protected_value, policy.protection_amount, current_price
    )
    return EligibilityResult(True, settlement_amount=amount)


def check_policy_activation_eligibility(
    policy_id: str,
    current_price: float,
    current_block_height: int,
    *,
    db_path: Path | None = None,
) -> EligibilityResult:
    with store.transaction(db_path) as conn:
        policy = store.get_policy(conn, policy_id)
    return _eligibility(policy, current_price, current_block_height)


def request_policy_settlement(
    identity: Identity | None,
    policy_id: str,
    current_price: float,
    *,
    current_block_height: int | None = None,
    network: NetworkEnvironment | None = None,
    db_path: Path | None = None,
) -> SettlementRequestResult:
    owner = require_identity(identity, "User must be authenticated to settle a policy")
    if current_block_height is None:
        current_block_height = stacks_node.get_latest_block_height()
    with store.transaction(db_path) as conn:
        policy = _get_policy_or_raise(conn, policy_id)
        if policy.owner != owner:
            raise UnauthorizedOwnerError("Only the policy owner can settle the policy")
        if policy.status is not PolicyStatus.ACTIVE:
            raise InvalidPolicyStatusError(
                f"Policy must be active to settle (current status: {policy.status})"
            )
        if policy.expiration_height < current_block_height:
            raise InvalidPolicyStatusError(
                f"Policy has expired at block {policy.expiration_height} "
                f"(current: {current_block_height})"
            )
        amount = calculate_settlement_amount(
            policy.policy_type, policy.protected_value, policy.protection_amount, current_price
        )
        if amount <= 0:
            raise PolicyValidationError(
                "Settlement amount is zero or negative, no settlement needed"
            )

        call = chain.build_settlement_call(
            policy_id=policy.id,
            settlement_amount=amount,
            current_price=current_price,
            network=network,
        )
        pending = store.new_pending_transaction(
            conn,
            action_type=TransactionAction.SETTLE,
            payload={
                "policyId": policy.id,
                "owner": owner,
                "settlementAmount": amount,
                "currentPrice": current_price,
                "txOptions": call.to_dict(),
            },
            user_id=owner,
            policy_id=policy.id,
        )
        set_policy_status(
            conn, policy, PolicyStatus.SETTLEMENT_IN_PROGRESS, reason="Settlement requested"
        )
    return SettlementRequestResult(pending_tx_id=pending.id, transaction=call, settlement_amount=amount)


def mark_policy_settled(
    conn: duckdb.DuckDBPyConnection,
    policy_id: str,
    *,
    settlement_amount: float | None,
    settlement_price: float | None,
    settlement_transaction_id: str | None,
    settlement_block_height: int | None,
) -> None:
    _get_policy_or_raise(conn, policy_id)
    timestamp = store.now_ms()
    store.patch_policy(
        conn,
        policy_id,
        status=PolicyStatus.SETTLED,
        updated_at=timestamp,
        exercised_at=timestamp,
        settlement_amount=settlement_amount,
        settlement_price=settlement_price,
        settlement_transaction_id=settlement_transaction_id,
        settlement_block_height=settlement_block_height,
    )
    store.insert_policy_event(
        conn,
        policy_id,
        PolicyEventType.SETTLED,
        {
            "settlementAmount": settlement_amount,
            "settlementPrice": settlement_price,
            "settlementTransactionId": settlement_transaction_id,
            "settlementBlockHeight": settlement_block_height,
        },
        transaction_id=settlement_transaction_id,
        block_height=settlement_block_height,
    )


def update_policy_to_settled(
    policy_id: str,
    *,
    settlement_amount: float,
    settlement_price: float,
    settlement_transaction_id: str,
    settlement_block_height: int,
    db_path: Path | None = None,
) -> None:
    with store.transaction(db_path) as conn:
        mark_policy_settled(
            conn,
            policy_id,
            settlement_amount=settlement_amount,
            settlement_price=settlement_price,
            settlement_transaction_id=settlement_transaction_id,
            settlement_block_height=settlement_block_height,
        )


# --- expiry ---


def _expire_one(conn: duckdb.DuckDBPyConnection, policy: Policy, current_block_height: int) -> None:
    set_policy_status(
        conn,
        policy,
        PolicyStatus.EXPIRED,
        reason=f"Expired at block {policy.expiration_height}",
        data={"currentBlockHeight": current_block_height},
    )
    store.insert_policy_event(
        conn,
        policy.id,
        PolicyEventType.EXPIRED,
        {
            "expirationHeight": policy.expiration_height,
            "currentBlockHeight": current_block_height,
        },
    )


def expire_policies(current_block_height: int, *, db_path: Path | None = None) -> list[str]:
    """Move every ACTIVE policy whose expiration height has passed to EXPIRED.

    Each policy is expired in its own transaction. Paid premiums that have not
    been distributed yet are released to the counterparty afterwards. A failure
    on one policy is logged and does not stop the others.
    """
    with store.transaction(db_path) as conn:
        due = store.query_policies(
            conn, statuses=[PolicyStatus.ACTIVE], expires_before=current_block_height
        )

    expired = []
    for policy in due:
        try:
            with store.transaction(db_path) as conn:
                _expire_one(conn, policy, current_block_height)
        except BitHedgeError as exc:
            LOGGER.error("Failed to expire policy %s: %s", policy.id, exc)
            continue
        expired.append(policy.id)

        if policy.premium_paid and not policy.premium_distributed:
            LOGGER.info("Policy %s needs premium distribution after expiration", policy.id)
            try:
                result = initiate_premium_distribution(policy.id, db_path=db_path)
            except BitHedgeError as exc:
                LOGGER.error("Premium distribution failed for %s: %s", policy.id, exc)
                continue
            if not result.success:
                LOGGER.warning("Premium distribution skipped for %s: %s", policy.id, result.reason)

    if expired:
        LOGGER.info("Expired %d policies at block %d", len(expired), current_block_height)
    return expired


# --- premium distribution ---


def apply_premium_distribution(
    conn: duckdb.DuckDBPyConnection,
    policy_id: str,
    *,
    transaction_id: str | None = None,
    block_height: int | None = None,
) -> PremiumDistributionResult:
    policy = store.get_policy(conn, policy_id)
    if policy is None:
        LOGGER.error("Policy %s not found during premium distribution", policy_id)
        return PremiumDistributionResult(False, "Policy not found.")
    if policy.premium_distributed:
        return PremiumDistributionResult(True, "Premium already distributed.")
    store.patch_policy(conn, policy_id, premium_distributed=True, updated_at=store.now_ms())
    store.insert_policy_event(
        conn,
        policy_id,
        PolicyEventType.PREMIUM_DISTRIBUTED,
        {
            "message": "Premium successfully distributed to counterparty.",
            "transactionId": transaction_id,
            "blockHeight": block_height,
            "premiumAmount": policy.premium,
            "counterparty": policy.counterparty,
            "settlementToken": str(policy.settlement_token),
        },
        transaction_id=transaction_id,
        block_height=block_height,
    )
    LOGGER.info("Premium %.2f distributed for policy %s", policy.premium, policy_id)
    return PremiumDistributionResult(True, "Premium distributed.")


def process_premium_distribution_event(
    policy_id: str,
    *,
    transaction_id: str | None = None,
    block_height: int | None = None,
    db_path: Path | None = None,
) -> PremiumDistributionResult:
    with store.transaction(db_path) as conn:
        return apply_premium_distribution(
            conn, policy_id, transaction_id=transaction_id, block_height=block_height
        )


def initiate_premium_distribution(
    policy_id: str,
    *,
    on_chain: bool = False,
    network: NetworkEnvironment | None = None,
    db_path: Path | None = None,
) -> PremiumDistributionResult:
    """Release the premium of an EXPIRED policy to its counterparty.

    With ``on_chain`` and an on-chain policy id, a ``PremiumDistribution``
    pending transaction is recorded and the premium is marked distributed when
    it confirms; otherwise the distribution is processed immediately.
    """
    with store.transaction(db_path) as conn:
        policy = store.get_policy(conn, policy_id)
        if policy is None:
            LOGGER.error("Premium distribution: policy %s not found", policy_id)
            return PremiumDistributionResult(False, "Policy not found.")
        if policy.status is not PolicyStatus.EXPIRED:
            LOGGER.info("Policy %s is not EXPIRED (%s); skipping distribution", policy_id, policy.status)
            return PremiumDistributionResult(False, f"Policy is not EXPIRED: {policy.status}")
        if policy.premium_distributed:
            return PremiumDistributionResult(False, "Premium already distributed.")

        if on_chain and policy.on_chain_policy_id and policy.counterparty:
            call = chain.build_premium_distribution_call(
                on_chain_policy_id=int(policy.on_chain_policy_id),
                amount=policy.premium,
                token=str(policy.settlement_token),
                recipient=policy.counterparty,
                network=network,
            )
            pending = store.new_pending_transaction(
                conn,
                action_type=TransactionAction.PREMIUM_DISTRIBUTION,
                payload={
                    "policyId": policy.id,
                    "premium": policy.premium,
                    "counterparty": policy.counterparty,
                    "settlementToken": str(policy.settlement_token),
                    "txOptions": call.to_dict(),
                },
                user_id=policy.counterparty,
                policy_id=policy.id,
            )
            return PremiumDistributionResult(True, "Distribution transaction recorded.", pending.id)

        return apply_premium_distribution(conn, policy_id)


# --- confirmation hooks ---


def apply_confirmed_creation(
    conn: duckdb.DuckDBPyConnection,
    pending: PendingPolicyTransaction,
    *,
    transaction_id: str | None,
    data: dict[str, Any],
) -> Policy:
    """Write the policy a confirmed ``Create`` transaction describes.

    An offer naming a counterparty waits for that counterparty's acceptance;
    otherwise the liquidity pool backs it and it is active immediately.
    """
    params = pending.payload["params"]
    network = NetworkEnvironment(pending.payload.get("txOptions", {}).get("network", "devnet"))
    counterparty = params.get("counterparty")
    if counterparty:
        status = PolicyStatus.PENDING_COUNTERPARTY_ACCEPTANCE
    else:
        status = PolicyStatus.ACTIVE
        counterparty = get_liquidity_pool_contract(network).identifier

    timestamp = store.now_ms()
    on_chain_id = data.get("onChainPolicyId")
    policy = Policy(
        id=store.new_id(),
        owner=params["owner"],
        counterparty=counterparty,
        policy_type=params["policyType"],
        position_type=params["positionType"],
        protected_value=params["protectedValueUSD"],
        protection_amount=params["protectionAmountBTC"],
        premium=params["premiumUSD"],
        collateral_token=params["collateralToken"],
        settlement_token=params["settlementToken"],
        status=status,
        creation_timestamp=timestamp,
        updated_at=timestamp,
        expiration_height=params["expirationHeight"],
        premium_paid=True,
        premium_distributed=False,
        on_chain_policy_id=str(on_chain_id) if on_chain_id is not None else None,
        display_name=params.get("displayName")
        or f"{params['policyType']} Option - {params['protectedValueUSD']} USD",
        description=params.get("description"),
        tags=list(params.get("tags") or []),
    )
    store.insert_policy(conn, policy)
    store.insert_policy_event(
        conn,
        policy.id,
        PolicyEventType.CREATED,
        {"pendingTxId": pending.id, "transactionId": transaction_id, "params": params},
        transaction_id=transaction_id,
    )
    store.insert_policy_event(
        conn,
        policy.id,
        PolicyEventType.ONCHAIN_CONFIRMED,
        {
            "pendingTxId": pending.id,
            "transactionId": transaction_id,
            "blockHeight": data.get("blockHeight"),
        },
        transaction_id=transaction_id,
        block_height=data.get("blockHeight"),
    )
    store.patch_pending_transaction(conn, pending.id, policy_id=policy.id)
    LOGGER.info("Created policy %s (%s) from %s", policy.id, status, pending.id)
    return policy


def apply_confirmed_acceptance(
    conn: duckdb.DuckDBPyConnection,
    pending: PendingPolicyTransaction,
    *,
    transaction_id: str | None,
    data: dict[str, Any],
) -> None:
    policy_id = pending.payload.get("policyId") or pending.policy_id
    policy = _get_policy_or_raise(conn, policy_id)
    counterparty = pending.payload.get("counterparty")
    store.patch_policy(
        conn,
        policy.id,
        status=PolicyStatus.ACTIVE,
        counterparty=counterparty,
        updated_at=store.now_ms(),
    )
    store.insert_policy_event(
        conn,
        policy.id,
        PolicyEventType.ACCEPTED,
        {
            "pendingTxId": pending.id,
            "transactionId": transaction_id,
            "counterparty": counterparty,
            "positionType": pending.payload.get("positionType"),
            "previousStatus": str(policy.status),
        },
        transaction_id=transaction_id,
        block_height=data.get("blockHeight"),
    )


def apply_confirmed_settlement(
    conn: duckdb.DuckDBPyConnection,
    pending: PendingPolicyTransaction,
    *,
    transaction_id: str | None,
    data: dict[str, Any],
) -> None:
    policy_id = pending.payload.get("policyId") or pending.policy_id
    settlement_amount = pending.payload.get("settlementAmount")
    mark_policy_settled(
        conn,
        policy_id,
        settlement_amount=settlement_amount,
        settlement_price=pending.payload.get("currentPrice"),
        settlement_transaction_id=transaction_id,
        settlement_block_height=data.get("blockHeight"),
    )
    store.insert_policy_event(
        conn,
        policy_id,
        PolicyEventType.SETTLEMENT_REQUESTED,
        {
            "pendingTxId": pending.id,
            "transactionId": transaction_id,
            "settlementAmount": settlement_amount,
        },
        transaction_id=transaction_id,
    )


def apply_failed_action(
    conn: duckdb.DuckDBPyConnection,
    pending: PendingPolicyTransaction,
    *,
    transaction_id: str | None,
    error: str | None,
) -> None:
    """Record the failure and roll in-flight acceptances and settlements back."""
    policy_id = pending.payload.get("policyId") or pending.policy_id
    if not policy_id:
        return
    policy = store.get_policy(conn, policy_id)
    if policy is None:
        return
    store.insert_policy_event(
        conn,
        policy_id,
        PolicyEventType.ERROR,
        {
            "error": error or "Transaction failed",
            "transactionId": transaction_id,
            "pendingTxId": pending.id,
        },
        transaction_id=transaction_id,
    )
    if (
        pending.action_type is TransactionAction.ACCEPT
        and policy.status is PolicyStatus.PENDING_COUNTERPARTY_SIGNATURE
    ):
        set_policy_status(
            conn,
            policy,
            PolicyStatus.PENDING_COUNTERPARTY_ACCEPTANCE,
            reason="Acceptance transaction failed",
        )
    elif (
        pending.action_type is TransactionAction.SETTLE
        and policy.status is PolicyStatus.SETTLEMENT_IN_PROGRESS
    ):
        set_policy_status(conn, policy, PolicyStatus.ACTIVE, reason="Settlement transaction failed")
