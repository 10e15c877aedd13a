"""Policy records, enums and identity types shared by the handlers."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import StrEnum
from typing import Any

from .errors import NotAuthenticatedError


class PolicyStatus(StrEnum):
    DRAFT = "DRAFT"
    PENDING_COUNTERPARTY_ACCEPTANCE = "PENDING_COUNTERPARTY_ACCEPTANCE"
    PENDING_COUNTERPARTY_SIGNATURE = "PENDING_COUNTERPARTY_SIGNATURE"
    ACTIVE = "ACTIVE"
    EXERCISED = "EXERCISED"
    SETTLEMENT_IN_PROGRESS = "SETTLEMENT_IN_PROGRESS"
    SETTLED = "SETTLED"
    EXPIRED = "EXPIRED"


class PolicyType(StrEnum):
    PUT = "PUT"
    CALL = "CALL"


class PositionType(StrEnum):
    LONG_PUT = "LONG_PUT"  # buyer of a PUT
    SHORT_PUT = "SHORT_PUT"  # seller of a PUT
    LONG_CALL = "LONG_CALL"
    SHORT_CALL = "SHORT_CALL"


class TokenType(StrEnum):
    STX = "STX"
    SBTC = "sBTC"


class TransactionStatus(StrEnum):
    PENDING = "Pending"
    SUBMITTED = "Submitted"
    CONFIRMED = "Confirmed"
    FAILED = "Failed"
    EXPIRED = "Expired"
    REPLACED = "Replaced"


class TransactionAction(StrEnum):
    CREATE = "Create"
    ACCEPT = "Accept"
    SETTLE = "Settle"
    PREMIUM_DISTRIBUTION = "PremiumDistribution"


class PolicyEventType(StrEnum):
    CREATED = "Created"
    STATUS_UPDATE = "StatusUpdate"
    ONCHAIN_CONFIRMED = "OnChainConfirmed"
    ACTIVATED = "Activated"
    ACCEPTED = "Accepted"
    SETTLED = "Settled"
    EXPIRED = "Expired"
    SETTLEMENT_REQUESTED = "SettlementRequested"
    PREMIUM_DISTRIBUTED = "PremiumDistributed"
    ERROR = "Error"


@dataclass(frozen=True)
class Identity:
    """Authenticated caller, identified by the token identifier of its session."""

    token_identifier: str


@dataclass(slots=True)
class Policy:
    id: str
    owner: str
    policy_type: PolicyType
    position_type: PositionType
    protected_value: float
    protection_amount: float
    premium: float
    collateral_token: TokenType
    settlement_token: TokenType
    status: PolicyStatus
    creation_timestamp: int
    updated_at: int
    expiration_height: int
    counterparty: str | None = None
    premium_paid: bool = False
    premium_distributed: bool = False
    on_chain_policy_id: str | None = None
    display_name: str | None = None
    description: str | None = None
    tags: list[str] = field(default_factory=list)
    exercised_at: int | None = None
    settlement_amount: float | None = None
    settlement_price: float | None = None
    settlement_transaction_id: str | None = None
    settlement_block_height: int | None = None

    def __post_init__(self) -> None:
        self.policy_type = PolicyType(self.policy_type)
        self.position_type = PositionType(self.position_type)
        self.collateral_token = TokenType(self.collateral_token)
        self.settlement_token = TokenType(self.settlement_token)
        self.status = PolicyStatus(self.status)
        for name in ("protected_value", "protection_amount", "premium"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be non-negative")

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class PendingPolicyTransaction:
    id: str
    action_type: TransactionAction
    status: TransactionStatus
    payload: dict[str, Any]
    user_id: str
    created_at: int
    updated_at: int
    retry_count: int = 0
    policy_id: str | None = None
    transaction_id: str | None = None
    error: str | None = None
    result_data: dict[str, Any] | None = None
    last_attempted_at: int | None = None

    def __post_init__(self) -> None:
        self.action_type = TransactionAction(self.action_type)
        self.status = TransactionStatus(self.status)


@dataclass(slots=True)
class PolicyEvent:
    id: str
    policy_id: str
    event_type: PolicyEventType
    data: dict[str, Any]
    timestamp: int
    block_height: int | None = None
    transaction_id: str | None = None

    def __post_init__(self) -> None:
        self.event_type = PolicyEventType(self.event_type)


def determine_position_type(policy_type: PolicyType | str, is_buyer: bool) -> PositionType:
    """Map a policy type and the caller's role to a position."""
    if PolicyType(policy_type) is PolicyType.PUT:
        return PositionType.LONG_PUT if is_buyer else PositionType.SHORT_PUT
    return PositionType.LONG_CALL if is_buyer else PositionType.SHORT_CALL


def require_identity(identity: Identity | None, message: str) -> str:
    """Return the caller's token identifier or raise ``NotAuthenticatedError``."""
    if identity is None or not identity.token_identifier:
        raise NotAuthenticatedError(message)
    return identity.token_identifier
