"""Read-side handlers: policy lookups, listings and counterparty income stats."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path

import pandas as pd

from . import store
from .models import (
    Identity,
    Policy,
    PolicyEvent,
    PolicyStatus,
    PolicyType,
    PositionType,
    TokenType,
    require_identity,
)

LOGGER = logging.getLogger(__name__)

USER_POLICIES_DEFAULT_LIMIT = 10
COUNTERPARTY_POLICIES_DEFAULT_LIMIT = 20


@dataclass(frozen=True)
class PolicyPage:
    policies: list[Policy]
    total: int


@dataclass(frozen=True)
class TokenIncomeBreakdown:
    total_policies: int = 0
    active_policies: int = 0
    earned_premium: float = 0.0
    pending_premium: float = 0.0
    active_exposure: float = 0.0


@dataclass(frozen=True)
class IncomeStats:
    total_policies: int = 0
    active_policies: int = 0
    expired_policies: int = 0
    exercised_policies: int = 0
    total_premium_earned: float = 0.0
    pending_premiums: float = 0.0
    active_exposure: float = 0.0
    token_breakdown: dict[str, TokenIncomeBreakdown] = field(default_factory=dict)


def get_policy(policy_id: str, *, db_path: Path | None = None) -> Policy | None:
    with store.transaction(db_path) as conn:
        return store.get_policy(conn, policy_id)


def get_policy_events(policy_id: str, *, db_path: Path | None = None) -> list[PolicyEvent]:
    """Events for a policy, newest first."""
    with store.transaction(db_path) as conn:
        return store.list_policy_events(conn, policy_id)


def get_policies_for_user(
    identity: Identity | None,
    *,
    status_filter: Sequence[PolicyStatus] | None = None,
    policy_type_filter: PolicyType | None = None,
    position_type_filter: PositionType | None = None,
    from_timestamp: int | None = None,
    to_timestamp: int | None = None,
    limit: int | None = None,
    db_path: Path | None = None,
) -> list[Policy]:
    owner = require_identity(identity, "User must be authenticated to view policies.")
    with store.transaction(db_path) as conn:
        return store.query_policies(
            conn,
            owner=owner,
            statuses=status_filter,
            policy_type=policy_type_filter,
            position_type=position_type_filter,
            from_timestamp=from_timestamp,
            to_timestamp=to_timestamp,
            limit=limit if limit is not None else USER_POLICIES_DEFAULT_LIMIT,
        )


def get_policies_for_counterparty(
    identity: Identity | None,
    *,
    status_filter: Sequence[PolicyStatus] | None = None,
    policy_type_filter: PolicyType | None = None,
    position_type_filter: PositionType | None = None,
    collateral_token_filter: TokenType | None = None,
    from_timestamp: int | None = None,
    to_timestamp: int | None = None,
    limit: int | None = None,
    offset: int = 0,
    db_path: Path | None = None,
) -> PolicyPage:
    counterparty = require_identity(
        identity, "User must be authenticated to view counterparty policies."
    )
    filters = dict(
        counterparty=counterparty,
        statuses=status_filter,
        policy_type=policy_type_filter,
        position_type=position_type_filter,
        collateral_token=collateral_token_filter,
        from_timestamp=from_timestamp,
        to_timestamp=to_timestamp,
    )
    with store.transaction(db_path) as conn:
        total = store.count_policies(conn, **filters)
        policies = store.query_policies(
            conn,
            limit=limit if limit is not None else COUNTERPARTY_POLICIES_DEFAULT_LIMIT,
            offset=offset,
            **filters,
        )
    return PolicyPage(policies=policies, total=total)


def summarize_income(policies: Sequence[Policy]) -> IncomeStats:
    """Aggregate counts, premiums and exposure over a counterparty's policies.

    Exercised counts SETTLED policies. Earned premium covers distributed
    premiums; pending premium covers EXPIRED policies not yet distributed.
    """
    if not policies:
        return IncomeStats()

    df = pd.DataFrame(
        [
            {
                "collateral_token": str(p.collateral_token) if p.collateral_token else None,
                "status": str(p.status),
                "premium": p.premium or 0.0,
                "protection_amount": p.protection_amount or 0.0,
                "premium_distributed": bool(p.premium_distributed),
            }
            for p in policies
        ]
    )
    df["collateral_token"] = df["collateral_token"].fillna("UNKNOWN")
    active = df["status"] == PolicyStatus.ACTIVE.value
    expired = df["status"] == PolicyStatus.EXPIRED.value
    distributed = df["premium_distributed"]

    df["is_active"] = active.astype(int)
    df["earned"] = df["premium"].where(distributed, 0.0)
    df["pending"] = df["premium"].where(~distributed & expired, 0.0)
    df["exposure"] = df["protection_amount"].where(active, 0.0)

    grouped = df.groupby("collateral_token").agg(
        total_policies=("status", "size"),
        active_policies=("is_active", "sum"),
        earned_premium=("earned", "sum"),
        pending_premium=("pending", "sum"),
        active_exposure=("exposure", "sum"),
    )
    breakdown = {
        str(token): TokenIncomeBreakdown(
            total_policies=int(row.total_policies),
            active_policies=int(row.active_policies),
            earned_premium=float(row.earned_premium),
            pending_premium=float(row.pending_premium),
            active_exposure=float(row.active_exposure),
        )
        for token, row in grouped.iterrows()
    }
    return IncomeStats(
        total_policies=int(len(df)),
        active_policies=int(active.sum()),
        expired_policies=int(expired.sum()),
        exercised_policies=int((df["status"] == PolicyStatus.SETTLED.value).sum()),
        total_premium_earned=float(df["earned"].sum()),
        pending_premiums=float(df["pending"].sum()),
        active_exposure=float(df["exposure"].sum()),
        token_breakdown=breakdown,
    )


def get_counterparty_income_stats(
    identity: Identity | None, *, db_path: Path | None = None
) -> IncomeStats:
    counterparty = require_identity(
        identity, "User must be authenticated to get counterparty income stats."
    )
    with store.transaction(db_path) as conn:
        policies = store.query_policies(conn, counterparty=counterparty)
    stats = summarize_income(policies)
    LOGGER.debug(
        "Income stats for %s: %d policies, %.2f earned",
        counterparty,
        stats.total_policies,
        stats.total_premium_earned,
    )
    return stats
