"""Quick premium and yield estimates for instant feedback while a quote is edited.

These are heuristics only. Authoritative premiums come from
``bithedge.premium`` and from the chain; an estimator returns ``None`` when it
cannot produce a number from the inputs it was given.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

MIN_ESTIMATE = 0.01
BUYER_SCALING_FACTOR = 0.5
PROVIDER_BASE_YIELD_RATE = 0.05
TIER_MULTIPLIERS = {
    "conservative": 1.0,
    "balanced": 1.2,
    "aggressive": 1.5,
}


@dataclass(frozen=True)
class BuyerEstimationParams:
    current_price: float
    volatility: float
    protected_value_percentage: float
    protection_amount: float
    protection_period: int  # days


@dataclass(frozen=True)
class BuyerEstimate:
    estimated_premium: float


@dataclass(frozen=True)
class ProviderEstimationParams:
    commitment_amount_usd: float
    selected_tier: str
    selected_period_days: int
    volatility: float
    current_price: float


@dataclass(frozen=True)
class ProviderEstimate:
    estimated_yield: float
    estimated_annualized_yield_percentage: float


def _positive(*values: float | None) -> bool:
    return all(value is not None and value > 0 for value in values)


def estimate_buyer_premium(params: BuyerEstimationParams) -> BuyerEstimate | None:
    if not _positive(
        params.current_price,
        params.volatility,
        params.protection_amount,
        params.protection_period,
        params.protected_value_percentage,
    ):
        return None

    time_factor = math.sqrt(params.protection_period / 365)
    premium = (
        params.protection_amount
        * params.current_price
        * params.volatility
        * time_factor
        * BUYER_SCALING_FACTOR
    )
    return BuyerEstimate(estimated_premium=max(MIN_ESTIMATE, premium))


def estimate_provider_yield(params: ProviderEstimationParams) -> ProviderEstimate | None:
    if not params.selected_tier or not _positive(
        params.commitment_amount_usd,
        params.selected_period_days,
        params.volatility,
        params.current_price,
    ):
        return None

    # Unknown tiers earn the base rate.
    tier_multiplier = TIER_MULTIPLIERS.get(params.selected_tier, 1.0)
    duration_multiplier = 1 + (params.selected_period_days / 365) * 0.1
    volatility_factor = 1 + params.volatility * 2
    annualized_rate = (
        PROVIDER_BASE_YIELD_RATE * tier_multiplier * duration_multiplier * volatility_factor
    )
    estimated_yield = params.commitment_amount_usd * annualized_rate * (
        params.selected_period_days / 365
    )
    return ProviderEstimate(
        estimated_yield=max(MIN_ESTIMATE, estimated_yield),
        estimated_annualized_yield_percentage=annualized_rate * 100,
    )
