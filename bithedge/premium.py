"""Backend premium calculation (Black-Scholes with risk adjustments)."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field

from .models import PolicyType

LOGGER = logging.getLogger(__name__)

RISK_FREE_RATE = 0.02
SCENARIO_PRICE_RANGE = 0.5
SCENARIO_STEPS = 10


@dataclass(frozen=True)
class RiskParameters:
    base_rate: float = 0.01
    volatility_multiplier: float = 1.5
    duration_factor: float = 0.5
    tier_multipliers: dict[str, float] = field(
        default_factory=lambda: {"conservative": 0.7, "balanced": 1.0, "aggressive": 1.3}
    )


DEFAULT_RISK_PARAMETERS = RiskParameters()


@dataclass(frozen=True)
class MarketData:
    price: float
    volatility: float


@dataclass(frozen=True)
class PremiumComponents:
    premium: float
    intrinsic_value: float
    time_value: float
    volatility_impact: float


ZERO_PREMIUM = PremiumComponents(0.0, 0.0, 0.0, 0.0)


@dataclass(frozen=True)
class PriceScenario:
    price: float
    protection_value: float
    net_value: float


@dataclass(frozen=True)
class BuyerPremiumQuote:
    protected_value_usd: float
    premium: float
    premium_percentage: float
    annualized_premium: float
    break_even_price: float
    components: PremiumComponents
    scenarios: list[PriceScenario]


def _norm_cdf(x: float) -> float:
    return 0.5 * (1 + math.erf(x / math.sqrt(2)))


def _round_cents(value: float) -> float:
    return round(value * 100) / 100


def calculate_black_scholes_premium(
    *,
    current_price: float,
    strike_price: float,
    volatility: float,
    duration_days: float,
    amount: float,
    policy_type: PolicyType | str = PolicyType.PUT,
    risk_free_rate: float = RISK_FREE_RATE,
    risk_params: RiskParameters | None = None,
) -> PremiumComponents:
    """Price ``amount`` units of a PUT or CALL and apply risk adjustments.

    Invalid (non-positive) inputs and non-finite results price at zero.
    """
    if min(current_price, strike_price, volatility, duration_days, amount) <= 0:
        LOGGER.warning(
            "Invalid Black-Scholes input S=%s K=%s sigma=%s days=%s amount=%s; returning 0",
            current_price,
            strike_price,
            volatility,
            duration_days,
            amount,
        )
        return ZERO_PREMIUM

    is_put = PolicyType(policy_type) is PolicyType.PUT
    s, k, sigma, r = current_price, strike_price, volatility, risk_free_rate
    t = duration_days / 365
    sigma_sqrt_t = sigma * math.sqrt(t)
    discount = math.exp(-r * t)
    intrinsic = max(0.0, k - s) if is_put else max(0.0, s - k)

    d1 = (math.log(s / k) + (r + 0.5 * sigma**2) * t) / sigma_sqrt_t
    d2 = d1 - sigma_sqrt_t
    if is_put:
        per_unit = k * discount * _norm_cdf(-d2) - s * _norm_cdf(-d1)
    else:
        per_unit = s * _norm_cdf(d1) - k * discount * _norm_cdf(d2)

    extrinsic = per_unit - intrinsic
    adjusted = per_unit
    if risk_params is not None:
        adjusted = (
            per_unit
            * (1 + risk_params.base_rate)
            * risk_params.volatility_multiplier
            * (1 + t * risk_params.duration_factor)
        )

    total = adjusted * amount
    if not math.isfinite(total):
        LOGGER.error("Black-Scholes produced a non-finite premium for S=%s K=%s", s, k)
        return ZERO_PREMIUM

    return PremiumComponents(
        premium=max(0.0, _round_cents(total)),
        intrinsic_value=_round_cents(intrinsic * amount),
        time_value=_round_cents(extrinsic * 0.3 * amount),
        volatility_impact=_round_cents(extrinsic * 0.7 * amount),
    )


def calculate_break_even_price(
    strike_price: float, premium: float, amount: float, policy_type: PolicyType | str = PolicyType.PUT
) -> float:
    per_unit = premium / amount
    if PolicyType(policy_type) is PolicyType.PUT:
        return _round_cents(strike_price - per_unit)
    return _round_cents(strike_price + per_unit)


def generate_price_scenarios(
    *, current_price: float, strike_price: float, premium: float, amount: float
) -> list[PriceScenario]:
    """Protection payoff of a PUT at prices from -50% to +50% of spot."""
    scenarios = []
    for step in range(-SCENARIO_STEPS, SCENARIO_STEPS + 1):
        price = current_price * (1 + step * SCENARIO_PRICE_RANGE / SCENARIO_STEPS)
        protection_value = max(0.0, (strike_price - price) * amount)
        scenarios.append(
            PriceScenario(
                price=_round_cents(price),
                protection_value=_round_cents(protection_value),
                net_value=_round_cents(protection_value - premium),
            )
        )
    return scenarios


def get_buyer_premium_quote(
    *,
    market: MarketData,
    protected_value_percentage: float,
    protection_amount: float,
    expiration_days: int,
    policy_type: PolicyType | str = PolicyType.PUT,
    risk_params: RiskParameters = DEFAULT_RISK_PARAMETERS,
    include_scenarios: bool = False,
) -> BuyerPremiumQuote:
    protected_value = market.price * protected_value_percentage / 100
    components = calculate_black_scholes_premium(
        current_price=market.price,
        strike_price=protected_value,
        volatility=market.volatility,
        duration_days=expiration_days,
        amount=protection_amount,
        policy_type=policy_type,
        risk_params=risk_params,
    )
    notional = protected_value * protection_amount
    percentage = components.premium / notional * 100 if notional > 0 else 0.0
    annualized = percentage * 365 / expiration_days if expiration_days > 0 else 0.0
    scenarios = []
    if include_scenarios:
        scenarios = generate_price_scenarios(
            current_price=market.price,
            strike_price=protected_value,
            premium=components.premium,
            amount=protection_amount,
        )
    return BuyerPremiumQuote(
        protected_value_usd=protected_value,
        premium=components.premium,
        premium_percentage=_round_cents(percentage),
        annualized_premium=_round_cents(annualized),
        break_even_price=(
            calculate_break_even_price(protected_value, components.premium, protection_amount, policy_type)
            if protection_amount > 0
            else 0.0
        ),
        components=components,
        scenarios=scenarios,
    )


def calculate_premium_for_policy_creation(
    *,
    policy_type: PolicyType | str,
    strike_price_usd: float,
    duration_days: int,
    protection_amount: float,
    market: MarketData,
    risk_params: RiskParameters = DEFAULT_RISK_PARAMETERS,
) -> float:
    """Premium in USD charged when a policy is created."""
    return calculate_black_scholes_premium(
        current_price=market.price,
        strike_price=strike_price_usd,
        volatility=market.volatility,
        duration_days=duration_days,
        amount=protection_amount,
        policy_type=policy_type,
        risk_params=risk_params,
    ).premium


@dataclass(frozen=True)
class ProviderYieldComponents:
    estimated_yield: float
    annualized_yield_percentage: float
    estimated_btc_acquisition_price: float
    risk_level: int
    base_yield: float
    tier_adjustment: float
    duration_adjustment: float
    market_condition_adjustment: float
    capital_efficiency: float


ZERO_YIELD = ProviderYieldComponents(0.0, 0.0, 0.0, 0, 0.0, 0.0, 0.0, 0.0, 0.0)

_TIER_RISK = {"conservative": 1, "balanced": 3, "aggressive": 5}


def calculate_provider_yield(
    *,
    commitment_amount_usd: float,
    selected_tier: str,
    selected_period_days: int,
    volatility: float,
    market: MarketData,
    risk_params: RiskParameters = DEFAULT_RISK_PARAMETERS,
) -> ProviderYieldComponents:
    """Backend yield for a liquidity provider commitment.

    The base annual rate is 80% of volatility. It is scaled by the tier
    multiplier, a duration curve ``1 - exp(-days / 90)`` and a market factor
    centred on 20% volatility. Unknown tiers use a multiplier of 1.0.
    """
    if min(commitment_amount_usd, selected_period_days, volatility) <= 0:
        LOGGER.warning(
            "Invalid yield input amount=%s days=%s sigma=%s; returning 0",
            commitment_amount_usd,
            selected_period_days,
            volatility,
        )
        return ZERO_YIELD

    tier_multiplier = risk_params.tier_multipliers.get(selected_tier, 1.0)
    base_rate = volatility * 0.8
    duration_factor = 1 - math.exp(-selected_period_days / 90)
    market_factor = 1 + (market.volatility - 0.2) * 0.5
    period_fraction = selected_period_days / 365

    base_yield = base_rate * period_fraction * commitment_amount_usd
    annualized_rate = base_rate * tier_multiplier * duration_factor * market_factor
    estimated_yield = annualized_rate * period_fraction * commitment_amount_usd
    risk_level = min(
        10,
        round(
            1
            + _TIER_RISK.get(selected_tier, 5)
            + min(3, selected_period_days / 120)
            + min(2, volatility * 10)
        ),
    )
    acquisition_price = market.price * (1 - volatility * tier_multiplier * 0.5)

    return ProviderYieldComponents(
        estimated_yield=_round_cents(estimated_yield),
        annualized_yield_percentage=_round_cents(annualized_rate * 100),
        estimated_btc_acquisition_price=_round_cents(acquisition_price),
        risk_level=risk_level,
        base_yield=_round_cents(base_yield),
        tier_adjustment=_round_cents(base_yield * (tier_multiplier - 1)),
        duration_adjustment=_round_cents(base_yield * (duration_factor - 0.8)),
        market_condition_adjustment=_round_cents(base_yield * (market_factor - 1)),
        capital_efficiency=tier_multiplier * 0.8,
    )
