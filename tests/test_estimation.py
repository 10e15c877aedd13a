from __future__ import annotations

from dataclasses import replace

import pytest

from bithedge import estimation


@pytest.fixture()
def buyer_params():
    return estimation.BuyerEstimationParams(
        current_price=50_000,
        volatility=0.5,
        protected_value_percentage=90,
        protection_amount=1.0,
        protection_period=365,
    )


@pytest.fixture()
def provider_params():
    return estimation.ProviderEstimationParams(
        commitment_amount_usd=10_000,
        selected_tier="balanced",
        selected_period_days=365,
        volatility=0.5,
        current_price=50_000,
    )


def test_buyer_premium_formula(buyer_params):
    estimate = estimation.estimate_buyer_premium(buyer_params)
    # 1 BTC * 50k * 0.5 vol * sqrt(1y) * 0.5 scaling
    assert estimate.estimated_premium == pytest.approx(12_500)


@pytest.mark.parametrize(
    "field",
    [
        "current_price",
        "volatility",
        "protected_value_percentage",
        "protection_amount",
        "protection_period",
    ],
)
@pytest.mark.parametrize("value", [0, -1])
def test_buyer_premium_requires_positive_inputs(buyer_params, field, value):
    assert estimation.estimate_buyer_premium(replace(buyer_params, **{field: value})) is None


def test_buyer_premium_floor(buyer_params):
    tiny = replace(buyer_params, protection_amount=1e-9, protection_period=1)
    assert estimation.estimate_buyer_premium(tiny).estimated_premium == estimation.MIN_ESTIMATE


def test_provider_yield_formula(provider_params):
    estimate = estimation.estimate_provider_yield(provider_params)
    # 0.05 base * 1.2 tier * 1.1 duration * 2.0 volatility
    assert estimate.estimated_annualized_yield_percentage == pytest.approx(13.2)
    assert estimate.estimated_yield == pytest.approx(1_320)


def test_provider_yield_tiers_scale(provider_params):
    conservative = estimation.estimate_provider_yield(
        replace(provider_params, selected_tier="conservative")
    )
    aggressive = estimation.estimate_provider_yield(
        replace(provider_params, selected_tier="aggressive")
    )
    assert aggressive.estimated_yield == pytest.approx(conservative.estimated_yield * 1.5)


@pytest.mark.parametrize(
    "field, value",
    [
        ("commitment_amount_usd", 0),
        ("selected_period_days", -30),
        ("volatility", 0),
        ("current_price", -1),
        ("selected_tier", ""),
    ],
)
def test_provider_yield_rejects_invalid_inputs(provider_params, field, value):
    assert estimation.estimate_provider_yield(replace(provider_params, **{field: value})) is None


def test_provider_yield_floor(provider_params):
    tiny = replace(provider_params, commitment_amount_usd=0.01, selected_period_days=1)
    assert estimation.estimate_provider_yield(tiny).estimated_yield == estimation.MIN_ESTIMATE
