#!/usr/bin/env python3
"""
Quick premium / yield estimates for a BTC protection policy.

Usage:
    python scripts/estimate_quote.py buyer --amount 0.5 --protected-pct 90 --days 30
    python scripts/estimate_quote.py provider --commitment 25000 --tier balanced --days 90

The spot price is fetched from CoinGecko unless --price is given.
"""
import argparse
import logging
import sys
from pathlib import Path

# Add repo root to path so we can import the package
sys.path.insert(0, str(Path(__file__).parent.parent))

from bithedge import estimation, prices
from bithedge.formatters import format_duration, format_percent, format_usd
from bithedge.premium import MarketData, calculate_provider_yield, get_buyer_premium_quote

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s",
    datefmt="%H:%M:%S",
)


def _buyer(args, price: float) -> int:
    estimate = estimation.estimate_buyer_premium(
        estimation.BuyerEstimationParams(
            current_price=price,
            volatility=args.volatility,
            protected_value_percentage=args.protected_pct,
            protection_amount=args.amount,
            protection_period=args.days,
        )
    )
    if estimate is None:
        print("All inputs must be positive to estimate a premium.")
        return 1
    quote = get_buyer_premium_quote(
        market=MarketData(price=price, volatility=args.volatility),
        protected_value_percentage=args.protected_pct,
        protection_amount=args.amount,
        expiration_days=args.days,
        policy_type=args.policy_type,
    )
    print(f"Quick estimate:      {format_usd(estimate.estimated_premium)}")
    print(f"Backend premium:     {format_usd(quote.premium)}")
    print(f"Protected value:     {format_usd(quote.protected_value_usd)}")
    print(f"Premium / notional:  {format_percent(quote.premium_percentage)}")
    print(f"Annualized:          {format_percent(quote.annualized_premium)}")
    print(f"Break-even price:    {format_usd(quote.break_even_price)}")
    return 0


def _provider(args, price: float) -> int:
    estimate = estimation.estimate_provider_yield(
        estimation.ProviderEstimationParams(
            commitment_amount_usd=args.commitment,
            selected_tier=args.tier,
            selected_period_days=args.days,
            volatility=args.volatility,
            current_price=price,
        )
    )
    if estimate is None:
        print("All inputs must be positive to estimate a yield.")
        return 1
    backend = calculate_provider_yield(
        commitment_amount_usd=args.commitment,
        selected_tier=args.tier,
        selected_period_days=args.days,
        volatility=args.volatility,
        market=MarketData(price=price, volatility=args.volatility),
    )
    print(f"Quick estimate:      {format_usd(estimate.estimated_yield)}")
    print(f"Backend yield:       {format_usd(backend.estimated_yield)}")
    print(f"Annualized:          {format_percent(backend.annualized_yield_percentage)}")
    print(f"BTC acquisition:     {format_usd(backend.estimated_btc_acquisition_price)}")
    print(f"Risk level:          {backend.risk_level}/10")
    return 0


def main():
    parser = argparse.ArgumentParser(description="Estimate protection premiums and provider yields")
    parser.add_argument("--price", type=float, default=None, help="BTC price in USD (default: live)")
    parser.add_argument("--volatility", type=float, default=0.6, help="Annualized volatility (default: 0.6)")
    parser.add_argument("--days", type=int, default=30, help="Protection / lock period in days")
    sub = parser.add_subparsers(dest="side", required=True)

    buyer = sub.add_parser("buyer", help="Premium for a protection buyer")
    buyer.add_argument("--amount", type=float, required=True, help="BTC to protect")
    buyer.add_argument("--protected-pct", type=float, default=90.0, help="Strike as %% of spot")
    buyer.add_argument("--policy-type", choices=["PUT", "CALL"], default="PUT")

    provider = sub.add_parser("provider", help="Yield for a liquidity provider")
    provider.add_argument("--commitment", type=float, required=True, help="Commitment in USD")
    provider.add_argument(
        "--tier", choices=sorted(estimation.TIER_MULTIPLIERS), default="balanced"
    )

    args = parser.parse_args()
    price = args.price if args.price is not None else prices.fetch_btc_price()
    print("=" * 80)
    print(f"BTC {format_usd(price)} | vol {args.volatility:.0%} | {format_duration(args.days)}")
    print("=" * 80)
    if args.side == "buyer":
        return _buyer(args, price)
    return _provider(args, price)


if __name__ == "__main__":
    sys.exit(main())
