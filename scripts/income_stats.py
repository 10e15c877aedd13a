#!/usr/bin/env python3
"""
Print a counterparty's premium income and exposure summary.

Usage:
    python scripts/income_stats.py SP2J6ZY48GV1EZ5V2V5RB9MP66SW86PYKKNRV9EJ7 [--db PATH]

Reads the local policy store; no network access.
"""
import argparse
import logging
import sys
from pathlib import Path

# Add repo root to path so we can import the package
sys.path.insert(0, str(Path(__file__).parent.parent))

from bithedge import policy_queries
from bithedge.formatters import format_btc, format_usd
from bithedge.models import Identity

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s",
    datefmt="%H:%M:%S",
)


def main():
    parser = argparse.ArgumentParser(description="Show counterparty income stats")
    parser.add_argument("counterparty", help="Counterparty Stacks address")
    parser.add_argument("--db", type=Path, default=None, help="DuckDB path (default: config)")
    args = parser.parse_args()

    stats = policy_queries.get_counterparty_income_stats(
        Identity(args.counterparty), db_path=args.db
    )

    print("=" * 80)
    print(f"INCOME STATS: {args.counterparty}")
    print("=" * 80)
    print(f"Policies:          {stats.total_policies}")
    print(f"  active:          {stats.active_policies}")
    print(f"  expired:         {stats.expired_policies}")
    print(f"  exercised:       {stats.exercised_policies}")
    print(f"Premium earned:    {format_usd(stats.total_premium_earned)}")
    print(f"Pending premiums:  {format_usd(stats.pending_premiums)}")
    print(f"Active exposure:   {format_btc(stats.active_exposure)}")

    if stats.token_breakdown:
        print("\nBy collateral token:")
        for token, row in sorted(stats.token_breakdown.items()):
            print(
                f"  {token:<8} total={row.total_policies} active={row.active_policies} "
                f"earned={format_usd(row.earned_premium)} "
                f"pending={format_usd(row.pending_premium)} "
                f"exposure={format_btc(row.active_exposure)}"
            )
    return 0


if __name__ == "__main__":
    sys.exit(main())
