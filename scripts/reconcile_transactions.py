#!/usr/bin/env python3
"""
Reconcile Submitted pending policy transactions against the Stacks node.

Usage:
    python scripts/reconcile_transactions.py [--network testnet] [--expire-policies]

Confirmed transactions write their policy changes; failed ones roll
in-flight acceptances and settlements back. With --expire-policies, ACTIVE
policies past their expiration height are expired at the current tip.
"""
import argparse
import logging
import sys
from pathlib import Path

# Add repo root to path so we can import the package
sys.path.insert(0, str(Path(__file__).parent.parent))

from bithedge import policy_lifecycle, stacks_node, transactions
from bithedge.config import NetworkEnvironment, get_network_config

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger(__name__)


def main():
    parser = argparse.ArgumentParser(description="Reconcile pending policy transactions")
    parser.add_argument(
        "--network",
        choices=[env.value for env in NetworkEnvironment],
        default=None,
        help="Network (default: STACKS_NETWORK env)",
    )
    parser.add_argument("--db", type=Path, default=None, help="DuckDB path (default: config)")
    parser.add_argument(
        "--expire-policies",
        action="store_true",
        help="Also expire ACTIVE policies past their expiration height",
    )
    args = parser.parse_args()

    network = get_network_config(NetworkEnvironment(args.network) if args.network else None)
    logger.info("Reconciling against %s (%s)", network.environment, network.api_url)

    outcomes = transactions.reconcile_submitted_transactions(network=network, db_path=args.db)
    for pending_id, status in outcomes.items():
        print(f"  {pending_id}  {status}")
    logger.info("Examined %d submitted transactions", len(outcomes))

    if args.expire_policies:
        tip = stacks_node.get_latest_block_height(network=network)
        expired = policy_lifecycle.expire_policies(tip, db_path=args.db)
        logger.info("Expired %d policies at block %d", len(expired), tip)
    return 0


if __name__ == "__main__":
    sys.exit(main())
