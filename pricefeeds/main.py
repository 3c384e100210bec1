#!/usr/bin/env python3
"""Oracle price feeds.

Builds the configured price feeds for a list of identifiers and polls them,
logging each normalized price.

    python -m pricefeeds.main --identifiers ETHUSD,USDBTC --rpc-url https://eth.example.org
"""

import argparse
import asyncio
import logging
import os
import sys

from .src.ContractUtility import ContractUtility
from .src.FeedPoller import FeedPoller
from .src.errors import FeedConfigError, UnresolvedSymbolError
from .src.feed_configs import DEFAULT_REGISTRY
from .src.feeds.factory import FeedContext, create_reference_price_feed
from .src.sources import Web3DataSource

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


def main() -> None:
    """Main entry point for the price feed CLI."""
    available = sorted(DEFAULT_REGISTRY)

    parser = argparse.ArgumentParser(
        description="Oracle price feeds: composable on-chain and exchange price feeds",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"""
Available identifiers:
  {', '.join(available)}

Examples:
  # Exchange-only feeds need no RPC endpoint
  python -m pricefeeds.main --identifiers ETHUSD,BTCUSD

  # On-chain feeds
  python -m pricefeeds.main --identifiers cDAI-DAI,DIGGBTC \\
      --rpc-url https://eth.example.org

Environment variables (CLI args take precedence):
  IDENTIFIERS, RPC_URL, UPDATE_PERIOD, AVERAGE_BLOCK_TIME, FETCH_TIMEOUT
""",
    )

    parser.add_argument(
        "--identifiers",
        type=str,
        help="Comma-separated feed identifiers (e.g., ETHUSD,USDBTC)",
        default=os.environ.get("IDENTIFIERS") or "ETHUSD",
    )

    parser.add_argument(
        "--rpc-url",
        dest="rpc_url",
        type=str,
        help="Ethereum JSON-RPC endpoint for on-chain feeds",
        default=os.environ.get("RPC_URL"),
    )

    parser.add_argument(
        "--update-period",
        dest="update_period",
        type=int,
        help="Seconds between feed updates (minimum: 1, default: 60)",
        default=int(os.environ.get("UPDATE_PERIOD") or "60"),
    )

    parser.add_argument(
        "--average-block-time",
        dest="average_block_time",
        type=float,
        help="Estimated seconds per block for event scans (default: 13.0)",
        default=float(os.environ.get("AVERAGE_BLOCK_TIME") or "13.0"),
    )

    parser.add_argument(
        "--fetch-timeout",
        dest="fetch_timeout",
        type=float,
        help="Timeout for exchange requests in seconds (default: 10.0)",
        default=float(os.environ.get("FETCH_TIMEOUT") or "10.0"),
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )

    args = parser.parse_args()

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    if args.update_period < 1:
        parser.error("--update-period must be at least 1 second")

    if args.average_block_time <= 0:
        parser.error("--average-block-time must be positive")

    identifiers = [i.strip() for i in args.identifiers.split(",") if i.strip()]
    if not identifiers:
        parser.error("At least one identifier must be specified")

    unknown = [i for i in identifiers if i not in DEFAULT_REGISTRY]
    if unknown:
        parser.error(f"Unknown identifiers: {unknown}. Available: {', '.join(available)}")

    logger.info("=" * 60)
    logger.info("Oracle Price Feeds")
    logger.info("=" * 60)
    logger.info(f"Identifiers:       {', '.join(identifiers)}")
    logger.info(f"RPC URL:           {args.rpc_url or 'none (exchange feeds only)'}")
    logger.info(f"Update Period:     {args.update_period}s")
    logger.info(f"Avg Block Time:    {args.average_block_time}s")
    logger.info(f"Fetch Timeout:     {args.fetch_timeout}s")
    logger.info("=" * 60)

    source = Web3DataSource(ContractUtility(args.rpc_url).w3) if args.rpc_url else None
    context = FeedContext(
        source=source,
        average_block_time=args.average_block_time,
        fetch_timeout=args.fetch_timeout,
    )

    try:
        feeds = {identifier: create_reference_price_feed(identifier, context) for identifier in identifiers}
    except (FeedConfigError, UnresolvedSymbolError) as e:
        logger.error(f"Invalid feed configuration: {e}")
        sys.exit(1)

    try:
        asyncio.run(FeedPoller(feeds, update_period=args.update_period).run())
    except KeyboardInterrupt:
        logger.info("Shutting down...")
    except Exception as e:
        logger.error(f"Fatal error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
