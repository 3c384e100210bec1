"""
Oracle Price Feeds - Composable Price Aggregation

This module provides normalized, time-indexed prices built from on-chain
pools, lending markets, vaults and exchange tickers:
- decimals: Fixed-point scaling between decimal precisions
- BlockFinder: Cached timestamp-to-block resolution
- twap: Time-weighted averages over price samples
- feeds: Primitive, event TWAP and composite price feeds
- expression: Arithmetic expressions over named feeds
- feed_configs: Named feed configuration registry
- FeedPoller: Periodic feed refresh loop
- fetchers: Exchange ticker fetchers
"""

from .BlockFinder import BlockFinder
from .FeedPoller import FeedPoller
from .decimals import convert_decimals, decimal_converter, div_round
from .errors import (
    BlockNotFoundError,
    EvaluationError,
    ExpressionError,
    ExpressionSyntaxError,
    FeedConfigError,
    NoDataError,
    OutOfLookbackError,
    PriceFeedError,
    UnresolvedSymbolError,
)
from .feed_configs import DEFAULT_REGISTRY, build_registry, get_feed_config
from .feeds.factory import FeedContext, create_price_feed, create_reference_price_feed
from .twap import compute_twap

__all__ = [
    "BlockFinder",
    "BlockNotFoundError",
    "DEFAULT_REGISTRY",
    "EvaluationError",
    "ExpressionError",
    "ExpressionSyntaxError",
    "FeedConfigError",
    "FeedContext",
    "FeedPoller",
    "NoDataError",
    "OutOfLookbackError",
    "PriceFeedError",
    "UnresolvedSymbolError",
    "build_registry",
    "compute_twap",
    "convert_decimals",
    "create_price_feed",
    "create_reference_price_feed",
    "decimal_converter",
    "div_round",
    "get_feed_config",
]
