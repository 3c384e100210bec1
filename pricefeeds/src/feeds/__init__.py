"""
Price feeds.

Every feed exposes the same pull-based contract: ``await feed.update()``
refreshes the current price, ``feed.get_current_price()`` reads it and
``await feed.get_historical_price(t)`` answers for past times inside the
feed's lookback window. Prices are fixed-point integers with
``feed.get_price_feed_decimals()`` decimals.

Feeds are normally built from named configs by
:func:`pricefeeds.src.feeds.factory.create_reference_price_feed`.
"""

from .base import BlockPriceFeed, PriceFeed, system_time
from .composite import CompositePriceFeed
from .configs import BaseFeedConfig, FeedConfig, parse_feed_config
from .curve import CurvePoolSnapshot, CurveSpotPriceFeed, LPCurvePriceFeed
from .exchange import ExchangePriceFeed
from .expression import ExpressionPriceFeed
from .fallback import FallbackPriceFeed
from .lending import CompoundPriceFeed
from .lp import LPPriceFeed
from .medianizer import MedianizerPriceFeed
from .spot import BalancerSpotPriceFeed, UniswapSpotPriceFeed
from .twap_event import BancorRateDecoder, EventTwapPriceFeed, UniswapSyncDecoder
from .vault import VaultPriceFeed

__all__ = [
    # Contract
    "PriceFeed",
    "BlockPriceFeed",
    "CompositePriceFeed",
    "system_time",
    # Configuration
    "BaseFeedConfig",
    "FeedConfig",
    "parse_feed_config",
    # Snapshot feeds
    "BalancerSpotPriceFeed",
    "UniswapSpotPriceFeed",
    "CompoundPriceFeed",
    "VaultPriceFeed",
    "LPPriceFeed",
    "CurvePoolSnapshot",
    "CurveSpotPriceFeed",
    "LPCurvePriceFeed",
    # Event TWAP feeds
    "EventTwapPriceFeed",
    "UniswapSyncDecoder",
    "BancorRateDecoder",
    # Exchange feeds
    "ExchangePriceFeed",
    # Composite feeds
    "MedianizerPriceFeed",
    "FallbackPriceFeed",
    "ExpressionPriceFeed",
]
