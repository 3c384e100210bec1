"""
Exchange ticker fetchers used by exchange price feeds.

Usage:
    from pricefeeds.src.fetchers import get_fetcher

    fetcher = get_fetcher("kraken")
    price = await fetcher.fetch("eth", "eur")  # Decimal("2712.4")
"""

from .base import (
    FETCHER_REGISTRY,
    BaseFetcher,
    FetcherError,
    FetcherHTTPError,
    TickerRequest,
    get_available_fetchers,
    get_fetcher,
    parse_price,
    register_fetcher,
)

# Importing the exchanges registers them
from .bitstamp import BitstampFetcher
from .coinbase import CoinbaseFetcher
from .kraken import KrakenFetcher

__all__ = [
    "BaseFetcher",
    "FetcherError",
    "FetcherHTTPError",
    "TickerRequest",
    "FETCHER_REGISTRY",
    "register_fetcher",
    "get_fetcher",
    "get_available_fetchers",
    "parse_price",
    "BitstampFetcher",
    "CoinbaseFetcher",
    "KrakenFetcher",
]
