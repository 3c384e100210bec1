"""Kraken ticker: ``GET /0/public/Ticker?pair={BASE}{QUOTE}``.

Kraken reports failures in an ``error`` list with a 200 status, and keys
the result by its own pair name (``XXBTZUSD`` for ``XBTUSD``).
"""

from __future__ import annotations

from typing import Any

from .base import BaseFetcher, FetcherError, TickerRequest, register_fetcher


@register_fetcher
class KrakenFetcher(BaseFetcher):
    """Last trade price from the Kraken public ticker."""

    name = "kraken"
    BASE_URL = "https://api.kraken.com/0/public"
    SYMBOL_ALIASES = {"btc": "XBT"}

    def ticker_request(self, base: str, quote: str) -> TickerRequest:
        pair = f"{self.symbol(base).upper()}{self.symbol(quote).upper()}"
        return f"{self.BASE_URL}/Ticker", {"pair": pair}

    def extract_price(self, data: Any) -> Any:
        if data.get("error"):
            raise FetcherError(f"API error: {', '.join(data['error'])}")
        result = data.get("result")
        if not result:
            raise FetcherError("Empty ticker result")
        # One pair is requested; 'c' is the last closed trade [price, lot volume].
        (ticker,) = result.values()
        return ticker["c"][0]
