"""Coinbase Exchange ticker: ``GET /products/{BASE}-{QUOTE}/ticker``."""

from __future__ import annotations

from typing import Any

from .base import BaseFetcher, TickerRequest, register_fetcher


@register_fetcher
class CoinbaseFetcher(BaseFetcher):
    name = "coinbase"
    BASE_URL = "https://api.exchange.coinbase.com"

    def ticker_request(self, base: str, quote: str) -> TickerRequest:
        product = f"{self.symbol(base).upper()}-{self.symbol(quote).upper()}"
        return f"{self.BASE_URL}/products/{product}/ticker", None

    def extract_price(self, data: Any) -> Any:
        return data["price"]
