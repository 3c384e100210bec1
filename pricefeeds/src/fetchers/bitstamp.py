"""Bitstamp ticker: ``GET /api/v2/ticker/{base}{quote}/``."""

from __future__ import annotations

from typing import Any

from .base import BaseFetcher, TickerRequest, register_fetcher


@register_fetcher
class BitstampFetcher(BaseFetcher):
    name = "bitstamp"
    BASE_URL = "https://www.bitstamp.net/api/v2"

    def ticker_request(self, base: str, quote: str) -> TickerRequest:
        pair = f"{self.symbol(base).lower()}{self.symbol(quote).lower()}"
        return f"{self.BASE_URL}/ticker/{pair}/", None

    def extract_price(self, data: Any) -> Any:
        return data["last"]
