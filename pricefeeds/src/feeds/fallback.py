"""FallbackPriceFeed: First available price from an ordered list of feeds."""

from __future__ import annotations

import logging

from ..errors import ExpressionError
from .composite import CompositePriceFeed

logger = logging.getLogger(__name__)


class FallbackPriceFeed(CompositePriceFeed):
    """Tries child feeds in order and returns the first success.

    Every child is updated, not only the one currently answering, so a
    fallback is warm when it is needed.
    """

    def __init__(self, **kwargs) -> None:
        kwargs.setdefault("uuid", "Fallback")
        super().__init__(**kwargs)

    def get_lookback(self) -> float:
        return max(feed.get_lookback() for feed in self.price_feeds)

    def get_current_price(self) -> int | None:
        for price in self.child_current_prices():
            if price is not None:
                return price
        return None

    async def _fetch_historical_price(self, time: int) -> int | None:
        for feed in self.price_feeds:
            try:
                price = await feed.get_historical_price(time)
            except ExpressionError:
                raise
            except Exception as e:
                logger.debug(f"[{self.uuid}] {feed.uuid} failed @ {time}, trying next: {e}")
                continue
            return self.child_price(feed, price)
        return None
