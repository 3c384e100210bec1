"""FeedPoller: Periodic refresh of a set of named price feeds.

Every period all feeds are updated concurrently. A feed that raises is
logged and skipped; the others still report.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping

from .decimals import format_fixed
from .feeds.base import PriceFeed
from .fetchers.base import BaseFetcher

logger = logging.getLogger(__name__)


class FeedPoller:
    """Polls named feeds and logs their prices.

    :ivar feeds: Feeds by identifier.
    :ivar update_period: Seconds between polling rounds.
    :ivar last_prices: Prices reported in the last round, by identifier.
    """

    def __init__(self, feeds: Mapping[str, PriceFeed], update_period: float = 60) -> None:
        """Initialize the poller.

        :param feeds: Feeds by identifier.
        :param update_period: Seconds between rounds (must be positive).
        :raises ValueError: If no feed is given or the period is not positive.
        """
        if not feeds:
            raise ValueError("FeedPoller requires at least one feed")
        if update_period <= 0:
            raise ValueError("update_period must be positive")
        self.feeds = dict(feeds)
        self.update_period = update_period
        self.last_prices: dict[str, int | None] = {}

    async def run_once(self) -> dict[str, int | None]:
        """Update every feed once.

        :returns: Current price of each feed, None where it has none or its
            update raised.
        """
        identifiers = list(self.feeds)
        results = await asyncio.gather(
            *(self.feeds[identifier].update() for identifier in identifiers),
            return_exceptions=True,
        )

        prices: dict[str, int | None] = {}
        for identifier, result in zip(identifiers, results, strict=True):
            feed = self.feeds[identifier]
            if isinstance(result, BaseException):
                logger.error(f"[{identifier}] Update failed: {result}")
                prices[identifier] = None
                continue

            price = feed.get_current_price()
            prices[identifier] = price
            if price is None:
                logger.warning(f"[{identifier}] No price available")
            else:
                logger.info(
                    f"[{identifier}] {format_fixed(price, feed.get_price_feed_decimals())} "
                    f"(@ {feed.get_last_update_time()})"
                )

        self.last_prices = prices
        return prices

    async def run(self, rounds: int | None = None) -> None:
        """Poll until cancelled, or for ``rounds`` rounds when given."""
        logger.info(f"Polling {len(self.feeds)} feeds every {self.update_period}s")
        completed = 0
        try:
            while rounds is None or completed < rounds:
                await self.run_once()
                completed += 1
                if rounds is None or completed < rounds:
                    await asyncio.sleep(self.update_period)
        finally:
            # Clean up shared HTTP client
            await BaseFetcher.close_shared_client()
