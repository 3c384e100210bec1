"""CompositePriceFeed: Shared plumbing for feeds built from child feeds.

Children are updated concurrently and independently: one child failing
never cancels or hides its siblings' updates. Child prices are rescaled to
the composite's own decimals before they are combined.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence

from ..decimals import convert_decimals
from ..errors import ExpressionError
from .base import PriceFeed

logger = logging.getLogger(__name__)


class CompositePriceFeed(PriceFeed):
    """Base for feeds that combine child feeds.

    Composite state is derived from the children on read, so the composite
    does not throttle on its own; each child applies its own throttle.

    :ivar price_feeds: Child feeds, in configuration order.
    """

    def __init__(self, *, price_feeds: Sequence[PriceFeed], **kwargs) -> None:
        """Initialize the composite.

        :param price_feeds: Child feeds.
        :raises ValueError: If no child feed is given.
        """
        if not price_feeds:
            raise ValueError(f"{type(self).__name__} requires at least one price feed")
        super().__init__(**kwargs)
        self.price_feeds = list(price_feeds)

    def get_last_update_time(self) -> int | None:
        """Most recent update time among the children."""
        times = [t for t in (feed.get_last_update_time() for feed in self.price_feeds) if t is not None]
        return max(times) if times else None

    def child_price(self, feed: PriceFeed, price: int | None) -> int | None:
        """Rescale a child's price to this feed's decimals."""
        return convert_decimals(price, feed.get_price_feed_decimals(), self.price_feed_decimals)

    def child_current_prices(self) -> list[int | None]:
        """Every child's current price in this feed's decimals."""
        return [self.child_price(feed, feed.get_current_price()) for feed in self.price_feeds]

    async def _perform_update(self) -> None:
        results = await asyncio.gather(
            *(feed.update() for feed in self.price_feeds), return_exceptions=True
        )
        hard_failure: BaseException | None = None
        for feed, result in zip(self.price_feeds, results, strict=True):
            if isinstance(result, BaseException):
                logger.warning(f"[{self.uuid}] Child {feed.uuid} failed to update: {result}")
                if hard_failure is None and isinstance(result, ExpressionError):
                    hard_failure = result
        # Configuration faults surface once every sibling has finished.
        if hard_failure is not None:
            raise hard_failure

    async def _fetch_current_price(self, current_time: int) -> int | None:
        return self.get_current_price()
