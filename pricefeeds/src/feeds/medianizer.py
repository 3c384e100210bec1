"""MedianizerPriceFeed: Median (or mean) of several child feeds.

.. code-block:: python

    >>> feed = MedianizerPriceFeed(price_feeds=[a, b, c, d], uuid="ETHUSD")
    >>> await feed.update()
    >>> feed.get_current_price()  # children report 100, 200, 300, 400
    250
"""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Sequence

from ..decimals import div_round
from ..errors import ExpressionError
from .composite import CompositePriceFeed

logger = logging.getLogger(__name__)


def median(values: Sequence[int]) -> int:
    """Median of fixed-point values; even counts average the middle two."""
    ordered = sorted(values)
    mid = len(ordered) // 2
    if len(ordered) % 2:
        return ordered[mid]
    return div_round(ordered[mid - 1] + ordered[mid], 2)


def mean(values: Sequence[int]) -> int:
    """Arithmetic mean of fixed-point values, rounded half up."""
    return div_round(sum(values), len(values))


class MedianizerPriceFeed(CompositePriceFeed):
    """Aggregates child prices by median, or by mean with ``compute_mean``.

    Children that report no price are left out. The lookback is the
    smallest lookback among the children, since only that window is
    guaranteed for all of them.

    :ivar compute_mean: Aggregate by arithmetic mean instead of median.
    """

    def __init__(self, *, compute_mean: bool = False, **kwargs) -> None:
        kwargs.setdefault("uuid", "Medianizer")
        super().__init__(**kwargs)
        self.compute_mean = compute_mean

    def get_lookback(self) -> float:
        return min((feed.get_lookback() for feed in self.price_feeds), default=math.inf)

    def aggregate(self, values: Sequence[int | None]) -> int | None:
        """Combine the reported values, None if no child reported."""
        valid = [v for v in values if v is not None]
        if not valid:
            return None
        return mean(valid) if self.compute_mean else median(valid)

    def get_current_price(self) -> int | None:
        return self.aggregate(self.child_current_prices())

    async def _fetch_historical_price(self, time: int) -> int | None:
        results = await asyncio.gather(
            *(feed.get_historical_price(time) for feed in self.price_feeds),
            return_exceptions=True,
        )
        values: list[int | None] = []
        for feed, result in zip(self.price_feeds, results, strict=True):
            if isinstance(result, ExpressionError):
                raise result
            if isinstance(result, BaseException):
                logger.debug(f"[{self.uuid}] Excluding {feed.uuid} @ {time}: {result}")
                continue
            values.append(self.child_price(feed, result))
        return self.aggregate(values)
