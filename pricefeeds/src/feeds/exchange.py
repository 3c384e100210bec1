"""Exchange ticker feed.

Polls an HTTP price fetcher for a ``base/quote`` pair and keeps the samples
it observed, so historical prices inside the lookback window can be served
without another request. With ``twap_length`` set, prices are TWAPs over
the retained samples.
"""

from __future__ import annotations

import logging
from decimal import Decimal, localcontext

from ..decimals import to_fixed
from ..fetchers.base import BaseFetcher
from ..models import PriceSample
from ..twap import compute_twap
from .base import PriceFeed

logger = logging.getLogger(__name__)


class ExchangePriceFeed(PriceFeed):
    """Price of ``base`` in ``quote`` from one exchange ticker.

    :ivar fetcher: Fetcher polled on every update.
    :ivar base: Base currency symbol.
    :ivar quote: Quote currency symbol.
    :ivar twap_length: TWAP window in seconds (0 reports the last sample).
    :ivar invert_price: Report quote in base instead.
    :ivar samples: Retained observations in feed decimals, oldest first.
    """

    def __init__(
        self,
        *,
        fetcher: BaseFetcher,
        base: str,
        quote: str,
        twap_length: int = 0,
        invert_price: bool = False,
        **kwargs,
    ) -> None:
        kwargs.setdefault("uuid", f"Exchange-{fetcher.name}-{base}/{quote}")
        kwargs.setdefault("lookback", 7200)
        super().__init__(**kwargs)
        if twap_length < 0:
            raise ValueError("twap_length must be non-negative")
        self.fetcher = fetcher
        self.base = base
        self.quote = quote
        self.twap_length = twap_length
        self.invert_price = invert_price
        self.samples: list[PriceSample] = []

    def _to_feed_decimals(self, price: Decimal) -> int:
        if self.invert_price:
            with localcontext() as ctx:
                ctx.prec = 60
                price = Decimal(1) / price
        return to_fixed(price, self.price_feed_decimals)

    def _prune(self, now: int) -> None:
        cutoff = now - self.lookback - self.twap_length
        # Keep the last sample before the cutoff: it is current at the cutoff.
        keep_from = 0
        for i, sample in enumerate(self.samples):
            if sample.timestamp <= cutoff:
                keep_from = i
            else:
                break
        if keep_from:
            del self.samples[:keep_from]

    def _value_at(self, time: int) -> int | None:
        return compute_twap(self.samples, time - self.twap_length, time)

    async def _fetch_current_price(self, current_time: int) -> int | None:
        price = await self.fetcher.fetch(self.base, self.quote)
        if price is None or price <= 0:
            logger.warning(f"[{self.uuid}] No price from {self.fetcher.name}")
            return None

        self.samples.append(PriceSample(current_time, self._to_feed_decimals(Decimal(price))))
        self._prune(current_time)
        return self._value_at(current_time)

    async def _fetch_historical_price(self, time: int) -> int | None:
        return self._value_at(time)
