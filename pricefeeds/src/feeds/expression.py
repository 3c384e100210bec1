"""ExpressionPriceFeed: Algebraic combination of named child feeds.

Each free symbol of the expression is bound to a child feed. Child prices
are normalized to 18 decimals, evaluated as exact decimals and the result
is rounded half up to the feed's own decimals.

Missing child data is a data gap: the current price becomes None and a
historical request raises :class:`NoDataError`. Arithmetic faults and
unbound names are configuration bugs and always raise.

.. code-block:: python

    feed = ExpressionPriceFeed(
        expression="A + B * 2",
        symbol_feeds={"A": feed_a, "B": feed_b},
        uuid="Expression",
    )
    await feed.update()
    feed.get_current_price()  # 20 * 10**18 when A is 10 and B is 5
"""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Mapping
from decimal import Decimal

from ..decimals import convert_decimals, from_fixed, to_fixed
from ..errors import ExpressionError, NoDataError, UnresolvedSymbolError
from ..expression import Program, evaluate, parse_expression
from .base import PriceFeed
from .composite import CompositePriceFeed

logger = logging.getLogger(__name__)

WORKING_DECIMALS = 18


class ExpressionPriceFeed(CompositePriceFeed):
    """Evaluates an expression program over child feed prices.

    :ivar program: Parsed expression.
    :ivar symbol_feeds: Child feed bound to each free symbol.
    """

    def __init__(
        self,
        *,
        expression: str | Program,
        symbol_feeds: Mapping[str, PriceFeed],
        **kwargs,
    ) -> None:
        """Initialize the feed.

        :param expression: Expression text or an already parsed program.
        :param symbol_feeds: Child feed for every free symbol.
        :raises ExpressionSyntaxError: If the expression is malformed.
        :raises UnresolvedSymbolError: If a free symbol has no feed.
        """
        program = parse_expression(expression) if isinstance(expression, str) else expression
        symbols = program.free_symbols()
        for symbol in symbols:
            if symbol not in symbol_feeds:
                raise UnresolvedSymbolError(symbol)
        kwargs.setdefault("uuid", f"Expression-{program.source.strip() or 'program'}")
        super().__init__(price_feeds=[symbol_feeds[s] for s in symbols], **kwargs)
        self.program = program
        self.symbol_feeds = {s: symbol_feeds[s] for s in symbols}

    def get_lookback(self) -> float:
        return min((feed.get_lookback() for feed in self.price_feeds), default=math.inf)

    def get_current_price(self) -> int | None:
        return self.current_price

    def _normalize(self, feed: PriceFeed, price: int) -> Decimal:
        working = convert_decimals(price, feed.get_price_feed_decimals(), WORKING_DECIMALS)
        return from_fixed(working, WORKING_DECIMALS)

    def evaluate(self, symbols: Mapping[str, Decimal]) -> int:
        """Evaluate the program and round into the feed decimals.

        :raises ExpressionError: On unresolved symbols or arithmetic faults.
        """
        result = evaluate(self.program, symbols)
        return to_fixed(result, self.price_feed_decimals)

    async def _perform_update(self) -> None:
        try:
            await super()._perform_update()
        except ExpressionError:
            self.current_price = None
            raise

        symbols: dict[str, Decimal] = {}
        for symbol, feed in self.symbol_feeds.items():
            price = feed.get_current_price()
            if price is None:
                logger.warning(f"[{self.uuid}] {symbol} ({feed.uuid}) has no price")
                self.current_price = None
                return
            symbols[symbol] = self._normalize(feed, price)

        try:
            self.current_price = self.evaluate(symbols)
        except ExpressionError:
            self.current_price = None
            raise

    async def _fetch_historical_price(self, time: int) -> int | None:
        names = list(self.symbol_feeds)
        results = await asyncio.gather(
            *(self.symbol_feeds[name].get_historical_price(time) for name in names),
            return_exceptions=True,
        )
        symbols: dict[str, Decimal] = {}
        for name, result in zip(names, results, strict=True):
            if isinstance(result, ExpressionError):
                raise result
            if isinstance(result, BaseException):
                raise NoDataError(
                    f"{self.uuid}: {name} has no historical price @ time {time}: {result}"
                ) from result
            symbols[name] = self._normalize(self.symbol_feeds[name], result)
        return self.evaluate(symbols)
