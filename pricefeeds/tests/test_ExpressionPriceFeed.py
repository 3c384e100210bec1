"""Unit tests for ExpressionPriceFeed."""

import pytest

from pricefeeds.src.errors import (
    EvaluationError,
    ExpressionSyntaxError,
    NoDataError,
    UnresolvedSymbolError,
)
from pricefeeds.src.expression import parse_expression
from pricefeeds.src.feeds.expression import ExpressionPriceFeed

ONE = 10**18


class TestExpressionPriceFeed:
    """Test expression evaluation over child feeds."""

    async def test_arithmetic(self, make_stub) -> None:
        """A + B * 2 with A=10 and B=5 gives 20."""
        feed = ExpressionPriceFeed(
            expression="A + B * 2",
            symbol_feeds={"A": make_stub(10 * ONE), "B": make_stub(5 * ONE)},
        )
        await feed.update()
        assert feed.get_current_price() == 20 * ONE

    async def test_child_decimals_normalized(self, make_stub) -> None:
        """Children of any precision combine in real units."""
        feed = ExpressionPriceFeed(
            expression="BTCUSD * ETHBTC",
            symbol_feeds={
                "BTCUSD": make_stub(60_000 * 10**8, price_feed_decimals=8),
                "ETHBTC": make_stub(5 * 10**16),
            },
            price_feed_decimals=6,
        )
        await feed.update()
        assert feed.get_current_price() == 3_000 * 10**6

    async def test_result_rounded(self, make_stub) -> None:
        """The result is rounded half up to the feed decimals."""
        feed = ExpressionPriceFeed(
            expression="A / 3",
            symbol_feeds={"A": make_stub(2, price_feed_decimals=0)},
            price_feed_decimals=0,
        )
        await feed.update()
        assert feed.get_current_price() == 1

    async def test_assignments_and_functions(self, make_stub) -> None:
        """Multi-statement programs evaluate in order."""
        feed = ExpressionPriceFeed(
            expression="eth_usd = 1 / USDETH; mean(X, Y) * eth_usd",
            symbol_feeds={
                "USDETH": make_stub(ONE // 2_000),
                "X": make_stub(ONE),
                "Y": make_stub(3 * ONE),
            },
        )
        await feed.update()
        assert feed.get_current_price() == 4_000 * ONE

    async def test_missing_child_price(self, make_stub) -> None:
        """A child without a price makes the result unavailable."""
        feed = ExpressionPriceFeed(
            expression="A + B",
            symbol_feeds={"A": make_stub(ONE), "B": make_stub(None)},
        )
        await feed.update()
        assert feed.get_current_price() is None

    async def test_division_by_zero_raises(self, make_stub) -> None:
        """Arithmetic faults propagate and clear the price."""
        denominator = make_stub(ONE)
        feed = ExpressionPriceFeed(
            expression="A / B", symbol_feeds={"A": make_stub(ONE), "B": denominator}
        )
        await feed.update()
        assert feed.get_current_price() == ONE
        denominator.next_price = 0
        with pytest.raises(EvaluationError):
            await feed.update()
        assert feed.get_current_price() is None

    async def test_nested_fault_clears_outer_price(self, make_stub) -> None:
        """A fault in a child expression also clears the parent's price."""
        denominator = make_stub(ONE)
        inner = ExpressionPriceFeed(
            expression="A / B",
            symbol_feeds={"A": make_stub(2 * ONE), "B": denominator},
            uuid="Inner",
        )
        outer = ExpressionPriceFeed(expression="X + 1", symbol_feeds={"X": inner}, uuid="Outer")
        await outer.update()
        assert outer.get_current_price() == 3 * ONE

        denominator.next_price = 0
        with pytest.raises(EvaluationError):
            await outer.update()
        assert inner.get_current_price() is None
        assert outer.get_current_price() is None

    async def test_composite_not_throttled(self, make_stub) -> None:
        """Composites re-derive their price on every update; leaves throttle."""
        a = make_stub(ONE)
        feed = ExpressionPriceFeed(
            expression="A * 2", symbol_feeds={"A": a}, min_time_between_updates=3600
        )
        await feed.update()
        a.next_price = 2 * ONE
        await feed.update()
        assert feed.get_current_price() == 4 * ONE
        assert a.update_calls == 2

    def test_unbound_symbol_rejected(self, make_stub) -> None:
        """Every free symbol must have a feed at construction."""
        with pytest.raises(UnresolvedSymbolError, match="'B'"):
            ExpressionPriceFeed(expression="A + B", symbol_feeds={"A": make_stub(1)})

    def test_syntax_error_at_construction(self, make_stub) -> None:
        """Malformed expressions fail at construction."""
        with pytest.raises(ExpressionSyntaxError):
            ExpressionPriceFeed(expression="A +", symbol_feeds={"A": make_stub(1)})

    def test_unused_feeds_ignored(self, make_stub) -> None:
        """Only referenced symbols become children."""
        a = make_stub(1)
        feed = ExpressionPriceFeed(
            expression=parse_expression("A * 2"), symbol_feeds={"A": a, "B": make_stub(2)}
        )
        assert feed.price_feeds == [a]

    async def test_shared_child_updated_once(self, make_stub) -> None:
        """A child used twice is computed once per update."""
        a = make_stub(ONE)
        feed = ExpressionPriceFeed(expression="A * A + A", symbol_feeds={"A": a})
        await feed.update()
        assert a.update_calls == 1
        assert feed.get_current_price() == 2 * ONE


class TestExpressionHistory:
    """Test historical evaluation."""

    async def test_historical(self, make_stub, clock) -> None:
        """History evaluates over the children's historical prices."""
        t = clock.time - 5
        feed = ExpressionPriceFeed(
            expression="A - B",
            symbol_feeds={
                "A": make_stub(historical={t: 10 * ONE}),
                "B": make_stub(historical={t: 4 * ONE}),
            },
        )
        assert await feed.get_historical_price(t) == 6 * ONE

    async def test_historical_missing_child(self, make_stub, clock) -> None:
        """A child without history raises NoDataError naming the symbol."""
        t = clock.time
        feed = ExpressionPriceFeed(
            expression="A - B",
            symbol_feeds={"A": make_stub(historical={t: ONE}), "B": make_stub()},
        )
        with pytest.raises(NoDataError, match="B has no historical price"):
            await feed.get_historical_price(t)

    async def test_historical_division_by_zero(self, make_stub, clock) -> None:
        """Arithmetic faults propagate from history too."""
        t = clock.time
        feed = ExpressionPriceFeed(
            expression="A / B",
            symbol_feeds={"A": make_stub(historical={t: ONE}), "B": make_stub(historical={t: 0})},
        )
        with pytest.raises(EvaluationError):
            await feed.get_historical_price(t)
