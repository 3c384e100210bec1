"""Unit tests for MedianizerPriceFeed and the composite base."""

import pytest

from pricefeeds.src.errors import EvaluationError, NoDataError, OutOfLookbackError
from pricefeeds.src.feeds.medianizer import MedianizerPriceFeed, mean, median


class TestAggregates:
    """Test integer median and mean."""

    def test_odd_median(self) -> None:
        """Odd counts take the middle value."""
        assert median([300, 100, 200]) == 200

    def test_even_median(self) -> None:
        """Even counts average the middle two, rounding half up."""
        assert median([400, 100, 300, 200]) == 250
        assert median([1, 2]) == 2

    def test_mean(self) -> None:
        """The mean rounds half up."""
        assert mean([1, 2, 2]) == 2
        assert mean([100, 200, 300, 400]) == 250


class TestMedianizerPriceFeed:
    """Test the medianizer feed."""

    async def test_median_of_four(self, make_stub) -> None:
        """Four children reporting 100..400 give 250."""
        feed = MedianizerPriceFeed(price_feeds=[make_stub(p) for p in (100, 200, 300, 400)])
        await feed.update()
        assert feed.get_current_price() == 250

    async def test_mean(self, make_stub) -> None:
        """compute_mean averages instead."""
        feed = MedianizerPriceFeed(
            price_feeds=[make_stub(p) for p in (100, 200, 600)], compute_mean=True
        )
        await feed.update()
        assert feed.get_current_price() == 300

    async def test_missing_children_excluded(self, make_stub) -> None:
        """Children without a price are left out."""
        feed = MedianizerPriceFeed(price_feeds=[make_stub(None), make_stub(100), make_stub(300)])
        await feed.update()
        assert feed.get_current_price() == 200

    async def test_failing_child_does_not_block_siblings(self, make_stub) -> None:
        """A child raising on update is excluded, siblings still update."""
        broken = make_stub(1, error=RuntimeError("down"))
        healthy = make_stub(7)
        feed = MedianizerPriceFeed(price_feeds=[broken, healthy])
        await feed.update()
        assert healthy.update_calls == 1
        assert feed.get_current_price() == 7

    async def test_all_missing(self, make_stub) -> None:
        """No reporting child means no price."""
        feed = MedianizerPriceFeed(price_feeds=[make_stub(None), make_stub(None)])
        await feed.update()
        assert feed.get_current_price() is None

    async def test_child_decimals_normalized(self, make_stub) -> None:
        """Children are rescaled to the medianizer's decimals."""
        feed = MedianizerPriceFeed(
            price_feeds=[
                make_stub(2 * 10**6, price_feed_decimals=6),
                make_stub(4 * 10**18),
            ],
            price_feed_decimals=18,
        )
        await feed.update()
        assert feed.get_current_price() == 3 * 10**18

    async def test_expression_error_after_siblings(self, make_stub) -> None:
        """Expression faults propagate once every child has updated."""
        faulty = make_stub(error=EvaluationError("Division by zero"))
        sibling = make_stub(5)
        feed = MedianizerPriceFeed(price_feeds=[faulty, sibling])
        with pytest.raises(EvaluationError):
            await feed.update()
        assert sibling.update_calls == 1

    def test_requires_children(self) -> None:
        """An empty child list is rejected."""
        with pytest.raises(ValueError, match="at least one price feed"):
            MedianizerPriceFeed(price_feeds=[])

    async def test_last_update_time_from_children(self, make_stub, clock) -> None:
        """The composite reports its newest child update."""
        feed = MedianizerPriceFeed(price_feeds=[make_stub(1), make_stub(2)])
        assert feed.get_last_update_time() is None
        await feed.update()
        assert feed.get_last_update_time() == clock.time


class TestMedianizerHistory:
    """Test historical aggregation and lookback."""

    async def test_historical_median(self, make_stub, clock) -> None:
        """History takes the median of children that answer."""
        t = clock.time - 10
        feed = MedianizerPriceFeed(
            price_feeds=[
                make_stub(historical={t: 100}),
                make_stub(historical={t: 300}),
                make_stub(historical={}),
            ]
        )
        assert await feed.get_historical_price(t) == 200

    async def test_historical_no_data(self, make_stub, clock) -> None:
        """History with no answering child raises NoDataError."""
        feed = MedianizerPriceFeed(price_feeds=[make_stub(), make_stub()])
        with pytest.raises(NoDataError):
            await feed.get_historical_price(clock.time)

    async def test_historical_expression_error(self, make_stub, clock) -> None:
        """Expression faults in a child propagate."""
        feed = MedianizerPriceFeed(
            price_feeds=[make_stub(error=EvaluationError("boom")), make_stub(historical={clock.time: 1})]
        )
        with pytest.raises(EvaluationError):
            await feed.get_historical_price(clock.time)

    async def test_lookback_is_smallest(self, make_stub, clock) -> None:
        """The window is the smallest child lookback."""
        feed = MedianizerPriceFeed(
            price_feeds=[make_stub(1, lookback=100), make_stub(2, lookback=200)]
        )
        assert feed.get_lookback() == 100
        await feed.update()
        with pytest.raises(OutOfLookbackError):
            await feed.get_historical_price(clock.time - 150)
