"""Unit tests for EventTwapPriceFeed and its event decoders."""

import pytest

from pricefeeds.src.errors import OutOfLookbackError
from pricefeeds.src.feeds.twap_event import (
    BancorRateDecoder,
    EventTwapPriceFeed,
    UniswapSyncDecoder,
)
from pricefeeds.src.models import RawEvent

PAIR = "0xPair"
CONVERTER = "0xConverter"
TOKEN_A = "0xTokenA"
TOKEN_B = "0xTokenB"

BLOCK_TIME = 13
HEAD = 999
HEAD_TIME = HEAD * BLOCK_TIME


def sync(block: int, price: int, log_index: int = 0) -> RawEvent:
    return RawEvent(block, 0, log_index, {"reserve0": 10**18, "reserve1": price * 10**18})


@pytest.fixture
def chain(source, clock):
    """1000 blocks 13 seconds apart, clock at the head."""
    source.set_blocks([BLOCK_TIME * i for i in range(HEAD + 1)])
    source.pair_tokens[PAIR.lower()] = (TOKEN_A, TOKEN_B)
    clock.time = HEAD_TIME
    return source


def pair_feed(source, clock, **kwargs) -> EventTwapPriceFeed:
    kwargs.setdefault("twap_length", 100)
    kwargs.setdefault("lookback", 200)
    kwargs.setdefault("min_time_between_updates", 0)
    return EventTwapPriceFeed(
        source=source,
        address=PAIR,
        decoder=UniswapSyncDecoder(),
        get_time=clock,
        average_block_time=BLOCK_TIME,
        buffer_block_percent=1.0,
        **kwargs,
    )


class TestInit:
    """Test construction checks."""

    def test_lookback_blocks(self, chain, clock) -> None:
        """The first range covers twap plus lookback at the block time."""
        assert pair_feed(chain, clock).lookback_blocks() == 24

    def test_buffer_pads_range(self, chain, clock) -> None:
        """The buffer multiplier widens the first range."""
        feed = EventTwapPriceFeed(
            source=chain,
            address=PAIR,
            decoder=UniswapSyncDecoder(),
            twap_length=100,
            lookback=200,
            get_time=clock,
            average_block_time=BLOCK_TIME,
            buffer_block_percent=2.0,
        )
        assert feed.lookback_blocks() == 47

    @pytest.mark.parametrize(
        "kwargs, message",
        [
            ({"lookback": float("inf")}, "finite lookback"),
            ({"twap_length": -1}, "twap_length"),
            ({"average_block_time": 0}, "average_block_time"),
            ({"buffer_block_percent": 0.5}, "buffer_block_percent"),
        ],
    )
    def test_invalid(self, chain, clock, kwargs, message) -> None:
        """Out-of-range parameters are rejected."""
        params = {
            "source": chain,
            "address": PAIR,
            "decoder": UniswapSyncDecoder(),
            "twap_length": 100,
            "lookback": 200,
            "get_time": clock,
        }
        params.update(kwargs)
        with pytest.raises(ValueError, match=message):
            EventTwapPriceFeed(**params)


class TestScanEvents:
    """Test the doubling block-range scan."""

    async def test_doubles_until_history_found(self, chain, clock) -> None:
        """Ranges double backwards until an event predates the window."""
        chain.events[(PAIR.lower(), "Sync")] = [sync(500, 1_000), sync(995, 2_000)]
        feed = pair_feed(chain, clock)
        await feed.update()
        assert chain.event_queries == [
            (975, 999),
            (951, 994),
            (903, 994),
            (807, 994),
            (615, 994),
            (231, 994),
        ]
        assert [e.block_number for e in feed.events] == [500, 995]

    async def test_stops_at_genesis(self, chain, clock) -> None:
        """Without events the scan ends once block 0 is covered."""
        feed = pair_feed(chain, clock)
        await feed.update()
        assert chain.event_queries[0] == (975, 999)
        assert chain.event_queries[-1] == (0, 230)
        assert feed.get_current_price() is None

    async def test_empty_scan_keeps_last_update_time(self, chain, clock) -> None:
        """A scan without events clears the price but is not recorded as an update."""
        chain.events[(PAIR.lower(), "Sync")] = [sync(500, 1_000)]
        feed = pair_feed(chain, clock)
        await feed.update()
        assert feed.get_last_update_time() == HEAD_TIME

        chain.events.clear()
        clock.advance(10)
        await feed.update()
        assert feed.get_current_price() is None
        assert feed.get_last_update_time() == HEAD_TIME

    async def test_never_updated_without_events(self, chain, clock) -> None:
        """A feed that never saw an event has no update time."""
        feed = pair_feed(chain, clock)
        await feed.update()
        assert feed.get_last_update_time() is None

    async def test_single_pass_when_recent_history_suffices(self, chain, clock) -> None:
        """No further pass once the oldest event is old enough."""
        chain.events[(PAIR.lower(), "Sync")] = [sync(975, 5)]
        feed = pair_feed(chain, clock)
        await feed.update()
        assert chain.event_queries == [(975, 999)]

    async def test_emission_order(self, chain, clock) -> None:
        """Events in one block are ordered by transaction then log index."""
        chain.events[(PAIR.lower(), "Sync")] = [
            RawEvent(980, 1, 0, {"reserve0": 10**18, "reserve1": 3 * 10**18}),
            RawEvent(980, 0, 5, {"reserve0": 10**18, "reserve1": 2 * 10**18}),
            RawEvent(980, 0, 1, {"reserve0": 10**18, "reserve1": 10**18}),
        ]
        feed = pair_feed(chain, clock)
        await feed.update()
        assert [e.price for e in feed.events] == [10**18, 2 * 10**18, 3 * 10**18]
        assert feed.get_last_block_price() == 3 * 10**18


class TestPrices:
    """Test TWAP computation over decoded events."""

    @pytest.fixture
    def feed(self, chain, clock) -> EventTwapPriceFeed:
        chain.events[(PAIR.lower(), "Sync")] = [sync(500, 1_000), sync(995, 2_000)]
        return pair_feed(chain, clock)

    async def test_current_twap(self, feed) -> None:
        """The current price is the TWAP over the trailing window."""
        await feed.update()
        # 1000 for 48s, then 2000 for 52s
        assert feed.get_current_price() == 1_520 * 10**18

    async def test_historical_twap(self, feed) -> None:
        """History is the TWAP over the window ending at the time."""
        await feed.update()
        assert await feed.get_historical_price(HEAD_TIME - 87) == 1_000 * 10**18

    async def test_history_outside_lookback(self, feed) -> None:
        """History before the lookback window is rejected."""
        await feed.update()
        with pytest.raises(OutOfLookbackError):
            await feed.get_historical_price(HEAD_TIME - 201)

    async def test_price_periods(self, feed) -> None:
        """Raw event prices are exposed with their timestamps."""
        await feed.update()
        assert feed.get_historical_price_periods() == [
            (500 * BLOCK_TIME, 1_000 * 10**18),
            (995 * BLOCK_TIME, 2_000 * 10**18),
        ]

    async def test_degenerate_events_skipped(self, chain, clock) -> None:
        """Events with an empty reserve carry no price."""
        chain.events[(PAIR.lower(), "Sync")] = [
            sync(976, 7),
            RawEvent(990, 0, 0, {"reserve0": 0, "reserve1": 10**18}),
        ]
        feed = pair_feed(chain, clock)
        await feed.update()
        assert feed.get_current_price() == 7 * 10**18
        assert len(feed.events) == 1

    async def test_feed_decimals(self, feed, clock) -> None:
        """Prices are converted from the decoder precision."""
        feed.price_feed_decimals = 6
        await feed.update()
        assert feed.get_current_price() == 1_520 * 10**6

    async def test_read_failure_propagates(self, feed, chain) -> None:
        """Failed log queries are not absorbed."""
        chain.failing.add("get_events")
        with pytest.raises(RuntimeError, match="eth_getLogs"):
            await feed.update()


class TestUniswapSyncDecoder:
    """Test Sync event decoding."""

    async def test_precisions(self, chain) -> None:
        """Price precision follows the quote token."""
        chain.decimals.update({TOKEN_A.lower(): 18, TOKEN_B.lower(): 6})
        decoder = UniswapSyncDecoder()
        await decoder.prepare(chain, PAIR)
        assert decoder.price_decimals == 6
        event = RawEvent(1, 0, 0, {"reserve0": 2 * 10**18, "reserve1": 4_000 * 10**6})
        assert decoder.decode(event) == 2_000 * 10**6

    async def test_inverted(self, chain) -> None:
        """Inversion prices token1 in token0 at token0 precision."""
        chain.decimals.update({TOKEN_A.lower(): 18, TOKEN_B.lower(): 6})
        decoder = UniswapSyncDecoder(invert_price=True)
        await decoder.prepare(chain, PAIR)
        assert decoder.price_decimals == 18
        event = RawEvent(1, 0, 0, {"reserve0": 2 * 10**18, "reserve1": 4_000 * 10**6})
        assert decoder.decode(event) == 5 * 10**14


class TestBancorRateDecoder:
    """Test TokenRateUpdate decoding."""

    @pytest.fixture
    async def decoder(self, source) -> BancorRateDecoder:
        source.converter_tokens[CONVERTER.lower()] = (TOKEN_A, TOKEN_B)
        source.converter_weights[(CONVERTER.lower(), TOKEN_A.lower())] = 500_000
        source.converter_weights[(CONVERTER.lower(), TOKEN_B.lower())] = 500_000
        decoder = BancorRateDecoder()
        await decoder.prepare(source, CONVERTER)
        return decoder

    async def test_filters_on_reserve_tokens(self, decoder) -> None:
        """Only rate updates between the two reserves are queried."""
        assert decoder.argument_filters() == {
            "_token1": [TOKEN_A, TOKEN_B],
            "_token2": [TOKEN_A, TOKEN_B],
        }

    async def test_decode_either_direction(self, decoder) -> None:
        """The rate is read the same whichever token is _token1."""
        forward = RawEvent(1, 0, 0, {"_token1": TOKEN_A, "_token2": TOKEN_B, "_rateN": 2 * 10**18, "_rateD": 10**18})
        backward = RawEvent(1, 0, 1, {"_token1": TOKEN_B, "_token2": TOKEN_A, "_rateN": 10**18, "_rateD": 2 * 10**18})
        assert decoder.decode(forward) == 2 * 10**18
        assert decoder.decode(backward) == 2 * 10**18

    async def test_inverted(self, source) -> None:
        """Inversion reports token0 per token1."""
        source.converter_tokens[CONVERTER.lower()] = (TOKEN_A, TOKEN_B)
        source.converter_weights[(CONVERTER.lower(), TOKEN_A.lower())] = 500_000
        source.converter_weights[(CONVERTER.lower(), TOKEN_B.lower())] = 500_000
        decoder = BancorRateDecoder(invert_price=True)
        await decoder.prepare(source, CONVERTER)
        event = RawEvent(1, 0, 0, {"_token1": TOKEN_A, "_token2": TOKEN_B, "_rateN": 2 * 10**18, "_rateD": 10**18})
        assert decoder.decode(event) == 5 * 10**17

    async def test_zero_rate(self, decoder) -> None:
        """A zero rate component carries no price."""
        event = RawEvent(1, 0, 0, {"_token1": TOKEN_A, "_token2": TOKEN_B, "_rateN": 0, "_rateD": 10**18})
        assert decoder.decode(event) is None
