"""EventTwapPriceFeed: TWAP over prices decoded from contract events.

On every update the feed rebuilds its event history. It estimates how many
blocks cover ``twap_length + lookback`` seconds (padded by
``buffer_block_percent``) and queries backwards from the chain head,
doubling the range until the oldest event found is at or before the
earliest time it needs, or block 0 is reached::

    pass 0:  [head - N,   head]
    pass 1:  [head - 2N,  oldest_event_block - 1]
    pass 2:  [head - 4N,  oldest_event_block - 1]
    ...

Until the first event is found, each pass only covers blocks the previous
pass did not.

Events are ordered by (block, transaction index, log index) and stamped
with their block's timestamp through the shared :class:`BlockFinder`.

Unlike snapshot feeds, a failed read during ``update()`` propagates. When
the scan finds no events the price becomes None but the last update time
is left unchanged, so the next ``update()`` scans again regardless of the
throttle.
"""

from __future__ import annotations

import asyncio
import logging
import math
from typing import Any, Protocol

from ..BlockFinder import BlockFinder
from ..decimals import convert_decimals
from ..models import PriceSample, RawEvent, TimedEvent
from ..sources.base import ChainDataSource
from ..twap import compute_twap
from .base import PriceFeed

logger = logging.getLogger(__name__)

# Placeholder address converters use for native ether.
NATIVE_ETH_ADDRESS = "0xEeeeeEeeeEeEeeEeEeEeeEEEeeeeEeeeeeeeEEeE"


class EventDecoder(Protocol):
    """Turns one contract event into a price.

    :ivar event_name: Name of the event to query.
    :ivar price_decimals: Precision of decoded prices.
    """

    event_name: str
    price_decimals: int

    async def prepare(self, source: ChainDataSource, address: str) -> None:
        """Resolve static contract facts; called before every scan."""
        ...

    def argument_filters(self) -> dict[str, Any] | None:
        ...

    def decode(self, event: RawEvent) -> int | None:
        """Price carried by ``event``, None for degenerate data."""
        ...


async def _decimals(source: ChainDataSource, token: str) -> int:
    if token.lower() == NATIVE_ETH_ADDRESS.lower():
        return 18
    try:
        return int(await source.get_token_decimals(token))
    except Exception as e:
        logger.debug(f"decimals() failed for {token}, assuming 18: {e}")
        return 18


class BancorRateDecoder:
    """Decodes ``TokenRateUpdate`` events of a two-reserve converter.

    The price is reserve1 per reserve0 adjusted by reserve weights, in
    token1 precision (token0 precision when inverted).
    """

    event_name = "TokenRateUpdate"

    def __init__(self, invert_price: bool = False) -> None:
        self.invert_price = invert_price
        self.tokens: tuple[str, str] | None = None
        self.weights: tuple[int, int] = (1, 1)
        self.precisions: tuple[int, int] = (18, 18)

    @property
    def price_decimals(self) -> int:
        return self.precisions[0] if self.invert_price else self.precisions[1]

    async def prepare(self, source: ChainDataSource, address: str) -> None:
        if self.tokens is not None:
            return
        token0, token1 = await source.get_converter_reserve_tokens(address)
        weight0, weight1 = await asyncio.gather(
            source.get_converter_reserve_weight(address, token0),
            source.get_converter_reserve_weight(address, token1),
        )
        self.weights = (int(weight0), int(weight1))
        self.precisions = (await _decimals(source, token0), await _decimals(source, token1))
        self.tokens = (token0, token1)

    def argument_filters(self) -> dict[str, Any] | None:
        assert self.tokens is not None
        tokens = list(self.tokens)
        return {"_token1": tokens, "_token2": tokens}

    def decode(self, event: RawEvent) -> int | None:
        assert self.tokens is not None
        args = event.args
        if str(args["_token1"]).lower() == self.tokens[0].lower():
            reserve0, reserve1 = int(args["_rateD"]), int(args["_rateN"])
        else:
            reserve0, reserve1 = int(args["_rateN"]), int(args["_rateD"])
        if reserve0 == 0 or reserve1 == 0:
            return None

        weight0, weight1 = self.weights
        if self.invert_price:
            return reserve0 * 10 ** self.precisions[1] // weight0 // reserve1 * weight1
        return reserve1 * 10 ** self.precisions[0] // weight1 // reserve0 * weight0


class UniswapSyncDecoder:
    """Decodes ``Sync`` events of a constant-product pair.

    The price is token0 in units of token1, in token1 precision (the
    reverse when inverted).
    """

    event_name = "Sync"

    def __init__(self, invert_price: bool = False) -> None:
        self.invert_price = invert_price
        self.precisions: tuple[int, int] = (18, 18)
        self._prepared = False

    @property
    def price_decimals(self) -> int:
        return self.precisions[0] if self.invert_price else self.precisions[1]

    async def prepare(self, source: ChainDataSource, address: str) -> None:
        if self._prepared:
            return
        token0, token1 = await source.get_pair_tokens(address)
        self.precisions = (await _decimals(source, token0), await _decimals(source, token1))
        self._prepared = True

    def argument_filters(self) -> dict[str, Any] | None:
        return None

    def decode(self, event: RawEvent) -> int | None:
        reserve0, reserve1 = int(event.args["reserve0"]), int(event.args["reserve1"])
        if reserve0 == 0 or reserve1 == 0:
            return None
        if self.invert_price:
            return reserve0 * 10 ** self.precisions[1] // reserve1
        return reserve1 * 10 ** self.precisions[0] // reserve0


class EventTwapPriceFeed(PriceFeed):
    """TWAP of event-decoded prices.

    :ivar address: Contract emitting the events.
    :ivar decoder: Event decoder.
    :ivar twap_length: TWAP window in seconds.
    :ivar average_block_time: Estimated seconds per block.
    :ivar buffer_block_percent: Padding multiplier on the first block range.
    :ivar events: Decoded events of the last update, oldest first.
    """

    hard_errors = (Exception,)

    def __init__(
        self,
        *,
        source: ChainDataSource,
        address: str,
        decoder: EventDecoder,
        twap_length: int,
        lookback: float,
        block_finder: BlockFinder | None = None,
        average_block_time: float = 13.0,
        buffer_block_percent: float = 1.1,
        **kwargs,
    ) -> None:
        """Initialize the feed.

        :param source: Chain data source.
        :param address: Contract emitting the events.
        :param decoder: Event decoder.
        :param twap_length: TWAP window in seconds.
        :param lookback: Seconds of history served by get_historical_price.
        :param block_finder: Shared block finder (one is created if omitted).
        :param average_block_time: Estimated seconds per block.
        :param buffer_block_percent: Multiplier (> 1) padding the first range.
        :raises ValueError: If a parameter is out of range.
        """
        if twap_length < 0:
            raise ValueError("twap_length must be non-negative")
        if not math.isfinite(lookback):
            raise ValueError("EventTwapPriceFeed requires a finite lookback")
        if average_block_time <= 0:
            raise ValueError("average_block_time must be positive")
        if buffer_block_percent < 1:
            raise ValueError("buffer_block_percent must be at least 1")
        kwargs.setdefault("uuid", f"{type(decoder).__name__}-{address}")
        super().__init__(lookback=lookback, **kwargs)
        self.source = source
        self.block_finder = block_finder or BlockFinder(source.get_block, source.get_latest_block)
        self.address = address
        self.decoder = decoder
        self.twap_length = twap_length
        self.average_block_time = average_block_time
        self.buffer_block_percent = buffer_block_percent
        self.events: list[TimedEvent] = []
        self.last_block_price: int | None = None

    def _convert(self, price: int | None) -> int | None:
        return convert_decimals(price, self.decoder.price_decimals, self.price_feed_decimals)

    def _series(self) -> list[PriceSample]:
        return [PriceSample(e.timestamp, e.price) for e in self.events if e.price is not None]

    def lookback_blocks(self) -> int:
        """First-pass block range covering the TWAP and lookback windows."""
        window = self.twap_length + self.get_lookback()
        return max(1, math.ceil(self.buffer_block_percent * window / self.average_block_time))

    async def _timed(self, event: RawEvent) -> TimedEvent:
        block = await self.block_finder.get_block(event.block_number)
        return TimedEvent(event, block.timestamp, self.decoder.decode(event))

    async def _query(self, from_block: int, to_block: int) -> list[TimedEvent]:
        raw = await self.source.get_events(
            self.address,
            self.decoder.event_name,
            from_block,
            to_block,
            self.decoder.argument_filters(),
        )
        raw = sorted(raw, key=lambda e: e.sort_key)
        return list(await asyncio.gather(*(self._timed(e) for e in raw)))

    async def scan_events(self, current_time: int) -> list[TimedEvent]:
        """Collect events back to ``current_time - twap_length - lookback``."""
        await self.decoder.prepare(self.source, self.address)
        earliest = current_time - self.twap_length - self.get_lookback()
        latest = await self.block_finder.get_latest_block()
        lookback_blocks = self.lookback_blocks()

        events: list[TimedEvent] = []
        from_block: int | None = None
        i = 0
        while not (from_block == 0 or (events and events[0].timestamp <= earliest)):
            if events:
                to_block = events[0].block_number - 1
            else:
                to_block = latest.number if from_block is None else from_block - 1
            from_block = max(0, latest.number - lookback_blocks * 2**i)
            if to_block >= from_block:
                logger.debug(f"[{self.uuid}] Querying blocks {from_block}..{to_block}")
                events = await self._query(from_block, to_block) + events
            i += 1
        return events

    async def _perform_update(self) -> None:
        previous_update = self.last_update_time
        await super()._perform_update()
        if not self.events:
            # A scan that found no events is not a completed update.
            self.last_update_time = previous_update

    async def _fetch_current_price(self, current_time: int) -> int | None:
        events = await self.scan_events(current_time)
        self.events = [e for e in events if e.price is not None]
        if not self.events:
            logger.warning(f"[{self.uuid}] No events in lookback window")
            self.last_block_price = None
            return None

        self.last_block_price = self.events[-1].price
        twap = compute_twap(self._series(), current_time - self.twap_length, current_time)
        return self._convert(twap)

    async def _fetch_historical_price(self, time: int) -> int | None:
        twap = compute_twap(self._series(), time - self.twap_length, time)
        return self._convert(twap)

    def get_historical_price_periods(self) -> list[tuple[int, int | None]]:
        """Raw event prices as ``(timestamp, price)`` pairs, no TWAP."""
        return [(e.timestamp, self._convert(e.price)) for e in self.events]

    def get_last_block_price(self) -> int | None:
        """Price carried by the most recent event."""
        return self._convert(self.last_block_price)
