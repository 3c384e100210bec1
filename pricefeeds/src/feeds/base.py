"""PriceFeed: The capability set every feed implements.

A feed exposes a fixed-point price in ``price_feed_decimals``:

- ``get_current_price()`` returns the value computed by the last
  ``update()`` and never performs I/O.
- ``get_historical_price(time)`` may read upstream data and raises
  :class:`OutOfLookbackError` or :class:`NoDataError` instead of returning a
  wrong value.
- ``update()`` is the only mutating operation. It is throttled by
  ``min_time_between_updates`` against the injected clock, and concurrent
  calls on one instance share a single in-flight task.

Routine upstream failures during ``update()`` leave ``None`` as the current
price. Exception types listed in ``hard_errors`` propagate instead.

.. code-block:: python

    class ConstantPriceFeed(PriceFeed):
        async def _fetch_current_price(self, current_time: int) -> int | None:
            return 10**18

        async def _fetch_historical_price(self, time: int) -> int | None:
            return 10**18

    feed = ConstantPriceFeed(uuid="Constant", get_time=lambda: 1_700_000_000)
    await feed.update()
    feed.get_current_price()  # 1000000000000000000
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import math
import time as _time
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import ClassVar

from ..BlockFinder import BlockFinder
from ..decimals import convert_decimals
from ..errors import ExpressionError, NoDataError, OutOfLookbackError
from ..models import Block, TokenDetails
from ..sources.base import ChainDataSource

logger = logging.getLogger(__name__)

GetTime = Callable[[], int | float | Awaitable[int | float]]


def system_time() -> int:
    """Wall-clock time in whole seconds."""
    return int(_time.time())


class PriceFeed(ABC):
    """Abstract base class for price feeds.

    Subclasses implement ``_fetch_current_price`` and
    ``_fetch_historical_price``; composites override ``_perform_update``
    and ``get_current_price`` instead.

    ``min_time_between_updates`` throttles leaf feeds only. Composites pass
    every ``update()`` through to their children, whose own throttles keep
    repeated reads idempotent, and re-derive their price from the children
    each time.

    :cvar hard_errors: Exceptions that ``update()`` must not absorb.
    :ivar uuid: Identifier used in log messages.
    :ivar price_feed_decimals: Precision of every returned price.
    :ivar min_time_between_updates: Throttle window in seconds.
    :ivar lookback: How far before the last update history is served.
    :ivar current_price: Result of the last update, or None.
    :ivar last_update_time: Clock time of the last computation, or None.
    """

    hard_errors: ClassVar[tuple[type[BaseException], ...]] = (ExpressionError,)

    def __init__(
        self,
        *,
        uuid: str,
        get_time: GetTime = system_time,
        price_feed_decimals: int = 18,
        min_time_between_updates: int = 60,
        lookback: float = math.inf,
    ) -> None:
        """Initialize the feed.

        :param uuid: Identifier used in log messages.
        :param get_time: Clock returning seconds, sync or async.
        :param price_feed_decimals: Output precision.
        :param min_time_between_updates: Throttle window in seconds.
        :param lookback: Historical window in seconds (``math.inf`` allowed).
        :raises ValueError: If a parameter is out of range.
        """
        if price_feed_decimals < 0:
            raise ValueError("price_feed_decimals must be non-negative")
        if min_time_between_updates < 0:
            raise ValueError("min_time_between_updates must be non-negative")
        if lookback < 0:
            raise ValueError("lookback must be non-negative")

        self.uuid = uuid
        self._get_time = get_time
        self.price_feed_decimals = price_feed_decimals
        self.min_time_between_updates = min_time_between_updates
        self.lookback = lookback
        self.current_price: int | None = None
        self.last_update_time: int | None = None
        self._update_task: asyncio.Future[None] | None = None

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.uuid!r})"

    def get_current_price(self) -> int | None:
        """Price computed by the last update, or None."""
        return self.current_price

    def get_last_update_time(self) -> int | None:
        return self.last_update_time

    def get_lookback(self) -> float:
        return self.lookback

    def get_price_feed_decimals(self) -> int:
        return self.price_feed_decimals

    async def now(self) -> int:
        """Read the injected clock, awaiting it if it is async."""
        value = self._get_time()
        if inspect.isawaitable(value):
            value = await value
        return int(value)

    async def get_historical_price(self, time: int) -> int:
        """Price at ``time`` in ``price_feed_decimals``.

        :param time: Unix timestamp in seconds.
        :returns: Fixed-point price.
        :raises OutOfLookbackError: If ``time`` precedes the lookback window.
        :raises NoDataError: If no price can be produced for ``time``.
        """
        await self.check_lookback(time)
        price = await self._fetch_historical_price(time)
        if price is None:
            raise NoDataError(f"{self.uuid}: missing historical price @ time {time}")
        return price

    async def check_lookback(self, time: int) -> None:
        """Raise if ``time`` is older than the feed's retained window.

        The window is measured from the last update, or from now when the
        feed has never been updated.
        """
        reference = self.get_last_update_time()
        if reference is None:
            reference = await self.now()
        earliest = reference - self.get_lookback()
        if time < earliest:
            raise OutOfLookbackError(self.uuid, time, earliest)

    async def update(self) -> None:
        """Refresh the current price, sharing any update already in flight."""
        task = self._update_task
        if task is None or task.done():
            task = asyncio.ensure_future(self._perform_update())
            self._update_task = task
        # Cancelling one caller leaves the shared update running.
        await asyncio.shield(task)

    async def _perform_update(self) -> None:
        current_time = await self.now()
        if (
            self.last_update_time is not None
            and current_time < self.last_update_time + self.min_time_between_updates
        ):
            logger.debug(
                f"[{self.uuid}] Skipping update, last update at {self.last_update_time}"
            )
            return

        try:
            price = await self._fetch_current_price(current_time)
        except self.hard_errors:
            raise
        except Exception as e:
            logger.warning(f"[{self.uuid}] Update failed, price unavailable: {e}")
            price = None

        self.current_price = price
        self.last_update_time = current_time
        logger.debug(f"[{self.uuid}] Updated price to {price} at {current_time}")

    @abstractmethod
    async def _fetch_current_price(self, current_time: int) -> int | None:
        """Compute a fresh price from upstream data."""
        pass

    @abstractmethod
    async def _fetch_historical_price(self, time: int) -> int | None:
        """Compute the price at ``time`` (lookback already checked)."""
        pass


class BlockPriceFeed(PriceFeed):
    """Base for feeds that read one block snapshot per price.

    These feeds can reconstruct any past price from an archive node, so the
    lookback defaults to infinity. A failed read at a block degrades to a
    None price.

    :ivar source: Chain data source.
    :ivar block_finder: Shared timestamp-to-block resolver.
    """

    def __init__(
        self,
        *,
        source: ChainDataSource,
        block_finder: BlockFinder | None = None,
        **kwargs,
    ) -> None:
        kwargs.setdefault("lookback", math.inf)
        super().__init__(**kwargs)
        self.source = source
        self.block_finder = block_finder or BlockFinder(source.get_block, source.get_latest_block)
        self._token_details: dict[str, TokenDetails] = {}

    async def token_details(self, address: str) -> TokenDetails:
        """Decimals and symbol of a token, cached per address.

        Failed reads fall back to 18 decimals and an empty symbol.

        :param address: Token address.
        :returns: Cached token details.
        """
        key = address.lower()
        cached = self._token_details.get(key)
        if cached is not None:
            return cached

        try:
            decimals = int(await self.source.get_token_decimals(address))
        except Exception as e:
            logger.debug(f"[{self.uuid}] decimals() failed for {address}, assuming 18: {e}")
            decimals = 18
        try:
            symbol = str(await self.source.get_token_symbol(address))
        except Exception as e:
            logger.debug(f"[{self.uuid}] symbol() failed for {address}: {e}")
            symbol = ""

        details = TokenDetails(decimals=decimals, symbol=symbol)
        self._token_details[key] = details
        return details

    async def to_18_decimals(self, value: int | None, address: str) -> int | None:
        """Scale a raw token amount to 18 decimals."""
        details = await self.token_details(address)
        return convert_decimals(value, details.decimals, 18)

    async def get_price_at_block(self, block: Block) -> int | None:
        """Price at a block snapshot, None if upstream data is unavailable.

        :param block: Block to read at.
        :returns: Fixed-point price in ``price_feed_decimals`` or None.
        """
        try:
            await self._prepare()
            return await self._price_at_block(block)
        except self.hard_errors:
            raise
        except Exception as e:
            logger.warning(f"[{self.uuid}] Price unavailable at block {block.number}: {e}")
            return None

    async def _fetch_current_price(self, current_time: int) -> int | None:
        block = await self.block_finder.get_latest_block()
        return await self.get_price_at_block(block)

    async def _fetch_historical_price(self, time: int) -> int | None:
        block = await self.block_finder.get_block_for_timestamp(time)
        return await self.get_price_at_block(block)

    async def _prepare(self) -> None:
        """Resolve static facts (token addresses, pool layout) once."""
        pass

    @abstractmethod
    async def _price_at_block(self, block: Block) -> int | None:
        """Compute the price at ``block``; may raise on failed reads."""
        pass
