"""BlockFinder: Map wall-clock timestamps to historical blocks.

A single instance is meant to be shared by every feed built from one
context so the caches are amortized. Confirmed blocks never change, so both
caches live for the lifetime of the process.

Concurrent coroutines may race on the same key; they compute identical
values and the last write wins.

.. code-block:: python

    finder = BlockFinder(source.get_block, source.get_latest_block)
    block = await finder.get_block_for_timestamp(1_700_000_000)
    print(block.number, block.timestamp)
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable

from .errors import BlockNotFoundError
from .models import Block

logger = logging.getLogger(__name__)


class BlockFinder:
    """Binary search over block heights with permanent caching.

    :ivar blocks_by_number: Cache of fetched blocks keyed by number.
    :ivar blocks_by_time: Cache of resolved lookups keyed by requested time.
    """

    def __init__(
        self,
        get_block: Callable[[int], Awaitable[Block]],
        get_latest_block: Callable[[], Awaitable[Block]],
    ) -> None:
        """Initialize the block finder.

        :param get_block: Async reader returning the block at a given height.
        :param get_latest_block: Async reader returning the chain head.
        """
        self._get_block = get_block
        self._get_latest_block = get_latest_block
        self.blocks_by_number: dict[int, Block] = {}
        self.blocks_by_time: dict[int, Block] = {}

    async def get_latest_block(self) -> Block:
        """Fetch the chain head (never cached, the head moves)."""
        block = await self._get_latest_block()
        self.blocks_by_number[block.number] = block
        return block

    async def get_block(self, number: int) -> Block:
        """Fetch a block by number, served from cache when possible.

        :param number: Block height.
        :returns: The block.
        """
        cached = self.blocks_by_number.get(number)
        if cached is not None:
            return cached
        block = await self._get_block(number)
        self.blocks_by_number[number] = block
        return block

    async def get_block_for_timestamp(self, time: int) -> Block:
        """Find the latest block whose timestamp is at or before ``time``.

        :param time: Unix timestamp in seconds.
        :returns: The matching block, or the chain head if ``time`` is at or
            after it.
        :raises BlockNotFoundError: If ``time`` precedes the first block.
        """
        cached = self.blocks_by_time.get(time)
        if cached is not None:
            return cached

        latest = await self.get_latest_block()
        if time >= latest.timestamp:
            # Not cached: a later head may answer this time differently.
            return latest

        low = await self.get_block(0)
        if time < low.timestamp:
            raise BlockNotFoundError(
                f"No block at or before {time} (first block at {low.timestamp})"
            )

        # Invariant: block lo satisfies timestamp <= time, block hi does not.
        lo, hi = 0, latest.number
        while hi - lo > 1:
            mid = (lo + hi) // 2
            block = await self.get_block(mid)
            if block.timestamp <= time:
                lo = mid
            else:
                hi = mid

        result = await self.get_block(lo)
        logger.debug(f"[BlockFinder] time {time} -> block {result.number} @ {result.timestamp}")
        self.blocks_by_time[time] = result
        return result
