"""Lending-market exchange-rate feed.

The stored exchange rate only moves when the market accrues interest, so
the feed projects it forward to the requested block::

    new_rate = div_round(stored * 1e18 + supply_rate * block_delta * stored, 1e18)

The rate is quoted in underlying units per receipt token and is scaled from
the underlying's decimals to the receipt token's, which yields an 18-decimal
rate, before conversion to the feed precision.
"""

from __future__ import annotations

import logging

from ..decimals import convert_decimals, div_round
from ..models import Block, TokenDetails
from .base import BlockPriceFeed

logger = logging.getLogger(__name__)

ONE = 10**18

# Markets whose underlying is native ether (no underlying() method).
NATIVE_ETH_MARKETS = frozenset(
    {
        "0x4ddc2d193948926d02f9b1fe9e1daa0718270ed5",
        "0xd06527d5e56a3495252a528c4987003b712860ee",
    }
)
NATIVE_ETH_DETAILS = TokenDetails(decimals=18, symbol="ETH")


def accrue_exchange_rate(stored: int, supply_rate_per_block: int, block_delta: int) -> int:
    """Project a stored exchange rate ``block_delta`` blocks forward."""
    return div_round(stored * ONE + supply_rate_per_block * block_delta * stored, ONE)


class CompoundPriceFeed(BlockPriceFeed):
    """Exchange rate of a lending receipt token against its underlying.

    :ivar market_address: Receipt token (market) address.
    """

    def __init__(self, *, market_address: str, **kwargs) -> None:
        kwargs.setdefault("uuid", f"Compound-{market_address}")
        super().__init__(**kwargs)
        self.market_address = market_address
        self._underlying_details: TokenDetails | None = None

    async def underlying_details(self) -> TokenDetails:
        """Decimals and symbol of the market's underlying asset."""
        if self._underlying_details is None:
            if self.market_address.lower() in NATIVE_ETH_MARKETS:
                self._underlying_details = NATIVE_ETH_DETAILS
            else:
                underlying = await self.source.get_lending_underlying(self.market_address)
                self._underlying_details = await self.token_details(underlying)
        return self._underlying_details

    async def _price_at_block(self, block: Block) -> int | None:
        state = await self.source.get_lending_market_state(self.market_address, block.number)
        block_delta = block.number - state.accrual_block_number
        rate = accrue_exchange_rate(
            state.exchange_rate_stored, state.supply_rate_per_block, block_delta
        )
        underlying = await self.underlying_details()
        market = await self.token_details(self.market_address)
        logger.debug(
            f"[{self.uuid}] {block_delta} blocks since accrual, raw rate {rate} "
            f"({market.symbol}/{underlying.symbol})"
        )
        rate_18 = convert_decimals(rate, underlying.decimals, market.decimals)
        return convert_decimals(rate_18, 18, self.price_feed_decimals)
