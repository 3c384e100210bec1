"""Spot price feeds derived from pool reserves.

Both feeds read balances at a block snapshot, scale them to 18 decimals and
form the ratio in integer math. A zero balance or weight, or a zero result,
means the price is unavailable (None), never zero.
"""

from __future__ import annotations

import logging

from ..decimals import convert_decimals
from ..models import Block
from .base import BlockPriceFeed

logger = logging.getLogger(__name__)

ONE = 10**18


def weighted_spot_price(
    base_balance: int | None,
    quote_balance: int | None,
    base_weight: int | None,
    quote_weight: int | None,
) -> int | None:
    """Spot price of base in quote for a weighted two-asset pool.

    Computed as ``quote * 1e18 // base * base_weight // quote_weight`` on
    18-decimal balances.

    :returns: 18-decimal price, or None for degenerate inputs.
    """
    if not base_balance or not quote_balance or not base_weight or not quote_weight:
        return None
    price = quote_balance * ONE // base_balance * base_weight // quote_weight
    return price or None


class BalancerSpotPriceFeed(BlockPriceFeed):
    """Spot price of ``base`` in ``quote`` from a weighted pool.

    :ivar pool_address: Pool contract address.
    :ivar base_address: Token being priced.
    :ivar quote_address: Token the price is expressed in.
    """

    def __init__(self, *, pool_address: str, base_address: str, quote_address: str, **kwargs) -> None:
        kwargs.setdefault("uuid", f"BalancerSpot-{pool_address}")
        super().__init__(**kwargs)
        self.pool_address = pool_address
        self.base_address = base_address
        self.quote_address = quote_address

    async def _balance(self, block: Block, token: str) -> int | None:
        try:
            balance = await self.source.get_pool_balance(self.pool_address, token, block.number)
        except Exception as e:
            logger.debug(f"[{self.uuid}] getBalance({token}) failed: {e}")
            return None
        return await self.to_18_decimals(balance or None, token)

    async def _weight(self, block: Block, token: str) -> int | None:
        try:
            weight = await self.source.get_pool_normalized_weight(self.pool_address, token, block.number)
        except Exception as e:
            logger.debug(f"[{self.uuid}] getNormalizedWeight({token}) failed: {e}")
            return None
        return weight or None

    async def _price_at_block(self, block: Block) -> int | None:
        base_balance = await self._balance(block, self.base_address)
        quote_balance = await self._balance(block, self.quote_address)
        base_weight = await self._weight(block, self.base_address)
        quote_weight = await self._weight(block, self.quote_address)
        price = weighted_spot_price(base_balance, quote_balance, base_weight, quote_weight)
        return convert_decimals(price, 18, self.price_feed_decimals)


class UniswapSpotPriceFeed(BlockPriceFeed):
    """Spot price of a constant-product pair.

    By default the price is token0 in units of token1; ``invert_price``
    flips it to token1 in units of token0.
    """

    def __init__(self, *, pair_address: str, invert_price: bool = False, **kwargs) -> None:
        kwargs.setdefault("uuid", f"UniswapSpot-{pair_address}")
        super().__init__(**kwargs)
        self.pair_address = pair_address
        self.invert_price = invert_price
        self._tokens: tuple[str, str] | None = None

    async def _prepare(self) -> None:
        if self._tokens is None:
            self._tokens = await self.source.get_pair_tokens(self.pair_address)

    async def _price_at_block(self, block: Block) -> int | None:
        assert self._tokens is not None
        token0, token1 = self._tokens
        raw0, raw1 = await self.source.get_pair_reserves(self.pair_address, block.number)
        reserve0 = await self.to_18_decimals(raw0, token0)
        reserve1 = await self.to_18_decimals(raw1, token1)
        # Equal weights reduce the weighted formula to the reserve ratio.
        if self.invert_price:
            price = weighted_spot_price(reserve1, reserve0, 1, 1)
        else:
            price = weighted_spot_price(reserve0, reserve1, 1, 1)
        return convert_decimals(price, 18, self.price_feed_decimals)
