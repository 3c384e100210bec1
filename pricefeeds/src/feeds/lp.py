"""LP share redemption feeds.

Price is the amount of one pool token redeemable per LP share::

    div_round(tokens_in_pool * 1e18, total_supply)

both amounts scaled to 18 decimals first. A pool with zero supply has a
well-defined price of 0; an unavailable balance makes the price None.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable

from ..decimals import convert_decimals, div_round
from ..models import Block
from ..sources.base import ChainDataSource
from .base import BlockPriceFeed

logger = logging.getLogger(__name__)

ONE = 10**18

# (source, pool, token, block_number) -> raw balance, or None if unavailable
PoolBalanceReader = Callable[[ChainDataSource, str, str, int], Awaitable[int | None]]


async def uniswap_pool_balance(
    source: ChainDataSource, pool: str, token: str, block_number: int
) -> int | None:
    """Reserve of ``token`` in a constant-product pair."""
    token0, token1 = await source.get_pair_tokens(pool)
    reserves = await source.get_pair_reserves(pool, block_number)
    if token.lower() == token0.lower():
        return reserves[0]
    if token.lower() == token1.lower():
        return reserves[1]
    raise ValueError(f"Token {token} is not in pair {pool}")


async def balancer_pool_balance(
    source: ChainDataSource, pool: str, token: str, block_number: int
) -> int | None:
    """Balance of ``token`` in a weighted pool; zero or failure is None."""
    try:
        balance = await source.get_pool_balance(pool, token, block_number)
    except Exception as e:
        logger.debug(f"[LPBalancer-{pool}] getBalance({token}) failed: {e}")
        return None
    return balance or None


def share_price(tokens_in_pool: int | None, total_supply: int) -> int | None:
    """18-decimal amount of token per LP share."""
    if total_supply == 0:
        return 0
    if tokens_in_pool is None:
        return None
    return div_round(tokens_in_pool * ONE, total_supply)


class LPPriceFeed(BlockPriceFeed):
    """Amount of ``token_address`` one LP share of ``pool_address`` redeems.

    :ivar pool_address: Pool (and LP token) address.
    :ivar token_address: Token whose per-share amount is tracked.
    :ivar read_pool_balance: Strategy reading the pool's token balance.
    """

    def __init__(
        self,
        *,
        pool_address: str,
        token_address: str,
        read_pool_balance: PoolBalanceReader = uniswap_pool_balance,
        **kwargs,
    ) -> None:
        kwargs.setdefault("uuid", f"LP-{pool_address}-{token_address}")
        super().__init__(**kwargs)
        self.pool_address = pool_address
        self.token_address = token_address
        self.read_pool_balance = read_pool_balance

    async def _price_at_block(self, block: Block) -> int | None:
        raw_supply = await self.source.get_total_supply(self.pool_address, block.number)
        total_supply = await self.to_18_decimals(raw_supply, self.pool_address)
        raw_balance = await self.read_pool_balance(
            self.source, self.pool_address, self.token_address, block.number
        )
        tokens_in_pool = await self.to_18_decimals(raw_balance, self.token_address)
        price = share_price(tokens_in_pool, total_supply or 0)
        return convert_decimals(price, 18, self.price_feed_decimals)
