"""Unit tests for LP share redemption feeds."""

import pytest

from pricefeeds.src.feeds.lp import (
    LPPriceFeed,
    balancer_pool_balance,
    share_price,
    uniswap_pool_balance,
)

PAIR = "0xPair"
BPT = "0xBpt"
DAI = "0xDai"
WETH = "0xWeth"
BAL = "0xBal"


@pytest.fixture
def chain(source):
    source.set_blocks([1000, 1013, 1026])
    source.decimals.update({PAIR.lower(): 18, BPT.lower(): 18, DAI.lower(): 18, WETH.lower(): 18})
    source.pair_tokens[PAIR.lower()] = (DAI, WETH)
    source.pair_reserves[PAIR.lower()] = (2_000_000 * 10**18, 1_000 * 10**18)
    source.total_supply[PAIR.lower()] = 1_000 * 10**18
    source.total_supply[BPT.lower()] = 100 * 10**18
    source.pool_balances[(BPT.lower(), BAL.lower())] = 8_000 * 10**18
    return source


def uniswap_lp(chain, clock, token: str) -> LPPriceFeed:
    return LPPriceFeed(pool_address=PAIR, token_address=token, source=chain, get_time=clock)


class TestSharePrice:
    """Test the redemption formula."""

    def test_ratio(self) -> None:
        """Price is tokens per share in 18 decimals."""
        assert share_price(3 * 10**18, 2 * 10**18) == 15 * 10**17

    def test_rounds(self) -> None:
        """The ratio is rounded half up."""
        assert share_price(2, 3 * 10**18) == 1

    def test_zero_supply(self) -> None:
        """An empty pool prices at 0."""
        assert share_price(None, 0) == 0
        assert share_price(10, 0) == 0

    def test_unknown_balance(self) -> None:
        """An unknown balance makes the price unavailable."""
        assert share_price(None, 10) is None


class TestLPPriceFeed:
    """Test LP feeds for constant-product and weighted pools."""

    async def test_token0(self, chain, clock) -> None:
        """The pair's reserve of token0 per share."""
        feed = uniswap_lp(chain, clock, DAI)
        await feed.update()
        assert feed.get_current_price() == 2_000 * 10**18

    async def test_token1(self, chain, clock) -> None:
        """The pair's reserve of token1 per share."""
        feed = uniswap_lp(chain, clock, WETH)
        await feed.update()
        assert feed.get_current_price() == 10**18

    async def test_token_not_in_pair(self, chain, clock) -> None:
        """Tracking a foreign token makes the price unavailable."""
        feed = uniswap_lp(chain, clock, BAL)
        await feed.update()
        assert feed.get_current_price() is None

    async def test_zero_supply(self, chain, clock) -> None:
        """An empty pool prices at 0."""
        chain.total_supply[PAIR.lower()] = 0
        feed = uniswap_lp(chain, clock, DAI)
        await feed.update()
        assert feed.get_current_price() == 0

    async def test_low_decimal_token(self, chain, clock) -> None:
        """Balances are scaled to 18 decimals before the ratio."""
        chain.decimals[DAI.lower()] = 6
        chain.pair_reserves[PAIR.lower()] = (2_000_000 * 10**6, 1_000 * 10**18)
        feed = uniswap_lp(chain, clock, DAI)
        await feed.update()
        assert feed.get_current_price() == 2_000 * 10**18

    async def test_weighted_pool(self, chain, clock) -> None:
        """Weighted pools read the token balance directly."""
        feed = LPPriceFeed(
            pool_address=BPT,
            token_address=BAL,
            read_pool_balance=balancer_pool_balance,
            source=chain,
            get_time=clock,
        )
        await feed.update()
        assert feed.get_current_price() == 80 * 10**18

    async def test_weighted_pool_zero_balance(self, chain, clock) -> None:
        """A zero weighted-pool balance is unavailable, not 0."""
        chain.pool_balances[(BPT.lower(), BAL.lower())] = 0
        feed = LPPriceFeed(
            pool_address=BPT,
            token_address=BAL,
            read_pool_balance=balancer_pool_balance,
            source=chain,
            get_time=clock,
        )
        await feed.update()
        assert feed.get_current_price() is None


class TestPoolBalanceReaders:
    """Test the balance strategies directly."""

    async def test_uniswap_reader(self, chain) -> None:
        """The pair reserve matching the token is returned."""
        assert await uniswap_pool_balance(chain, PAIR, WETH, 2) == 1_000 * 10**18

    async def test_uniswap_reader_rejects_foreign_token(self, chain) -> None:
        """Tokens outside the pair raise."""
        with pytest.raises(ValueError, match="not in pair"):
            await uniswap_pool_balance(chain, PAIR, BAL, 2)

    async def test_balancer_reader_failure(self, chain) -> None:
        """Reverting balance reads are unavailable."""
        chain.failing.add("get_pool_balance")
        assert await balancer_pool_balance(chain, BPT, BAL, 2) is None
