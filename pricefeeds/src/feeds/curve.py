"""Stable-swap pool feeds.

``CurveSpotPriceFeed`` quotes a swap of ``base_amount`` base tokens for the
quote token with the pool's own invariant math and reports
``dy * 1e18 // dx``. ``LPCurvePriceFeed`` reports how much of one
underlying token an LP share is worth.

Pool layout (coins, rate method) is read once; balances, rates and the
amplification coefficient are read at every requested block.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Literal

from .. import stableswap
from ..decimals import convert_decimals, div_round, to_fixed
from ..models import Block, CurvePoolCoins
from .base import BlockPriceFeed
from .lp import share_price

logger = logging.getLogger(__name__)

ONE = 10**18

Valuation = Literal["balance", "swap"]


@dataclass(frozen=True)
class CurvePoolSnapshot:
    """Pool state at one block.

    :ivar balances: Raw coin balances.
    :ivar rates: Per-coin rates in 1e18 units (None when unknown).
    :ivar amplification: Amplification coefficient ``A``.
    """

    coins: CurvePoolCoins
    balances: list[int]
    rates: list[int | None]
    amplification: int

    def get_dy_underlying(self, i: int, j: int, dx: int) -> int | None:
        """Normalized output of swapping normalized ``dx`` of coin i for j."""
        return stableswap.get_dy_underlying(
            i,
            j,
            dx,
            self.rates,
            self.balances,
            self.coins.underlying_decimals,
            self.amplification,
        )

    def underlying_balances(self) -> list[int]:
        """Underlying balance of every coin, in 18 decimals.

        :raises ValueError: If a coin's rate is unknown.
        """
        result: list[int] = []
        for i, coin in enumerate(self.coins.coins):
            if coin == stableswap.ZERO_ADDRESS:
                result.append(0)
                continue
            rate = self.rates[i]
            if rate is None:
                raise ValueError(f"Underlying rate not available for {coin}")
            decimals = self.coins.decimals[i]
            scaled_rate = convert_decimals(rate, self.coins.underlying_decimals[i], decimals)
            result.append(div_round(self.balances[i] * scaled_rate, 10**decimals))
        return result


class CurvePoolFeed(BlockPriceFeed):
    """Shared pool discovery and snapshot reads for stable-swap feeds."""

    def __init__(self, *, pool_address: str | None = None, **kwargs) -> None:
        super().__init__(**kwargs)
        self.pool_address = pool_address
        self.pool_coins: CurvePoolCoins | None = None
        self.rate_method_id: str | None = None

    async def _resolve_pool_address(self) -> str:
        assert self.pool_address is not None
        return self.pool_address

    async def _prepare(self) -> None:
        if self.pool_coins is None:
            self.pool_address = await self._resolve_pool_address()
            self.rate_method_id = await self.source.get_curve_rate_method_id(self.pool_address)
            self.pool_coins = await self.source.get_curve_pool_coins(self.pool_address)
            logger.debug(
                f"[{self.uuid}] Pool {self.pool_address} has {self.pool_coins.n_coins} coins, "
                f"rate method {self.rate_method_id}"
            )

    async def _rates(self, block_number: int) -> list[int | None]:
        assert self.pool_coins is not None
        rates: list[int | None] = []
        for coin, underlying in zip(
            self.pool_coins.coins, self.pool_coins.underlying_coins, strict=True
        ):
            vault_rate = None
            needs_vault_rate = (
                coin != stableswap.ZERO_ADDRESS
                and coin.lower() != underlying.lower()
                and self.rate_method_id == stableswap.VAULT_RATE_METHOD_ID
            )
            if needs_vault_rate:
                vault_rate = await self.source.get_vault_price_per_share(coin, block_number)
            rates.append(stableswap.coin_rate(coin, underlying, self.rate_method_id, vault_rate))
        return rates

    async def _balances(self, block_number: int) -> list[int]:
        assert self.pool_coins is not None and self.pool_address is not None
        raw = await self.source.get_curve_balances(self.pool_address, block_number)
        return [
            0 if coin == stableswap.ZERO_ADDRESS else int(balance)
            for coin, balance in zip(self.pool_coins.coins, raw, strict=True)
        ]

    async def snapshot(self, block: Block) -> CurvePoolSnapshot:
        """Read pool state at ``block``."""
        await self._prepare()
        assert self.pool_coins is not None and self.pool_address is not None
        return CurvePoolSnapshot(
            coins=self.pool_coins,
            balances=await self._balances(block.number),
            rates=await self._rates(block.number),
            amplification=int(
                await self.source.get_curve_amplification(self.pool_address, block.number)
            ),
        )


class CurveSpotPriceFeed(CurvePoolFeed):
    """Spot price of ``base`` in ``quote`` from a stable-swap pool quote.

    :ivar base_amount: Base tokens swapped for the quote (default 1).
    """

    def __init__(
        self,
        *,
        pool_address: str,
        base_address: str,
        quote_address: str,
        base_amount: str | int | Decimal = 1,
        **kwargs,
    ) -> None:
        kwargs.setdefault("uuid", f"CurveSpot-{pool_address}")
        super().__init__(pool_address=pool_address, **kwargs)
        self.base_address = base_address
        self.quote_address = quote_address
        self.dx = to_fixed(base_amount, 18)
        if self.dx <= 0:
            raise ValueError("base_amount must be positive")

    async def _price_at_block(self, block: Block) -> int | None:
        state = await self.snapshot(block)
        base_index = state.coins.underlying_index(self.base_address)
        quote_index = state.coins.underlying_index(self.quote_address)
        dy = state.get_dy_underlying(base_index, quote_index, self.dx)
        if dy is None:
            return None
        price = dy * ONE // self.dx
        return convert_decimals(price, 18, self.price_feed_decimals)


class LPCurvePriceFeed(CurvePoolFeed):
    """Amount of ``token_address`` one stable-swap LP share is worth.

    With ``valuation="balance"`` only the pool's own balance of the token
    counts. With ``valuation="swap"`` every other coin is also valued in the
    token at the pool's marginal rate, so the price reflects the whole share.

    :ivar lp_address: LP token address.
    :ivar token_address: Underlying token the share is valued in.
    :ivar valuation: ``"balance"`` or ``"swap"``.
    """

    def __init__(
        self,
        *,
        lp_address: str,
        token_address: str,
        valuation: Valuation = "balance",
        **kwargs,
    ) -> None:
        if valuation not in ("balance", "swap"):
            raise ValueError(f"Unknown valuation '{valuation}'")
        kwargs.setdefault("uuid", f"LPCurve-{lp_address}-{token_address}")
        super().__init__(**kwargs)
        self.lp_address = lp_address
        self.token_address = token_address
        self.valuation = valuation

    async def _resolve_pool_address(self) -> str:
        return await self.source.get_curve_pool_from_lp(self.lp_address)

    async def _price_at_block(self, block: Block) -> int | None:
        state = await self.snapshot(block)
        index = state.coins.underlying_index(self.token_address)
        balances = state.underlying_balances()

        tokens_in_pool = balances[index]
        if self.valuation == "swap":
            for other, balance in enumerate(balances):
                if other == index or balance == 0:
                    continue
                unit_out = state.get_dy_underlying(other, index, ONE)
                if unit_out is None:
                    return None
                tokens_in_pool += balance * unit_out // ONE

        raw_supply = await self.source.get_total_supply(self.lp_address, block.number)
        total_supply = await self.to_18_decimals(raw_supply, self.lp_address)
        price = share_price(tokens_in_pool, total_supply or 0)
        return convert_decimals(price, 18, self.price_feed_decimals)
