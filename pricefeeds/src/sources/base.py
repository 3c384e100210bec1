"""Chain data-source interface consumed by the price feeds.

Feeds never talk to an RPC node directly: every read goes through an object
satisfying :class:`ChainDataSource`. A ``block_number`` of ``None`` means the
latest block. Implementations raise on failed reads; the feeds decide
whether a failure degrades to ``None`` or propagates.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from ..models import Block, CurvePoolCoins, LendingMarketState, RawEvent


@runtime_checkable
class ChainDataSource(Protocol):
    """Async reads over blocks, tokens, pools and event logs."""

    async def get_block(self, number: int) -> Block: ...

    async def get_latest_block(self) -> Block: ...

    # ERC20

    async def get_token_decimals(self, token: str) -> int: ...

    async def get_token_symbol(self, token: str) -> str: ...

    async def get_total_supply(self, token: str, block_number: int | None = None) -> int: ...

    # Weighted pools

    async def get_pool_balance(self, pool: str, token: str, block_number: int | None = None) -> int: ...

    async def get_pool_normalized_weight(
        self, pool: str, token: str, block_number: int | None = None
    ) -> int: ...

    # Constant-product pairs

    async def get_pair_tokens(self, pair: str) -> tuple[str, str]: ...

    async def get_pair_reserves(self, pair: str, block_number: int | None = None) -> tuple[int, int]: ...

    # Lending markets

    async def get_lending_market_state(
        self, market: str, block_number: int | None = None
    ) -> LendingMarketState: ...

    async def get_lending_underlying(self, market: str) -> str: ...

    # Vaults

    async def get_vault_price_per_share(self, vault: str, block_number: int | None = None) -> int: ...

    async def get_vault_token(self, vault: str) -> str: ...

    async def get_vault_underlying(self, vault: str) -> str: ...

    # Stable-swap pools

    async def get_curve_pool_from_lp(self, lp_token: str) -> str: ...

    async def get_curve_pool_coins(self, pool: str) -> CurvePoolCoins: ...

    async def get_curve_balances(self, pool: str, block_number: int | None = None) -> list[int]: ...

    async def get_curve_amplification(self, pool: str, block_number: int | None = None) -> int: ...

    async def get_curve_rate_method_id(self, pool: str) -> str | None: ...

    # Converters

    async def get_converter_reserve_tokens(self, converter: str) -> tuple[str, str]: ...

    async def get_converter_reserve_weight(self, converter: str, token: str) -> int: ...

    # Logs

    async def get_events(
        self,
        address: str,
        event_name: str,
        from_block: int,
        to_block: int | None = None,
        argument_filters: dict[str, Any] | None = None,
    ) -> list[RawEvent]: ...
