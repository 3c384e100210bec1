"""Shared fixtures: in-memory chain data, a settable clock and stub feeds."""

from collections.abc import Callable
from typing import Any

import pytest

from pricefeeds.src.feeds.base import PriceFeed
from pricefeeds.src.fetchers.base import BaseFetcher, TickerRequest
from pricefeeds.src.models import Block, CurvePoolCoins, LendingMarketState, RawEvent


class FakeClock:
    """Settable clock usable as a feed's ``get_time``."""

    def __init__(self, time: int = 1_000_000) -> None:
        self.time = time

    def __call__(self) -> int:
        return self.time

    def advance(self, seconds: int) -> None:
        self.time += seconds


class FakeChainDataSource:
    """In-memory ChainDataSource.

    Tables are keyed by lower-case address. A table value may be a callable
    taking the block number, for facts that change over time. Method names
    listed in ``failing`` raise RuntimeError.
    """

    def __init__(self) -> None:
        self.blocks: list[Block] = []
        self.block_reads = 0
        self.calls: list[str] = []
        self.failing: set[str] = set()
        self.event_queries: list[tuple[int, int | None]] = []

        self.decimals: dict[str, int] = {}
        self.symbols: dict[str, str] = {}
        self.total_supply: dict[str, Any] = {}
        self.pool_balances: dict[tuple[str, str], Any] = {}
        self.pool_weights: dict[tuple[str, str], Any] = {}
        self.pair_tokens: dict[str, tuple[str, str]] = {}
        self.pair_reserves: dict[str, Any] = {}
        self.lending_states: dict[str, Any] = {}
        self.lending_underlying: dict[str, str] = {}
        self.vault_pps: dict[str, Any] = {}
        self.vault_tokens: dict[str, str] = {}
        self.vault_underlyings: dict[str, str] = {}
        self.curve_lp_pools: dict[str, str] = {}
        self.curve_coins: dict[str, CurvePoolCoins] = {}
        self.curve_balances: dict[str, Any] = {}
        self.curve_amp: dict[str, Any] = {}
        self.curve_rate_method: dict[str, str | None] = {}
        self.converter_tokens: dict[str, tuple[str, str]] = {}
        self.converter_weights: dict[tuple[str, str], int] = {}
        self.events: dict[tuple[str, str], list[RawEvent]] = {}

    # Helpers

    def set_blocks(self, timestamps: list[int]) -> None:
        """One block per timestamp, numbered from 0."""
        self.blocks = [Block(number=i, timestamp=t) for i, t in enumerate(timestamps)]

    def _read(self, method: str, table: dict, key: Any, block_number: int | None = None) -> Any:
        self.calls.append(method)
        if method in self.failing:
            raise RuntimeError(f"{method} reverted")
        if isinstance(key, tuple):
            key = tuple(k.lower() for k in key)
        else:
            key = key.lower()
        value = table[key]
        if callable(value):
            number = self.blocks[-1].number if block_number is None else block_number
            return value(number)
        return value

    # Blocks

    async def get_block(self, number: int) -> Block:
        self.block_reads += 1
        return self.blocks[number]

    async def get_latest_block(self) -> Block:
        return self.blocks[-1]

    # ERC20

    async def get_token_decimals(self, token: str) -> int:
        return self._read("get_token_decimals", self.decimals, token)

    async def get_token_symbol(self, token: str) -> str:
        return self._read("get_token_symbol", self.symbols, token)

    async def get_total_supply(self, token: str, block_number: int | None = None) -> int:
        return self._read("get_total_supply", self.total_supply, token, block_number)

    # Weighted pools

    async def get_pool_balance(self, pool: str, token: str, block_number: int | None = None) -> int:
        return self._read("get_pool_balance", self.pool_balances, (pool, token), block_number)

    async def get_pool_normalized_weight(self, pool: str, token: str, block_number: int | None = None) -> int:
        return self._read("get_pool_normalized_weight", self.pool_weights, (pool, token), block_number)

    # Constant-product pairs

    async def get_pair_tokens(self, pair: str) -> tuple[str, str]:
        return self._read("get_pair_tokens", self.pair_tokens, pair)

    async def get_pair_reserves(self, pair: str, block_number: int | None = None) -> tuple[int, int]:
        return self._read("get_pair_reserves", self.pair_reserves, pair, block_number)

    # Lending markets

    async def get_lending_market_state(self, market: str, block_number: int | None = None) -> LendingMarketState:
        return self._read("get_lending_market_state", self.lending_states, market, block_number)

    async def get_lending_underlying(self, market: str) -> str:
        return self._read("get_lending_underlying", self.lending_underlying, market)

    # Vaults

    async def get_vault_price_per_share(self, vault: str, block_number: int | None = None) -> int:
        return self._read("get_vault_price_per_share", self.vault_pps, vault, block_number)

    async def get_vault_token(self, vault: str) -> str:
        return self._read("get_vault_token", self.vault_tokens, vault)

    async def get_vault_underlying(self, vault: str) -> str:
        return self._read("get_vault_underlying", self.vault_underlyings, vault)

    # Stable-swap pools

    async def get_curve_pool_from_lp(self, lp_token: str) -> str:
        return self._read("get_curve_pool_from_lp", self.curve_lp_pools, lp_token)

    async def get_curve_pool_coins(self, pool: str) -> CurvePoolCoins:
        return self._read("get_curve_pool_coins", self.curve_coins, pool)

    async def get_curve_balances(self, pool: str, block_number: int | None = None) -> list[int]:
        return self._read("get_curve_balances", self.curve_balances, pool, block_number)

    async def get_curve_amplification(self, pool: str, block_number: int | None = None) -> int:
        return self._read("get_curve_amplification", self.curve_amp, pool, block_number)

    async def get_curve_rate_method_id(self, pool: str) -> str | None:
        return self._read("get_curve_rate_method_id", self.curve_rate_method, pool)

    # Converters

    async def get_converter_reserve_tokens(self, converter: str) -> tuple[str, str]:
        return self._read("get_converter_reserve_tokens", self.converter_tokens, converter)

    async def get_converter_reserve_weight(self, converter: str, token: str) -> int:
        return self._read("get_converter_reserve_weight", self.converter_weights, (converter, token))

    # Logs

    async def get_events(
        self,
        address: str,
        event_name: str,
        from_block: int,
        to_block: int | None = None,
        argument_filters: dict[str, Any] | None = None,
    ) -> list[RawEvent]:
        self.calls.append("get_events")
        if "get_events" in self.failing:
            raise RuntimeError("eth_getLogs failed")
        self.event_queries.append((from_block, to_block))
        upper = self.blocks[-1].number if to_block is None else to_block
        return [
            event
            for event in self.events.get((address.lower(), event_name), [])
            if from_block <= event.block_number <= upper
        ]


class StubPriceFeed(PriceFeed):
    """Feed reporting preset prices, for composite tests.

    :ivar next_price: Price the next update will report.
    :ivar historical: Historical prices by timestamp.
    :ivar error: Exception raised by the next update, if set.
    :ivar update_calls: Number of computations performed.
    """

    def __init__(
        self,
        price: int | None = None,
        *,
        historical: dict[int, int | None] | None = None,
        error: Exception | None = None,
        **kwargs,
    ) -> None:
        kwargs.setdefault("uuid", "Stub")
        kwargs.setdefault("min_time_between_updates", 0)
        super().__init__(**kwargs)
        self.next_price = price
        self.historical = historical or {}
        self.error = error
        self.update_calls = 0

    async def _fetch_current_price(self, current_time: int) -> int | None:
        self.update_calls += 1
        if self.error is not None:
            raise self.error
        return self.next_price

    async def _fetch_historical_price(self, time: int) -> int | None:
        if self.error is not None:
            raise self.error
        return self.historical.get(time)


class ConstantFetcher(BaseFetcher):
    """Fetcher answering every pair with one price, without HTTP."""

    def __init__(self, name: str, price: str | None) -> None:
        super().__init__()
        self.name = name
        self.price = price
        self.requests: list[tuple[str, str]] = []

    def ticker_request(self, base: str, quote: str) -> TickerRequest:
        self.requests.append((base, quote))
        return f"memory://{self.name}/{base}{quote}", None

    def extract_price(self, data: Any) -> Any:
        return data["price"]

    async def _get_json(self, url: str, *, params: dict[str, str] | None = None) -> Any:
        return {"price": self.price}


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def source() -> FakeChainDataSource:
    return FakeChainDataSource()


@pytest.fixture
def make_stub(clock: FakeClock) -> Callable[..., StubPriceFeed]:
    """Factory for stub feeds sharing the test clock."""

    def make(price: int | None = None, **kwargs) -> StubPriceFeed:
        kwargs.setdefault("get_time", clock)
        return StubPriceFeed(price, **kwargs)

    return make


@pytest.fixture
def fetchers() -> dict[str, ConstantFetcher]:
    """Offline stand-ins for every registered exchange, all quoting 2000."""
    return {name: ConstantFetcher(name, "2000") for name in ("bitstamp", "coinbase", "kraken")}
