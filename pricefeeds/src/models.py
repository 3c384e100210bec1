"""Plain data records shared by feeds, data sources and the TWAP computer."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class Block:
    """A block (or snapshot) identifier with its timestamp.

    :ivar number: Block height.
    :ivar timestamp: Unix timestamp in seconds.
    """

    number: int
    timestamp: int


@dataclass(frozen=True)
class PriceSample:
    """A fixed-point value observed at a point in time.

    :ivar timestamp: Unix timestamp in seconds.
    :ivar value: Fixed-point integer in the precision of the series.
    """

    timestamp: int
    value: int


@dataclass(frozen=True)
class TokenDetails:
    """Static token facts, cached per address for the lifetime of a feed."""

    decimals: int = 18
    symbol: str = ""


@dataclass(frozen=True)
class LendingMarketState:
    """Accrual snapshot of a lending market at one block.

    :ivar exchange_rate_stored: Exchange rate as of the last accrual.
    :ivar supply_rate_per_block: Per-block supply rate scaled by 1e18.
    :ivar accrual_block_number: Block of the last accrual.
    """

    exchange_rate_stored: int
    supply_rate_per_block: int
    accrual_block_number: int


@dataclass(frozen=True)
class CurvePoolCoins:
    """Coin layout of a stable-swap pool.

    Lists are index-aligned and hold exactly one entry per pool coin.
    """

    coins: tuple[str, ...]
    underlying_coins: tuple[str, ...]
    decimals: tuple[int, ...]
    underlying_decimals: tuple[int, ...]

    @property
    def n_coins(self) -> int:
        """Number of coins in the pool."""
        return len(self.coins)

    def underlying_index(self, address: str) -> int:
        """Find the index of an underlying coin (case-insensitive).

        :param address: Underlying token address.
        :returns: Index into the pool's coin arrays.
        :raises ValueError: If the pool does not hold the token.
        """
        for i, coin in enumerate(self.underlying_coins):
            if coin.lower() == address.lower():
                return i
        raise ValueError(f"Token {address} is not an underlying coin of the pool")


@dataclass(frozen=True)
class RawEvent:
    """A decoded log entry as returned by a data source.

    :ivar block_number: Block the log was emitted in.
    :ivar transaction_index: Index of the transaction within the block.
    :ivar log_index: Index of the log within the block.
    :ivar args: Decoded event arguments.
    """

    block_number: int
    transaction_index: int
    log_index: int
    args: dict[str, Any] = field(default_factory=dict)

    @property
    def sort_key(self) -> tuple[int, int, int]:
        """On-chain emission order."""
        return (self.block_number, self.transaction_index, self.log_index)


@dataclass(frozen=True)
class TimedEvent:
    """An event annotated with its block timestamp and decoded price.

    :ivar event: The underlying raw event.
    :ivar timestamp: Timestamp of the event's block.
    :ivar price: Decoded price, or None if the event carried degenerate data.
    """

    event: RawEvent
    timestamp: int
    price: int | None

    @property
    def block_number(self) -> int:
        """Block the event was emitted in."""
        return self.event.block_number
