"""Stable-swap invariant math, integer-exact with the on-chain pool.

All arithmetic is floor division on non-negative integers, in the same
order as the pool contract, so results match ``get_dy_underlying`` calls
bit for bit. Both Newton solvers stop when consecutive iterates differ by
at most 1, and return the last iterate after 255 rounds without raising.

The amplification coefficient is applied as ``Ann = A * n``.

.. code-block:: python

    >>> get_D([10**21, 10**21], 100)
    2000000000000000000000
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

logger = logging.getLogger(__name__)

MAX_ITERATIONS = 255
PRECISION = 10**18
# Method id of getPricePerFullShare(), registered for yearn-wrapped pools.
VAULT_RATE_METHOD_ID = "0x77c7b8fc"
ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


def get_D(xp: Sequence[int], amp: int) -> int:
    """Solve the invariant ``D`` for normalized balances.

    :param xp: Balances normalized to 18 decimals by the coin rates.
    :param amp: Pool amplification coefficient ``A``.
    :returns: The invariant (0 for an empty pool).
    """
    n = len(xp)
    S = sum(xp)
    if S == 0:
        return 0

    D = S
    Ann = amp * n
    for _ in range(MAX_ITERATIONS):
        D_P = D
        for x in xp:
            D_P = D_P * D // (x * n + 1)  # +1 keeps empty coins from dividing by zero
        D_prev = D
        D = (Ann * S + D_P * n) * D // ((Ann - 1) * D + (n + 1) * D_P)
        if abs(D - D_prev) <= 1:
            return D
    logger.debug(f"[stableswap] get_D did not converge, returning D={D}")
    return D


def get_y(i: int, j: int, x: int, xp: Sequence[int], amp: int) -> int:
    """Solve the balance of coin ``j`` after coin ``i`` moves to ``x``.

    :param i: Index of the input coin.
    :param j: Index of the output coin.
    :param x: New normalized balance of coin ``i``.
    :param xp: Current normalized balances.
    :param amp: Pool amplification coefficient ``A``.
    :returns: New normalized balance of coin ``j``.
    :raises ValueError: If ``i == j`` or an index is out of range.
    :raises ZeroDivisionError: If another coin's balance is empty.
    """
    n = len(xp)
    if i == j:
        raise ValueError("Cannot swap a coin for itself")
    if not (0 <= i < n and 0 <= j < n):
        raise ValueError(f"Coin index out of range for a {n}-coin pool")

    D = get_D(xp, amp)
    Ann = amp * n
    c = D
    S_ = 0
    for k in range(n):
        if k == i:
            _x = x
        elif k != j:
            _x = xp[k]
        else:
            continue
        S_ += _x
        c = c * D // (_x * n)
    c = c * D // (Ann * n)
    b = S_ + D // Ann

    y = D
    for _ in range(MAX_ITERATIONS):
        y_prev = y
        y = (y * y + c) // (2 * y + b - D)
        if abs(y - y_prev) <= 1:
            return y
    logger.debug(f"[stableswap] get_y did not converge, returning y={y}")
    return y


def stored_rates(
    rates: Sequence[int | None], underlying_decimals: Sequence[int]
) -> list[int | None]:
    """Scale coin rates by each coin's precision multiplier.

    :param rates: Per-coin rates in 1e18 units (None when unavailable).
    :param underlying_decimals: Decimals of each underlying coin.
    :returns: ``10**(18 - decimals) * rate`` per coin, None where unavailable.
    """
    return [
        None if rate is None else 10 ** (18 - decimals) * rate
        for rate, decimals in zip(rates, underlying_decimals, strict=True)
    ]


def xp(rates: Sequence[int], balances: Sequence[int]) -> list[int]:
    """Normalize raw balances with stored rates."""
    return [rate * balance // PRECISION for rate, balance in zip(rates, balances, strict=True)]


def get_dy_underlying(
    i: int,
    j: int,
    dx: int,
    rates: Sequence[int | None],
    balances: Sequence[int],
    underlying_decimals: Sequence[int],
    amp: int,
) -> int | None:
    """Quote a swap of ``dx`` underlying ``i`` for underlying ``j``.

    ``dx`` and the result are in 18-decimal normalized units, matching the
    price math of the feeds (the fee is not deducted).

    :param i: Index of the input coin.
    :param j: Index of the output coin.
    :param dx: Normalized input amount.
    :param rates: Per-coin rates in 1e18 units.
    :param balances: Raw pool balances.
    :param underlying_decimals: Decimals of each underlying coin.
    :param amp: Pool amplification coefficient ``A``.
    :returns: Normalized output amount, or None if any rate is unavailable.
    """
    scaled = stored_rates(rates, underlying_decimals)
    if any(rate is None for rate in scaled):
        return None
    normalized = xp(scaled, balances)  # type: ignore[arg-type]
    y = get_y(i, j, normalized[i] + dx, normalized, amp)
    return normalized[j] - y


def coin_rate(coin: str, underlying: str, rate_method_id: str | None, vault_rate: int | None) -> int | None:
    """Resolve the rate of one pool coin against its underlying.

    :param coin: Pool coin address.
    :param underlying: Underlying coin address.
    :param rate_method_id: Method id the registry recorded for the pool.
    :param vault_rate: ``getPricePerFullShare`` of the coin, when it was read.
    :returns: Rate in 1e18 units, 0 for an empty slot, None if unknown.
    """
    if coin == ZERO_ADDRESS:
        return 0
    if coin.lower() == underlying.lower():
        return PRECISION
    if rate_method_id == VAULT_RATE_METHOD_ID:
        return vault_rate
    return None
