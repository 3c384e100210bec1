"""Vault share-price feed.

One feed covers every vault flavour; the only difference between them is
how the underlying token is discovered, which is injected as a strategy.

.. code-block:: python

    feed = VaultPriceFeed(
        vault_address="0x...",
        resolve_underlying=harvest_vault_underlying,
        source=source,
        get_time=time.time,
    )
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable

from ..decimals import convert_decimals
from ..models import Block
from ..sources.base import ChainDataSource
from .base import BlockPriceFeed

logger = logging.getLogger(__name__)

ResolveUnderlying = Callable[[ChainDataSource, str], Awaitable[str]]


async def yearn_vault_underlying(source: ChainDataSource, vault: str) -> str:
    """Underlying of a vault exposing ``token()``."""
    return await source.get_vault_token(vault)


async def harvest_vault_underlying(source: ChainDataSource, vault: str) -> str:
    """Underlying of a vault exposing ``underlying()``."""
    return await source.get_vault_underlying(vault)


class VaultPriceFeed(BlockPriceFeed):
    """Price per full share of a vault, in units of its underlying.

    A reverting share-price read yields an explicit 0 price.

    :ivar vault_address: Vault contract address.
    :ivar resolve_underlying: Strategy returning the underlying token.
    """

    def __init__(
        self,
        *,
        vault_address: str,
        resolve_underlying: ResolveUnderlying = yearn_vault_underlying,
        **kwargs,
    ) -> None:
        kwargs.setdefault("uuid", f"Vault-{vault_address}")
        super().__init__(**kwargs)
        self.vault_address = vault_address
        self.resolve_underlying = resolve_underlying
        self.underlying_address: str | None = None

    async def _prepare(self) -> None:
        if self.underlying_address is None:
            self.underlying_address = await self.resolve_underlying(self.source, self.vault_address)

    async def _price_at_block(self, block: Block) -> int | None:
        assert self.underlying_address is not None
        try:
            raw = await self.source.get_vault_price_per_share(self.vault_address, block.number)
        except Exception as e:
            logger.warning(f"[{self.uuid}] getPricePerFullShare failed at block {block.number}: {e}")
            return 0
        underlying = await self.token_details(self.underlying_address)
        return convert_decimals(raw, underlying.decimals, self.price_feed_decimals)
