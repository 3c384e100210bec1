"""Build live price feeds from typed configurations.

.. code-block:: python

    context = FeedContext(source=Web3DataSource(w3))
    feed = create_reference_price_feed("USDETH", context)
    await feed.update()
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, assert_never

from ..BlockFinder import BlockFinder
from ..errors import FeedConfigError, UnresolvedSymbolError
from ..expression import parse_expression
from ..feed_configs import DEFAULT_REGISTRY, get_feed_config
from ..fetchers.base import BaseFetcher, get_fetcher
from ..sources.base import ChainDataSource
from .base import GetTime, PriceFeed, system_time
from .configs import (
    BalancerSpotConfig,
    BancorTwapConfig,
    BaseFeedConfig,
    CompoundConfig,
    CurveSpotConfig,
    ExchangeConfig,
    ExpressionConfig,
    FallbackConfig,
    FeedConfig,
    HarvestVaultConfig,
    LPBalancerConfig,
    LPCurveConfig,
    LPUniswapConfig,
    MedianizerConfig,
    UniswapSpotConfig,
    UniswapTwapConfig,
    VaultConfig,
)
from .curve import CurveSpotPriceFeed, LPCurvePriceFeed
from .exchange import ExchangePriceFeed
from .expression import ExpressionPriceFeed
from .fallback import FallbackPriceFeed
from .lending import CompoundPriceFeed
from .lp import LPPriceFeed, balancer_pool_balance, uniswap_pool_balance
from .medianizer import MedianizerPriceFeed
from .spot import BalancerSpotPriceFeed, UniswapSpotPriceFeed
from .twap_event import BancorRateDecoder, EventTwapPriceFeed, UniswapSyncDecoder
from .vault import VaultPriceFeed, harvest_vault_underlying, yearn_vault_underlying

logger = logging.getLogger(__name__)


@dataclass
class FeedContext:
    """Shared dependencies of every feed built from one registry.

    :ivar source: Chain data source; required only by on-chain feeds.
    :ivar get_time: Clock shared by all feeds.
    :ivar block_finder: Shared block finder (created from ``source`` on demand).
    :ivar fetchers: Exchange fetchers by name (created on demand).
    :ivar registry: Named configs used to resolve expression symbols.
    :ivar average_block_time: Seconds per block for event TWAP range estimates.
    :ivar fetch_timeout: Request timeout for fetchers created on demand.
    """

    source: ChainDataSource | None = None
    get_time: GetTime = system_time
    block_finder: BlockFinder | None = None
    fetchers: dict[str, BaseFetcher] = field(default_factory=dict)
    registry: Mapping[str, FeedConfig] = field(default_factory=lambda: DEFAULT_REGISTRY)
    average_block_time: float = 13.0
    fetch_timeout: float | None = None

    def require_source(self) -> ChainDataSource:
        if self.source is None:
            raise FeedConfigError("On-chain feeds require a chain data source")
        return self.source

    def shared_block_finder(self) -> BlockFinder:
        if self.block_finder is None:
            source = self.require_source()
            self.block_finder = BlockFinder(source.get_block, source.get_latest_block)
        return self.block_finder

    def fetcher(self, name: str) -> BaseFetcher:
        if name not in self.fetchers:
            try:
                self.fetchers[name] = get_fetcher(name, timeout=self.fetch_timeout)
            except ValueError as e:
                raise FeedConfigError(str(e)) from e
        return self.fetchers[name]


def _common(config: BaseFeedConfig, context: FeedContext, uuid: str) -> dict[str, Any]:
    options: dict[str, Any] = {
        "uuid": uuid,
        "get_time": context.get_time,
        "price_feed_decimals": config.price_feed_decimals,
        "min_time_between_updates": config.min_time_between_updates,
    }
    if config.lookback is not None:
        options["lookback"] = config.lookback
    return options


def _on_chain(config: BaseFeedConfig, context: FeedContext, uuid: str) -> dict[str, Any]:
    return {
        **_common(config, context, uuid),
        "source": context.require_source(),
        "block_finder": context.shared_block_finder(),
    }


def _event_twap(config: UniswapTwapConfig | BancorTwapConfig, context: FeedContext, uuid: str) -> dict[str, Any]:
    assert config.twap_length is not None and config.lookback is not None
    return {
        **_on_chain(config, context, uuid),
        "twap_length": config.twap_length,
        "average_block_time": context.average_block_time,
    }


def create_price_feed(
    config: FeedConfig,
    context: FeedContext,
    uuid: str | None = None,
    _resolving: tuple[str, ...] = (),
) -> PriceFeed:
    """Build the feed tree described by ``config``.

    :param config: Typed feed configuration.
    :param context: Shared dependencies.
    :param uuid: Name used in logs (defaults to one derived from the config).
    :returns: Ready feed; call ``update()`` before reading prices.
    :raises FeedConfigError: If the config cannot be materialized.
    :raises UnresolvedSymbolError: If an expression names an unknown feed.
    """
    name = uuid or config.kind

    match config:
        case MedianizerConfig():
            children = [
                create_price_feed(child, context, f"{name}[{i}]", _resolving)
                for i, child in enumerate(config.medianized_feeds)
            ]
            return MedianizerPriceFeed(
                price_feeds=children, compute_mean=config.compute_mean, **_common(config, context, name)
            )
        case FallbackConfig():
            children = [
                create_price_feed(child, context, f"{name}[{i}]", _resolving)
                for i, child in enumerate(config.ordered_feeds)
            ]
            return FallbackPriceFeed(price_feeds=children, **_common(config, context, name))
        case ExpressionConfig():
            program = parse_expression(config.expression)
            symbol_feeds = {
                symbol: _resolve_symbol(symbol, config, context, _resolving)
                for symbol in program.free_symbols()
            }
            return ExpressionPriceFeed(
                expression=program, symbol_feeds=symbol_feeds, **_common(config, context, name)
            )
        case BalancerSpotConfig():
            return BalancerSpotPriceFeed(
                pool_address=config.pool_address,
                base_address=config.base_address,
                quote_address=config.quote_address,
                **_on_chain(config, context, name),
            )
        case UniswapSpotConfig():
            return UniswapSpotPriceFeed(
                pair_address=config.pair_address,
                invert_price=config.invert_price,
                **_on_chain(config, context, name),
            )
        case UniswapTwapConfig():
            return EventTwapPriceFeed(
                address=config.pair_address,
                decoder=UniswapSyncDecoder(config.invert_price),
                **_event_twap(config, context, name),
            )
        case BancorTwapConfig():
            return EventTwapPriceFeed(
                address=config.converter_address,
                decoder=BancorRateDecoder(config.invert_price),
                **_event_twap(config, context, name),
            )
        case CompoundConfig():
            return CompoundPriceFeed(market_address=config.market_address, **_on_chain(config, context, name))
        case VaultConfig():
            return VaultPriceFeed(
                vault_address=config.vault_address,
                resolve_underlying=yearn_vault_underlying,
                **_on_chain(config, context, name),
            )
        case HarvestVaultConfig():
            return VaultPriceFeed(
                vault_address=config.vault_address,
                resolve_underlying=harvest_vault_underlying,
                **_on_chain(config, context, name),
            )
        case LPUniswapConfig():
            return LPPriceFeed(
                pool_address=config.pool_address,
                token_address=config.token_address,
                read_pool_balance=uniswap_pool_balance,
                **_on_chain(config, context, name),
            )
        case LPBalancerConfig():
            return LPPriceFeed(
                pool_address=config.pool_address,
                token_address=config.token_address,
                read_pool_balance=balancer_pool_balance,
                **_on_chain(config, context, name),
            )
        case LPCurveConfig():
            return LPCurvePriceFeed(
                lp_address=config.lp_address,
                token_address=config.token_address,
                valuation=config.valuation,
                **_on_chain(config, context, name),
            )
        case CurveSpotConfig():
            return CurveSpotPriceFeed(
                pool_address=config.pool_address,
                base_address=config.base_address,
                quote_address=config.quote_address,
                base_amount=config.base_amount,
                **_on_chain(config, context, name),
            )
        case ExchangeConfig():
            return ExchangePriceFeed(
                fetcher=context.fetcher(config.exchange),
                base=config.base,
                quote=config.quote,
                twap_length=config.twap_length or 0,
                invert_price=config.invert_price,
                **_common(config, context, name),
            )
        case _:
            assert_never(config)


def _resolve_symbol(
    symbol: str, config: ExpressionConfig, context: FeedContext, resolving: tuple[str, ...]
) -> PriceFeed:
    """Feed for an expression symbol: custom feeds first, then the registry."""
    if symbol in config.custom_feeds:
        return create_price_feed(config.custom_feeds[symbol], context, symbol, resolving)
    if symbol in context.registry:
        if symbol in resolving:
            cycle = " -> ".join((*resolving, symbol))
            raise FeedConfigError(f"Circular feed reference: {cycle}")
        logger.debug(f"Resolving '{symbol}' from the feed registry")
        return create_price_feed(context.registry[symbol], context, symbol, (*resolving, symbol))
    raise UnresolvedSymbolError(symbol)


def create_reference_price_feed(identifier: str, context: FeedContext) -> PriceFeed:
    """Build the feed registered under ``identifier``.

    :raises FeedConfigError: If the identifier is unknown or its config is invalid.
    """
    config = get_feed_config(identifier, context.registry)
    return create_price_feed(config, context, identifier, (identifier,))
