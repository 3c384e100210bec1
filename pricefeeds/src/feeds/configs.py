"""Typed feed configurations.

Raw configurations are plain dicts keyed by ``type``::

    {
        "type": "medianizer",
        "invert_price": True,
        "medianized_feeds": [
            {"type": "exchange", "exchange": "coinbase", "base": "eth", "quote": "usd"},
            {"type": "exchange", "exchange": "kraken", "base": "eth", "quote": "usd"},
        ],
    }

:func:`parse_feed_config` turns them into frozen dataclasses. Children of
composite feeds inherit their parent's common options (decimals, throttle,
lookback, TWAP length, inversion) unless they set their own.
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, ClassVar, Literal

from ..errors import FeedConfigError

logger = logging.getLogger(__name__)

COMMON_OPTIONS = (
    "price_feed_decimals",
    "min_time_between_updates",
    "lookback",
    "twap_length",
    "invert_price",
)


@dataclass(frozen=True, kw_only=True)
class BaseFeedConfig:
    """Options shared by every feed kind.

    :ivar price_feed_decimals: Output precision.
    :ivar min_time_between_updates: Update throttle in seconds.
    :ivar lookback: Historical window in seconds (None for the kind default).
    :ivar twap_length: TWAP window in seconds, where the kind supports one.
    :ivar invert_price: Report the reciprocal pair, where supported.
    """

    kind: ClassVar[str] = ""

    price_feed_decimals: int = 18
    min_time_between_updates: int = 60
    lookback: float | None = None
    twap_length: int | None = None
    invert_price: bool = False

    def __post_init__(self) -> None:
        if self.price_feed_decimals < 0:
            raise FeedConfigError(f"{self.kind}: price_feed_decimals must be non-negative")
        if self.min_time_between_updates < 0:
            raise FeedConfigError(f"{self.kind}: min_time_between_updates must be non-negative")
        if self.lookback is not None and self.lookback < 0:
            raise FeedConfigError(f"{self.kind}: lookback must be non-negative")
        if self.twap_length is not None and self.twap_length < 0:
            raise FeedConfigError(f"{self.kind}: twap_length must be non-negative")

    def common_options(self) -> dict[str, Any]:
        """Options children inherit from this node."""
        return {name: getattr(self, name) for name in COMMON_OPTIONS}


# Composite kinds


@dataclass(frozen=True, kw_only=True)
class MedianizerConfig(BaseFeedConfig):
    kind: ClassVar[str] = "medianizer"

    medianized_feeds: tuple[FeedConfig, ...]
    compute_mean: bool = False

    def __post_init__(self) -> None:
        super().__post_init__()
        if not self.medianized_feeds:
            raise FeedConfigError("medianizer: medianized_feeds must not be empty")


@dataclass(frozen=True, kw_only=True)
class FallbackConfig(BaseFeedConfig):
    kind: ClassVar[str] = "fallback"

    ordered_feeds: tuple[FeedConfig, ...]

    def __post_init__(self) -> None:
        super().__post_init__()
        if not self.ordered_feeds:
            raise FeedConfigError("fallback: ordered_feeds must not be empty")


@dataclass(frozen=True, kw_only=True)
class ExpressionConfig(BaseFeedConfig):
    """Expression over custom feeds and named registry feeds.

    Free symbols not listed in ``custom_feeds`` are looked up in the
    registry when the feed is built.
    """

    kind: ClassVar[str] = "expression"

    expression: str
    custom_feeds: Mapping[str, FeedConfig] = field(default_factory=lambda: MappingProxyType({}))


# Snapshot kinds


@dataclass(frozen=True, kw_only=True)
class BalancerSpotConfig(BaseFeedConfig):
    kind: ClassVar[str] = "balancer_spot"

    pool_address: str
    base_address: str
    quote_address: str


@dataclass(frozen=True, kw_only=True)
class UniswapSpotConfig(BaseFeedConfig):
    kind: ClassVar[str] = "uniswap_spot"

    pair_address: str


@dataclass(frozen=True, kw_only=True)
class CompoundConfig(BaseFeedConfig):
    kind: ClassVar[str] = "compound"

    market_address: str


@dataclass(frozen=True, kw_only=True)
class VaultConfig(BaseFeedConfig):
    kind: ClassVar[str] = "vault"

    vault_address: str


@dataclass(frozen=True, kw_only=True)
class HarvestVaultConfig(BaseFeedConfig):
    kind: ClassVar[str] = "harvest_vault"

    vault_address: str


@dataclass(frozen=True, kw_only=True)
class LPUniswapConfig(BaseFeedConfig):
    kind: ClassVar[str] = "lp_uniswap"

    pool_address: str
    token_address: str


@dataclass(frozen=True, kw_only=True)
class LPBalancerConfig(BaseFeedConfig):
    kind: ClassVar[str] = "lp_balancer"

    pool_address: str
    token_address: str


@dataclass(frozen=True, kw_only=True)
class LPCurveConfig(BaseFeedConfig):
    kind: ClassVar[str] = "lp_curve"

    lp_address: str
    token_address: str
    valuation: Literal["balance", "swap"] = "balance"

    def __post_init__(self) -> None:
        super().__post_init__()
        if self.valuation not in ("balance", "swap"):
            raise FeedConfigError(f"lp_curve: unknown valuation '{self.valuation}'")


@dataclass(frozen=True, kw_only=True)
class CurveSpotConfig(BaseFeedConfig):
    kind: ClassVar[str] = "curve_spot"

    pool_address: str
    base_address: str
    quote_address: str
    base_amount: str = "1"


# Event TWAP kinds


@dataclass(frozen=True, kw_only=True)
class TwapConfigMixin(BaseFeedConfig):
    def __post_init__(self) -> None:
        super().__post_init__()
        if self.twap_length is None or self.lookback is None:
            raise FeedConfigError(f"{self.kind}: twap_length and lookback are required")


@dataclass(frozen=True, kw_only=True)
class UniswapTwapConfig(TwapConfigMixin):
    kind: ClassVar[str] = "uniswap_twap"

    pair_address: str


@dataclass(frozen=True, kw_only=True)
class BancorTwapConfig(TwapConfigMixin):
    kind: ClassVar[str] = "bancor"

    converter_address: str


# Exchange kind


@dataclass(frozen=True, kw_only=True)
class ExchangeConfig(BaseFeedConfig):
    kind: ClassVar[str] = "exchange"

    exchange: str
    base: str
    quote: str


FeedConfig = (
    MedianizerConfig
    | FallbackConfig
    | ExpressionConfig
    | BalancerSpotConfig
    | UniswapSpotConfig
    | UniswapTwapConfig
    | BancorTwapConfig
    | CompoundConfig
    | VaultConfig
    | HarvestVaultConfig
    | LPUniswapConfig
    | LPBalancerConfig
    | LPCurveConfig
    | CurveSpotConfig
    | ExchangeConfig
)

CONFIG_KINDS: dict[str, type[BaseFeedConfig]] = {
    cls.kind: cls
    for cls in (
        MedianizerConfig,
        FallbackConfig,
        ExpressionConfig,
        BalancerSpotConfig,
        UniswapSpotConfig,
        UniswapTwapConfig,
        BancorTwapConfig,
        CompoundConfig,
        VaultConfig,
        HarvestVaultConfig,
        LPUniswapConfig,
        LPBalancerConfig,
        LPCurveConfig,
        CurveSpotConfig,
        ExchangeConfig,
    )
}


def parse_feed_config(
    raw: Mapping[str, Any], inherited: Mapping[str, Any] | None = None
) -> FeedConfig:
    """Parse a raw configuration tree.

    :param raw: Raw config with a ``type`` key.
    :param inherited: Common options of the enclosing composite, if any.
    :returns: Typed, immutable configuration.
    :raises FeedConfigError: On unknown kinds or keys, missing required
        options, or invalid values.
    """
    if "type" not in raw:
        raise FeedConfigError(f"Feed config is missing 'type': {dict(raw)}")
    kind = raw["type"]
    cls = CONFIG_KINDS.get(kind)
    if cls is None:
        available = ", ".join(sorted(CONFIG_KINDS))
        raise FeedConfigError(f"Unknown feed type '{kind}'. Available: {available}")

    fields = {f.name for f in dataclasses.fields(cls)}
    options: dict[str, Any] = {k: v for k, v in (inherited or {}).items() if k in COMMON_OPTIONS}
    for key, value in raw.items():
        if key == "type":
            continue
        if key not in fields:
            raise FeedConfigError(f"{kind}: unknown option '{key}'")
        options[key] = value

    # Children inherit this node's common options, its own overrides included.
    child_inherited = {k: v for k, v in options.items() if k in COMMON_OPTIONS}
    if "medianized_feeds" in options:
        options["medianized_feeds"] = tuple(
            parse_feed_config(child, child_inherited) for child in options["medianized_feeds"]
        )
    if "ordered_feeds" in options:
        options["ordered_feeds"] = tuple(
            parse_feed_config(child, child_inherited) for child in options["ordered_feeds"]
        )
    if "custom_feeds" in options:
        options["custom_feeds"] = MappingProxyType(
            {
                name: parse_feed_config(child, child_inherited)
                for name, child in options["custom_feeds"].items()
            }
        )
    if "base_amount" in options:
        options["base_amount"] = str(options["base_amount"])

    try:
        return cls(**options)  # type: ignore[return-value]
    except TypeError as e:
        raise FeedConfigError(f"{kind}: {e}") from e
