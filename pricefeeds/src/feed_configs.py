"""Named price feed configurations.

``DEFAULT_CONFIGS`` holds the raw declarative wiring for every supported
identifier. :func:`build_registry` parses it once into typed configs, with
each identifier's output precision taken from ``IDENTIFIER_PRECISION``::

    config = get_feed_config("USDETH")
    feed = create_price_feed(config, context)

Inside expressions, names containing operator characters are escaped with
a backslash (``ETH\\-EUR``). Names that are neither assigned in the
expression nor listed in ``custom_feeds`` refer to other identifiers here.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from types import MappingProxyType
from typing import Any

from .errors import FeedConfigError
from .feeds.configs import FeedConfig, parse_feed_config

logger = logging.getLogger(__name__)

DEFAULT_PRECISION = 18

# Output precision per identifier; everything else reports 18 decimals.
IDENTIFIER_PRECISION: Mapping[str, int] = MappingProxyType(
    {
        "BTCUSD": 8,
        "USDBTC": 8,
        "DIGGBTC": 8,
        "DIGGETH": 8,
        "DIGGUSD": 6,
        "USDC-EUR": 6,
        "USDT-EUR": 6,
    }
)

WETH = "0xc02aaa39b223fe8d0a0e5c4f27ead9083c756cc2"
USDC = "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48"
USDT = "0xdAC17F958D2ee523a2206206994597C13D831ec7"
DAI = "0x6B175474E89094C44Da98b954EedeAC495271d0F"
TUSD = "0x0000000000085d4780B73119b644AE5ecd22b376"

Y_POOL = "0x45F783CCE6B7FF23B2ab2D70e416cdb7D6055f51"
Y_POOL_LP = "0xdf5e0e81dff6faf3a7e52ba697820c5e32d806a8"


def _exchange(exchange: str, base: str, quote: str, **options: Any) -> dict[str, Any]:
    return {"type": "exchange", "exchange": exchange, "base": base, "quote": quote, **options}


def _medianized(base: str, quote: str, exchanges: tuple[str, ...], **options: Any) -> dict[str, Any]:
    return {
        "type": "medianizer",
        "min_time_between_updates": 60,
        "medianized_feeds": [_exchange(exchange, base, quote) for exchange in exchanges],
        **options,
    }


def _curve_spot(base: str, quote: str) -> dict[str, Any]:
    return {"type": "curve_spot", "pool_address": Y_POOL, "base_address": base, "quote_address": quote}


def _lp_curve(token: str) -> dict[str, Any]:
    return {"type": "lp_curve", "lp_address": Y_POOL_LP, "token_address": token}


_DIGG_WBTC_FEEDS = {
    "DIGG_WBTC_SUSHI": {
        "type": "uniswap_twap",
        "pair_address": "0x9a13867048e01c663ce8ce2fe0cdae69ff9f35e3",
        "invert_price": True,
    },
    "DIGG_WBTC_UNI": {
        "type": "uniswap_twap",
        "pair_address": "0xe86204c4eddd2f70ee00ead6805f917671f56c52",
        "invert_price": True,
    },
}

DEFAULT_CONFIGS: Mapping[str, Mapping[str, Any]] = MappingProxyType(
    {
        # Exchange medians
        "ETHUSD": _medianized("eth", "usd", ("coinbase", "kraken", "bitstamp")),
        "USDETH": _medianized("eth", "usd", ("coinbase", "kraken", "bitstamp"), invert_price=True),
        "BTCUSD": _medianized("btc", "usd", ("coinbase", "kraken", "bitstamp")),
        "USDBTC": _medianized("btc", "usd", ("coinbase", "kraken", "bitstamp"), invert_price=True),
        "ETH-EUR": _medianized("eth", "eur", ("coinbase", "kraken")),
        "DAI-EUR": _exchange("kraken", "dai", "eur", min_time_between_updates=60),
        "USDT-EUR": _exchange("kraken", "usdt", "eur", min_time_between_updates=60),
        "USDC-EUR": _exchange("kraken", "usdc", "eur", min_time_between_updates=60),
        # Lending markets
        "cDAI-DAI": {"type": "compound", "market_address": "0x5d3a536e4d6dbd6114cc1ead35777bab948e3643"},
        "cETH-ETH": {"type": "compound", "market_address": "0x4ddc2d193948926d02f9b1fe9e1daa0718270ed5"},
        "crETH-ETH": {"type": "compound", "market_address": "0xd06527d5e56a3495252a528c4987003b712860ee"},
        # Pool TWAP expressions
        "DIGGBTC": {
            "type": "expression",
            "expression": "mean(DIGG_WBTC_SUSHI, DIGG_WBTC_UNI)",
            "lookback": 93600,
            "min_time_between_updates": 60,
            "twap_length": 86400,
            "custom_feeds": _DIGG_WBTC_FEEDS,
        },
        "DIGGETH": {
            "type": "expression",
            # Lower-case names are intermediates, upper-case names are feeds.
            "expression": """
                wbtc_eth = mean(WBTC_ETH_SUSHI, WBTC_ETH_UNI);
                DIGGBTC * wbtc_eth
            """,
            "lookback": 7200,
            "min_time_between_updates": 60,
            "twap_length": 1800,
            "custom_feeds": {
                "WBTC_ETH_SUSHI": {
                    "type": "uniswap_twap",
                    "pair_address": "0xCEfF51756c56CeFFCA006cD410B03FFC46dd3a58",
                },
                "WBTC_ETH_UNI": {
                    "type": "uniswap_twap",
                    "pair_address": "0xBb2b8038a1640196FbE3e38816F3e67Cba72D940",
                },
                "DIGGBTC": {
                    "type": "expression",
                    "expression": "mean(DIGG_WBTC_SUSHI, DIGG_WBTC_UNI)",
                    "price_feed_decimals": 8,
                    "custom_feeds": _DIGG_WBTC_FEEDS,
                },
            },
        },
        "DIGGUSD": {
            "type": "expression",
            "expression": """
                eth_usd = 1 / USDETH;
                DIGGETH * eth_usd
            """,
            "lookback": 7200,
            "min_time_between_updates": 60,
            "twap_length": 1800,
        },
        # Vault share expressions
        "iFARMUSD": {
            "type": "expression",
            "expression": """
                FARMUSD = FARMETH_UNISWAP / USDETH;
                FARMUSD * FARM_PER_SHARE
            """,
            "lookback": 7200,
            "min_time_between_updates": 60,
            "custom_feeds": {
                "FARMETH_UNISWAP": {
                    "type": "uniswap_twap",
                    "pair_address": "0x56feAccb7f750B997B36A68625C7C596F0B41A58",
                    "twap_length": 900,
                },
                "FARM_PER_SHARE": {
                    "type": "harvest_vault",
                    "vault_address": "0x1571eD0bed4D987fe2b498DdBaE7DFA19519F651",
                },
            },
        },
        "USDiFARM": {"type": "expression", "expression": "1 / iFARMUSD"},
        "yWETH-EUR": {
            "type": "expression",
            "expression": "yWETH\\[ETH\\] * ETH\\-EUR",
            "custom_feeds": {
                "yWETH[ETH]": {"type": "vault", "vault_address": "0xe1237aa7f535b0cc33fd973d66cbf830354d16c7"},
            },
        },
        "fUSDT-EUR": {
            "type": "expression",
            "expression": "fUSDT\\[USDT\\] * USDT\\-EUR",
            "custom_feeds": {
                "fUSDT[USDT]": {
                    "type": "harvest_vault",
                    "vault_address": "0xc7ee21406bb581e741fbb8b21f213188433d9f2f",
                },
            },
        },
        # Spot expressions
        "[YD-ETH-MAR21]-EUR": {
            "type": "expression",
            "expression": "\\[YD\\-ETH\\-MAR21\\]\\-USDC * USDC\\-EUR",
            "custom_feeds": {
                "[YD-ETH-MAR21]-USDC": {
                    "type": "balancer_spot",
                    "pool_address": "0x5e065D534d1DAaf9E6222AfA1D09e7Dac6cbD0f7",
                    "base_address": "0x90f802c7e8fb5d40b0de583e34c065a3bd2020d8",
                    "quote_address": USDC,
                },
            },
        },
        "FARM-EUR": {
            "type": "expression",
            "expression": "FARM\\-USDC * USDC\\-EUR",
            "custom_feeds": {
                "FARM-USDC": {"type": "uniswap_spot", "pair_address": "0x514906FC121c7878424a5C928cad1852CC545892"},
            },
        },
        "BAL-EUR": {
            "type": "fallback",
            "ordered_feeds": [
                _exchange("kraken", "bal", "eur", min_time_between_updates=60),
                {
                    "type": "expression",
                    "expression": "BAL\\-ETH_BAL * ETH\\-EUR",
                    "custom_feeds": {
                        "BAL-ETH_BAL": {
                            "type": "balancer_spot",
                            "pool_address": "0x59a19d8c652fa0284f44113d0ff9aba70bd46fb4",
                            "base_address": "0xba100000625a3754423978a60c9317c58a424e3d",
                            "quote_address": WETH,
                        },
                    },
                },
            ],
        },
        "CRV-EUR": {
            "type": "fallback",
            "min_time_between_updates": 60,
            "ordered_feeds": [
                _exchange("kraken", "crv", "eur"),
                {
                    "type": "expression",
                    "expression": "CRV\\-ETH * ETH\\-EUR",
                    "custom_feeds": {
                        "CRV-ETH": {
                            "type": "uniswap_spot",
                            "pair_address": "0x3dA1313aE46132A397D90d95B1424A9A7e3e0fCE",
                            "invert_price": True,
                        },
                    },
                },
            ],
        },
        # Liquidity provider shares
        "UNI-V2[DAI-ETH]-EUR": {
            "type": "expression",
            "expression": "UNI\\-V2\\[DAI\\] * DAI\\-EUR + UNI\\-V2\\[ETH\\] * ETH\\-EUR",
            "custom_feeds": {
                "UNI-V2[DAI]": {
                    "type": "lp_uniswap",
                    "pool_address": "0xa478c2975ab1ea89e8196811f51a7b7ade33eb11",
                    "token_address": DAI,
                },
                "UNI-V2[ETH]": {
                    "type": "lp_uniswap",
                    "pool_address": "0xa478c2975ab1ea89e8196811f51a7b7ade33eb11",
                    "token_address": WETH,
                },
            },
        },
        "BPT[BAL_80+ETH_20]-EUR": {
            "type": "expression",
            "expression": "BPT\\[BAL\\] * BAL\\-EUR + BPT\\[ETH\\] * ETH\\-EUR",
            "custom_feeds": {
                "BPT[BAL]": {
                    "type": "lp_balancer",
                    "pool_address": "0x59a19d8c652fa0284f44113d0ff9aba70bd46fb4",
                    "token_address": "0xba100000625a3754423978a60c9317c58a424e3d",
                },
                "BPT[ETH]": {
                    "type": "lp_balancer",
                    "pool_address": "0x59a19d8c652fa0284f44113d0ff9aba70bd46fb4",
                    "token_address": WETH,
                },
            },
        },
        "LP[yDAI-yUSDC-yUSDT-yTUSD]-EUR": {
            "type": "expression",
            "expression": (
                "LP\\[DAI\\] * DAI\\-EUR + LP\\[USDC\\] * USDC\\-EUR"
                " + LP\\[USDT\\] * USDT\\-EUR + LP\\[TUSD\\] * TUSD\\-EUR"
            ),
            "custom_feeds": {
                "LP[DAI]": _lp_curve(DAI),
                "LP[USDC]": _lp_curve(USDC),
                "LP[USDT]": _lp_curve(USDT),
                "LP[TUSD]": _lp_curve(TUSD),
                "TUSD-EUR": {
                    "type": "expression",
                    "expression": (
                        "median(TUSD\\-DAI * DAI\\-EUR, TUSD\\-USDC * USDC\\-EUR, TUSD\\-USDT * USDT\\-EUR)"
                    ),
                    "custom_feeds": {
                        "TUSD-DAI": _curve_spot(TUSD, DAI),
                        "TUSD-USDC": _curve_spot(TUSD, USDC),
                        "TUSD-USDT": _curve_spot(TUSD, USDT),
                    },
                },
            },
        },
        "YVAULT[LP[yDAI-yUSDC-yUSDT-yTUSD]]-EUR": {
            "type": "expression",
            "expression": "YVAULT\\[LP\\[yDAI\\-yUSDC\\-yUSDT\\-yTUSD\\]\\] * LP\\[yDAI\\-yUSDC\\-yUSDT\\-yTUSD\\]\\-EUR",
            "custom_feeds": {
                "YVAULT[LP[yDAI-yUSDC-yUSDT-yTUSD]]": {
                    "type": "vault",
                    "vault_address": "0x5dbcf33d8c2e976c6b560249878e6f1491bca25c",
                },
            },
        },
    }
)


def get_precision_for_identifier(identifier: str, precision: Mapping[str, int] = IDENTIFIER_PRECISION) -> int:
    return precision.get(identifier, DEFAULT_PRECISION)


def build_registry(
    raw: Mapping[str, Mapping[str, Any]],
    precision: Mapping[str, int] = IDENTIFIER_PRECISION,
) -> Mapping[str, FeedConfig]:
    """Parse raw configs into an immutable registry.

    Each identifier's ``price_feed_decimals`` is set from ``precision``,
    overriding whatever the raw entry declares. ``raw`` is not modified.

    :param raw: Raw configs by identifier.
    :param precision: Output precision by identifier.
    :returns: Read-only mapping of identifier to typed config.
    :raises FeedConfigError: If any entry is malformed.
    """
    registry: dict[str, FeedConfig] = {}
    for identifier, config in raw.items():
        annotated = {**config, "price_feed_decimals": get_precision_for_identifier(identifier, precision)}
        try:
            registry[identifier] = parse_feed_config(annotated)
        except FeedConfigError as e:
            raise FeedConfigError(f"{identifier}: {e}") from e
    return MappingProxyType(registry)


DEFAULT_REGISTRY = build_registry(DEFAULT_CONFIGS)


def get_feed_config(identifier: str, registry: Mapping[str, FeedConfig] = DEFAULT_REGISTRY) -> FeedConfig:
    """Look up the config for ``identifier``.

    :raises FeedConfigError: If the identifier is not registered.
    """
    try:
        return registry[identifier]
    except KeyError:
        raise FeedConfigError(f"No price feed config for identifier '{identifier}'") from None
