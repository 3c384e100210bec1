"""Exchange ticker fetchers and the shared HTTP client.

A fetcher answers one question: the last traded price of ``base`` in
``quote`` on its exchange. Subclasses only describe the ticker request and
where the price sits in the JSON reply; requesting, error handling and
parsing are shared. Prices are parsed from the JSON strings straight into
``Decimal`` so nothing is lost before scaling to fixed point.

.. code-block:: python

    @register_fetcher
    class MyFetcher(BaseFetcher):
        name = "myfetcher"

        def ticker_request(self, base: str, quote: str) -> TickerRequest:
            return f"https://api.example.com/{base}/{quote}", None

        def extract_price(self, data: Any) -> Any:
            return data["price"]
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from decimal import Decimal, InvalidOperation
from typing import Any, ClassVar

import httpx

logger = logging.getLogger(__name__)

# URL and optional query parameters of a ticker request.
TickerRequest = tuple[str, dict[str, str] | None]


class FetcherError(Exception):
    """Base exception for fetcher errors."""

    pass


class FetcherHTTPError(FetcherError):
    """Raised when the exchange answers with a non-2xx status.

    :ivar status_code: HTTP status code from the failed request.
    """

    def __init__(self, status_code: int, message: str):
        self.status_code = status_code
        super().__init__(f"HTTP {status_code}: {message}")


def parse_price(value: Any) -> Decimal:
    """Parse an exchange price field.

    :raises ValueError: If the value is not a finite, positive number.
    """
    try:
        price = Decimal(str(value))
    except InvalidOperation as e:
        raise ValueError(f"Invalid price {value!r}") from e
    if not price.is_finite() or price <= 0:
        raise ValueError(f"Invalid price {value!r}")
    return price


class BaseFetcher(ABC):
    """Last-trade price of a currency pair on one exchange.

    :cvar name: Registry name of the exchange.
    :cvar SYMBOL_ALIASES: Exchange-specific tickers by lower-case symbol.
    :cvar DEFAULT_TIMEOUT: Request timeout in seconds when none is given.
    :ivar timeout: Request timeout in seconds.
    """

    _shared_client: ClassVar[httpx.AsyncClient | None] = None

    name: ClassVar[str] = ""
    SYMBOL_ALIASES: ClassVar[dict[str, str]] = {}

    DEFAULT_TIMEOUT = 10.0

    def __init__(self, timeout: float | None = None):
        self.timeout = timeout or self.DEFAULT_TIMEOUT

    @classmethod
    def get_shared_client(cls) -> httpx.AsyncClient:
        """Shared HTTP client, created on first use or after closing."""
        if BaseFetcher._shared_client is None or BaseFetcher._shared_client.is_closed:
            BaseFetcher._shared_client = httpx.AsyncClient(
                timeout=httpx.Timeout(30.0, connect=10.0),
                limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
                follow_redirects=True,
            )
        return BaseFetcher._shared_client

    @classmethod
    async def close_shared_client(cls) -> None:
        if BaseFetcher._shared_client is not None and not BaseFetcher._shared_client.is_closed:
            await BaseFetcher._shared_client.aclose()
            BaseFetcher._shared_client = None

    def symbol(self, currency: str) -> str:
        """Exchange ticker for a currency symbol."""
        return self.SYMBOL_ALIASES.get(currency.lower(), currency)

    @abstractmethod
    def ticker_request(self, base: str, quote: str) -> TickerRequest:
        """URL and query parameters of the ticker for ``base/quote``."""
        pass

    @abstractmethod
    def extract_price(self, data: Any) -> Any:
        """Raw price field of a decoded ticker reply.

        :raises FetcherError: If the exchange reported an error.
        :raises KeyError: If the reply lacks the price.
        """
        pass

    async def fetch(self, base: str, quote: str) -> Decimal | None:
        """Last traded price of one ``base`` unit in ``quote``.

        :param base: Base currency symbol (e.g., "btc", "eth").
        :param quote: Quote currency symbol (e.g., "usd").
        :returns: Price, or None if the request or parsing failed.
        """
        url, params = self.ticker_request(base, quote)
        try:
            data = await self._get_json(url, params=params)
            return parse_price(self.extract_price(data))
        except FetcherError as e:
            logger.warning(f"[{self.name}] Ticker request for {base}/{quote} failed: {e}")
        except (KeyError, IndexError, TypeError, ValueError) as e:
            logger.warning(f"[{self.name}] Unusable ticker for {base}/{quote}: {e!r}")
        return None

    async def _get_json(self, url: str, *, params: dict[str, str] | None = None) -> Any:
        response = await self._get(url, params=params)
        return response.json()

    async def _get(
        self,
        url: str,
        *,
        params: dict | None = None,
        headers: dict | None = None,
    ) -> httpx.Response:
        """GET through the shared client.

        :raises FetcherHTTPError: On non-2xx response.
        :raises FetcherError: On network or timeout errors.
        """
        client = self.get_shared_client()
        try:
            response = await client.get(url, params=params, headers=headers, timeout=self.timeout)
        except httpx.TimeoutException as e:
            raise FetcherError(f"Request timeout: {e}") from e
        except httpx.RequestError as e:
            raise FetcherError(f"Request failed: {e}") from e
        if not response.is_success:
            logger.debug(f"GET {url} answered {response.status_code}: {response.text[:200]}")
            raise FetcherHTTPError(response.status_code, response.text[:200])
        return response


# Exchanges by name (populated by subclass imports)
FETCHER_REGISTRY: dict[str, type[BaseFetcher]] = {}


def register_fetcher(cls: type[BaseFetcher]) -> type[BaseFetcher]:
    """Class decorator adding a fetcher to FETCHER_REGISTRY.

    :raises ValueError: If the fetcher has no name.
    """
    if not cls.name:
        raise ValueError(f"Fetcher {cls.__name__} must define a 'name' class variable")
    FETCHER_REGISTRY[cls.name] = cls
    return cls


def get_fetcher(name: str, timeout: float | None = None) -> BaseFetcher:
    """Instantiate the fetcher registered as ``name``.

    :raises ValueError: If the name is unknown.
    """
    if name not in FETCHER_REGISTRY:
        available = ", ".join(sorted(FETCHER_REGISTRY))
        raise ValueError(f"Unknown fetcher '{name}'. Available: {available}")
    return FETCHER_REGISTRY[name](timeout=timeout)


def get_available_fetchers() -> list[str]:
    return sorted(FETCHER_REGISTRY)
