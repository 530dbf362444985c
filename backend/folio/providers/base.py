from __future__ import annotations

import asyncio
import datetime
import http.client
import json
import socket
from abc import ABC, abstractmethod
from typing import Any
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from folio.config.settings import settings
from folio.schemas.provider import (
    ExchangeRateResult,
    HistoryPoint,
    QuoteResult,
    SymbolSearchResult,
)


class ProviderError(Exception):
    """Recoverable failure of a single provider; the chain moves on to the next one."""

    def __init__(self, message: str, details: Any = None, rate_limited: bool = False) -> None:
        super().__init__(message)
        self.details = details
        self.rate_limited = rate_limited


def _read_url(url: str, headers: dict[str, str], timeout: float) -> str:
    request = Request(url, headers=headers)
    with urlopen(request, timeout=timeout) as response:
        return response.read().decode("utf-8")


async def fetch_text(url: str, headers: dict[str, str] | None = None) -> str:
    """GET ``url`` off the event loop; transport failures become ProviderError."""
    timeout = settings.providers.request_timeout_seconds
    try:
        return await asyncio.to_thread(_read_url, url, headers or {}, timeout)
    except HTTPError as exc:
        if exc.code == 429:
            raise ProviderError("Provider rate limit exceeded", exc.code, rate_limited=True) from exc
        raise ProviderError(f"Provider returned HTTP {exc.code}", exc.code) from exc
    except (URLError, TimeoutError, socket.timeout) as exc:
        raise ProviderError(f"Provider request failed: {exc}") from exc
    except (http.client.HTTPException, OSError) as exc:
        raise ProviderError(f"Provider connection failed: {exc}") from exc
    except UnicodeDecodeError as exc:
        raise ProviderError("Provider returned undecodable body") from exc


async def fetch_json(url: str, headers: dict[str, str] | None = None) -> Any:
    body = await fetch_text(url, headers)
    try:
        return json.loads(body)
    except json.JSONDecodeError as exc:
        raise ProviderError("Provider returned malformed JSON", body[:200]) from exc


def parse_float(value: Any) -> float | None:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if number != number or number in (float("inf"), float("-inf")):
        return None
    return number


def parse_date(value: Any) -> datetime.date | None:
    if not isinstance(value, str) or len(value) < 10:
        return None
    try:
        return datetime.date.fromisoformat(value[:10])
    except ValueError:
        return None


class MarketDataProvider(ABC):
    """Capability contract shared by every market data source.

    A provider that cannot serve a whole category of requests raises
    ProviderError for every call in that category.
    """

    name: str = "UNKNOWN"
    # None means every market is served.
    supported_markets: frozenset[str] | None = None
    # Markets where this provider is moved to the front of the chain.
    preferred_markets: frozenset[str] = frozenset()
    serves_fx: bool = True
    # Lower sorts first when resolving company names.
    name_priority: int = 1

    @abstractmethod
    async def search_symbol(self, ticker: str, market: str | None) -> SymbolSearchResult | None:
        ...

    @abstractmethod
    async def get_quote(self, ticker: str, market: str | None) -> QuoteResult:
        ...

    @abstractmethod
    async def get_history(
        self,
        ticker: str,
        market: str | None,
        date_from: datetime.date | None,
        date_to: datetime.date | None,
        interval: str = "1d",
    ) -> list[HistoryPoint]:
        ...

    @abstractmethod
    async def get_exchange_rate(self, base: str, quote: str) -> ExchangeRateResult:
        ...

    def serves_market(self, market: str) -> bool:
        if self.supported_markets is None:
            return True
        return market.upper() in self.supported_markets

    def __repr__(self) -> str:
        return f"<{type(self).__name__}(name='{self.name}')>"
