from __future__ import annotations

import csv
import datetime
import io
from typing import NamedTuple
from urllib.parse import urlencode

from folio.providers.base import (
    MarketDataProvider,
    ProviderError,
    fetch_text,
    parse_date,
    parse_float,
)
from folio.schemas.provider import (
    ExchangeRateResult,
    HistoryPoint,
    QuoteResult,
    SymbolSearchResult,
)


_BASE_URL = "https://stooq.com/q/d/l/"
_RATE_LIMIT_MARKER = "Exceeded the daily hits limit"


class _StooqMarket(NamedTuple):
    suffix: str
    currency: str


_MARKETS: dict[str, _StooqMarket] = {
    "US": _StooqMarket("us", "USD"),
    "NYSE": _StooqMarket("us", "USD"),
    "NASDAQ": _StooqMarket("us", "USD"),
    "AMEX": _StooqMarket("us", "USD"),
    "XWAR": _StooqMarket("", "PLN"),
    "GPW": _StooqMarket("", "PLN"),
    "XLON": _StooqMarket("uk", "GBP"),
    "LSE": _StooqMarket("uk", "GBP"),
    "XETR": _StooqMarket("de", "EUR"),
    "XETRA": _StooqMarket("de", "EUR"),
}


def _resolve_market(market: str | None) -> _StooqMarket | None:
    if not market:
        return None
    return _MARKETS.get(market.upper())


def _stooq_symbol(ticker: str, config: _StooqMarket) -> str:
    if config.suffix:
        return f"{ticker}.{config.suffix}".lower()
    return ticker.lower()


class StooqProvider(MarketDataProvider):
    """Free, keyless daily closes for a handful of equity markets."""

    name = "STOOQ"
    supported_markets = frozenset({"NASDAQ", "NYSE", "AMEX", "XWAR", "GPW", "XLON", "XETR"})
    # Exchanges with thin coverage on the paid tier.
    preferred_markets = frozenset({"XWAR", "GPW", "XLON", "XETR"})
    serves_fx = False
    name_priority = 2

    async def search_symbol(self, ticker: str, market: str | None) -> SymbolSearchResult | None:
        if _resolve_market(market) is None:
            return None
        history = await self.get_history(ticker, market, None, None)
        if not history:
            return None
        normalized_market = (market or "").upper()
        return SymbolSearchResult(
            ticker=ticker.upper(),
            market=normalized_market,
            name=None,
            currency=history[-1].currency,
            exchange=normalized_market,
        )

    async def get_quote(self, ticker: str, market: str | None) -> QuoteResult:
        history = await self.get_history(ticker, market, None, None)
        if not history:
            raise ProviderError("Stooq quote unavailable")
        latest = history[-1]
        return QuoteResult(
            price=latest.price,
            currency=latest.currency or "USD",
            as_of=latest.date.isoformat(),
        )

    async def get_history(
        self,
        ticker: str,
        market: str | None,
        date_from: datetime.date | None,
        date_to: datetime.date | None,
        interval: str = "1d",
    ) -> list[HistoryPoint]:
        # Stooq serves the full daily series; the window is applied by the cache.
        config = _resolve_market(market)
        if config is None:
            raise ProviderError("Stooq only supports US/UK/Poland/Germany equities")
        if not ticker:
            raise ProviderError("Ticker is required")

        url = f"{_BASE_URL}?{urlencode({'s': _stooq_symbol(ticker, config), 'i': 'd'})}"
        text = await fetch_text(url)
        if not text.strip():
            raise ProviderError("Stooq history fetch failed")
        if _RATE_LIMIT_MARKER in text:
            raise ProviderError("Stooq rate limit exceeded", rate_limited=True)

        rows = list(csv.DictReader(io.StringIO(text.strip())))
        if not rows:
            raise ProviderError("Stooq history returned no data")

        points: list[HistoryPoint] = []
        for row in rows:
            row_date = parse_date((row.get("Date") or "").strip())
            price = parse_float((row.get("Close") or "").strip())
            if row_date is None or price is None:
                continue
            points.append(HistoryPoint(date=row_date, price=price, currency=config.currency))
        points.sort(key=lambda point: point.date)
        return points

    async def get_exchange_rate(self, base: str, quote: str) -> ExchangeRateResult:
        raise ProviderError("Stooq FX not supported")
