from __future__ import annotations

import datetime
from urllib.parse import urlencode

from folio.providers.base import MarketDataProvider, ProviderError, fetch_json, parse_float
from folio.schemas.provider import (
    ExchangeRateResult,
    HistoryPoint,
    QuoteResult,
    SymbolSearchResult,
)


_BASE_URL = "https://api.frankfurter.dev/v1"


class FrankfurterProvider(MarketDataProvider):
    """ECB reference rates; currency pairs only."""

    name = "FRANKFURTER"

    async def search_symbol(self, ticker: str, market: str | None) -> SymbolSearchResult | None:
        raise ProviderError("Frankfurter only supports FX rates")

    async def get_quote(self, ticker: str, market: str | None) -> QuoteResult:
        raise ProviderError("Frankfurter only supports FX rates")

    async def get_history(
        self,
        ticker: str,
        market: str | None,
        date_from: datetime.date | None,
        date_to: datetime.date | None,
        interval: str = "1d",
    ) -> list[HistoryPoint]:
        raise ProviderError("Frankfurter only supports FX rates")

    async def get_exchange_rate(self, base: str, quote: str) -> ExchangeRateResult:
        url = f"{_BASE_URL}/latest?{urlencode({'base': base, 'symbols': quote})}"
        payload = await fetch_json(url)
        if not isinstance(payload, dict) or not isinstance(payload.get("rates"), dict):
            raise ProviderError("FX rate fetch failed", payload)

        rate = parse_float(payload["rates"].get(quote))
        if rate is None:
            raise ProviderError("Invalid FX rate from provider", payload)
        return ExchangeRateResult(rate=rate, timestamp=payload.get("date"))
