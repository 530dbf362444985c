from __future__ import annotations

import datetime
from typing import Any
from urllib.parse import urlencode

from folio.providers.base import (
    MarketDataProvider,
    ProviderError,
    fetch_json,
    parse_date,
    parse_float,
)
from folio.schemas.provider import (
    ExchangeRateResult,
    HistoryPoint,
    QuoteResult,
    SymbolSearchResult,
)


_BASE_URL = "https://api.twelvedata.com"


def _map_interval(interval: str | None) -> str:
    if not interval or interval == "1d":
        return "1day"
    return interval


def _parse_error(payload: Any) -> str:
    if not payload:
        return "Unknown error"
    if isinstance(payload, str):
        return payload
    if isinstance(payload, dict):
        return payload.get("message") or payload.get("error") or "Unknown error"
    return "Unknown error"


def _normalize_exchange(market: str | None) -> str | None:
    if not market:
        return None
    if market.upper() == "BINANCE":
        return "Binance"
    return market


def _is_crypto_request(ticker: str, market: str | None) -> bool:
    return "/" in ticker or (market or "").upper() == "BINANCE"


def _ensure_ok(payload: Any, message: str) -> dict:
    if not isinstance(payload, dict) or payload.get("status") == "error":
        raise ProviderError(message, _parse_error(payload))
    return payload


class TwelveDataProvider(MarketDataProvider):
    """Keyed global provider covering equities, crypto pairs and FX."""

    name = "TWELVE_DATA"
    name_priority = 0

    def __init__(self, api_key: str | None) -> None:
        self.api_key = api_key

    def _build_url(self, path: str, params: dict[str, str | None]) -> str:
        query = {key: value for key, value in params.items() if value is not None}
        query["apikey"] = self.api_key or ""
        return f"{_BASE_URL}/{path}?{urlencode(query)}"

    async def search_symbol(self, ticker: str, market: str | None) -> SymbolSearchResult | None:
        if not ticker:
            raise ProviderError("Ticker is required")
        if _is_crypto_request(ticker, market):
            return await self._search_crypto(ticker, market)

        url = self._build_url(
            "symbol_search", {"symbol": ticker, "exchange": _normalize_exchange(market)}
        )
        payload = _ensure_ok(await fetch_json(url), "Symbol search failed")
        matches = payload.get("data") if isinstance(payload.get("data"), list) else []

        normalized_ticker = ticker.upper()
        normalized_market = market.upper() if market else None
        for item in matches:
            if not isinstance(item, dict):
                continue
            if (item.get("symbol") or "").upper() != normalized_ticker:
                continue
            if normalized_market and (item.get("exchange") or "").upper() != normalized_market:
                continue
            return SymbolSearchResult(
                ticker=item.get("symbol") or ticker,
                market=item.get("exchange") or market or "",
                name=item.get("instrument_name") or item.get("name") or None,
                currency=item.get("currency") or None,
                exchange=item.get("exchange") or None,
            )
        return None

    async def _search_crypto(self, ticker: str, market: str | None) -> SymbolSearchResult | None:
        base, _, quote = ticker.partition("/")
        url = self._build_url(
            "cryptocurrencies",
            {
                "symbol": f"{base}/{quote}" if quote else None,
                "currency_base": base or None,
                "currency_quote": quote or None,
                "exchange": _normalize_exchange(market),
            },
        )
        payload = _ensure_ok(await fetch_json(url), "Crypto search failed")
        matches = payload.get("data") if isinstance(payload.get("data"), list) else []

        normalized = (f"{base}/{quote}" if quote else base).upper()
        for item in matches:
            if not isinstance(item, dict):
                continue
            if (item.get("symbol") or "").upper() != normalized:
                continue
            return SymbolSearchResult(
                ticker=item.get("symbol") or normalized,
                market=(market or "BINANCE").upper(),
                name=item.get("currency_base") or None,
                currency=item.get("currency_quote") or None,
                exchange=_normalize_exchange(market),
            )
        return None

    async def get_quote(self, ticker: str, market: str | None) -> QuoteResult:
        if not ticker:
            raise ProviderError("Ticker is required")
        url = self._build_url("quote", {"symbol": ticker, "exchange": _normalize_exchange(market)})
        payload = _ensure_ok(await fetch_json(url), "Quote fetch failed")

        price = parse_float(payload.get("price"))
        if price is None:
            raise ProviderError("Invalid price from provider", payload)

        as_of = payload.get("datetime") or datetime.datetime.now(datetime.UTC).isoformat()
        return QuoteResult(price=price, currency=payload.get("currency") or None, as_of=as_of)

    async def get_history(
        self,
        ticker: str,
        market: str | None,
        date_from: datetime.date | None,
        date_to: datetime.date | None,
        interval: str = "1d",
    ) -> list[HistoryPoint]:
        if not ticker:
            raise ProviderError("Ticker is required")
        url = self._build_url(
            "time_series",
            {
                "symbol": ticker,
                "exchange": _normalize_exchange(market),
                "interval": _map_interval(interval),
                "start_date": date_from.isoformat() if date_from else None,
                "end_date": date_to.isoformat() if date_to else None,
                "outputsize": "5000",
            },
        )
        payload = _ensure_ok(await fetch_json(url), "History fetch failed")
        values = payload.get("values") if isinstance(payload.get("values"), list) else []
        meta = payload.get("meta") if isinstance(payload.get("meta"), dict) else {}
        currency = meta.get("currency") or None

        points: list[HistoryPoint] = []
        for row in values:
            if not isinstance(row, dict):
                continue
            row_date = parse_date(row.get("datetime"))
            price = parse_float(row.get("close"))
            if row_date is None or price is None:
                continue
            points.append(HistoryPoint(date=row_date, price=price, currency=currency))
        # time_series answers newest first.
        points.sort(key=lambda point: point.date)
        return points

    async def get_exchange_rate(self, base: str, quote: str) -> ExchangeRateResult:
        url = self._build_url("exchange_rate", {"symbol": f"{base}/{quote}"})
        payload = _ensure_ok(await fetch_json(url), "FX rate fetch failed")
        rate = parse_float(payload.get("rate"))
        if rate is None:
            raise ProviderError("Invalid FX rate from provider", payload)
        return ExchangeRateResult(rate=rate, timestamp=payload.get("timestamp"))
