from __future__ import annotations

import datetime

from pydantic import BaseModel


class SymbolSearchResult(BaseModel):
    ticker: str
    market: str
    name: str | None = None
    currency: str | None = None
    exchange: str | None = None


class QuoteResult(BaseModel):
    price: float
    currency: str | None = None
    as_of: str


class HistoryPoint(BaseModel):
    date: datetime.date
    price: float
    currency: str | None = None


class ExchangeRateResult(BaseModel):
    rate: float
    timestamp: int | str | None = None
