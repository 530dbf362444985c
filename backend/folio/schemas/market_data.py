from __future__ import annotations

import datetime

from pydantic import BaseModel, Field

from folio.config.markets import MarketDefinition
from folio.schemas.provider import HistoryPoint, SymbolSearchResult


class LatestQuote(BaseModel):
    price: float
    currency: str | None = None
    as_of: str
    source: str
    # True whenever the value did not come from a live provider call.
    cached: bool


class HistoryResult(BaseModel):
    rows: list[HistoryPoint] = Field(default_factory=list)
    source: str


class NormalizedSymbol(BaseModel):
    ticker: str
    market: str


class SymbolValidation(BaseModel):
    valid: bool
    source: str
    symbol: SymbolSearchResult | None = None
    normalized: NormalizedSymbol | None = None
    reason: str | None = None
    supported_markets: list[MarketDefinition] | None = None


class PerformancePoint(BaseModel):
    date: datetime.date
    value: float


class PerformanceSeries(BaseModel):
    series: list[PerformancePoint] = Field(default_factory=list)
    date_from: datetime.date | None = Field(default=None, serialization_alias="from")
    date_to: datetime.date | None = Field(default=None, serialization_alias="to")


class HoldingWithQuote(BaseModel):
    id: int
    portfolio_id: int
    ticker: str
    market: str
    buy_date: datetime.date
    # Converted to the requested base currency.
    buy_price: float
    quantity: float
    company_name: str | None = None
    latest_quote: LatestQuote
    market_value: float
    cost_basis: float
    unrealized_pnl: float
