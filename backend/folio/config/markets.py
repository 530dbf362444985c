from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field


MarketRegion = Literal["US", "UK", "EU", "CRYPTO"]
AssetType = Literal["equity", "crypto"]

DEFAULT_CURRENCY = "USD"


class MarketDefinition(BaseModel):
    code: str
    label: str
    region: MarketRegion
    asset_type: AssetType
    provider_exchange: str
    currency: str
    default_quote: str | None = None
    aliases: list[str] = Field(default_factory=list)
    notes: str | None = None


SUPPORTED_MARKETS: list[MarketDefinition] = [
    MarketDefinition(
        code="NASDAQ",
        label="NASDAQ (US)",
        region="US",
        asset_type="equity",
        provider_exchange="NASDAQ",
        currency="USD",
    ),
    MarketDefinition(
        code="NYSE",
        label="NYSE (US)",
        region="US",
        asset_type="equity",
        provider_exchange="NYSE",
        currency="USD",
    ),
    MarketDefinition(
        code="AMEX",
        label="NYSE American (AMEX)",
        region="US",
        asset_type="equity",
        provider_exchange="AMEX",
        currency="USD",
    ),
    MarketDefinition(
        code="XLON",
        label="London Stock Exchange (XLON)",
        region="UK",
        asset_type="equity",
        provider_exchange="XLON",
        currency="GBP",
        aliases=["LSE"],
    ),
    MarketDefinition(
        code="XWAR",
        label="Warsaw Stock Exchange (XWAR/GPW)",
        region="EU",
        asset_type="equity",
        provider_exchange="XWAR",
        currency="PLN",
        aliases=["GPW"],
    ),
    MarketDefinition(
        code="XETR",
        label="XETRA (Germany)",
        region="EU",
        asset_type="equity",
        provider_exchange="XETR",
        currency="EUR",
    ),
    MarketDefinition(
        code="XPAR",
        label="Euronext Paris (XPAR)",
        region="EU",
        asset_type="equity",
        provider_exchange="XPAR",
        currency="EUR",
    ),
    MarketDefinition(
        code="XAMS",
        label="Euronext Amsterdam (XAMS)",
        region="EU",
        asset_type="equity",
        provider_exchange="XAMS",
        currency="EUR",
    ),
    MarketDefinition(
        code="XBRU",
        label="Euronext Brussels (XBRU)",
        region="EU",
        asset_type="equity",
        provider_exchange="XBRU",
        currency="EUR",
    ),
    MarketDefinition(
        code="XMIL",
        label="Euronext Milan (XMIL)",
        region="EU",
        asset_type="equity",
        provider_exchange="XMIL",
        currency="EUR",
    ),
    MarketDefinition(
        code="XMAD",
        label="Bolsa de Madrid (XMAD)",
        region="EU",
        asset_type="equity",
        provider_exchange="XMAD",
        currency="EUR",
    ),
    MarketDefinition(
        code="XLIS",
        label="Euronext Lisbon (XLIS)",
        region="EU",
        asset_type="equity",
        provider_exchange="XLIS",
        currency="EUR",
    ),
    MarketDefinition(
        code="BINANCE",
        label="Binance (Crypto)",
        region="CRYPTO",
        asset_type="crypto",
        provider_exchange="Binance",
        currency="USD",
        default_quote="USDT",
        notes="Use pairs like BTC/USDT; BTC will default to BTC/USDT.",
    ),
]


def _build_index(markets: list[MarketDefinition]) -> dict[str, MarketDefinition]:
    index: dict[str, MarketDefinition] = {}
    for market in markets:
        index[market.code.upper()] = market
        for alias in market.aliases:
            index[alias.upper()] = market
    return index


_MARKET_INDEX = _build_index(SUPPORTED_MARKETS)


def get_market_definition(market_code: str) -> MarketDefinition | None:
    return _MARKET_INDEX.get(market_code.strip().upper())


def get_supported_markets() -> list[MarketDefinition]:
    return SUPPORTED_MARKETS


def resolve_market_currency(market_code: str) -> str:
    """Trading currency of a market; the single lookup used by quote, history and valuation paths."""
    definition = get_market_definition(market_code)
    if definition is None:
        return DEFAULT_CURRENCY
    return definition.currency


def resolve_exchange(market_code: str) -> str:
    definition = get_market_definition(market_code)
    if definition is None:
        return market_code
    return definition.provider_exchange
