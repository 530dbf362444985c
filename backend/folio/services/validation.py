from __future__ import annotations

import datetime
import logging
from collections.abc import Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from folio.config.markets import get_market_definition, get_supported_markets
from folio.config.name_overrides import get_name_override
from folio.config.settings import settings
from folio.db.models import MarketSymbol, utcnow
from folio.db.upsert import upsert_rows
from folio.providers.base import MarketDataProvider, ProviderError
from folio.providers.chain import adapt_providers_for_market, order_providers_for_names
from folio.schemas.market_data import NormalizedSymbol, SymbolValidation
from folio.schemas.provider import SymbolSearchResult

logger = logging.getLogger(__name__)

OVERRIDE_PROVIDER = "OVERRIDE"
PAIR_SEPARATOR = "/"


def normalize_ticker(ticker: str, market: str) -> str:
    """Crypto tickers without an explicit pair get the market's default quote currency."""
    definition = get_market_definition(market)
    if definition is not None and definition.asset_type == "crypto":
        if PAIR_SEPARATOR not in ticker:
            return f"{ticker}{PAIR_SEPARATOR}{definition.default_quote or 'USD'}"
    return ticker


async def _get_latest_symbol(session: AsyncSession, ticker: str, market: str) -> MarketSymbol | None:
    result = await session.execute(
        select(MarketSymbol)
        .where(MarketSymbol.ticker == ticker, MarketSymbol.market == market)
        .order_by(MarketSymbol.last_verified_at.desc())
        .limit(1)
    )
    return result.scalars().first()


async def get_cached_validation(session: AsyncSession, ticker: str, market: str) -> MarketSymbol | None:
    row = await _get_latest_symbol(session, ticker, market)
    if row is None:
        return None
    cutoff = utcnow() - datetime.timedelta(days=settings.validation_ttl_days)
    if row.last_verified_at < cutoff:
        return None
    return row


async def cache_validation(
    session: AsyncSession,
    ticker: str,
    market: str,
    name: str | None,
    currency: str | None,
    exchange: str | None,
    provider: str,
) -> str | None:
    """Upsert a verified symbol and return the display name now on record."""
    existing = await _get_latest_symbol(session, ticker, market)
    # A name already on record is never replaced.
    name_to_store = existing.name if existing is not None and existing.name else name
    await upsert_rows(
        session,
        MarketSymbol,
        [
            {
                "ticker": ticker,
                "market": market,
                "name": name_to_store,
                "currency": currency,
                "exchange": exchange,
                "provider": provider,
                "last_verified_at": utcnow(),
            }
        ],
        index_elements=("ticker", "market", "provider"),
    )
    await session.commit()
    return name_to_store


def _symbol_from_row(row: MarketSymbol) -> SymbolSearchResult:
    return SymbolSearchResult(
        ticker=row.ticker,
        market=row.market,
        name=row.name,
        currency=row.currency,
        exchange=row.exchange,
    )


async def validate_symbol(
    session_factory: async_sessionmaker[AsyncSession],
    providers: Sequence[MarketDataProvider],
    ticker: str,
    market: str,
) -> SymbolValidation:
    definition = get_market_definition(market)
    if definition is None:
        return SymbolValidation(
            valid=False,
            source="LOCAL",
            reason="unsupported_market",
            supported_markets=get_supported_markets(),
        )

    normalized_market = definition.code.upper()
    normalized_ticker = normalize_ticker(ticker.strip().upper(), normalized_market)
    normalized = NormalizedSymbol(ticker=normalized_ticker, market=normalized_market)

    async with session_factory() as session:
        cached = await get_cached_validation(session, normalized_ticker, normalized_market)
    if cached is not None:
        return SymbolValidation(
            valid=True, source="CACHE", symbol=_symbol_from_row(cached), normalized=normalized
        )

    last_provider = "UNKNOWN"
    for provider in adapt_providers_for_market(providers, normalized_market):
        last_provider = provider.name
        try:
            result = await provider.search_symbol(normalized_ticker, definition.provider_exchange)
        except ProviderError as exc:
            logger.warning(f"Symbol search on {provider.name} failed for {normalized_ticker}: {exc}")
            continue
        if result is None:
            continue

        symbol = result.model_copy(
            update={"ticker": result.ticker.upper(), "market": normalized_market}
        )
        async with session_factory() as session:
            stored_name = await cache_validation(
                session,
                symbol.ticker,
                normalized_market,
                name=symbol.name,
                currency=symbol.currency,
                exchange=symbol.exchange,
                provider=provider.name,
            )
        symbol = symbol.model_copy(update={"name": stored_name})
        return SymbolValidation(
            valid=True, source=provider.name, symbol=symbol, normalized=normalized
        )

    return SymbolValidation(
        valid=False, source=last_provider, reason="not_found", normalized=normalized
    )


async def _warm_name_override(
    session: AsyncSession, ticker: str, market: str
) -> str | None:
    override = get_name_override(market, ticker)
    if not override:
        return None
    existing = await _get_latest_symbol(session, ticker, market)
    if existing is not None and existing.name:
        return None
    definition = get_market_definition(market)
    await upsert_rows(
        session,
        MarketSymbol,
        [
            {
                "ticker": ticker,
                "market": market,
                "name": override,
                "currency": definition.currency if definition else None,
                "exchange": definition.provider_exchange if definition else None,
                "provider": OVERRIDE_PROVIDER,
                "last_verified_at": utcnow(),
            }
        ],
        index_elements=("ticker", "market", "provider"),
    )
    await session.commit()
    return override


async def get_cached_symbol_name(
    session_factory: async_sessionmaker[AsyncSession], ticker: str, market: str
) -> str | None:
    """Any cached name regardless of age, else the override table; never calls a provider."""
    definition = get_market_definition(market)
    normalized_market = definition.code.upper() if definition else market.strip().upper()
    normalized_ticker = normalize_ticker(ticker.strip().upper(), normalized_market)

    async with session_factory() as session:
        row = await _get_latest_symbol(session, normalized_ticker, normalized_market)
        if row is not None and row.name:
            return row.name
        return await _warm_name_override(session, normalized_ticker, normalized_market)


async def resolve_symbol_name(
    session_factory: async_sessionmaker[AsyncSession],
    providers: Sequence[MarketDataProvider],
    ticker: str,
    market: str,
) -> str | None:
    definition = get_market_definition(market)
    if definition is None:
        return None

    normalized_market = definition.code.upper()
    normalized_ticker = normalize_ticker(ticker.strip().upper(), normalized_market)

    async with session_factory() as session:
        cached = await get_cached_validation(session, normalized_ticker, normalized_market)
        if cached is not None and cached.name:
            return cached.name
        override = await _warm_name_override(session, normalized_ticker, normalized_market)
    if override:
        return override

    for provider in order_providers_for_names(providers):
        try:
            result = await provider.search_symbol(normalized_ticker, definition.provider_exchange)
        except ProviderError as exc:
            logger.warning(f"Name lookup on {provider.name} failed for {normalized_ticker}: {exc}")
            continue
        if result is None or not result.name:
            continue

        async with session_factory() as session:
            stored_name = await cache_validation(
                session,
                result.ticker.upper(),
                normalized_market,
                name=result.name,
                currency=result.currency,
                exchange=result.exchange,
                provider=provider.name,
            )
        return stored_name

    return None
