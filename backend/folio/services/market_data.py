"""Cache-aside access to latest quotes and daily price histories.

Both caches live in the durable store. Quotes carry a short TTL and degrade to
stale rows and then to the newest cached history close when every provider
fails. Histories are served from the store only when the cached rows cover the
whole requested window; anything less triggers a full refetch.
"""

from __future__ import annotations

import datetime
import logging
from collections.abc import Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from folio.config.markets import resolve_exchange
from folio.config.settings import settings
from folio.db.models import PriceHistory, QuoteCache, utcnow
from folio.db.upsert import upsert_rows
from folio.providers.base import MarketDataProvider, ProviderError
from folio.providers.chain import adapt_providers_for_market, fetch_with_providers
from folio.schemas.market_data import HistoryResult, LatestQuote
from folio.schemas.provider import HistoryPoint

logger = logging.getLogger(__name__)

DAILY_INTERVAL = "1d"
CACHE_SOURCE = "CACHE"
HISTORY_SOURCE = "HISTORY"


def _quote_from_row(row: QuoteCache) -> LatestQuote:
    return LatestQuote(
        price=row.price,
        currency=row.currency,
        as_of=row.as_of,
        source=row.source,
        cached=True,
    )


async def _get_fresh_quote(session: AsyncSession, ticker: str, market: str) -> QuoteCache | None:
    result = await session.execute(
        select(QuoteCache)
        .where(
            QuoteCache.ticker == ticker,
            QuoteCache.market == market,
            QuoteCache.expires_at > utcnow(),
        )
        .order_by(QuoteCache.expires_at.desc())
        .limit(1)
    )
    return result.scalars().first()


async def _get_stale_quote(session: AsyncSession, ticker: str, market: str) -> QuoteCache | None:
    result = await session.execute(
        select(QuoteCache)
        .where(QuoteCache.ticker == ticker, QuoteCache.market == market)
        .order_by(QuoteCache.as_of.desc(), QuoteCache.fetched_at.desc())
        .limit(1)
    )
    return result.scalars().first()


async def _cache_quote(
    session: AsyncSession,
    ticker: str,
    market: str,
    price: float,
    currency: str | None,
    as_of: str,
    source: str,
) -> None:
    now = utcnow()
    await upsert_rows(
        session,
        QuoteCache,
        [
            {
                "ticker": ticker,
                "market": market,
                "price": price,
                "currency": currency,
                "as_of": as_of,
                "source": source,
                "fetched_at": now,
                "expires_at": now + datetime.timedelta(seconds=settings.quote_ttl_seconds),
            }
        ],
        index_elements=("ticker", "market", "source", "as_of"),
    )
    await session.commit()


async def get_latest_history_price(session: AsyncSession, ticker: str, market: str) -> LatestQuote | None:
    result = await session.execute(
        select(PriceHistory)
        .where(
            PriceHistory.ticker == ticker,
            PriceHistory.market == market,
            PriceHistory.interval == DAILY_INTERVAL,
        )
        .order_by(PriceHistory.date.desc(), PriceHistory.fetched_at.desc())
        .limit(1)
    )
    row = result.scalars().first()
    if row is None:
        return None
    return LatestQuote(
        price=row.price,
        currency=row.currency,
        as_of=row.date.isoformat(),
        source=row.source or HISTORY_SOURCE,
        cached=True,
    )


async def get_latest_quote(
    session_factory: async_sessionmaker[AsyncSession],
    providers: Sequence[MarketDataProvider],
    ticker: str,
    market: str,
    force_refresh: bool = False,
) -> LatestQuote:
    """Latest price: fresh cache, live chain, stale cache, newest history close.

    Raises the chain's ProviderError only when none of those yield a price.
    """
    if not force_refresh:
        async with session_factory() as session:
            cached = await _get_fresh_quote(session, ticker, market)
        if cached is not None:
            logger.debug(f"Quote cache hit for {ticker}@{market}")
            return _quote_from_row(cached)

    market_providers = adapt_providers_for_market(providers, market)
    exchange = resolve_exchange(market)

    try:
        provider, result = await fetch_with_providers(
            market_providers, lambda p: p.get_quote(ticker, exchange)
        )
    except ProviderError as exc:
        async with session_factory() as session:
            stale = await _get_stale_quote(session, ticker, market)
            if stale is not None:
                logger.warning(f"Serving stale quote for {ticker}@{market}: {exc}")
                return _quote_from_row(stale)
            derived = await get_latest_history_price(session, ticker, market)
        if derived is not None:
            logger.warning(f"Serving history-derived quote for {ticker}@{market}: {exc}")
            return derived
        raise

    async with session_factory() as session:
        await _cache_quote(
            session,
            ticker,
            market,
            price=result.price,
            currency=result.currency,
            as_of=result.as_of,
            source=provider.name,
        )

    return LatestQuote(
        price=result.price,
        currency=result.currency,
        as_of=result.as_of,
        source=provider.name,
        cached=False,
    )


async def get_history_rows(
    session: AsyncSession,
    ticker: str,
    market: str,
    interval: str,
    date_from: datetime.date,
    date_to: datetime.date,
) -> list[HistoryPoint]:
    """Cached rows inside ``[date_from, date_to]``, one per date, ascending."""
    result = await session.execute(
        select(PriceHistory)
        .where(
            PriceHistory.ticker == ticker,
            PriceHistory.market == market,
            PriceHistory.interval == interval,
            PriceHistory.date >= date_from,
            PriceHistory.date <= date_to,
        )
        .order_by(PriceHistory.date, PriceHistory.fetched_at)
    )
    # Several sources may cover one date; the most recently fetched wins.
    by_date: dict[datetime.date, HistoryPoint] = {}
    for row in result.scalars():
        by_date[row.date] = HistoryPoint(date=row.date, price=row.price, currency=row.currency)
    return list(by_date.values())


async def get_cached_history(
    session: AsyncSession,
    ticker: str,
    market: str,
    interval: str,
    date_from: datetime.date,
    date_to: datetime.date,
) -> list[HistoryPoint] | None:
    rows = await get_history_rows(session, ticker, market, interval, date_from, date_to)
    if not rows:
        return None
    if rows[0].date <= date_from and rows[-1].date >= date_to:
        return rows
    return None


async def _cache_history_rows(
    session: AsyncSession,
    ticker: str,
    market: str,
    interval: str,
    rows: Sequence[HistoryPoint],
    source: str,
) -> None:
    now = utcnow()
    await upsert_rows(
        session,
        PriceHistory,
        [
            {
                "ticker": ticker,
                "market": market,
                "interval": interval,
                "price": row.price,
                "currency": row.currency,
                "date": row.date,
                "source": source,
                "fetched_at": now,
            }
            for row in rows
        ],
        index_elements=("ticker", "market", "source", "interval", "date"),
    )
    await session.commit()


async def get_history(
    session_factory: async_sessionmaker[AsyncSession],
    providers: Sequence[MarketDataProvider],
    ticker: str,
    market: str,
    date_from: datetime.date,
    date_to: datetime.date,
    interval: str = DAILY_INTERVAL,
    force_refresh: bool = False,
) -> HistoryResult:
    if not force_refresh:
        async with session_factory() as session:
            cached = await get_cached_history(session, ticker, market, interval, date_from, date_to)
        if cached is not None:
            logger.debug(f"History cache hit for {ticker}@{market} {date_from}..{date_to}")
            return HistoryResult(rows=cached, source=CACHE_SOURCE)

    market_providers = adapt_providers_for_market(providers, market)
    exchange = resolve_exchange(market)

    provider, result = await fetch_with_providers(
        market_providers,
        lambda p: p.get_history(ticker, exchange, date_from, date_to, interval),
    )

    async with session_factory() as session:
        await _cache_history_rows(session, ticker, market, interval, result, provider.name)
        rows = await get_cached_history(session, ticker, market, interval, date_from, date_to)

    logger.debug(f"Cached {len(result)} history rows for {ticker}@{market} from {provider.name}")
    return HistoryResult(rows=rows if rows is not None else list(result), source=provider.name)
