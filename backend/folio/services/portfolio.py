"""Portfolio valuation: holdings enrichment and the daily performance curve.

Holdings are read-only here. Per-holding provider work fans out concurrently;
a holding whose data cannot be fetched is valued at its buy price instead of
failing the request.
"""

from __future__ import annotations

import asyncio
import datetime
import logging
from collections.abc import Iterable, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from folio.config.markets import DEFAULT_CURRENCY, resolve_market_currency
from folio.config.settings import settings
from folio.db.models import Holding, Portfolio
from folio.providers.base import MarketDataProvider, ProviderError
from folio.schemas.market_data import (
    HoldingWithQuote,
    LatestQuote,
    PerformancePoint,
    PerformanceSeries,
)
from folio.services.fx import get_fx_rate
from folio.services.market_data import DAILY_INTERVAL, get_history, get_latest_quote
from folio.services.validation import get_cached_symbol_name, resolve_symbol_name

logger = logging.getLogger(__name__)

BUY_PRICE_FALLBACK = "BUY_PRICE_FALLBACK"

DateLike = datetime.date | datetime.datetime | str


def normalize_date(value: DateLike) -> datetime.date:
    """Calendar date in UTC for a date, datetime or ISO string."""
    if isinstance(value, str):
        value = datetime.datetime.fromisoformat(value.strip())
    if isinstance(value, datetime.datetime):
        if value.tzinfo is not None:
            value = value.astimezone(datetime.UTC)
        return value.date()
    return value


def today_utc() -> datetime.date:
    return datetime.datetime.now(datetime.UTC).date()


def create_date_range(date_from: datetime.date, date_to: datetime.date) -> list[datetime.date]:
    days = (date_to - date_from).days
    return [date_from + datetime.timedelta(days=offset) for offset in range(days + 1)]


async def list_holdings(
    session_factory: async_sessionmaker[AsyncSession], portfolio_id: int
) -> list[Holding]:
    async with session_factory() as session:
        result = await session.execute(
            select(Holding)
            .where(Holding.portfolio_id == portfolio_id)
            .order_by(Holding.created_at.desc(), Holding.id.desc())
        )
        return list(result.scalars().all())


async def get_portfolio_base_currency(
    session_factory: async_sessionmaker[AsyncSession], portfolio_id: int
) -> str:
    async with session_factory() as session:
        portfolio = await session.get(Portfolio, portfolio_id)
    if portfolio is None or not portfolio.base_currency:
        return DEFAULT_CURRENCY
    return portfolio.base_currency.upper()


async def _resolve_rates(
    session_factory: async_sessionmaker[AsyncSession],
    providers: Sequence[MarketDataProvider],
    currencies: Iterable[str],
    base_currency: str,
) -> dict[str, float]:
    """One FX lookup per distinct currency for the whole request."""
    distinct = sorted({currency.upper() for currency in currencies})
    rates = await asyncio.gather(
        *(get_fx_rate(session_factory, providers, currency, base_currency) for currency in distinct)
    )
    return dict(zip(distinct, rates))


async def list_holdings_with_quotes(
    session_factory: async_sessionmaker[AsyncSession],
    providers: Sequence[MarketDataProvider],
    portfolio_id: int,
    base_currency: str,
    force_refresh: bool = False,
) -> list[HoldingWithQuote]:
    holdings = await list_holdings(session_factory, portfolio_id)
    base_currency = base_currency.upper()
    rates = await _resolve_rates(
        session_factory,
        providers,
        (resolve_market_currency(holding.market) for holding in holdings),
        base_currency,
    )
    name_lookups_remaining = settings.name_lookup_limit

    async def enrich(holding: Holding) -> HoldingWithQuote:
        nonlocal name_lookups_remaining
        fx_rate = rates[resolve_market_currency(holding.market)]

        company_name = await get_cached_symbol_name(session_factory, holding.ticker, holding.market)
        if not company_name and name_lookups_remaining > 0:
            name_lookups_remaining -= 1
            try:
                company_name = await resolve_symbol_name(
                    session_factory, providers, holding.ticker, holding.market
                )
            except ProviderError as exc:
                logger.warning(f"Name lookup failed for {holding.ticker}@{holding.market}: {exc}")
                company_name = None

        try:
            latest = await get_latest_quote(
                session_factory, providers, holding.ticker, holding.market, force_refresh
            )
            quote = LatestQuote(
                price=latest.price * fx_rate,
                currency=base_currency,
                as_of=latest.as_of,
                source=latest.source,
                cached=latest.cached,
            )
        except ProviderError as exc:
            logger.warning(f"No quote for {holding.ticker}@{holding.market}, using buy price: {exc}")
            quote = LatestQuote(
                price=holding.buy_price * fx_rate,
                currency=base_currency,
                as_of=holding.buy_date.isoformat(),
                source=BUY_PRICE_FALLBACK,
                cached=True,
            )

        market_value = quote.price * holding.quantity
        cost_basis = holding.buy_price * holding.quantity * fx_rate
        return HoldingWithQuote(
            id=holding.id,
            portfolio_id=holding.portfolio_id,
            ticker=holding.ticker,
            market=holding.market,
            buy_date=holding.buy_date,
            buy_price=holding.buy_price * fx_rate,
            quantity=holding.quantity,
            company_name=company_name,
            latest_quote=quote,
            market_value=market_value,
            cost_basis=cost_basis,
            unrealized_pnl=market_value - cost_basis,
        )

    return list(await asyncio.gather(*(enrich(holding) for holding in holdings)))


async def _load_converted_prices(
    session_factory: async_sessionmaker[AsyncSession],
    providers: Sequence[MarketDataProvider],
    holding: Holding,
    fx_rate: float,
    date_from: datetime.date,
    date_to: datetime.date,
    force_refresh: bool,
) -> dict[datetime.date, float]:
    """Base-currency closes by date, anchored at the buy price on the first owned day."""
    anchor_date = max(holding.buy_date, date_from)
    anchor_price = holding.buy_price * fx_rate
    try:
        history = await get_history(
            session_factory,
            providers,
            holding.ticker,
            holding.market,
            date_from,
            date_to,
            interval=DAILY_INTERVAL,
            force_refresh=force_refresh,
        )
    except ProviderError as exc:
        logger.warning(f"No history for {holding.ticker}@{holding.market}, using buy price: {exc}")
        return {anchor_date: anchor_price}

    prices = {row.date: row.price * fx_rate for row in history.rows}
    if not history.rows or history.rows[0].date > anchor_date:
        prices[anchor_date] = anchor_price
    return prices


async def get_performance_series(
    session_factory: async_sessionmaker[AsyncSession],
    providers: Sequence[MarketDataProvider],
    portfolio_id: int,
    date_from: DateLike | None = None,
    date_to: DateLike | None = None,
    base_currency: str | None = None,
    force_refresh: bool = False,
) -> PerformanceSeries:
    """Dense daily portfolio value in ``base_currency`` over ``[date_from, date_to]``.

    Missing closes are forward-filled per holding; a holding with no observed
    close yet is valued at its buy price. A holding counts from its buy date on.
    """
    holdings = await list_holdings(session_factory, portfolio_id)
    if not holdings:
        return PerformanceSeries(
            series=[],
            date_from=normalize_date(date_from) if date_from else None,
            date_to=normalize_date(date_to) if date_to else None,
        )

    if base_currency is None:
        base_currency = await get_portfolio_base_currency(session_factory, portfolio_id)
    base_currency = base_currency.upper()

    start = normalize_date(date_from or min(holding.buy_date for holding in holdings))
    end = normalize_date(date_to or today_utc())
    dates = create_date_range(start, end)

    rates = await _resolve_rates(
        session_factory,
        providers,
        (resolve_market_currency(holding.market) for holding in holdings),
        base_currency,
    )
    holding_rates = {
        holding.id: rates[resolve_market_currency(holding.market)] for holding in holdings
    }

    price_maps = await asyncio.gather(
        *(
            _load_converted_prices(
                session_factory,
                providers,
                holding,
                holding_rates[holding.id],
                start,
                end,
                force_refresh,
            )
            for holding in holdings
        )
    )
    prices_by_holding = {holding.id: prices for holding, prices in zip(holdings, price_maps)}

    series: list[PerformancePoint] = []
    last_known: dict[int, float] = {}
    for day in dates:
        total = 0.0
        for holding in holdings:
            if day < holding.buy_date:
                continue
            prices = prices_by_holding[holding.id]
            if day in prices:
                last_known[holding.id] = prices[day]
            price = last_known.get(holding.id, holding.buy_price * holding_rates[holding.id])
            total += price * holding.quantity
        series.append(PerformancePoint(date=day, value=total))

    return PerformanceSeries(series=series, date_from=start, date_to=end)
