from __future__ import annotations

import datetime
import logging
from collections.abc import Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from folio.config.settings import settings
from folio.db.models import FxRate, utcnow
from folio.db.upsert import upsert_rows
from folio.providers.base import MarketDataProvider, ProviderError
from folio.providers.chain import fetch_with_providers, fx_providers

logger = logging.getLogger(__name__)


async def _get_cached_rate(session: AsyncSession, base: str, quote: str) -> FxRate | None:
    result = await session.execute(
        select(FxRate)
        .where(FxRate.base == base, FxRate.quote == quote, FxRate.expires_at > utcnow())
        .order_by(FxRate.expires_at.desc())
        .limit(1)
    )
    return result.scalars().first()


async def _get_stale_rate(session: AsyncSession, base: str, quote: str) -> FxRate | None:
    result = await session.execute(
        select(FxRate)
        .where(FxRate.base == base, FxRate.quote == quote)
        .order_by(FxRate.fetched_at.desc())
        .limit(1)
    )
    return result.scalars().first()


async def _cache_rate(session: AsyncSession, base: str, quote: str, rate: float, source: str) -> None:
    now = utcnow()
    await upsert_rows(
        session,
        FxRate,
        [
            {
                "base": base,
                "quote": quote,
                "rate": rate,
                "source": source,
                "fetched_at": now,
                "expires_at": now + datetime.timedelta(seconds=settings.fx_ttl_seconds),
            }
        ],
        index_elements=("base", "quote", "source"),
    )
    await session.commit()


async def get_fx_rate(
    session_factory: async_sessionmaker[AsyncSession],
    providers: Sequence[MarketDataProvider],
    base: str,
    quote: str,
) -> float:
    """Units of ``quote`` per unit of ``base``."""
    base = base.upper()
    quote = quote.upper()
    if base == quote:
        return 1.0

    async with session_factory() as session:
        cached = await _get_cached_rate(session, base, quote)
    if cached is not None:
        return cached.rate

    try:
        provider, result = await fetch_with_providers(
            fx_providers(providers), lambda p: p.get_exchange_rate(base, quote)
        )
    except ProviderError as exc:
        async with session_factory() as session:
            stale = await _get_stale_rate(session, base, quote)
        if stale is None:
            raise
        logger.warning(f"Serving stale FX rate {base}/{quote}: {exc}")
        return stale.rate

    async with session_factory() as session:
        await _cache_rate(session, base, quote, result.rate, provider.name)
    return result.rate
