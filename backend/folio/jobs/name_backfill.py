from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence

from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from folio.config.markets import get_market_definition
from folio.db.models import Holding, MarketSymbol
from folio.db.session import AsyncSessionLocal
from folio.providers.base import MarketDataProvider, ProviderError
from folio.providers.chain import create_provider_chain
from folio.services.validation import normalize_ticker, validate_symbol

logger = logging.getLogger(__name__)


class BackfillSummary(BaseModel):
    processed: int = 0
    enriched: int = 0
    skipped: int = 0
    errors: int = 0


async def _has_cached_name(session: AsyncSession, ticker: str, market: str) -> bool:
    definition = get_market_definition(market)
    market = definition.code.upper() if definition else market.strip().upper()
    ticker = normalize_ticker(ticker.strip().upper(), market)
    result = await session.execute(
        select(MarketSymbol.name)
        .where(MarketSymbol.ticker == ticker, MarketSymbol.market == market)
        .order_by(MarketSymbol.last_verified_at.desc())
        .limit(1)
    )
    return bool(result.scalar_one_or_none())


async def backfill_names(
    session_factory: async_sessionmaker[AsyncSession],
    providers: Sequence[MarketDataProvider],
    limit: int | None = None,
    dry_run: bool = False,
) -> BackfillSummary:
    """Validate every held symbol that has no cached display name yet."""
    async with session_factory() as session:
        result = await session.execute(
            select(Holding.ticker, Holding.market).distinct().order_by(Holding.ticker)
        )
        symbols = [(row.ticker, row.market) for row in result]

    summary = BackfillSummary()
    for ticker, market in symbols:
        if limit is not None and summary.processed >= limit:
            break
        summary.processed += 1

        async with session_factory() as session:
            if await _has_cached_name(session, ticker, market):
                summary.skipped += 1
                continue

        if dry_run:
            summary.enriched += 1
            continue

        try:
            validation = await validate_symbol(session_factory, providers, ticker, market)
        except (ProviderError, SQLAlchemyError) as exc:
            logger.error(f"Name backfill failed for {ticker}@{market}: {exc}")
            summary.errors += 1
            continue

        if validation.valid and validation.symbol is not None and validation.symbol.name:
            summary.enriched += 1
        else:
            summary.skipped += 1

    logger.info(f"Name backfill summary: {summary.model_dump()}")
    if dry_run:
        logger.info("Dry run enabled. No names were persisted.")
    return summary


def run_name_backfill(limit: int | None = None, dry_run: bool = False) -> dict:
    summary = asyncio.run(
        backfill_names(AsyncSessionLocal, create_provider_chain(), limit=limit, dry_run=dry_run)
    )
    return summary.model_dump()
