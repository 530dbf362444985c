import asyncio

from fakes import FakeProvider, add_holding, add_rows
from folio.db.models import MarketSymbol
from folio.jobs import queue as queue_module
from folio.jobs.name_backfill import backfill_names, run_name_backfill
from folio.providers.base import ProviderError
from folio.schemas.provider import SymbolSearchResult
from folio.services.validation import get_cached_symbol_name


def _seed(session_factory) -> None:
    asyncio.run(add_holding(session_factory, "AAPL", "NASDAQ", "2024-01-01", 10.0, 1))
    asyncio.run(add_holding(session_factory, "AAPL", "NASDAQ", "2024-02-01", 12.0, 1))
    asyncio.run(add_holding(session_factory, "MSFT", "NASDAQ", "2024-01-01", 10.0, 1))
    asyncio.run(
        add_rows(
            session_factory,
            MarketSymbol(ticker="MSFT", market="NASDAQ", name="Microsoft", provider="MOCK"),
        )
    )


def test_backfill_enriches_symbols_without_names(session_factory) -> None:
    _seed(session_factory)
    provider = FakeProvider(symbol=SymbolSearchResult(ticker="AAPL", market="NASDAQ", name="Apple Inc"))

    summary = asyncio.run(backfill_names(session_factory, [provider]))

    assert summary.model_dump() == {"processed": 2, "enriched": 1, "skipped": 1, "errors": 0}
    assert asyncio.run(get_cached_symbol_name(session_factory, "AAPL", "NASDAQ")) == "Apple Inc"


def test_backfill_dry_run_persists_nothing(session_factory) -> None:
    _seed(session_factory)
    provider = FakeProvider(symbol=SymbolSearchResult(ticker="AAPL", market="NASDAQ", name="Apple Inc"))

    summary = asyncio.run(backfill_names(session_factory, [provider], dry_run=True))

    assert summary.enriched == 1
    assert provider.calls == []
    assert asyncio.run(get_cached_symbol_name(session_factory, "AAPL", "NASDAQ")) is None


def test_backfill_respects_limit(session_factory) -> None:
    _seed(session_factory)

    summary = asyncio.run(backfill_names(session_factory, [FakeProvider()], limit=1))

    assert summary.processed == 1
    assert summary.skipped == 1


def test_backfill_counts_unexpected_provider_errors(session_factory, monkeypatch) -> None:
    _seed(session_factory)

    async def failing_validation(*args, **kwargs):
        raise ProviderError("chain exhausted")

    monkeypatch.setattr("folio.jobs.name_backfill.validate_symbol", failing_validation)

    summary = asyncio.run(backfill_names(session_factory, [FakeProvider()]))

    assert summary.errors == 1
    assert summary.skipped == 1


def test_enqueue_uses_configured_queue(monkeypatch) -> None:
    class RecordingQueue:
        def __init__(self) -> None:
            self.jobs = []

        def enqueue(self, func, **kwargs):
            self.jobs.append((func, kwargs))
            return "job"

    recorded = RecordingQueue()
    monkeypatch.setattr(queue_module, "get_queue", lambda name=None: recorded)

    assert queue_module.enqueue_name_backfill(limit=5) == "job"
    assert recorded.jobs == [(run_name_backfill, {"limit": 5, "dry_run": False})]


def test_backfill_skips_crypto_holding_named_under_its_pair(session_factory) -> None:
    asyncio.run(add_holding(session_factory, "BTC", "BINANCE", "2024-01-01", 40000.0, 1))
    asyncio.run(
        add_rows(
            session_factory,
            MarketSymbol(ticker="BTC/USDT", market="BINANCE", name="Bitcoin", provider="MOCK"),
        )
    )
    provider = FakeProvider(symbol=SymbolSearchResult(ticker="BTC/USDT", market="BINANCE", name="Bitcoin"))

    summary = asyncio.run(backfill_names(session_factory, [provider]))

    assert summary.skipped == 1
    assert provider.calls == []
