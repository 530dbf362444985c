import asyncio

import pytest

from fakes import FakeProvider
from folio.config.settings import ProviderSettings
from folio.providers.base import ProviderError
from folio.providers.chain import (
    adapt_providers_for_market,
    create_provider_chain,
    fetch_with_providers,
    fx_providers,
    order_providers_for_names,
)
from folio.schemas.provider import QuoteResult


def _names(providers) -> list[str]:
    return [provider.name for provider in providers]


def test_chain_puts_keyed_primary_before_stooq() -> None:
    chain = create_provider_chain(
        ProviderSettings(provider="TWELVE_DATA", twelve_data_api_key="secret")
    )
    assert _names(chain) == ["TWELVE_DATA", "STOOQ"]


def test_chain_skips_primary_without_key() -> None:
    chain = create_provider_chain(ProviderSettings(provider="TWELVE_DATA", twelve_data_api_key=None))
    assert _names(chain) == ["STOOQ"]


def test_chain_deduplicates_stooq() -> None:
    chain = create_provider_chain(ProviderSettings(provider="stooq"))
    assert _names(chain) == ["STOOQ"]


def test_adapt_moves_preferred_provider_to_front() -> None:
    paid = FakeProvider("PAID")
    other = FakeProvider("OTHER")
    free = FakeProvider(
        "FREE",
        supported_markets=frozenset({"NASDAQ", "XWAR"}),
        preferred_markets=frozenset({"XWAR"}),
    )
    providers = [paid, other, free]

    assert _names(adapt_providers_for_market(providers, "xwar")) == ["FREE", "PAID", "OTHER"]
    assert _names(adapt_providers_for_market(providers, "NASDAQ")) == ["PAID", "OTHER", "FREE"]
    assert _names(adapt_providers_for_market(providers, "BINANCE")) == ["PAID", "OTHER"]
    # The configured chain itself is never reordered.
    assert _names(providers) == ["PAID", "OTHER", "FREE"]


def test_name_ordering_prefers_global_provider() -> None:
    providers = [
        FakeProvider("FREE", name_priority=2),
        FakeProvider("OTHER"),
        FakeProvider("GLOBAL", name_priority=0),
    ]
    assert _names(order_providers_for_names(providers)) == ["GLOBAL", "OTHER", "FREE"]


def test_fx_subchain_drops_daily_equities_source_and_appends_currency_provider() -> None:
    providers = [FakeProvider("PAID"), FakeProvider("FREE", serves_fx=False)]
    assert _names(fx_providers(providers)) == ["PAID", "FRANKFURTER"]


def test_first_success_wins_and_failed_provider_is_not_retried() -> None:
    failing = FakeProvider("FIRST")
    succeeding = FakeProvider(
        "SECOND", quote=QuoteResult(price=10.0, currency="USD", as_of="2024-01-02")
    )
    untouched = FakeProvider("THIRD", quote=QuoteResult(price=99.0, as_of="2024-01-02"))

    provider, result = asyncio.run(
        fetch_with_providers(
            [failing, succeeding, untouched], lambda p: p.get_quote("AAPL", "NASDAQ")
        )
    )

    assert provider.name == "SECOND"
    assert result.price == 10.0
    assert len(failing.calls) == 1
    assert untouched.calls == []


def test_exhausted_chain_raises_last_error() -> None:
    providers = [FakeProvider("FIRST"), FakeProvider("SECOND")]
    with pytest.raises(ProviderError, match="SECOND has no quote"):
        asyncio.run(fetch_with_providers(providers, lambda p: p.get_quote("AAPL", "NASDAQ")))


def test_empty_chain_raises_no_providers_configured() -> None:
    with pytest.raises(ProviderError, match="No providers configured"):
        asyncio.run(fetch_with_providers([], lambda p: p.get_quote("AAPL", "NASDAQ")))


def test_unclassified_errors_are_not_swallowed() -> None:
    broken = FakeProvider("BROKEN", error=KeyError("boom"))
    spare = FakeProvider("SPARE", quote=QuoteResult(price=1.0, as_of="2024-01-02"))
    with pytest.raises(KeyError):
        asyncio.run(fetch_with_providers([broken, spare], lambda p: p.get_quote("AAPL", "NASDAQ")))
    assert spare.calls == []
