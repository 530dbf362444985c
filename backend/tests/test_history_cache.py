import asyncio

import pytest

from fakes import FakeProvider, day, points
from folio.providers.base import ProviderError
from folio.services.market_data import get_history


def _ten_days() -> list:
    return points(*((f"2024-01-{n:02d}", 100.0 + n) for n in range(1, 11)))


def test_fully_covered_range_is_served_from_cache(session_factory) -> None:
    provider = FakeProvider(history=_ten_days())
    asyncio.run(
        get_history(session_factory, [provider], "AAPL", "NASDAQ", day("2024-01-01"), day("2024-01-10"))
    )

    result = asyncio.run(
        get_history(session_factory, [provider], "AAPL", "NASDAQ", day("2024-01-02"), day("2024-01-05"))
    )

    assert result.source == "CACHE"
    assert [row.date for row in result.rows] == [day(f"2024-01-0{n}") for n in range(2, 6)]
    assert len(provider.calls) == 1


def test_partial_overlap_is_a_miss_for_the_whole_range(session_factory) -> None:
    provider = FakeProvider(history=_ten_days())
    asyncio.run(
        get_history(session_factory, [provider], "AAPL", "NASDAQ", day("2024-01-01"), day("2024-01-10"))
    )

    provider.history = points(*((f"2024-01-{n:02d}", 200.0 + n) for n in range(5, 21)))
    result = asyncio.run(
        get_history(session_factory, [provider], "AAPL", "NASDAQ", day("2024-01-05"), day("2024-01-20"))
    )

    assert result.source == "MOCK"
    assert len(provider.calls) == 2
    assert provider.calls[1][3:] == (day("2024-01-05"), day("2024-01-20"))
    # Rows for the refetched window were overwritten by the new fetch.
    assert result.rows[0].date == day("2024-01-05")
    assert result.rows[0].price == 205.0
    assert result.rows[-1].date == day("2024-01-20")


def test_result_is_reread_from_store_after_write(session_factory) -> None:
    # Provider returns more than the requested window; the store trims it.
    provider = FakeProvider(history=_ten_days())

    result = asyncio.run(
        get_history(session_factory, [provider], "AAPL", "NASDAQ", day("2024-01-03"), day("2024-01-04"))
    )

    assert result.source == "MOCK"
    assert [row.price for row in result.rows] == [103.0, 104.0]


def test_provider_result_returned_when_store_still_lacks_coverage(session_factory) -> None:
    provider = FakeProvider(history=points(("2024-01-03", 10.0), ("2024-01-04", 11.0)))

    result = asyncio.run(
        get_history(session_factory, [provider], "AAPL", "NASDAQ", day("2024-01-01"), day("2024-01-04"))
    )

    assert [row.date for row in result.rows] == [day("2024-01-03"), day("2024-01-04")]

    # Still not covered, so the next call goes back to the provider.
    asyncio.run(
        get_history(session_factory, [provider], "AAPL", "NASDAQ", day("2024-01-01"), day("2024-01-04"))
    )
    assert len(provider.calls) == 2


def test_force_refresh_refetches_covered_range(session_factory) -> None:
    provider = FakeProvider(history=_ten_days())
    window = (day("2024-01-01"), day("2024-01-10"))
    asyncio.run(get_history(session_factory, [provider], "AAPL", "NASDAQ", *window))

    result = asyncio.run(
        get_history(session_factory, [provider], "AAPL", "NASDAQ", *window, force_refresh=True)
    )

    assert result.source == "MOCK"
    assert len(provider.calls) == 2


def test_newest_fetch_wins_when_sources_overlap(session_factory) -> None:
    first = FakeProvider("FIRST", history=points(("2024-01-01", 1.0), ("2024-01-02", 2.0)))
    second = FakeProvider("SECOND", history=points(("2024-01-01", 10.0), ("2024-01-02", 20.0)))
    window = (day("2024-01-01"), day("2024-01-02"))

    asyncio.run(get_history(session_factory, [first], "AAPL", "NASDAQ", *window))
    result = asyncio.run(
        get_history(session_factory, [second], "AAPL", "NASDAQ", *window, force_refresh=True)
    )

    assert [row.price for row in result.rows] == [10.0, 20.0]


def test_history_failure_propagates(session_factory) -> None:
    with pytest.raises(ProviderError):
        asyncio.run(
            get_history(
                session_factory, [FakeProvider()], "AAPL", "NASDAQ", day("2024-01-01"), day("2024-01-02")
            )
        )
