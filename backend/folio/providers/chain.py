from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import TypeVar

from folio.config.settings import ProviderSettings, settings
from folio.providers.base import MarketDataProvider, ProviderError
from folio.providers.frankfurter import FrankfurterProvider
from folio.providers.stooq import StooqProvider
from folio.providers.twelve_data import TwelveDataProvider

logger = logging.getLogger(__name__)

T = TypeVar("T")


def create_provider_chain(provider_settings: ProviderSettings | None = None) -> list[MarketDataProvider]:
    """Build the process-wide chain; STOOQ always closes it as the keyless last resort."""
    provider_settings = provider_settings or settings.providers
    primary = provider_settings.provider.strip().upper()
    providers: list[MarketDataProvider] = []

    if primary == TwelveDataProvider.name:
        if provider_settings.twelve_data_api_key:
            providers.append(TwelveDataProvider(api_key=provider_settings.twelve_data_api_key))
        else:
            logger.warning("TWELVE_DATA configured without an API key; skipping it")
    elif primary == StooqProvider.name:
        providers.append(StooqProvider())
    else:
        logger.warning(f"Unknown primary provider {primary!r}; using fallback chain only")

    providers.append(StooqProvider())

    unique: list[MarketDataProvider] = []
    seen: set[str] = set()
    for provider in providers:
        if provider.name in seen:
            continue
        seen.add(provider.name)
        unique.append(provider)

    logger.info(f"Provider chain: {', '.join(provider.name for provider in unique)}")
    return unique


def adapt_providers_for_market(
    providers: Sequence[MarketDataProvider], market: str
) -> list[MarketDataProvider]:
    """Drop providers that do not serve ``market`` and move its preferred providers to the front."""
    normalized = market.strip().upper()
    filtered = [provider for provider in providers if provider.serves_market(normalized)]
    # sorted() is stable, so relative order is otherwise preserved.
    return sorted(filtered, key=lambda provider: normalized not in provider.preferred_markets)


def order_providers_for_names(providers: Sequence[MarketDataProvider]) -> list[MarketDataProvider]:
    return sorted(providers, key=lambda provider: provider.name_priority)


def fx_providers(providers: Sequence[MarketDataProvider]) -> list[MarketDataProvider]:
    chain = [provider for provider in providers if provider.serves_fx]
    chain.append(FrankfurterProvider())
    return chain


async def fetch_with_providers(
    providers: Sequence[MarketDataProvider],
    task: Callable[[MarketDataProvider], Awaitable[T]],
) -> tuple[MarketDataProvider, T]:
    """Try providers strictly in order and return the first success.

    Raises the last ProviderError once the chain is exhausted.
    """
    last_error: ProviderError | None = None
    for provider in providers:
        try:
            result = await task(provider)
        except ProviderError as exc:
            logger.warning(f"Provider {provider.name} failed: {exc}")
            last_error = exc
            continue
        return provider, result
    if last_error is not None:
        raise last_error
    raise ProviderError("No providers configured")
