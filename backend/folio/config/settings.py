from __future__ import annotations

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ProviderSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="FOLIO_",
        env_file=("../.env", ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )
    provider: str = Field(
        default="TWELVE_DATA",
        validation_alias=AliasChoices("PROVIDER", "FOLIO_PROVIDER"),
    )
    twelve_data_api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("TWELVE_DATA_API_KEY", "FOLIO_TWELVE_DATA_API_KEY"),
    )
    request_timeout_seconds: float = 10.0


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="FOLIO_",
        env_file=("../.env", ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    database_url: str = Field(
        default="sqlite+aiosqlite:///./data/folio.db",
        validation_alias=AliasChoices("DATABASE_URL", "FOLIO_DATABASE_URL"),
    )
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        validation_alias=AliasChoices("REDIS_URL", "FOLIO_REDIS_URL"),
    )
    name_backfill_queue_name: str = Field(
        default="name-backfill",
        validation_alias=AliasChoices("NAME_BACKFILL_QUEUE_NAME", "FOLIO_NAME_BACKFILL_QUEUE_NAME"),
    )

    quote_ttl_seconds: int = Field(
        default=60,
        validation_alias=AliasChoices("QUOTE_TTL_SECONDS", "FOLIO_QUOTE_TTL_SECONDS"),
    )
    fx_ttl_seconds: int = Field(
        default=3600,
        validation_alias=AliasChoices("FX_TTL_SECONDS", "FOLIO_FX_TTL_SECONDS"),
    )
    validation_ttl_days: int = Field(
        default=7,
        validation_alias=AliasChoices("VALIDATION_TTL_DAYS", "FOLIO_VALIDATION_TTL_DAYS"),
    )
    # Live company-name lookups allowed per holdings listing.
    name_lookup_limit: int = Field(
        default=6,
        validation_alias=AliasChoices("NAME_LOOKUP_LIMIT", "FOLIO_NAME_LOOKUP_LIMIT"),
    )

    providers: ProviderSettings = Field(default_factory=ProviderSettings)


settings = Settings()
