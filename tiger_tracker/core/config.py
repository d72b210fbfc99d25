from functools import lru_cache
from typing import List, Optional

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from tiger_tracker.schemas.catalog import DEFAULT_ASSETS, AssetSpec


class Settings(BaseSettings):
    PROJECT_NAME: str = "tiger-tracker"
    DATABASE_URL: str = Field(
        ..., validation_alias=AliasChoices("DATABASE_URL", "TIMESCALE_SERVICE_URL")
    )
    DB_ECHO: bool = False

    COINGECKO_API_KEY: Optional[str] = Field(
        None, validation_alias=AliasChoices("COINGECKO_API_KEY", "COIN_GECKO_API_KEY")
    )

    # Reference catalog
    TRACKED_ASSETS: List[AssetSpec] = Field(default_factory=lambda: list(DEFAULT_ASSETS))
    SEED_USER_NAME: str = "tiger"

    # Ingestion loop
    INGEST_INTERVAL_SECONDS: float = 30.0
    QUOTE_TIMEOUT_SECONDS: float = 15.0
    PERSIST_TIMEOUT_SECONDS: float = 15.0
    HALT_ON_CYCLE_ERROR: bool = False

    # Observability
    METRICS_PORT: Optional[int] = None
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False

    model_config = SettingsConfigDict(
        case_sensitive=True,
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator("TRACKED_ASSETS")
    def unique_symbols(cls, v):
        if not v:
            raise ValueError("TRACKED_ASSETS must list at least one asset")
        symbols = [a.symbol for a in v]
        if len(set(symbols)) != len(symbols):
            raise ValueError(f"duplicate symbols in TRACKED_ASSETS: {symbols}")
        return v

    @field_validator("INGEST_INTERVAL_SECONDS", "QUOTE_TIMEOUT_SECONDS", "PERSIST_TIMEOUT_SECONDS")
    def positive(cls, v):
        if v <= 0:
            raise ValueError("must be positive")
        return v


@lru_cache()
def get_settings():
    return Settings()
