"""Configuration module for the price-zone backend.

This module centralizes the reading of environment variables and provides a
`Settings` object that other modules can import.  It uses Pydantic's
`BaseSettings` to automatically read values from a `.env` file when present.

For production deployments you should set these environment variables in your
hosting provider's secrets manager rather than storing them in version control.
"""

from functools import lru_cache
from typing import Any

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_DEFAULT_USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="allow", populate_by_name=True)

    scanner_base_url: str = Field(
        default="https://chartink.com",
        validation_alias=AliasChoices("SCANNER_BASE_URL", "CHARTINK_BASE_URL"),
    )
    scanner_user_agent: str = Field(_DEFAULT_USER_AGENT, validation_alias="SCANNER_USER_AGENT")
    scanner_timeout: float = Field(30.0, validation_alias="SCANNER_TIMEOUT")
    history_base_url: str = Field(
        default="https://query1.finance.yahoo.com/v8/finance/chart",
        validation_alias=AliasChoices("HISTORY_BASE_URL", "YAHOO_BASE_URL"),
    )
    history_range: str = Field("1mo", validation_alias="HISTORY_RANGE")
    history_timeout: float = Field(10.0, validation_alias="HISTORY_TIMEOUT")
    history_symbol_suffix: str = Field(".NS", validation_alias="HISTORY_SYMBOL_SUFFIX")
    db_url: str | None = Field(
        default=None,
        validation_alias=AliasChoices("DB_URL", "DATABASE_URL"),
    )
    scan_cache_ttl: float = Field(60.0, validation_alias="SCAN_CACHE_TTL")
    mitigation_cache_ttl: float = Field(3600.0, validation_alias="MITIGATION_CACHE_TTL")
    ob_strategy_name: str = Field("BULLISH OB 1D", validation_alias="OB_STRATEGY_NAME")
    fvg_strategy_name: str = Field("FAIR VALUE GAP", validation_alias="FVG_STRATEGY_NAME")
    mitigation_strategy_name: str = Field("BULLISH CLOSE 200", validation_alias="MITIGATION_STRATEGY_NAME")
    seed_strategies: list[dict[str, Any]] = Field(default_factory=list, validation_alias="SEED_STRATEGIES")
    seed_margins: list[dict[str, Any]] = Field(default_factory=list, validation_alias="SEED_MARGINS")
    log_level: str = Field("INFO", validation_alias="LOG_LEVEL")
    host: str = Field("0.0.0.0", validation_alias="HOST")

    @field_validator("scanner_base_url", "history_base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")


@lru_cache()
def get_settings() -> Settings:
    """Return a cached instance of the application settings.

    Pydantic caches the parsed environment variables so that repeated calls
    throughout the application are inexpensive.
    """

    return Settings()


OB_CACHE_KEY: str = "ObCache"
FVG_CACHE_KEY: str = "FvgCache"
SCANNER_PROCESS_PATH: str = "/screener/process"
AUTOMATION_MIN_CANDLES: int = 3
