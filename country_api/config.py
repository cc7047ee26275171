from functools import lru_cache

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Required: startup fails without it
    DATABASE_URL: str
    PORT: int = 8080

    # External sources
    COUNTRIES_URL: str = "https://restcountries.com/v2/all?fields=name,capital,region,population,flag,currencies"
    RATES_URL: str = "https://open.er-api.com/v6/latest/{base}"
    BASE_CURRENCY: str = "USD"
    EXTERNAL_TIMEOUT_MS: int = Field(default=12_000, gt=0)

    # Proxy value per capita used for estimated_gdp = population * GDP_MULTIPLIER / exchange_rate
    GDP_MULTIPLIER: float = Field(default=1500.0, gt=0)

    SUMMARY_IMAGE_PATH: str = "cache/summary.png"

    # Listing
    DEFAULT_PAGE_LIMIT: int = Field(default=50, ge=1)
    MAX_PAGE_LIMIT: int = Field(default=200, ge=1)

    # Connection pool (ignored for SQLite)
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 5
    DB_POOL_TIMEOUT: float = 30.0

    # Logging configuration used by country_api.logging
    LOG_LEVEL: str = "INFO"
    CONSOLE_LOG_LEVEL: str = "INFO"

    @field_validator("BASE_CURRENCY")
    @classmethod
    def _three_letter_code(cls, v: str) -> str:
        v = v.strip().upper()
        if len(v) != 3 or not v.isalpha():
            raise ValueError("BASE_CURRENCY must be a 3-letter currency code")
        return v

    @model_validator(mode="after")
    def _page_limits(self) -> "Settings":
        if self.DEFAULT_PAGE_LIMIT > self.MAX_PAGE_LIMIT:
            raise ValueError("DEFAULT_PAGE_LIMIT must not exceed MAX_PAGE_LIMIT")
        return self

    @property
    def rates_url(self) -> str:
        return self.RATES_URL.replace("{base}", self.BASE_CURRENCY)

    @property
    def external_timeout_seconds(self) -> float:
        return self.EXTERNAL_TIMEOUT_MS / 1000


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()  # type: ignore[call-arg]
