import logging
from datetime import datetime
from typing import Dict, List, Literal, Optional, get_args

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

from country_api.config import get_settings

logger = logging.getLogger("country_api.schemas")

SortKey = Literal["gdp_desc", "gdp_asc", "name_asc", "name_desc", "population_desc", "population_asc"]
VALID_SORTS = set(get_args(SortKey))

# Column widths in models.Country
NAME_MAX = 128
CAPITAL_MAX = 128
REGION_MAX = 64
FLAG_URL_MAX = 256


def is_currency_code(code: str) -> bool:
    return len(code) == 3 and code.isascii() and code.isalpha()


# ---------------------------------------------------
# External payloads (validated on ingress)
# ---------------------------------------------------
class RestCurrency(BaseModel):
    model_config = ConfigDict(extra="ignore")

    code: Optional[str] = None


class RestCountry(BaseModel):
    """One element of the restcountries v2 ``/all`` response.

    A bad ``name`` rejects the record. Optional fields that do not fit
    their column are nulled out.
    """

    model_config = ConfigDict(extra="ignore")

    name: str
    capital: Optional[str] = None
    region: Optional[str] = None
    population: Optional[int] = Field(default=None, ge=0)
    flag: Optional[str] = None
    currencies: Optional[List[Optional[RestCurrency]]] = None

    @field_validator("name")
    @classmethod
    def _non_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name must not be blank")
        if len(v) > NAME_MAX:
            raise ValueError(f"name longer than {NAME_MAX} characters")
        return v

    @field_validator("capital", "region", "flag")
    @classmethod
    def _strip(cls, v: Optional[str], info: ValidationInfo) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        max_len = {"capital": CAPITAL_MAX, "region": REGION_MAX, "flag": FLAG_URL_MAX}[info.field_name]
        if len(v) > max_len:
            logger.warning("Dropping %s longer than %d characters: %r", info.field_name, max_len, v[:80])
            return None
        return v or None

    def first_currency_code(self) -> Optional[str]:
        """First usable 3-letter code in ``currencies``; anything else is skipped."""
        for cur in self.currencies or []:
            code = (cur.code or "").strip() if cur else ""
            if not code:
                continue
            if is_currency_code(code):
                return code
            logger.warning("Ignoring invalid currency code %r for %s", code, self.name)
        return None


class ExchangeRatesResponse(BaseModel):
    """open.er-api ``/v6/latest/{base}`` response. Rates are kept raw and cleaned by the client."""

    model_config = ConfigDict(extra="ignore")

    result: Optional[str] = None
    base_code: Optional[str] = None
    rates: Dict[str, object]


# ---------------------------------------------------
# Internal records
# ---------------------------------------------------
class CountryIn(BaseModel):
    """A country as fetched, before the currency join."""

    name: str
    capital: Optional[str] = None
    region: Optional[str] = None
    population: int = Field(default=0, ge=0)
    currency_code: Optional[str] = None
    flag_url: Optional[str] = None


class CountryRecord(CountryIn):
    """A fully joined country, ready to be upserted."""

    exchange_rate: Optional[float] = None
    estimated_gdp: Optional[float] = None


# ---------------------------------------------------
# API responses
# ---------------------------------------------------
class CountryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    capital: Optional[str] = None
    region: Optional[str] = None
    population: int
    currency_code: Optional[str] = None
    exchange_rate: Optional[float] = None
    estimated_gdp: Optional[float] = None
    flag_url: Optional[str] = None
    last_refreshed_at: Optional[datetime] = None


class CountryList(BaseModel):
    records: List[CountryOut]
    total: int
    page: int
    limit: int


class RefreshResult(BaseModel):
    countries_upserted: int
    inserted: int
    updated: int
    last_refreshed_at: str


class StatusOut(BaseModel):
    total_countries: int
    last_refreshed_at: Optional[str] = None


class ListParams(BaseModel):
    """Validated query parameters for ``GET /countries``."""

    region: Optional[str] = None
    currency: Optional[str] = None
    sort: Optional[SortKey] = None
    page: int = Field(default=1, ge=1)
    limit: int = Field(default_factory=lambda: get_settings().DEFAULT_PAGE_LIMIT, ge=1)

    @field_validator("region")
    @classmethod
    def _blank_region_is_no_filter(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return v.strip() or None

    @field_validator("currency")
    @classmethod
    def _currency_code(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        if not v:
            return None
        if not is_currency_code(v):
            raise ValueError("must be a 3-letter currency code (e.g. NGN)")
        return v.upper()

    @field_validator("limit")
    @classmethod
    def _limit_max(cls, v: int) -> int:
        max_limit = get_settings().MAX_PAGE_LIMIT
        if v > max_limit:
            raise ValueError(f"must be between 1 and {max_limit}")
        return v

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


class ErrorResponse(BaseModel):
    error: str
    details: Optional[object] = None
