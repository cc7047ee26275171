from datetime import datetime
from typing import Optional

from sqlalchemy import BigInteger, DateTime, Float, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from country_api.database import Base


class Country(Base):
    __tablename__ = "countries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)
    capital: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    region: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    population: Mapped[int] = mapped_column(BigInteger().with_variant(Integer, "sqlite"), nullable=False)
    currency_code: Mapped[Optional[str]] = mapped_column(String(3), nullable=True, index=True)
    exchange_rate: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    estimated_gdp: Mapped[Optional[float]] = mapped_column(Float, nullable=True, index=True)
    flag_url: Mapped[Optional[str]] = mapped_column(String(256), nullable=True)
    last_refreshed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class AppMeta(Base):
    """Key/value table for application-level metadata such as the last refresh time."""

    __tablename__ = "app_meta"

    key: Mapped[str] = mapped_column(String(64), primary_key=True)
    value: Mapped[str] = mapped_column(String(512), nullable=False)


LAST_REFRESH_KEY = "last_refresh_at"
