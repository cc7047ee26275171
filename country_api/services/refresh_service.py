"""Refresh pipeline: fetch both sources, join by currency code, compute GDP and upsert."""
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

import httpx
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from country_api import crud
from country_api.config import Settings, get_settings
from country_api.errors import InternalError, SourceUnavailable
from country_api.models import LAST_REFRESH_KEY
from country_api.schemas import CountryIn, CountryRecord, RefreshResult
from country_api.services import fetch_data
from country_api.services.image_generator import render_summary_best_effort

logger = logging.getLogger("country_api.refresh")


def estimate_gdp(population: int, exchange_rate: float, multiplier: float) -> float:
    return population * multiplier / exchange_rate


def join_rates(countries: List[CountryIn], rates: Dict[str, float], multiplier: float) -> List[CountryRecord]:
    """Attach exchange_rate/estimated_gdp by exact currency-code match; unmatched stay null."""
    records = []
    for c in countries:
        rate = rates.get(c.currency_code) if c.currency_code else None
        gdp = estimate_gdp(c.population, rate, multiplier) if rate else None
        records.append(CountryRecord(**c.model_dump(), exchange_rate=rate, estimated_gdp=gdp))
    return records


@dataclass
class _Persisted:
    inserted: int
    updated: int


class RefreshPipeline:
    """Owns the refresh mutex; one instance per application."""

    def __init__(self, settings: Optional[Settings] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings or get_settings()
        self._transport = transport
        self._lock = asyncio.Lock()

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    async def fetch(self) -> Tuple[List[CountryIn], Dict[str, float]]:
        """Fetch both sources within ``EXTERNAL_TIMEOUT_MS`` overall."""
        limit = self.settings.external_timeout_seconds
        async with httpx.AsyncClient(timeout=httpx.Timeout(limit), transport=self._transport) as client:
            try:
                return await asyncio.wait_for(
                    fetch_data.fetch_all(client, self.settings.COUNTRIES_URL, self.settings.rates_url),
                    timeout=limit,
                )
            except asyncio.TimeoutError as exc:
                logger.warning("External fetch exceeded %.1fs; refresh aborted", limit)
                raise SourceUnavailable(f"Could not fetch external data: timed out after {limit:g}s") from exc

    def persist(self, db: Session, records: List[CountryRecord], refreshed_at: datetime) -> _Persisted:
        """Upsert every record and the refresh marker in one transaction.

        Any row failure rolls back the whole refresh.
        """
        inserted = updated = 0
        current: Optional[str] = None
        try:
            for record in records:
                current = record.name
                if crud.upsert_country(db, record, refreshed_at):
                    inserted += 1
                else:
                    updated += 1
            current = None
            crud.set_meta(db, LAST_REFRESH_KEY, refreshed_at.isoformat())
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            if current is not None:
                logger.error("Upsert failed for country %r; refresh rolled back: %s", current, exc)
                raise InternalError(f"db upsert failed for {current!r}: {exc}") from exc
            logger.error("Refresh commit failed; refresh rolled back: %s", exc)
            raise InternalError(f"db commit failed: {exc}") from exc
        return _Persisted(inserted=inserted, updated=updated)

    async def refresh(self, db: Session) -> RefreshResult:
        if self.busy:
            logger.info("Refresh already in progress; waiting for it to finish")
        async with self._lock:
            countries, rates = await self.fetch()
            records = join_rates(countries, rates, self.settings.GDP_MULTIPLIER)
            matched = sum(1 for r in records if r.exchange_rate is not None)

            refreshed_at = datetime.now(timezone.utc)
            result = await run_in_threadpool(self.persist, db, records, refreshed_at)
            logger.info(
                "Refresh committed: %d upserted (%d inserted, %d updated), %d with exchange rate",
                len(records),
                result.inserted,
                result.updated,
                matched,
            )

            stamp = refreshed_at.strftime("%Y-%m-%d %H:%M UTC")
            await run_in_threadpool(render_summary_best_effort, db, self.settings.SUMMARY_IMAGE_PATH, stamp)

        return RefreshResult(
            countries_upserted=len(records),
            inserted=result.inserted,
            updated=result.updated,
            last_refreshed_at=refreshed_at.isoformat(),
        )
