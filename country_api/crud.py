import logging
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import func, select, text
from sqlalchemy.orm import Session

from country_api import models
from country_api.schemas import CountryRecord

logger = logging.getLogger("country_api.crud")

_SORTS = {
    "gdp_desc": lambda: (models.Country.estimated_gdp.is_(None), models.Country.estimated_gdp.desc()),
    "gdp_asc": lambda: (models.Country.estimated_gdp.is_(None), models.Country.estimated_gdp.asc()),
    "name_asc": lambda: (models.Country.name.asc(),),
    "name_desc": lambda: (models.Country.name.desc(),),
    "population_desc": lambda: (models.Country.population.desc(),),
    "population_asc": lambda: (models.Country.population.asc(),),
}


def _by_name(name: str):
    return func.lower(models.Country.name) == name.strip().lower()


# -----------------------------
# Country operations
# -----------------------------
def get_country(db: Session, name: str) -> Optional[models.Country]:
    return db.execute(select(models.Country).where(_by_name(name))).scalars().first()


def upsert_country(db: Session, record: CountryRecord, refreshed_at: datetime) -> bool:
    """Insert or overwrite the country matched case-insensitively by name.

    The stored name keeps its original casing. Flushes but does not commit, so
    the caller owns the transaction. Returns True when a new row was inserted.
    """
    existing = get_country(db, record.name)
    fields = record.model_dump(exclude={"name"})
    if existing:
        for key, value in fields.items():
            setattr(existing, key, value)
        existing.last_refreshed_at = refreshed_at
        db.flush()
        return False
    db.add(models.Country(name=record.name, last_refreshed_at=refreshed_at, **fields))
    db.flush()
    return True


def list_countries(
    db: Session,
    region: Optional[str] = None,
    currency: Optional[str] = None,
    sort: Optional[str] = None,
    offset: int = 0,
    limit: Optional[int] = None,
) -> Tuple[List[models.Country], int]:
    query = select(models.Country)
    if region:
        query = query.where(func.lower(models.Country.region) == region.lower())
    if currency:
        query = query.where(func.upper(models.Country.currency_code) == currency.upper())

    total = db.execute(select(func.count()).select_from(query.subquery())).scalar_one()

    order = _SORTS[sort]() if sort else ()
    query = query.order_by(*order, models.Country.id.asc()).offset(offset)
    if limit is not None:
        query = query.limit(limit)
    return list(db.execute(query).scalars()), total


def top_countries_by_gdp(db: Session, n: int = 5) -> List[models.Country]:
    query = (
        select(models.Country)
        .where(models.Country.estimated_gdp.is_not(None))
        .order_by(models.Country.estimated_gdp.desc(), models.Country.id.asc())
        .limit(n)
    )
    return list(db.execute(query).scalars())


def count_countries(db: Session) -> int:
    return db.execute(select(func.count(models.Country.id))).scalar_one()


def delete_country(db: Session, name: str) -> bool:
    country = get_country(db, name)
    if country is None:
        return False
    db.delete(country)
    db.commit()
    logger.info("Deleted country %s", country.name)
    return True


def health_check(db: Session) -> None:
    """Raise the driver error if the store cannot answer a trivial query."""
    db.execute(text("SELECT 1")).scalar_one()


# -----------------------------
# App-level metadata operations
# -----------------------------
def get_meta(db: Session, key: str) -> Optional[str]:
    meta = db.get(models.AppMeta, key)
    return meta.value if meta else None


def set_meta(db: Session, key: str, value: str) -> None:
    meta = db.get(models.AppMeta, key)
    if meta is None:
        db.add(models.AppMeta(key=key, value=value))
    else:
        meta.value = value
    db.flush()


def get_last_refresh(db: Session) -> Optional[str]:
    return get_meta(db, models.LAST_REFRESH_KEY)
