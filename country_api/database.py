import logging
from typing import Any, Dict

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from country_api.config import get_settings

logger = logging.getLogger("country_api.db")

Base = declarative_base()


def _engine_kwargs(url: str) -> Dict[str, Any]:
    settings = get_settings()
    driver = make_url(url).drivername
    kwargs: Dict[str, Any] = {"future": True, "pool_pre_ping": True}
    if driver.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        # In-memory SQLite must share one connection across threads
        if make_url(url).database in (None, "", ":memory:"):
            kwargs["poolclass"] = StaticPool
    else:
        # A drained pool raises sqlalchemy.exc.TimeoutError after pool_timeout instead of hanging
        kwargs["pool_size"] = settings.DB_POOL_SIZE
        kwargs["max_overflow"] = settings.DB_MAX_OVERFLOW
        kwargs["pool_timeout"] = settings.DB_POOL_TIMEOUT
    return kwargs


def make_engine(url: str | None = None) -> Engine:
    url = (url or get_settings().DATABASE_URL).strip()
    if not url:
        raise RuntimeError("DATABASE_URL is required")
    return create_engine(url, **_engine_kwargs(url))


try:
    engine = make_engine()
except Exception as e:
    logger.critical("Failed to initialize database engine: %s", e)
    raise RuntimeError("Database engine initialization failed") from e

SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind: Engine | None = None) -> None:
    """Create missing tables. Alembic owns real migrations; this covers fresh databases."""
    from country_api import models  # noqa: F401  (registers tables on Base.metadata)

    Base.metadata.create_all(bind=bind or engine)


def get_database_dsn(hide_password: bool = True) -> str:
    """Return the configured DSN with the password masked."""
    return engine.url.render_as_string(hide_password=hide_password)
