import os
import sys
import tempfile
from datetime import datetime, timezone
from typing import Callable, Iterator

# Configure the app before anything imports it: in-memory SQLite and a throwaway image path.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SUMMARY_IMAGE_PATH"] = os.path.join(tempfile.mkdtemp(prefix="country_api_"), "summary.png")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("CONSOLE_LOG_LEVEL", "WARNING")

# Ensure project root is on sys.path when pytest runs from a different CWD.
project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if project_root not in sys.path:
    sys.path.insert(0, project_root)

import httpx  # noqa: E402
import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from country_api import models  # noqa: E402
from country_api.config import get_settings  # noqa: E402
from country_api.database import Base, get_db  # noqa: E402
from country_api.main import app  # noqa: E402
from country_api.routes.countries import get_pipeline  # noqa: E402
from country_api.services.refresh_service import RefreshPipeline  # noqa: E402


COUNTRIES = [
    {
        "name": "Nigeria",
        "capital": "Abuja",
        "region": "Africa",
        "population": 206139589,
        "flag": "https://flagcdn.com/ng.svg",
        "currencies": [{"code": "NGN", "name": "Nigerian naira", "symbol": "₦"}],
    },
    {
        "name": "Japan",
        "capital": "Tokyo",
        "region": "Asia",
        "population": 125836021,
        "flag": "https://flagcdn.com/jp.svg",
        "currencies": [{"code": "JPY", "name": "Japanese yen", "symbol": "¥"}],
    },
    {
        "name": "Wakanda",
        "capital": "Birnin Zana",
        "region": "Africa",
        "population": 6000000,
        "flag": None,
        "currencies": [{"code": "WKD"}],
    },
]

RATES = {"NGN": 1600.0, "JPY": 150.0, "USD": 1.0}


class FakeSources:
    """Stands in for restcountries and open.er-api behind an httpx.MockTransport."""

    def __init__(self):
        self.countries = [dict(c) for c in COUNTRIES]
        self.rates = dict(RATES)
        self.failures = {}
        self.calls = {"countries": 0, "rates": 0}

    def fail(self, source: str, exc_or_status):
        self.failures[source] = exc_or_status

    def handler(self, request: httpx.Request) -> httpx.Response:
        source = "countries" if "restcountries" in request.url.host else "rates"
        self.calls[source] += 1
        failure = self.failures.get(source)
        if isinstance(failure, type) and issubclass(failure, httpx.HTTPError):
            raise failure("simulated failure", request=request)
        if isinstance(failure, int):
            return httpx.Response(failure, json={"message": "boom"})
        if source == "countries":
            return httpx.Response(200, json=self.countries)
        return httpx.Response(200, json={"result": "success", "base_code": "USD", "rates": self.rates})

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


def make_test_db():
    # Use StaticPool to keep a single in-memory DB across threads/requests
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    return engine, SessionLocal


def override_get_db(SessionLocal) -> Callable[[], Iterator]:
    def _get_db():
        db = SessionLocal()
        try:
            yield db
        finally:
            db.close()

    return _get_db


@pytest.fixture()
def session_factory():
    engine, SessionLocal = make_test_db()
    yield SessionLocal
    engine.dispose()


@pytest.fixture()
def db(session_factory):
    with session_factory() as s:
        yield s


@pytest.fixture()
def sources():
    return FakeSources()


@pytest.fixture()
def image_path(tmp_path):
    return tmp_path / "cache" / "summary.png"


@pytest.fixture()
def pipeline(sources, image_path):
    settings = get_settings().model_copy(update={"SUMMARY_IMAGE_PATH": str(image_path)})
    return RefreshPipeline(settings, transport=sources.transport())


@pytest.fixture()
def client(session_factory, sources):
    summary = get_settings().SUMMARY_IMAGE_PATH
    if os.path.exists(summary):
        os.remove(summary)

    app.dependency_overrides[get_db] = override_get_db(session_factory)
    api_pipeline = RefreshPipeline(get_settings(), transport=sources.transport())
    app.dependency_overrides[get_pipeline] = lambda: api_pipeline
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture()
def seed(db):
    """Insert a Country row directly; only ``name`` is required."""

    def _seed(**overrides):
        data = {
            "capital": None,
            "region": None,
            "population": 0,
            "currency_code": None,
            "exchange_rate": None,
            "estimated_gdp": None,
            "flag_url": None,
            "last_refreshed_at": datetime.now(timezone.utc),
        }
        data.update(overrides)
        country = models.Country(**data)
        db.add(country)
        db.commit()
        return country

    return _seed
