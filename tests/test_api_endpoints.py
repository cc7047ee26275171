import httpx
from sqlalchemy.exc import OperationalError

from country_api.config import get_settings


def _seed_many(seed, n=25):
    for i in range(1, n + 1):
        seed(
            name=f"Country{i:02d}",
            region="Europe" if i % 2 else "Asia",
            population=i * 1000,
            currency_code="EUR" if i % 2 else "JPY",
            exchange_rate=1.0,
            estimated_gdp=float(i * 10),
        )


def test_refresh_returns_counts_and_timestamp(client):
    r = client.post("/countries/refresh")
    assert r.status_code == 200
    body = r.json()
    assert body["countries_upserted"] == 3
    assert body["last_refreshed_at"]

    status = client.get("/status").json()
    assert status == {"total_countries": 3, "last_refreshed_at": body["last_refreshed_at"]}


def test_refresh_rate_timeout_503_and_no_rows(client, sources, seed):
    seed(name="Japan", population=1, currency_code="JPY", exchange_rate=100.0, estimated_gdp=15.0)
    sources.fail("rates", httpx.ReadTimeout)

    r = client.post("/countries/refresh")
    assert r.status_code == 503
    body = r.json()
    assert body["error"] == "External data source unavailable"
    assert "timed out" in body["details"]

    japan = client.get("/countries/japan").json()
    assert japan["population"] == 1
    assert japan["exchange_rate"] == 100.0
    assert client.get("/status").json()["total_countries"] == 1


def test_get_country_is_case_insensitive(client):
    client.post("/countries/refresh")

    a = client.get("/countries/Japan")
    b = client.get("/countries/japan")
    assert a.status_code == b.status_code == 200
    assert a.json() == b.json()
    assert a.json()["name"] == "Japan"


def test_delete_unknown_country_404(client):
    r = client.delete("/countries/Wakanda")
    assert r.status_code == 404
    assert r.json() == {"error": "Country not found"}


def test_delete_is_case_insensitive(client):
    client.post("/countries/refresh")

    r = client.delete("/countries/WAKANDA")
    assert r.status_code == 200
    assert client.get("/countries/Wakanda").status_code == 404
    assert client.get("/status").json()["total_countries"] == 2


def test_list_filters(client, seed):
    seed(name="Alpha", region="Africa", population=100, currency_code="AAA", estimated_gdp=1000.0)
    seed(name="Bravo", region="Europe", population=200, currency_code="BBB", estimated_gdp=500.0)
    seed(name="Charlie", region="africa", population=300, currency_code="BBB", estimated_gdp=1500.0)

    r = client.get("/countries", params={"region": "AFRICA"})
    assert r.status_code == 200
    assert {c["name"] for c in r.json()["records"]} == {"Alpha", "Charlie"}
    assert r.json()["total"] == 2

    r = client.get("/countries", params={"currency": "bbb"})
    assert {c["name"] for c in r.json()["records"]} == {"Bravo", "Charlie"}

    r = client.get("/countries", params={"region": "Africa", "currency": "BBB"})
    assert [c["name"] for c in r.json()["records"]] == ["Charlie"]

    r = client.get("/countries", params={"region": " ", "currency": ""})
    assert r.status_code == 200
    assert r.json()["total"] == 3


def test_gdp_desc_puts_nulls_last(client, seed):
    seed(name="NoGdp", population=999999)
    seed(name="Low", estimated_gdp=1.0)
    seed(name="High", estimated_gdp=100.0)
    seed(name="Mid", estimated_gdp=50.0)

    records = client.get("/countries", params={"sort": "gdp_desc"}).json()["records"]
    assert [c["name"] for c in records] == ["High", "Mid", "Low", "NoGdp"]

    records = client.get("/countries", params={"sort": "gdp_asc"}).json()["records"]
    assert [c["name"] for c in records] == ["Low", "Mid", "High", "NoGdp"]


def test_other_sorts(client, seed):
    seed(name="Bravo", population=5)
    seed(name="alpha", population=50)
    seed(name="Charlie", population=10)

    records = client.get("/countries", params={"sort": "population_desc"}).json()["records"]
    assert [c["name"] for c in records] == ["alpha", "Charlie", "Bravo"]

    records = client.get("/countries", params={"sort": "population_asc"}).json()["records"]
    assert [c["name"] for c in records] == ["Bravo", "Charlie", "alpha"]


def test_pagination(client, seed):
    _seed_many(seed, 25)

    r = client.get("/countries", params={"sort": "name_asc", "page": 2, "limit": 10})
    body = r.json()
    assert r.status_code == 200
    assert body["total"] == 25
    assert body["page"] == 2 and body["limit"] == 10
    assert [c["name"] for c in body["records"]] == [f"Country{i:02d}" for i in range(11, 21)]

    body = client.get("/countries", params={"sort": "name_asc", "page": 3, "limit": 10}).json()
    assert len(body["records"]) == 5

    body = client.get("/countries", params={"page": 4, "limit": 10}).json()
    assert body["records"] == []
    assert body["total"] == 25


def test_default_limit(client, seed):
    _seed_many(seed, 3)
    body = client.get("/countries").json()
    assert body["limit"] == get_settings().DEFAULT_PAGE_LIMIT
    assert body["page"] == 1
    assert len(body["records"]) == 3


def test_invalid_params_enumerate_every_field(client, seed):
    seed(name="Alpha")

    r = client.get("/countries", params={"sort": "random", "page": "0", "limit": "1000", "currency": "EURO"})
    assert r.status_code == 400
    body = r.json()
    assert body["error"] == "Validation failed"
    assert set(body["details"]) == {"sort", "page", "limit", "currency"}


def test_non_integer_page_is_validation_error(client):
    r = client.get("/countries", params={"page": "two"})
    assert r.status_code == 400
    assert set(r.json()["details"]) == {"page"}


def test_status_before_any_refresh(client):
    assert client.get("/status").json() == {"total_countries": 0, "last_refreshed_at": None}


def test_storage_failure_is_500_envelope(client, monkeypatch):
    def down(db):
        raise OperationalError("SELECT count(*)", {}, Exception("postgresql://app:hunter2@db/x unreachable"))

    monkeypatch.setattr("country_api.crud.count_countries", down)

    r = client.get("/status")
    assert r.status_code == 500
    body = r.json()
    assert body["error"] == "Internal server error"
    assert "hunter2" not in body["details"]


def test_healthz(client, monkeypatch):
    r = client.get("/healthz")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}

    def down(db):
        raise OperationalError("SELECT 1", {}, Exception("connection refused"))

    monkeypatch.setattr("country_api.crud.health_check", down)
    r = client.get("/healthz")
    assert r.status_code == 503
    assert r.json()["error"] == "Storage unavailable"


def test_unknown_route_uses_error_envelope(client):
    r = client.get("/nope")
    assert r.status_code == 404
    assert r.json() == {"error": "Not Found"}
