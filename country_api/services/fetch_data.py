import asyncio
import logging
import math
from typing import Dict, List, Tuple

import httpx
from pydantic import ValidationError

from country_api.errors import SourceUnavailable
from country_api.schemas import CountryIn, ExchangeRatesResponse, RestCountry

logger = logging.getLogger("country_api.fetch")

COUNTRIES_SOURCE = "restcountries"
RATES_SOURCE = "open-er-api"


async def _get_json(client: httpx.AsyncClient, url: str, source: str):
    try:
        resp = await client.get(url)
        resp.raise_for_status()
    except httpx.TimeoutException as exc:
        raise SourceUnavailable(f"Could not fetch data from {source}: timed out ({exc!r})") from exc
    except httpx.HTTPStatusError as exc:
        raise SourceUnavailable(
            f"Could not fetch data from {source}: HTTP {exc.response.status_code}"
        ) from exc
    except httpx.HTTPError as exc:
        raise SourceUnavailable(f"Could not fetch data from {source}: {exc!r}") from exc

    try:
        return resp.json()
    except ValueError as exc:
        raise SourceUnavailable(f"Could not parse response from {source}: {exc}") from exc


async def fetch_countries(client: httpx.AsyncClient, url: str) -> List[CountryIn]:
    """Fetch the country directory. Records that fail validation are skipped and logged."""
    payload = await _get_json(client, url, COUNTRIES_SOURCE)
    if not isinstance(payload, list):
        raise SourceUnavailable(f"Could not parse response from {COUNTRIES_SOURCE}: expected a JSON array")

    countries: List[CountryIn] = []
    skipped = 0
    for item in payload:
        try:
            raw = RestCountry.model_validate(item)
        except ValidationError as exc:
            skipped += 1
            logger.warning("Skipping malformed country record %r: %s", item, exc.errors())
            continue
        countries.append(
            CountryIn(
                name=raw.name,
                capital=raw.capital,
                region=raw.region,
                population=raw.population or 0,
                currency_code=raw.first_currency_code(),
                flag_url=raw.flag,
            )
        )
    logger.info("Fetched %d countries from %s (%d skipped)", len(countries), COUNTRIES_SOURCE, skipped)
    return countries


async def fetch_rates(client: httpx.AsyncClient, url: str) -> Dict[str, float]:
    """Fetch exchange rates as ``{currency_code: rate}``; unusable rates are dropped."""
    payload = await _get_json(client, url, RATES_SOURCE)
    try:
        parsed = ExchangeRatesResponse.model_validate(payload)
    except ValidationError as exc:
        raise SourceUnavailable(f"Could not parse response from {RATES_SOURCE}: {exc.errors()}") from exc
    if parsed.result is not None and parsed.result != "success":
        raise SourceUnavailable(f"Could not fetch data from {RATES_SOURCE}: result={parsed.result}")

    rates: Dict[str, float] = {}
    for code, value in parsed.rates.items():
        try:
            rate = float(value)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            rate = float("nan")
        if isinstance(value, bool) or not math.isfinite(rate) or rate <= 0:
            logger.warning("Dropping unusable rate %s=%r", code, value)
            continue
        rates[code] = rate
    logger.info("Fetched %d exchange rates from %s (base %s)", len(rates), RATES_SOURCE, parsed.base_code)
    return rates


async def fetch_all(
    client: httpx.AsyncClient, countries_url: str, rates_url: str
) -> Tuple[List[CountryIn], Dict[str, float]]:
    """Run both fetches concurrently; the first failure cancels the other and propagates."""
    tasks = [
        asyncio.ensure_future(fetch_countries(client, countries_url)),
        asyncio.ensure_future(fetch_rates(client, rates_url)),
    ]
    try:
        countries, rates = await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise
    return countries, rates
