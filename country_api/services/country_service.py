from typing import Optional

from pydantic import ValidationError
from sqlalchemy.orm import Session

from country_api import crud
from country_api.errors import CountryNotFound, ValidationFailed
from country_api.schemas import CountryList, CountryOut, ListParams, StatusOut


def parse_list_params(
    region: Optional[str] = None,
    currency: Optional[str] = None,
    sort: Optional[str] = None,
    page: Optional[str] = None,
    limit: Optional[str] = None,
) -> ListParams:
    """Validate raw query values, reporting every invalid field at once."""
    raw = {"region": region, "currency": currency, "sort": sort, "page": page, "limit": limit}
    try:
        return ListParams.model_validate({k: v for k, v in raw.items() if v is not None})
    except ValidationError as exc:
        details = {}
        for err in exc.errors():
            field = str(err["loc"][0]) if err["loc"] else "query"
            details.setdefault(field, err["msg"])
        raise ValidationFailed(details) from exc


def list_countries(db: Session, params: ListParams) -> CountryList:
    rows, total = crud.list_countries(
        db,
        region=params.region,
        currency=params.currency,
        sort=params.sort,
        offset=params.offset,
        limit=params.limit,
    )
    return CountryList(
        records=[CountryOut.model_validate(r) for r in rows],
        total=total,
        page=params.page,
        limit=params.limit,
    )


def get_country_by_name(db: Session, name: str):
    country = crud.get_country(db, name)
    if not country:
        raise CountryNotFound()
    return country


def delete_country_by_name(db: Session, name: str) -> dict:
    if not crud.delete_country(db, name):
        raise CountryNotFound()
    return {"message": "Deleted successfully"}


def get_status(db: Session) -> StatusOut:
    return StatusOut(total_countries=crud.count_countries(db), last_refreshed_at=crud.get_last_refresh(db))
