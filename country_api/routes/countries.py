from pathlib import Path as FsPath
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query, Request
from fastapi.responses import FileResponse
from sqlalchemy.orm import Session

from country_api import schemas
from country_api.config import get_settings
from country_api.database import get_db
from country_api.services import country_service
from country_api.services.refresh_service import RefreshPipeline

router = APIRouter()


def get_pipeline(request: Request) -> RefreshPipeline:
    return request.app.state.pipeline


@router.post(
    "/refresh",
    response_model=schemas.RefreshResult,
    summary="Refresh country, currency, and exchange data",
    description=(
        "Fetches the latest data from both external providers, recomputes estimated GDP and upserts "
        "every country in one transaction. Concurrent refreshes are serialized. "
        "Also regenerates the summary image (best-effort)."
    ),
    responses={503: {"model": schemas.ErrorResponse}, 500: {"model": schemas.ErrorResponse}},
)
async def refresh_countries(
    db: Session = Depends(get_db),
    pipeline: RefreshPipeline = Depends(get_pipeline),
):
    return await pipeline.refresh(db)


@router.get(
    "",
    response_model=schemas.CountryList,
    summary="List countries",
    description=(
        "Returns countries with optional filtering, sorting, and pagination.\n\n"
        "Filters:\n"
        "- region: case-insensitive exact region match (e.g., 'Europe')\n"
        "- currency: 3-letter currency code, case-insensitive (e.g., 'USD', 'NGN')\n\n"
        "Sorting (sort): gdp_desc|gdp_asc|name_asc|name_desc|population_desc|population_asc; "
        "GDP sorts place countries without GDP last.\n\n"
        "Pagination: page (from 1, default 1) and limit (default 50, max 200)."
    ),
    responses={400: {"model": schemas.ErrorResponse}},
)
def get_all(
    region: Optional[str] = Query(default=None, description="Filter by region (case-insensitive exact match)", examples=["Europe"]),
    currency: Optional[str] = Query(default=None, description="Filter by 3-letter currency code", examples=["NGN"]),
    sort: Optional[str] = Query(default=None, description="Sort order", examples=["gdp_desc"]),
    page: Optional[str] = Query(default=None, description="1-based page number", examples=["1"]),
    limit: Optional[str] = Query(default=None, description="Page size", examples=["50"]),
    db: Session = Depends(get_db),
):
    params = country_service.parse_list_params(region=region, currency=currency, sort=sort, page=page, limit=limit)
    return country_service.list_countries(db, params)


@router.get(
    "/image",
    summary="Get generated summary image",
    description="Returns the PNG summary (top 5 GDP countries, total count, last refresh time).",
    responses={404: {"model": schemas.ErrorResponse}},
)
def get_image():
    img_path = FsPath(get_settings().SUMMARY_IMAGE_PATH)
    if not img_path.is_file():
        raise HTTPException(status_code=404, detail="Summary image not found")
    return FileResponse(str(img_path), media_type="image/png")


@router.get(
    "/{name}",
    response_model=schemas.CountryOut,
    summary="Get country by name",
    description="Case-insensitive exact country name match.",
    responses={404: {"model": schemas.ErrorResponse}},
)
def get_one(
    name: str = Path(..., description="Country name", examples=["Nigeria"]),
    db: Session = Depends(get_db),
):
    return country_service.get_country_by_name(db, name)


@router.delete(
    "/{name}",
    summary="Delete a country by name",
    description="Deletes a country (case-insensitive name match) if it exists.",
    responses={404: {"model": schemas.ErrorResponse}},
)
def delete_country(
    name: str = Path(..., description="Country name", examples=["Nigeria"]),
    db: Session = Depends(get_db),
):
    return country_service.delete_country_by_name(db, name)
