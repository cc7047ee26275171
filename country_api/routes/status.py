from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from country_api.database import get_db
from country_api.schemas import StatusOut
from country_api.services import country_service

router = APIRouter()


@router.get(
    "",
    response_model=StatusOut,
    summary="API/data status",
    description="Returns the number of countries stored and the timestamp of the last successful refresh.",
)
def get_status(db: Session = Depends(get_db)):
    return country_service.get_status(db)
