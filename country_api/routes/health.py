import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from country_api import crud
from country_api.database import get_db
from country_api.errors import sanitize

router = APIRouter()
logger = logging.getLogger("country_api")


@router.get("/healthz", summary="Storage health check", tags=["Health"])
def healthz(db: Session = Depends(get_db)):
    try:
        crud.health_check(db)
    except SQLAlchemyError as exc:
        logger.warning("Health check failed: %s", sanitize(exc))
        return JSONResponse(
            status_code=503,
            content={"error": "Storage unavailable", "details": sanitize(exc)},
        )
    return {"status": "ok"}
