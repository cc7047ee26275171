import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from country_api import database
from country_api.config import get_settings
from country_api.errors import CountryApiError, InternalError, sanitize
from country_api.logging import RequestLoggingMiddleware, init_logging, setup_query_logging
from country_api.routes import countries, health, status
from country_api.services.refresh_service import RefreshPipeline

logger = logging.getLogger("country_api")


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    logger.info("Startup: initializing database at %s", database.get_database_dsn())
    try:
        database.init_db()
    except SQLAlchemyError as e:
        logger.critical("Database initialization failed: %s", sanitize(e))
        raise

    Path(settings.SUMMARY_IMAGE_PATH).parent.mkdir(parents=True, exist_ok=True)
    app.state.pipeline = RefreshPipeline(settings)
    logger.info(
        "Ready: base currency %s, external timeout %d ms, GDP multiplier %s",
        settings.BASE_CURRENCY,
        settings.EXTERNAL_TIMEOUT_MS,
        settings.GDP_MULTIPLIER,
    )
    yield
    logger.info("Shutdown: closing database connection pool")
    database.engine.dispose()


app = FastAPI(
    title="Country Currency & Exchange API",
    version="1.0.0",
    description=(
        "REST API to explore countries, currencies, population, and simple GDP estimates.\n\n"
        "Features:\n"
        "- Refresh from restcountries and open.er-api\n"
        "- Filter by region and currency\n"
        "- Sort by name, population, or estimated GDP, with page/limit pagination\n"
        "- Lightweight status, health check and a generated summary image"
    ),
    lifespan=lifespan,
)

# Initialize logging and middleware
init_logging()
app.add_middleware(RequestLoggingMiddleware)
setup_query_logging(database.engine)

app.include_router(countries.router, prefix="/countries", tags=["Countries"])
app.include_router(status.router, prefix="/status", tags=["Status"])
app.include_router(health.router)


@app.get("/")
def root():
    return {"message": "Country Currency & Exchange API running. Visit /docs for API documentation."}


# -------------------------------
# Unified error response handlers
# -------------------------------
@app.exception_handler(CountryApiError)
async def api_error_handler(request: Request, exc: CountryApiError):
    log = logger.error if exc.status_code >= 500 else logger.info
    log("%s: %s %s -> %s | details=%s", type(exc).__name__, request.method, request.url.path, exc.status_code, exc.details)
    return JSONResponse(status_code=exc.status_code, content=exc.to_body())


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    logger.info("HTTPException: %s %s -> %s | detail=%s", request.method, request.url.path, exc.status_code, exc.detail)
    body = {"error": exc.detail if isinstance(exc.detail, str) else "Error"}
    if isinstance(exc.detail, dict):
        body = {
            "error": exc.detail.get("error") or "Error",
            "details": exc.detail.get("details"),
        }
    return JSONResponse(status_code=exc.status_code, content=body, headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    details = {".".join(str(p) for p in err["loc"][1:]) or "request": err["msg"] for err in exc.errors()}
    logger.info("ValidationError: %s %s | errors=%s", request.method, request.url.path, details)
    return JSONResponse(status_code=400, content={"error": "Validation failed", "details": details})


@app.exception_handler(SQLAlchemyError)
async def storage_exception_handler(request: Request, exc: SQLAlchemyError):
    logger.exception("Storage error: %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content=InternalError(str(exc)).to_body())


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled exception: %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})
