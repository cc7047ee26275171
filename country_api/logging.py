import importlib.util
import logging
import time
from logging.config import dictConfig

from fastapi import Request
from sqlalchemy import event
from sqlalchemy.engine import Engine
from starlette.middleware.base import BaseHTTPMiddleware

from country_api.config import get_settings

# ---------------------------------------------------
# Colorlog Availability Check
# ---------------------------------------------------
COLORLOG_AVAILABLE = importlib.util.find_spec("colorlog") is not None

FORMAT = "[%(asctime)s] %(levelname)s [%(name)s] in %(module)s: %(message)s"


def build_logging_config() -> dict:
    settings = get_settings()
    level = settings.LOG_LEVEL.upper()
    formatters: dict = {"default": {"format": FORMAT}}
    if COLORLOG_AVAILABLE:
        formatters["color"] = {
            "()": "colorlog.ColoredFormatter",
            "format": "%(log_color)s" + FORMAT,
            "log_colors": {
                "DEBUG": "cyan",
                "INFO": "green",
                "WARNING": "yellow",
                "ERROR": "red",
                "CRITICAL": "bold_red",
            },
        }
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": formatters,
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "color" if COLORLOG_AVAILABLE else "default",
                "level": settings.CONSOLE_LOG_LEVEL.upper(),
            },
        },
        "loggers": {
            # Silence uvicorn noise in console
            "uvicorn": {"level": "WARNING"},
            "uvicorn.error": {"level": "WARNING"},
            "uvicorn.access": {"level": "WARNING"},
            "sqlalchemy.engine": {"level": "WARNING", "handlers": ["console"], "propagate": False},
            "country_api": {"level": level, "handlers": ["console"], "propagate": False},
            "country_api.request": {"level": "INFO"},
            "country_api.db": {"level": "DEBUG" if level == "DEBUG" else "INFO"},
        },
        "root": {"level": level, "handlers": ["console"]},
    }


def init_logging() -> None:
    dictConfig(build_logging_config())


# ---------------------------------------------------
# Request Logging Middleware
# ---------------------------------------------------
class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        logger = logging.getLogger("country_api.request")
        start_time = time.perf_counter()

        response = await call_next(request)

        duration = (time.perf_counter() - start_time) * 1000
        logger.info("%s %s -> %s (%.2f ms)", request.method, request.url.path, response.status_code, duration)
        return response


# ---------------------------------------------------
# SQLAlchemy Query Timing
# ---------------------------------------------------
SLOW_QUERY_THRESHOLD_MS = 200


def setup_query_logging(engine: Engine) -> None:
    logger = logging.getLogger("country_api.db")

    @event.listens_for(engine, "before_cursor_execute")
    def before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
        context._query_start_time = time.perf_counter()

    @event.listens_for(engine, "after_cursor_execute")
    def after_cursor_execute(conn, cursor, statement, parameters, context, executemany):
        total_time = (time.perf_counter() - context._query_start_time) * 1000
        if total_time > SLOW_QUERY_THRESHOLD_MS:
            logger.warning("Slow Query (%.2f ms): %s", total_time, statement)
        else:
            logger.debug("Query (%.2f ms): %s", total_time, statement)
