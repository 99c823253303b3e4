"""
FastAPI application entry point for the Fantasy Flicks backend.
"""

from __future__ import annotations

import logging
import time

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, OperationalError
from starlette.exceptions import HTTPException as StarletteHTTPException

from fantasy_backend.config import get_settings
from fantasy_backend.errors import FantasyError
from fantasy_backend.routes import router

logger = logging.getLogger(__name__)


def _error(status_code: int, message: str, **extra) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"status": "error", "message": message, **extra},
    )


def _validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    message = str(first.get("msg", "Invalid request"))
    if message.startswith("Value error, "):
        return message[len("Value error, ") :]
    location = ".".join(str(part) for part in first.get("loc", ())[1:])
    return f"{location}: {message}" if location else message


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(FantasyError)
    async def fantasy_error_handler(request: Request, exc: FantasyError):
        logger.info(
            "%s %s rejected (%d): %s",
            request.method,
            request.url.path,
            exc.status_code,
            exc.message,
        )
        extra = {"problems": exc.problems} if hasattr(exc, "problems") else {}
        return _error(exc.status_code, exc.message, **extra)

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return _error(exc.status_code, str(exc.detail))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return _error(400, _validation_message(exc))

    @app.exception_handler(IntegrityError)
    async def integrity_error_handler(request: Request, exc: IntegrityError):
        logger.warning("Integrity error on %s %s: %s", request.method, request.url.path, exc)
        return _error(409, "Duplicate entry")

    @app.exception_handler(OperationalError)
    async def operational_error_handler(request: Request, exc: OperationalError):
        logger.error("Database unavailable on %s %s: %s", request.method, request.url.path, exc)
        return _error(503, "Database connection failed")

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return _error(500, "Internal server error")


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title="Fantasy Flicks Backend (FastAPI)", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        logger.info(
            "%s %s -> %d (%.1f ms)",
            request.method,
            request.url.path,
            response.status_code,
            (time.perf_counter() - started) * 1000,
        )
        return response

    install_error_handlers(app)
    app.include_router(router, prefix=settings.api_prefix)
    return app


app = create_app()
