"""FastAPI application entrypoint."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from cryptopilot.api.routes import api_router
from cryptopilot.config import AppSettings, get_settings
from cryptopilot.container import ServiceContainer, build_container
from cryptopilot.core.logging import setup_logging
from cryptopilot.core.telemetry import setup_telemetry
from cryptopilot.db.init import init_database
from cryptopilot.db.session import Database
from cryptopilot.jobs.queue import JobQueue
from cryptopilot.providers import PriceProvider
from cryptopilot.repositories import LedgerStoreError
from cryptopilot.schemas import HealthResponse
from cryptopilot.services.calendar import Calendar, InvalidRangeError
from cryptopilot.services.history import HistoryUnavailableError
from cryptopilot.services.transactions import ValidationError

logger = logging.getLogger(__name__)


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


def _validation_message(exc: RequestValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error.get("loc", ()) if item not in ("body", "query"))
        parts.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    return "; ".join(parts) or "Invalid request"


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(RequestValidationError)
    async def _request_validation(_: Request, exc: RequestValidationError) -> JSONResponse:
        return _error(status.HTTP_400_BAD_REQUEST, _validation_message(exc))

    @app.exception_handler(ValidationError)
    async def _intake_validation(_: Request, exc: ValidationError) -> JSONResponse:
        return _error(status.HTTP_400_BAD_REQUEST, str(exc))

    @app.exception_handler(InvalidRangeError)
    async def _invalid_range(_: Request, exc: InvalidRangeError) -> JSONResponse:
        return _error(status.HTTP_400_BAD_REQUEST, str(exc))

    @app.exception_handler(HistoryUnavailableError)
    async def _history_unavailable(_: Request, exc: HistoryUnavailableError) -> JSONResponse:
        return _error(status.HTTP_503_SERVICE_UNAVAILABLE, str(exc))

    @app.exception_handler(LedgerStoreError)
    async def _store_failure(request: Request, exc: LedgerStoreError) -> JSONResponse:
        logger.error("Store failure on %s %s: %s", request.method, request.url.path, exc)
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Ledger store unavailable")

    @app.exception_handler(StarletteHTTPException)
    async def _http_error(_: Request, exc: StarletteHTTPException) -> JSONResponse:
        return _error(exc.status_code, str(exc.detail))


def create_app(
    settings: AppSettings | None = None,
    *,
    database: Database | None = None,
    provider: PriceProvider | None = None,
    calendar: Calendar | None = None,
    queue: JobQueue | None = None,
) -> FastAPI:
    """Build the application; collaborators can be injected for tests."""

    settings = settings or get_settings()
    container: ServiceContainer = build_container(
        settings,
        database=database,
        provider=provider,
        calendar=calendar,
        queue=queue,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        setup_logging()
        logger.info("Starting %s with %s", settings.app_name, settings.dict_for_logging())
        if settings.create_schema_on_startup:
            await init_database(container.database)
        container.queue.start()
        try:
            yield
        finally:
            await container.aclose()
            await container.database.dispose()

    app = FastAPI(title=settings.app_name, version="0.1.0", lifespan=lifespan)
    app.state.container = container
    app.state.settings = settings
    setup_telemetry(app, settings, engine=container.database.engine)

    app.add_middleware(
        CORSMiddleware,
        allow_origin_regex=r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$",
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["traceparent", "tracestate", "x-request-id"],
    )
    register_exception_handlers(app)

    @app.get("/health", tags=["health"], response_model=HealthResponse)
    async def health() -> HealthResponse:
        """Return service readiness metadata."""

        return HealthResponse(
            status="ok",
            timestamp=container.calendar.now(),
            timezone=settings.timezone,
        )

    app.include_router(api_router)
    return app


__all__ = ["create_app", "register_exception_handlers"]
