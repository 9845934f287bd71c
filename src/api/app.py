"""
FastAPI application factory.

The lifespan builds every service once per process and starts the sweep
trigger; shutdown stops it.  Tests inject a ``db`` so that no Supabase
client is created::

    app = create_app(settings, db=fake_db)
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from src.api.dependencies import AppServices
from src.api.routes import admin_content, debug, health, user_content
from src.config import Settings, get_settings
from src.content.service import ContentService
from src.database import SupabaseDB
from src.exceptions import (
    AccessDeniedError,
    AuthenticationRequiredError,
    ContentNotFoundError,
    DatabaseError,
    ValidationError,
    error_payload,
)
from src.logging import EventLogger, LogComponent
from src.scheduling import ScheduleReconciler, SweepTrigger

logger = logging.getLogger(__name__)


async def build_services(settings: Settings, db: Optional[SupabaseDB] = None) -> AppServices:
    """Wire the store, the reconciler, the content service and the trigger."""
    if db is None:
        db = await SupabaseDB.create(timeout_seconds=settings.store_timeout_seconds)
    events = EventLogger(log_dir=settings.log_dir)
    reconciler = ScheduleReconciler(
        db,
        events=events,
        failure_alert_threshold=settings.sweep.failure_alert_threshold,
    )
    trigger = SweepTrigger(
        reconciler,
        interval_seconds=settings.sweep.interval_seconds,
        startup_delay_seconds=settings.sweep.startup_delay_seconds,
    )
    return AppServices(
        settings=settings,
        db=db,
        events=events,
        reconciler=reconciler,
        content=ContentService(db, events=events),
        trigger=trigger,
    )


def create_app(settings: Optional[Settings] = None, db: Optional[SupabaseDB] = None) -> FastAPI:
    """Create the application.

    Args:
        settings: Application settings.  Defaults to :func:`get_settings`.
        db: Optional pre-built store client (tests pass a fake).

    Returns:
        Configured FastAPI instance.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        services = await build_services(settings, db)
        app.state.services = services
        await services.events.info(
            LogComponent.STARTUP,
            "Application started",
            data={
                "environment": settings.environment,
                "debug_routes": settings.enable_debug_routes,
                "sweep_interval_seconds": settings.sweep.interval_seconds,
            },
        )
        await services.trigger.start()
        try:
            yield
        finally:
            await services.trigger.stop()
            logger.info("[STARTUP] Application stopped")

    app = FastAPI(title="Course Mini-App API", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health.router)
    app.include_router(user_content.router)
    app.include_router(admin_content.router)
    if settings.enable_debug_routes:
        logger.warning("[STARTUP] Debug routes enabled under /api/test (unauthenticated)")
        app.include_router(debug.router)

    _register_exception_handlers(app)
    return app


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ValidationError)
    async def validation_error(request: Request, exc: ValidationError) -> JSONResponse:
        return JSONResponse(status_code=400, content=error_payload(str(exc)))

    @app.exception_handler(AuthenticationRequiredError)
    async def authentication_required(
        request: Request, exc: AuthenticationRequiredError
    ) -> JSONResponse:
        return JSONResponse(status_code=401, content=error_payload(str(exc)))

    @app.exception_handler(AccessDeniedError)
    async def access_denied(request: Request, exc: AccessDeniedError) -> JSONResponse:
        return JSONResponse(status_code=403, content=error_payload(str(exc)))

    @app.exception_handler(ContentNotFoundError)
    async def not_found(request: Request, exc: ContentNotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content=error_payload("Content not found", str(exc)))

    @app.exception_handler(DatabaseError)
    async def database_error(request: Request, exc: DatabaseError) -> JSONResponse:
        logger.error("[API] %s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(
            status_code=500,
            content=error_payload("Database operation failed", str(exc)),
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_error(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content=error_payload("Invalid request", _describe_request_errors(exc)),
        )

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception) -> JSONResponse:
        logger.error(
            "[API] Unhandled error in %s %s: %s",
            request.method,
            request.url.path,
            exc,
            exc_info=True,
        )
        return JSONResponse(
            status_code=500,
            content=error_payload("Internal server error", str(exc)),
        )


def _describe_request_errors(exc: RequestValidationError) -> str:
    # "title: Input should be a valid string", without the body/path/query prefix
    parts = []
    for err in exc.errors():
        location = ".".join(
            str(part) for part in err.get("loc", ()) if part not in ("body", "path", "query")
        )
        parts.append(f"{location}: {err.get('msg')}" if location else str(err.get("msg")))
    return "; ".join(parts)


__all__ = [
    "build_services",
    "create_app",
]
