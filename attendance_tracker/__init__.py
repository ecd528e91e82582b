"""Application factory and top-level wiring for the Attendance Tracker API.

*What:* ``create_app`` builds the database engine, the two stores, the
attendance engine, the account service and the access gate, and hangs them off
``app.state`` where the router dependencies pick them up.
*When:* Once per process (``attendance_tracker.main``) or once per test.
*Why:* Nothing lives in module globals, so tests can hand in their own
settings, database and clock.
*How:* Settings come from :func:`get_settings` unless passed explicitly.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CollectorRegistry
from prometheus_fastapi_instrumentator import Instrumentator
from sqlalchemy.engine import Engine
from starlette.exceptions import HTTPException as StarletteHTTPException

from .core.config import AppSettings, get_settings
from .core.errors import (
    ConfigurationError,
    configuration_error_handler,
    http_exception_handler,
    unhandled_exception_handler,
    validation_exception_handler,
)
from .crud.attendance import SqlAttendanceStore
from .crud.users import SqlUserStore
from .db.migrate import run_migrations
from .db.session import Base, build_engine, build_session_factory
from .middlewares import RequestIdMiddleware
from .services.access import AccessGate
from .services.accounts import AccountService
from .services.attendance import AttendanceEngine, utcnow

# Importing the models registers their tables with ``Base.metadata``.
from .models import attendance as _attendance  # noqa: F401
from .models import user as _user  # noqa: F401

logger = logging.getLogger(__name__)


def create_app(
    settings: AppSettings | None = None,
    *,
    db_engine: Engine | None = None,
    clock: Callable[[], datetime] = utcnow,
) -> FastAPI:
    settings = settings or get_settings()
    db_engine = db_engine or build_engine(settings.database_url)

    # ---------- DB init ----------
    Base.metadata.create_all(bind=db_engine)
    run_migrations(db_engine)
    session_factory = build_session_factory(db_engine)

    if not settings.JWT_SECRET.strip():
        logger.warning("config.jwt_secret_missing")

    app = FastAPI(title=settings.APP_NAME)
    app.state.settings = settings
    app.state.db_engine = db_engine
    app.state.engine = AttendanceEngine(SqlAttendanceStore(session_factory), clock=clock)
    app.state.accounts = AccountService(SqlUserStore(session_factory), settings)
    app.state.gate = AccessGate(settings)

    # ---------- Middleware ----------
    if settings.ALLOWED_ORIGINS:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.ALLOWED_ORIGINS,
            allow_credentials=True,
            allow_methods=["GET", "POST", "OPTIONS"],
            allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
        )
    app.add_middleware(RequestIdMiddleware)

    # ---------- Exception handling ----------
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(ConfigurationError, configuration_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # ---------- Routers ----------
    from .routers import api_attendance, api_auth

    app.include_router(api_auth.router)
    app.include_router(api_attendance.router)

    @app.get("/health", tags=["ops"])
    def health() -> dict[str, bool]:
        return {"ok": True}

    if settings.METRICS_ENABLED:
        Instrumentator(registry=CollectorRegistry()).instrument(app).expose(app, include_in_schema=False)

    return app


__all__ = ["create_app"]
