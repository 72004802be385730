"""FastAPI application factory."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from coffelist.config.logging import setup_logging
from coffelist.config.settings import Settings, get_settings, validate_relying_party
from coffelist.exceptions import CoffelistError
from coffelist.storage.database import create_engine, init_db
from coffelist.storage.repositories.sessions import DatabaseSessionStore
from coffelist.web.dependencies import init_state
from coffelist.web.health import check_health
from coffelist.web.middleware import RequestIDMiddleware
from coffelist.web.routes.auth import router as auth_router
from coffelist.web.routes.directory import router as directory_router

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

logger = structlog.get_logger(__name__)

ENDPOINTS = {
    "POST /register/start": "Start passkey registration",
    "POST /register/verify": "Complete passkey registration",
    "POST /login/start": "Start passkey authentication",
    "POST /login/verify": "Complete passkey authentication",
    "GET /session": "Get current session info",
    "POST /logout": "Logout and destroy session",
    "GET /roasteries": "Get all roasteries",
    "POST /roasteries": "Add a new roastery",
    "GET /users": "Get all users",
    "POST /users": "Add a new user",
    "GET /users/{id}": "Get a user",
    "GET /users/{id}/roasteries": "Get roasteries owned by a user",
    "GET /health": "Health check",
}


def _error_response(status_code: int, kind: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": {"kind": kind, "message": message}},
    )


def create_app(settings: Settings | None = None, engine: AsyncEngine | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    ``settings`` and ``engine`` default to the process-wide instances; tests
    pass their own.
    """
    if settings is None:
        settings = get_settings()
    else:
        validate_relying_party(settings)
    setup_logging(log_level=settings.log_level, json_output=not settings.debug)

    owns_engine = engine is None
    if engine is None:
        engine = create_engine(settings.database_url, echo=settings.debug)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if settings.create_tables:
            await init_db(engine)
        if settings.session_backend == "database":
            purged = await DatabaseSessionStore(engine).purge_expired()
            logger.info("expired_sessions_purged", count=purged)
        yield
        if owns_engine:
            await engine.dispose()

    app = FastAPI(
        title="Coffelist",
        description="Coffee roastery directory with passkey authentication",
        version="0.1.0",
        lifespan=lifespan,
    )
    init_state(app, settings, engine)

    @app.exception_handler(CoffelistError)
    async def coffelist_error_handler(request: Request, exc: CoffelistError) -> JSONResponse:
        log = logger.error if exc.status_code >= 500 else logger.warning
        log("request_failed", path=request.url.path, kind=exc.kind, error=str(exc))
        return _error_response(exc.status_code, exc.kind, str(exc))

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        logger.warning("request_invalid", path=request.url.path, errors=len(exc.errors()))
        fields = sorted({".".join(str(p) for p in e["loc"][1:]) for e in exc.errors()})
        message = f"Invalid request: {', '.join(f for f in fields if f) or 'body'}"
        return _error_response(400, "validation_error", message)

    # Middleware (last added runs first)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type", "X-Request-ID"],
    )
    app.add_middleware(RequestIDMiddleware)

    app.include_router(auth_router)
    app.include_router(directory_router)

    @app.get("/")
    async def index() -> dict[str, object]:
        return {
            "message": "Coffelist Auth Service - Passkey/WebAuthn",
            "service": "auth",
            "version": app.version,
            "endpoints": ENDPOINTS,
        }

    @app.get("/health")
    async def health() -> JSONResponse:
        healthy, body = await check_health(engine)
        return JSONResponse(status_code=200 if healthy else 500, content=body)

    logger.info("app_created", rp_id=settings.rp_id)
    return app
