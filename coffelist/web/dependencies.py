"""FastAPI dependency injection and shared state."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
from fastapi import Request

from coffelist.storage.repositories.credentials import DatabaseCredentialRepository
from coffelist.storage.repositories.roasteries import DatabaseRoasteryRepository
from coffelist.storage.repositories.sessions import DatabaseSessionStore
from coffelist.storage.repositories.users import DatabaseUserRepository
from coffelist.web.auth.passkey_service import PasskeyService
from coffelist.web.auth.session import InMemorySessionStore, SessionAuth, SessionStore

if TYPE_CHECKING:
    from fastapi import FastAPI
    from sqlalchemy.ext.asyncio import AsyncEngine

    from coffelist.config.settings import Settings

logger = structlog.get_logger(__name__)


def _create_session_store(settings: Settings, engine: AsyncEngine) -> SessionStore:
    """Create the session store selected by settings."""
    if settings.session_backend == "database":
        return DatabaseSessionStore(engine)
    return InMemorySessionStore()


def init_state(app: FastAPI, settings: Settings, engine: AsyncEngine) -> None:
    """Build the repositories and services shared by every request."""
    user_repo = DatabaseUserRepository(engine)
    credential_repo = DatabaseCredentialRepository(engine)

    app.state.engine = engine
    app.state.user_repo = user_repo
    app.state.roastery_repo = DatabaseRoasteryRepository(engine)
    app.state.passkey_service = PasskeyService(
        credential_repo=credential_repo,
        user_repo=user_repo,
        rp_id=settings.rp_id,
        rp_name=settings.rp_name,
        origin=settings.origin,
    )
    app.state.session_auth = SessionAuth(
        store=_create_session_store(settings, engine),
        secret_key=settings.secret_key,
        max_age=settings.session_max_age,
        cookie_name=settings.session_cookie_name,
        secure_cookie=not settings.debug,
    )
    logger.info(
        "state_initialized",
        rp_id=settings.rp_id,
        origin=settings.origin,
        session_backend=settings.session_backend,
    )


def get_passkey_service(request: Request) -> PasskeyService:
    return request.app.state.passkey_service


def get_user_repo(request: Request) -> DatabaseUserRepository:
    return request.app.state.user_repo


def get_roastery_repo(request: Request) -> DatabaseRoasteryRepository:
    return request.app.state.roastery_repo
