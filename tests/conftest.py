"""Shared test fixtures."""

from __future__ import annotations

import pytest
from helpers.software_authenticator import SoftwareAuthenticator
from httpx import ASGITransport, AsyncClient

from coffelist.config.settings import Settings
from coffelist.storage.database import create_engine, init_db
from coffelist.web.app import create_app

ORIGIN = "http://localhost:8080"


@pytest.fixture()
def settings() -> Settings:
    """Settings isolated from the environment and any .env file."""
    return Settings(
        _env_file=None,
        database_url="sqlite+aiosqlite:///:memory:",
        secret_key="test-secret",
        debug=True,  # non-secure cookies so httpx sends them over http://
        rp_id="localhost",
        rp_name="Coffelist",
        origin=ORIGIN,
        session_backend="database",
        create_tables=False,
    )


@pytest.fixture()
async def async_engine():
    """In-memory SQLite engine with all tables created."""
    engine = create_engine("sqlite+aiosqlite:///:memory:")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture()
async def file_engine(tmp_path):
    """File-backed SQLite engine; each session gets its own connection."""
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'coffelist.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture()
def app(settings, async_engine):
    """Create a fresh app bound to the test engine."""
    return create_app(settings=settings, engine=async_engine)


@pytest.fixture()
async def client(app):
    """An AsyncClient that keeps the session cookie between requests."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture()
def authenticator() -> SoftwareAuthenticator:
    return SoftwareAuthenticator(origin=ORIGIN)
