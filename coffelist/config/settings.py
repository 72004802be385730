"""Application settings via Pydantic BaseSettings."""

from __future__ import annotations

import warnings
from functools import lru_cache
from typing import Literal
from urllib.parse import urlparse

from pydantic_settings import BaseSettings

from coffelist.exceptions import ConfigError

THIRTY_DAYS = 30 * 24 * 60 * 60


class Settings(BaseSettings):
    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    # Database
    database_url: str = "sqlite+aiosqlite:///./coffelist.db"
    create_tables: bool = True  # Dev convenience; production schema is managed externally

    # App
    secret_key: str = "coffelist-secret-change-in-production"
    debug: bool = False
    log_level: str = "INFO"
    allowed_origins: list[str] = ["http://localhost:8080"]

    # WebAuthn relying party
    rp_id: str = "localhost"
    rp_name: str = "Coffelist"
    origin: str = "http://localhost:8080"

    # Sessions
    session_backend: Literal["memory", "database"] = "database"
    session_cookie_name: str = "coffelist_session"
    session_max_age: int = THIRTY_DAYS


@lru_cache
def get_settings() -> Settings:
    """Return cached settings instance."""
    settings = Settings()
    if settings.secret_key == "coffelist-secret-change-in-production":  # nosec B105
        warnings.warn(
            "SECRET_KEY is using the insecure default. "
            "Set SECRET_KEY environment variable for production.",
            UserWarning,
            stacklevel=2,
        )
    validate_relying_party(settings)
    return settings


def validate_relying_party(settings: Settings) -> None:
    """The RP ID must be the origin's host or a registrable suffix of it."""
    host = urlparse(settings.origin).hostname or ""
    if not host or not (host == settings.rp_id or host.endswith(f".{settings.rp_id}")):
        msg = f"ORIGIN {settings.origin!r} is not within RP_ID {settings.rp_id!r}"
        raise ConfigError(msg)
