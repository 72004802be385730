"""Health check endpoint logic."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

logger = structlog.get_logger(__name__)


async def check_health(engine: AsyncEngine) -> tuple[bool, dict[str, object]]:
    """Probe the database. Returns (healthy, body)."""
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as exc:
        logger.warning("health_check_db_failed", error=str(exc))
        return False, {
            "status": "unhealthy",
            "database": "disconnected",
            "service": "auth",
            "error": str(exc),
        }

    return True, {"status": "healthy", "database": "connected", "service": "auth"}
