"""Browser session repository: relational store backed."""

from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING

import structlog
from sqlmodel import col, delete
from sqlmodel.ext.asyncio.session import AsyncSession

from coffelist.models.database import SessionRecord, _utc_now
from coffelist.models.session import SessionData

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

logger = structlog.get_logger(__name__)


class DatabaseSessionStore:
    """Session store keyed by session id, one row per browser session."""

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    async def load(self, sid: str) -> SessionData | None:
        async with AsyncSession(self._engine) as session:
            record = await session.get(SessionRecord, sid)
            if record is None:
                return None
            if record.expires_at <= _utc_now():
                await session.delete(record)
                await session.commit()
                logger.debug("session_expired")
                return None
            return SessionData.model_validate_json(record.data)

    async def save(self, sid: str, data: SessionData, max_age: int) -> None:
        async with AsyncSession(self._engine) as session:
            await session.merge(
                SessionRecord(
                    sid=sid,
                    data=data.model_dump_json(),
                    expires_at=_utc_now() + timedelta(seconds=max_age),
                )
            )
            await session.commit()

    async def destroy(self, sid: str) -> None:
        async with AsyncSession(self._engine) as session:
            await session.execute(delete(SessionRecord).where(col(SessionRecord.sid) == sid))
            await session.commit()

    async def purge_expired(self) -> int:
        """Delete every expired session row. Returns the number removed."""
        async with AsyncSession(self._engine) as session:
            result = await session.execute(
                delete(SessionRecord).where(col(SessionRecord.expires_at) <= _utc_now())
            )
            await session.commit()
            return result.rowcount or 0
