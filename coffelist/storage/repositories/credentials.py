"""Passkey credential repository: relational store backed."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
from sqlalchemy import update
from sqlmodel import col, select
from sqlmodel.ext.asyncio.session import AsyncSession

from coffelist.models.database import Credential, User, _utc_now

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

logger = structlog.get_logger(__name__)


class DatabaseCredentialRepository:
    """Credential store: public keys, signature counters, transport hints."""

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    async def get_by_credential_id(self, credential_id: bytes) -> Credential | None:
        async with AsyncSession(self._engine) as session:
            stmt = select(Credential).where(col(Credential.credential_id) == credential_id)
            result = await session.execute(stmt)
            return result.scalars().first()

    async def list_for_user(self, user_id: int) -> list[Credential]:
        async with AsyncSession(self._engine) as session:
            stmt = select(Credential).where(col(Credential.user_id) == user_id)
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def list_for_username(self, username: str) -> list[Credential]:
        async with AsyncSession(self._engine) as session:
            stmt = (
                select(Credential)
                .join(User, col(User.id) == col(Credential.user_id))
                .where(col(User.username) == username)
            )
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def compare_and_set_sign_count(
        self,
        credential_id: bytes,
        expected: int,
        new_count: int,
    ) -> bool:
        """Advance the signature counter only if it still equals ``expected``.

        The comparison and the write are one UPDATE statement, so of two
        verifications racing with the same counter at most one matches a row.
        Returns True when the counter was advanced.
        """
        async with AsyncSession(self._engine) as session:
            stmt = (
                update(Credential)
                .where(
                    col(Credential.credential_id) == credential_id,
                    col(Credential.sign_count) == expected,
                    col(Credential.sign_count) < new_count,
                )
                .values(sign_count=new_count, last_used_at=_utc_now())
            )
            result = await session.execute(stmt)
            await session.commit()
            advanced = result.rowcount == 1
            if not advanced:
                logger.warning(
                    "sign_count_not_advanced",
                    expected=expected,
                    new_count=new_count,
                )
            return advanced
