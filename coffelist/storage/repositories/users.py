"""User repository: relational store backed."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, cast

import structlog
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import col, or_, select
from sqlmodel.ext.asyncio.session import AsyncSession

from coffelist.exceptions import ConflictError, NotFoundError, StorageError
from coffelist.models.database import Credential, User

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

logger = structlog.get_logger(__name__)


class DatabaseUserRepository:
    """User store with the credential-creating registration write."""

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    async def create(self, username: str, email: str) -> User:
        async with AsyncSession(self._engine) as session:
            user = User(username=username, email=email)
            session.add(user)
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                msg = "Username or email already exists"
                raise ConflictError(msg) from exc
            await session.refresh(user)
            logger.info("user_created", user_id=user.id, username=username)
            return user

    async def create_with_credential(
        self,
        username: str,
        email: str,
        credential_fields: dict[str, Any],
    ) -> User:
        """Insert a user and its first credential in one transaction.

        Either both rows are committed or neither is.
        """
        async with AsyncSession(self._engine) as session:
            try:
                user = User(username=username, email=email)
                session.add(user)
                await session.flush()  # populate user.id without committing

                session.add(Credential(user_id=cast(int, user.id), **credential_fields))
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                logger.warning("registration_write_conflict", username=username)
                msg = "Username or email already exists"
                raise ConflictError(msg) from exc
            except SQLAlchemyError as exc:
                await session.rollback()
                logger.error("registration_write_failed", username=username, error=str(exc))
                msg = "Failed to store registration"
                raise StorageError(msg) from exc

            await session.refresh(user)
            logger.info("user_registered", user_id=user.id, username=username)
            return user

    async def get_by_id(self, user_id: int) -> User | None:
        async with AsyncSession(self._engine) as session:
            return await session.get(User, user_id)

    async def get_by_username(self, username: str) -> User | None:
        async with AsyncSession(self._engine) as session:
            stmt = select(User).where(col(User.username) == username)
            result = await session.execute(stmt)
            return result.scalars().first()

    async def get_by_email(self, email: str) -> User | None:
        async with AsyncSession(self._engine) as session:
            stmt = select(User).where(col(User.email) == email)
            result = await session.execute(stmt)
            return result.scalars().first()

    async def exists(self, username: str, email: str) -> bool:
        """Check whether the username or the email is already taken."""
        async with AsyncSession(self._engine) as session:
            stmt = (
                select(User.id)
                .where(or_(col(User.username) == username, col(User.email) == email))
                .limit(1)
            )
            result = await session.execute(stmt)
            return result.first() is not None

    async def list_all(self) -> list[User]:
        async with AsyncSession(self._engine) as session:
            stmt = select(User).order_by(col(User.created_at).desc(), col(User.id).desc())
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def delete(self, user_id: int) -> None:
        """Delete a user; credentials cascade, owned roasteries lose their owner."""
        async with AsyncSession(self._engine) as session:
            user = await session.get(User, user_id)
            if user is None:
                msg = "User not found"
                raise NotFoundError(msg)
            await session.delete(user)
            await session.commit()
            logger.info("user_deleted", user_id=user_id)
