"""Roastery repository: relational store backed."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog
from sqlmodel import col, select
from sqlmodel.ext.asyncio.session import AsyncSession

from coffelist.exceptions import ValidationError
from coffelist.models.database import Roastery, User

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

logger = structlog.get_logger(__name__)


class DatabaseRoasteryRepository:
    """Roastery store. Listings are returned as dicts joined with owner info."""

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    @staticmethod
    def _to_dict(roastery: Roastery, owner: User | None = None) -> dict[str, Any]:
        return {
            "id": roastery.id,
            "name": roastery.name,
            "location": roastery.location,
            "description": roastery.description,
            "owner_id": roastery.owner_id,
            "owner_username": owner.username if owner else None,
            "owner_email": owner.email if owner else None,
            "created_at": roastery.created_at,
        }

    async def create(
        self,
        name: str,
        location: str,
        description: str | None = None,
        owner_id: int | None = None,
    ) -> dict[str, Any]:
        async with AsyncSession(self._engine) as session:
            owner: User | None = None
            if owner_id is not None:
                owner = await session.get(User, owner_id)
                if owner is None:
                    msg = f"Owner {owner_id} does not exist"
                    raise ValidationError(msg)

            roastery = Roastery(
                name=name, location=location, description=description, owner_id=owner_id
            )
            session.add(roastery)
            await session.commit()
            await session.refresh(roastery)
            if owner is not None:
                await session.refresh(owner)
            logger.info("roastery_created", id=roastery.id, name=name, owner_id=owner_id)
            return self._to_dict(roastery, owner)

    async def list_with_owners(self) -> list[dict[str, Any]]:
        async with AsyncSession(self._engine) as session:
            stmt = (
                select(Roastery, User)
                .join(User, col(Roastery.owner_id) == col(User.id), isouter=True)
                .order_by(col(Roastery.created_at).desc(), col(Roastery.id).desc())
            )
            result = await session.execute(stmt)
            return [self._to_dict(roastery, owner) for roastery, owner in result.all()]

    async def list_for_owner(self, owner_id: int) -> list[dict[str, Any]]:
        async with AsyncSession(self._engine) as session:
            stmt = (
                select(Roastery)
                .where(col(Roastery.owner_id) == owner_id)
                .order_by(col(Roastery.created_at).desc(), col(Roastery.id).desc())
            )
            result = await session.execute(stmt)
            return [self._to_dict(r) for r in result.scalars().all()]
