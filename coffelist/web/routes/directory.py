"""Roastery and user directory API routes."""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter, Depends

from coffelist.exceptions import NotFoundError
from coffelist.models.api import (
    CreateRoasteryRequest,
    CreateUserRequest,
    RoasteryResponse,
    UserResponse,
)
from coffelist.models.database import User
from coffelist.storage.repositories.roasteries import DatabaseRoasteryRepository
from coffelist.storage.repositories.users import DatabaseUserRepository
from coffelist.web.dependencies import get_roastery_repo, get_user_repo

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["directory"])


@router.get("/roasteries", response_model=list[RoasteryResponse])
async def list_roasteries(
    roasteries: DatabaseRoasteryRepository = Depends(get_roastery_repo),
) -> list[dict[str, Any]]:
    return await roasteries.list_with_owners()


@router.post("/roasteries", status_code=201, response_model=RoasteryResponse)
async def create_roastery(
    body: CreateRoasteryRequest,
    roasteries: DatabaseRoasteryRepository = Depends(get_roastery_repo),
) -> dict[str, Any]:
    return await roasteries.create(
        name=body.name,
        location=body.location,
        description=body.description,
        owner_id=body.owner_id,
    )


@router.get("/users", response_model=list[UserResponse])
async def list_users(
    users: DatabaseUserRepository = Depends(get_user_repo),
) -> list[User]:
    return await users.list_all()


@router.post("/users", status_code=201, response_model=UserResponse)
async def create_user(
    body: CreateUserRequest,
    users: DatabaseUserRepository = Depends(get_user_repo),
) -> User:
    return await users.create(username=body.username, email=body.email)


@router.get("/users/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: int,
    users: DatabaseUserRepository = Depends(get_user_repo),
) -> User:
    user = await users.get_by_id(user_id)
    if user is None:
        msg = "User not found"
        raise NotFoundError(msg)
    return user


@router.get("/users/{user_id}/roasteries", response_model=list[RoasteryResponse])
async def list_user_roasteries(
    user_id: int,
    roasteries: DatabaseRoasteryRepository = Depends(get_roastery_repo),
) -> list[dict[str, Any]]:
    return await roasteries.list_for_owner(user_id)
