"""
Capability management routes

Reads are open to any authenticated user. Grants and revocations are
owner-only.
"""
from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_user
from app.core.capabilities import require_owner
from app.core.database import get_db
from app.models.user import User
from app.schemas.capability import (
    CapabilityAssign,
    CapabilityResponse,
    MyCapabilitiesResponse,
    RoleCapabilityResponse,
    UserCapabilityResponse,
)
from app.services.capability_service import CapabilityService

router = APIRouter()


@router.get("", response_model=List[CapabilityResponse])
async def list_capabilities(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    return await CapabilityService(db).get_all_capabilities()


@router.get("/me", response_model=MyCapabilitiesResponse)
async def my_capabilities(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Capability names the caller holds, for UI gating."""
    names = await CapabilityService(db).resolve(current_user.id)
    return MyCapabilitiesResponse(role=current_user.role, capabilities=sorted(names))


@router.get("/roles/{role}", response_model=List[CapabilityResponse])
async def role_capabilities(
    role: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    return await CapabilityService(db).get_role_capabilities(role)


@router.get("/users/{user_id}", response_model=List[CapabilityResponse])
async def user_capabilities(
    user_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    return await CapabilityService(db).get_user_capabilities(user_id)


@router.post(
    "/roles/{role}",
    response_model=RoleCapabilityResponse,
    status_code=status.HTTP_201_CREATED,
)
async def assign_role_capability(
    role: str,
    body: CapabilityAssign,
    owner: User = Depends(require_owner()),
    db: AsyncSession = Depends(get_db)
):
    return await CapabilityService(db).assign_capability_to_role(role, body.capability_id)


@router.delete("/roles/{role}/{capability_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_role_capability(
    role: str,
    capability_id: int,
    owner: User = Depends(require_owner()),
    db: AsyncSession = Depends(get_db)
):
    await CapabilityService(db).remove_capability_from_role(role, capability_id)


@router.post(
    "/users/{user_id}",
    response_model=UserCapabilityResponse,
    status_code=status.HTTP_201_CREATED,
)
async def assign_user_capability(
    user_id: int,
    body: CapabilityAssign,
    owner: User = Depends(require_owner()),
    db: AsyncSession = Depends(get_db)
):
    return await CapabilityService(db).assign_capability_to_user(
        user_id, body.capability_id, granted_by=owner.id
    )


@router.delete("/users/{user_id}/{capability_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_user_capability(
    user_id: int,
    capability_id: int,
    owner: User = Depends(require_owner()),
    db: AsyncSession = Depends(get_db)
):
    await CapabilityService(db).remove_capability_from_user(user_id, capability_id)
