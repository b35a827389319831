"""
Capability Service

Resolves and manages capability grants. A user's effective capabilities are
the union of grants attached to their role and grants made to them
individually. The owner role holds every capability without stored rows;
that rule lives in is_owner_role() and nowhere else.
"""
import logging
from typing import Iterable, List, Optional, Set

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import BadRequestError, ConflictError, NotFoundError
from app.models.capability import Capability, RoleCapability, UserCapability, SYSTEM_CAPABILITIES
from app.models.user import User, UserRole

logger = logging.getLogger(__name__)

VALID_ROLES = {r.value for r in UserRole}


def is_owner_role(role: Optional[str]) -> bool:
    """The single owner-bypass decision. Owner implicitly holds every capability."""
    if isinstance(role, UserRole):
        role = role.value
    return role == UserRole.OWNER.value


class CapabilityService:
    """
    Service for resolving and granting capabilities.

    Features:
    - Owner short-circuit (all capabilities, no rows)
    - Role grants + individual user grants, deduplicated
    - OR evaluation over a list of capability names
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    # ----- Lookups -----

    async def get_all_capabilities(self) -> List[Capability]:
        result = await self.db.execute(
            select(Capability).order_by(Capability.category, Capability.name)
        )
        return list(result.scalars().all())

    async def get_capability_by_id(self, capability_id: int) -> Optional[Capability]:
        result = await self.db.execute(
            select(Capability).where(Capability.id == capability_id)
        )
        return result.scalar_one_or_none()

    async def get_capability_by_name(self, name: str) -> Optional[Capability]:
        result = await self.db.execute(
            select(Capability).where(Capability.name == name)
        )
        return result.scalar_one_or_none()

    async def _get_user(self, user_id: int) -> Optional[User]:
        result = await self.db.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    def _validate_role(self, role: str) -> str:
        if role not in VALID_ROLES:
            raise BadRequestError(f"Unknown role: {role}", details={"role": role})
        return role

    async def get_role_capabilities(self, role: str) -> List[Capability]:
        """
        Capabilities granted to a role.

        Owner returns the full catalog.
        """
        self._validate_role(role)
        if is_owner_role(role):
            return await self.get_all_capabilities()

        result = await self.db.execute(
            select(Capability)
            .join(RoleCapability, RoleCapability.capability_id == Capability.id)
            .where(RoleCapability.role == role)
            .order_by(Capability.category, Capability.name)
        )
        return list(result.scalars().all())

    async def get_user_capabilities(self, user_id: int) -> List[Capability]:
        """
        Effective capabilities for a user: role grants plus individual grants.

        Raises:
            NotFoundError: If the user does not exist
        """
        user = await self._get_user(user_id)
        if not user:
            raise NotFoundError("User not found", details={"user_id": user_id})

        if is_owner_role(user.role):
            return await self.get_all_capabilities()

        role_caps = await self.get_role_capabilities(user.role)
        result = await self.db.execute(
            select(Capability)
            .join(UserCapability, UserCapability.capability_id == Capability.id)
            .where(UserCapability.user_id == user_id)
        )
        user_caps = list(result.scalars().all())

        # Deduplicate by id, role grants first
        merged = {}
        for cap in role_caps + user_caps:
            merged.setdefault(cap.id, cap)
        return list(merged.values())

    async def resolve(self, user_id: int) -> Set[str]:
        """Set of capability names the user holds."""
        return {cap.name for cap in await self.get_user_capabilities(user_id)}

    # ----- Checks -----

    async def user_has_capability(self, user_id: int, capability_name: str) -> bool:
        user = await self._get_user(user_id)
        if not user:
            return False

        if is_owner_role(user.role):
            return True

        capability = await self.get_capability_by_name(capability_name)
        if not capability:
            return False

        role_grant = await self.db.execute(
            select(RoleCapability.id).where(
                RoleCapability.role == user.role,
                RoleCapability.capability_id == capability.id,
            )
        )
        if role_grant.first() is not None:
            return True

        user_grant = await self.db.execute(
            select(UserCapability.id).where(
                UserCapability.user_id == user_id,
                UserCapability.capability_id == capability.id,
            )
        )
        return user_grant.first() is not None

    async def user_has_any_capability(self, user_id: int, capability_names: Iterable[str]) -> bool:
        """OR over capability names; stops at the first grant found."""
        for name in capability_names:
            if await self.user_has_capability(user_id, name):
                return True
        return False

    # ----- Role grants -----

    async def assign_capability_to_role(self, role: str, capability_id: int) -> RoleCapability:
        """
        Grant a capability to every user of a role.

        Raises:
            BadRequestError: Owner role or unknown role
            NotFoundError: Unknown capability
            ConflictError: Already granted
        """
        self._validate_role(role)
        if is_owner_role(role):
            raise BadRequestError("Owner role always has all capabilities")

        capability = await self.get_capability_by_id(capability_id)
        if not capability:
            raise NotFoundError("Capability not found", details={"capability_id": capability_id})

        existing = await self.db.execute(
            select(RoleCapability).where(
                RoleCapability.role == role,
                RoleCapability.capability_id == capability_id,
            )
        )
        if existing.scalar_one_or_none():
            raise ConflictError("Capability already assigned to this role")

        grant = RoleCapability(role=role, capability_id=capability_id)
        self.db.add(grant)
        await self.db.flush()
        logger.info(f"Capability {capability.name} granted to role {role}")
        return grant

    async def remove_capability_from_role(self, role: str, capability_id: int) -> None:
        self._validate_role(role)
        if is_owner_role(role):
            raise BadRequestError("Owner role always has all capabilities")

        result = await self.db.execute(
            select(RoleCapability).where(
                RoleCapability.role == role,
                RoleCapability.capability_id == capability_id,
            )
        )
        grant = result.scalar_one_or_none()
        if not grant:
            raise NotFoundError("Role capability not found")

        await self.db.delete(grant)
        await self.db.flush()
        logger.info(f"Capability {capability_id} removed from role {role}")

    # ----- User grants -----

    async def assign_capability_to_user(
        self,
        user_id: int,
        capability_id: int,
        granted_by: Optional[int] = None,
    ) -> UserCapability:
        """
        Grant a capability to a single user, independent of role.

        Raises:
            NotFoundError: Unknown user or capability
            BadRequestError: Target user is an owner
            ConflictError: Already granted
        """
        user = await self._get_user(user_id)
        if not user:
            raise NotFoundError("User not found", details={"user_id": user_id})
        if is_owner_role(user.role):
            raise BadRequestError("Owner role always has all capabilities")

        capability = await self.get_capability_by_id(capability_id)
        if not capability:
            raise NotFoundError("Capability not found", details={"capability_id": capability_id})

        existing = await self.db.execute(
            select(UserCapability).where(
                UserCapability.user_id == user_id,
                UserCapability.capability_id == capability_id,
            )
        )
        if existing.scalar_one_or_none():
            raise ConflictError("Capability already assigned to this user")

        grant = UserCapability(
            user_id=user_id,
            capability_id=capability_id,
            granted_by=granted_by,
        )
        self.db.add(grant)
        await self.db.flush()
        logger.info(f"Capability {capability.name} granted to user {user_id} by {granted_by}")
        return grant

    async def remove_capability_from_user(self, user_id: int, capability_id: int) -> None:
        user = await self._get_user(user_id)
        if not user:
            raise NotFoundError("User not found", details={"user_id": user_id})
        if is_owner_role(user.role):
            raise BadRequestError("Owner role always has all capabilities")

        result = await self.db.execute(
            select(UserCapability).where(
                UserCapability.user_id == user_id,
                UserCapability.capability_id == capability_id,
            )
        )
        grant = result.scalar_one_or_none()
        if not grant:
            raise NotFoundError("User capability not found")

        await self.db.delete(grant)
        await self.db.flush()
        logger.info(f"Capability {capability_id} removed from user {user_id}")

    # ----- Seeding -----

    async def seed_capabilities(self) -> int:
        """
        Seed or update the built-in catalog from SYSTEM_CAPABILITIES.

        Returns:
            Number of capabilities created/updated
        """
        count = 0
        for cap_def in SYSTEM_CAPABILITIES:
            existing = await self.get_capability_by_name(cap_def["name"])

            if existing:
                existing.description = cap_def.get("description", "")
                existing.category = cap_def["category"]
            else:
                self.db.add(Capability(
                    name=cap_def["name"],
                    description=cap_def.get("description", ""),
                    category=cap_def["category"],
                ))

            count += 1

        await self.db.flush()
        return count
