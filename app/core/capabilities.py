"""
Capability guard

Route-level gate composed explicitly in a handler's signature. A route lists
plain capability names; holding ANY one of them passes the gate. Routes that
mean "edit own OR edit any" list both and enforce ownership in the handler.
"""
from typing import Optional

from fastapi import Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.models.user import User
from app.services.capability_service import CapabilityService, is_owner_role


def require_capability(*capabilities: str):
    """
    Dependency that requires any of the listed capabilities.

    Usage:
        @router.delete("/{product_id}")
        async def delete_product(
            user: User = Depends(require_capability("product.delete"))
        ):
            ...

    With no names the gate allows everyone and yields the optional user.
    """
    from app.api.deps import get_optional_user

    required = list(capabilities)

    async def capability_checker(
        current_user: Optional[User] = Depends(get_optional_user),
        db: AsyncSession = Depends(get_db)
    ) -> Optional[User]:
        if not required:
            return current_user

        if current_user is None:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Not authenticated"
            )

        service = CapabilityService(db)
        if not await service.user_has_any_capability(current_user.id, required):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Permission denied: requires one of {', '.join(required)}"
            )

        return current_user

    return capability_checker


def require_owner():
    """Dependency that allows only the owner role."""
    from app.api.deps import get_current_user

    async def owner_checker(current_user: User = Depends(get_current_user)) -> User:
        if not is_owner_role(current_user.role):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Owner access required"
            )
        return current_user

    return owner_checker
