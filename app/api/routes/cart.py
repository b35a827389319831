"""
Cart routes

Signed-in shoppers are identified by their token, guests by x-session-id.
"""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_user, get_optional_user, get_session_id
from app.core.database import get_db
from app.models.user import User
from app.schemas.cart import CartItemCreate, CartItemUpdate, CartResponse
from app.services.cart_service import CartService

router = APIRouter()


def _user_id(user: Optional[User]) -> Optional[int]:
    return user.id if user else None


@router.get("", response_model=CartResponse)
async def get_cart(
    current_user: Optional[User] = Depends(get_optional_user),
    session_id: Optional[str] = Depends(get_session_id),
    db: AsyncSession = Depends(get_db)
):
    return await CartService(db).get_cart(_user_id(current_user), session_id)


@router.post("/items", response_model=CartResponse, status_code=status.HTTP_201_CREATED)
async def add_to_cart(
    item_data: CartItemCreate,
    current_user: Optional[User] = Depends(get_optional_user),
    session_id: Optional[str] = Depends(get_session_id),
    db: AsyncSession = Depends(get_db)
):
    return await CartService(db).add_item(
        item_data.product_id,
        item_data.quantity,
        user_id=_user_id(current_user),
        session_id=session_id,
    )


@router.patch("/items/{item_id}", response_model=CartResponse)
async def update_cart_item(
    item_id: int,
    item_data: CartItemUpdate,
    current_user: Optional[User] = Depends(get_optional_user),
    session_id: Optional[str] = Depends(get_session_id),
    db: AsyncSession = Depends(get_db)
):
    return await CartService(db).update_item(
        item_id, item_data.quantity, user_id=_user_id(current_user), session_id=session_id
    )


@router.delete("/items/{item_id}", response_model=CartResponse)
async def remove_cart_item(
    item_id: int,
    current_user: Optional[User] = Depends(get_optional_user),
    session_id: Optional[str] = Depends(get_session_id),
    db: AsyncSession = Depends(get_db)
):
    return await CartService(db).remove_item(
        item_id, user_id=_user_id(current_user), session_id=session_id
    )


@router.delete("", response_model=CartResponse)
async def clear_cart(
    current_user: Optional[User] = Depends(get_optional_user),
    session_id: Optional[str] = Depends(get_session_id),
    db: AsyncSession = Depends(get_db)
):
    return await CartService(db).clear_cart(_user_id(current_user), session_id)


@router.post("/merge", response_model=CartResponse)
async def merge_cart(
    current_user: User = Depends(get_current_user),
    session_id: Optional[str] = Depends(get_session_id),
    db: AsyncSession = Depends(get_db)
):
    """Fold the guest cart for x-session-id into the caller's cart."""
    if not session_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="x-session-id header is required"
        )
    return await CartService(db).merge_cart(current_user.id, session_id)
