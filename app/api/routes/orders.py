"""
Order routes
"""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_user, get_optional_user, get_session_id
from app.core.capabilities import require_capability
from app.core.database import get_db
from app.models.user import User
from app.schemas.order import OrderCreate, OrderList, OrderResponse, OrderStatusUpdate
from app.services.capability_service import CapabilityService
from app.services.order_service import OrderService

router = APIRouter()


async def _can_view_all(db: AsyncSession, user: Optional[User]) -> bool:
    if user is None:
        return False
    return await CapabilityService(db).user_has_capability(user.id, "order.view.all")


@router.post("", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
async def create_order(
    order_data: OrderCreate,
    current_user: Optional[User] = Depends(get_optional_user),
    session_id: Optional[str] = Depends(get_session_id),
    db: AsyncSession = Depends(get_db)
):
    """Create order from the caller's cart (user cart, or guest cart by x-session-id)."""
    if current_user is None and not session_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Login or an x-session-id header is required"
        )

    address = order_data.shipping_address.model_dump() if order_data.shipping_address else None
    return await OrderService(db).create_from_cart(
        email=order_data.email,
        payment_method=order_data.payment_method,
        shipping_address=address,
        user_id=current_user.id if current_user else None,
        session_id=None if current_user else session_id,
        notes=order_data.notes,
    )


@router.get("", response_model=OrderList)
async def list_orders(
    status_filter: Optional[str] = Query(None, alias="status"),
    search: Optional[str] = Query(None, max_length=100),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    sort_by: str = "created_at",
    sort_order: str = Query("desc", pattern="^(asc|desc)$"),
    current_user: User = Depends(require_capability("order.view.all")),
    db: AsyncSession = Depends(get_db)
):
    """All orders, for staff."""
    return await OrderService(db).find_all(
        status=status_filter,
        search=search,
        page=page,
        limit=limit,
        sort_by=sort_by,
        sort_order=sort_order,
    )


@router.get("/my", response_model=OrderList)
async def my_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    return await OrderService(db).find_all(user_id=current_user.id, page=page, limit=limit)


@router.get("/number/{order_number}", response_model=OrderResponse)
async def get_order_by_number(
    order_number: str,
    current_user: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db)
):
    return await OrderService(db).find_by_order_number(
        order_number,
        user_id=current_user.id if current_user else None,
        is_admin=await _can_view_all(db, current_user),
    )


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: int,
    current_user: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db)
):
    return await OrderService(db).find_by_id(
        order_id,
        user_id=current_user.id if current_user else None,
        is_admin=await _can_view_all(db, current_user),
    )


@router.patch("/{order_id}/status", response_model=OrderResponse)
async def update_order_status(
    order_id: int,
    body: OrderStatusUpdate,
    current_user: User = Depends(require_capability("order.edit")),
    db: AsyncSession = Depends(get_db)
):
    return await OrderService(db).update_status(order_id, body.status)


@router.post("/{order_id}/cancel", response_model=OrderResponse)
async def cancel_order(
    order_id: int,
    current_user: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db)
):
    """Cancel a pending order and restore stock."""
    return await OrderService(db).cancel(
        order_id,
        user_id=current_user.id if current_user else None,
        is_admin=await _can_view_all(db, current_user),
    )
