"""
OrderService - order lifecycle

Single source of truth for order status changes. Both the synchronous
capture path and provider webhooks go through mark_as_paid(), which is an
atomic compare-and-swap on status so a payment is recorded once.
"""
import math
import uuid
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.exceptions import (
    BadRequestError,
    ForbiddenError,
    InvalidStatusTransitionError,
    NotFoundError,
)
from app.models.order import Order, OrderItem, OrderStatus, ORDER_STATUS_TRANSITIONS
from app.models.product import Product, StockStatus
from app.services.cart_service import CartService

logger = logging.getLogger(__name__)

SORTABLE_FIELDS = {
    "created_at": Order.created_at,
    "total": Order.total,
    "status": Order.status,
    "order_number": Order.order_number,
}


def generate_order_number() -> str:
    """Generate unique order number in format QC-YYYYMMDD-XXXXXXXX."""
    return f"QC-{datetime.now(timezone.utc).strftime('%Y%m%d')}-{uuid.uuid4().hex[:8].upper()}"


def can_transition(current_status: str, new_status: str) -> bool:
    return new_status in ORDER_STATUS_TRANSITIONS.get(current_status, set())


def validate_status_transition(current_status: str, new_status: str) -> None:
    """
    Raises:
        InvalidStatusTransitionError: If the table does not allow the move
    """
    if not can_transition(current_status, new_status):
        raise InvalidStatusTransitionError(current_status, new_status)


class OrderService:
    """Order creation, lookup and status changes."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _load(self, *criteria) -> Optional[Order]:
        result = await self.db.execute(
            select(Order)
            .where(*criteria)
            .options(selectinload(Order.items))
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_order(self, order_id: int) -> Order:
        order = await self._load(Order.id == order_id)
        if not order:
            raise NotFoundError("Order not found", details={"order_id": order_id})
        return order

    @staticmethod
    def check_access(order: Order, user_id: Optional[int], is_admin: bool = False) -> None:
        """Staff see every order; everyone else only orders keyed to them."""
        if not is_admin and order.user_id != user_id:
            raise ForbiddenError("Access denied")

    # ----- Creation -----

    async def create_from_cart(
        self,
        email: str,
        payment_method: str,
        shipping_address: Optional[Dict[str, Any]] = None,
        user_id: Optional[int] = None,
        session_id: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Order:
        """
        Turn the caller's cart into a pending order.

        Prices are snapshotted, stock is decremented and the cart is cleared.
        """
        cart_service = CartService(self.db)
        cart = await cart_service.find_cart(user_id, session_id)

        if not cart or not cart.items:
            raise BadRequestError("Cart is empty")

        has_physical = any(item.product.is_physical for item in cart.items)
        if has_physical and not shipping_address:
            raise BadRequestError("Shipping address required for physical products")

        subtotal = Decimal("0")
        lines = []
        for item in cart.items:
            product = item.product
            if product is None or product.deleted_at is not None:
                raise BadRequestError(f"Product {item.product_id} is no longer available")

            if product.stock_status == StockStatus.OUT_OF_STOCK.value or (
                product.stock_quantity < item.quantity and not product.is_backorder
            ):
                raise BadRequestError(f"Insufficient stock for {product.name}")

            price = Decimal(str(product.price))
            subtotal += price * item.quantity
            lines.append((product, item.quantity, price))

        tax = Decimal("0")
        shipping = Decimal("0")
        address = shipping_address or {}

        order = Order(
            order_number=generate_order_number(),
            user_id=user_id,
            email=email,
            status=OrderStatus.PENDING.value,
            subtotal=subtotal,
            tax=tax,
            shipping=shipping,
            total=subtotal + tax + shipping,
            payment_method=payment_method,
            shipping_name=address.get("name"),
            shipping_address_line1=address.get("line1"),
            shipping_address_line2=address.get("line2"),
            shipping_city=address.get("city"),
            shipping_state=address.get("state"),
            shipping_postal_code=address.get("postal_code"),
            shipping_country=address.get("country"),
            notes=notes,
        )
        for product, quantity, price in lines:
            order.items.append(OrderItem(
                product_id=product.id,
                product_name=product.name,
                product_sku=product.sku,
                price=price,
                quantity=quantity,
            ))
            product.stock_quantity = product.stock_quantity - quantity
            if product.stock_quantity <= 0 and not product.is_backorder:
                product.stock_status = StockStatus.OUT_OF_STOCK.value

        self.db.add(order)
        await self.db.flush()

        await cart_service.clear_cart(user_id, session_id)

        logger.info(f"Order {order.order_number} created from cart ({len(lines)} lines, total {order.total})")
        return await self.get_order(order.id)

    # ----- Queries -----

    async def find_all(
        self,
        status: Optional[str] = None,
        user_id: Optional[int] = None,
        search: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
        sort_by: str = "created_at",
        sort_order: str = "desc",
    ) -> Dict[str, Any]:
        criteria = []
        if status:
            criteria.append(Order.status == status)
        if user_id is not None:
            criteria.append(Order.user_id == user_id)
        if search:
            pattern = f"%{search.lower()}%"
            criteria.append(or_(
                func.lower(Order.order_number).like(pattern),
                func.lower(Order.email).like(pattern),
            ))

        sort_column = SORTABLE_FIELDS.get(sort_by, Order.created_at)
        ordering = sort_column.asc() if sort_order == "asc" else sort_column.desc()

        total = (await self.db.execute(
            select(func.count(Order.id)).where(*criteria)
        )).scalar_one()

        result = await self.db.execute(
            select(Order)
            .where(*criteria)
            .options(selectinload(Order.items))
            .order_by(ordering, Order.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )

        return {
            "data": list(result.scalars().all()),
            "meta": {
                "total": total,
                "page": page,
                "limit": limit,
                "total_pages": math.ceil(total / limit) if limit else 0,
            },
        }

    async def find_by_id(self, order_id: int, user_id: Optional[int] = None, is_admin: bool = False) -> Order:
        order = await self.get_order(order_id)
        self.check_access(order, user_id, is_admin)
        return order

    async def find_by_order_number(
        self,
        order_number: str,
        user_id: Optional[int] = None,
        is_admin: bool = False,
    ) -> Order:
        order = await self._load(Order.order_number == order_number)
        if not order:
            raise NotFoundError("Order not found", details={"order_number": order_number})
        self.check_access(order, user_id, is_admin)
        return order

    # ----- Status changes -----

    async def update_status(self, order_id: int, status: str) -> Order:
        order = await self.get_order(order_id)
        validate_status_transition(order.status, status)

        previous = order.status
        order.status = status
        await self.db.flush()
        logger.info(f"Order {order.order_number} status {previous} -> {status}")
        return order

    async def mark_as_paid(self, order_id: int, payment_intent_id: Optional[str]) -> Order:
        """
        Move a pending order to processing and stamp paid_at.

        Runs as one conditional UPDATE so concurrent capture and webhook
        calls cannot both record the payment. A repeat call for an order
        that is already paid is a no-op.
        """
        values = {
            "status": OrderStatus.PROCESSING.value,
            "paid_at": datetime.now(timezone.utc),
        }
        if payment_intent_id:
            values["payment_intent_id"] = payment_intent_id

        result = await self.db.execute(
            update(Order)
            .where(Order.id == order_id, Order.status == OrderStatus.PENDING.value)
            .values(**values)
            .execution_options(synchronize_session=False)
        )

        order = await self._load(Order.id == order_id)
        if not order:
            raise NotFoundError("Order not found", details={"order_id": order_id})

        if result.rowcount == 1:
            logger.info(f"Order {order.order_number} marked paid (payment {payment_intent_id})")
            return order

        already_paid = order.paid_at is not None and order.status in (
            OrderStatus.PROCESSING.value,
            OrderStatus.COMPLETED.value,
        )
        if already_paid:
            logger.info(f"Order {order.order_number} already paid, ignoring repeat payment confirmation")
            return order

        raise InvalidStatusTransitionError(order.status, OrderStatus.PROCESSING.value)

    async def cancel(self, order_id: int, user_id: Optional[int] = None, is_admin: bool = False) -> Order:
        """Cancel a pending order and put its stock back."""
        order = await self.get_order(order_id)
        self.check_access(order, user_id, is_admin)

        if order.status != OrderStatus.PENDING.value:
            raise BadRequestError("Only pending orders can be cancelled")

        product_ids = [item.product_id for item in order.items if item.product_id]
        if product_ids:
            products = (await self.db.execute(
                select(Product).where(Product.id.in_(product_ids))
            )).scalars().all()
            by_id = {p.id: p for p in products}
            for item in order.items:
                product = by_id.get(item.product_id)
                if product:
                    product.stock_quantity = product.stock_quantity + item.quantity
                    if product.stock_quantity > 0 and product.stock_status == StockStatus.OUT_OF_STOCK.value:
                        product.stock_status = StockStatus.IN_STOCK.value

        order.status = OrderStatus.CANCELLED.value
        await self.db.flush()
        logger.info(f"Order {order.order_number} cancelled, stock restored")
        return order
