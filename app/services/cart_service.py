"""
Cart Service

Carts are keyed by user_id for signed-in shoppers and by an anonymous
session id (x-session-id header) for guests. When both are supplied the
user cart wins. Guest carts are merged into the user cart at login.
"""
import logging
from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.exceptions import BadRequestError, ForbiddenError, NotFoundError
from app.models.cart import Cart, CartItem
from app.models.product import Product, ProductStatus, StockStatus

logger = logging.getLogger(__name__)

EMPTY_CART = {"id": None, "items": [], "item_count": 0, "subtotal": 0.0}


def serialize_cart(cart: Cart) -> Dict[str, Any]:
    """Cart response body with line totals and subtotal."""
    items = []
    subtotal = Decimal("0")
    for item in cart.items:
        price = Decimal(str(item.product.price))
        line_total = price * item.quantity
        subtotal += line_total
        items.append({
            "id": item.id,
            "product_id": item.product_id,
            "quantity": item.quantity,
            "product": {
                "id": item.product.id,
                "name": item.product.name,
                "slug": item.product.slug,
                "price": float(price),
                "stock_status": item.product.stock_status,
            },
            "line_total": float(line_total),
        })

    return {
        "id": cart.id,
        "items": items,
        "item_count": sum(i["quantity"] for i in items),
        "subtotal": float(subtotal.quantize(Decimal("0.01"))),
    }


class CartService:
    """Guest and user cart operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    @staticmethod
    def _require_key(user_id: Optional[int], session_id: Optional[str]) -> None:
        if not user_id and not session_id:
            raise BadRequestError("Either a user or a session id is required")

    @staticmethod
    def _owner_filter(user_id: Optional[int], session_id: Optional[str]):
        if user_id:
            return Cart.user_id == user_id
        return Cart.session_id == session_id

    async def find_cart(self, user_id: Optional[int] = None, session_id: Optional[str] = None) -> Optional[Cart]:
        """Load a cart with items and products, refreshing any cached state."""
        self._require_key(user_id, session_id)
        result = await self.db.execute(
            select(Cart)
            .where(self._owner_filter(user_id, session_id))
            .options(selectinload(Cart.items).selectinload(CartItem.product))
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_cart(self, user_id: Optional[int] = None, session_id: Optional[str] = None) -> Dict[str, Any]:
        cart = await self.find_cart(user_id, session_id)
        if not cart:
            return dict(EMPTY_CART, items=[])
        return serialize_cart(cart)

    async def get_or_create_cart(self, user_id: Optional[int] = None, session_id: Optional[str] = None) -> Cart:
        cart = await self.find_cart(user_id, session_id)
        if cart:
            return cart

        if user_id:
            cart = Cart(user_id=user_id)
        else:
            cart = Cart(session_id=session_id)
        self.db.add(cart)
        await self.db.flush()
        return await self.find_cart(user_id, session_id)

    async def _get_item(self, item_id: int, user_id: Optional[int], session_id: Optional[str]) -> CartItem:
        self._require_key(user_id, session_id)
        result = await self.db.execute(
            select(CartItem)
            .where(CartItem.id == item_id)
            .options(selectinload(CartItem.cart), selectinload(CartItem.product))
            .execution_options(populate_existing=True)
        )
        item = result.scalar_one_or_none()
        if not item:
            raise NotFoundError("Cart item not found")

        if user_id:
            owns = item.cart.user_id == user_id
        else:
            owns = item.cart.session_id == session_id
        if not owns:
            raise ForbiddenError("Access denied")
        return item

    @staticmethod
    def _check_stock(product: Product, quantity: int) -> None:
        if quantity > product.stock_quantity and product.stock_status != StockStatus.BACKORDER.value:
            raise BadRequestError(f"Only {product.stock_quantity} items available in stock")

    async def add_item(
        self,
        product_id: int,
        quantity: int = 1,
        user_id: Optional[int] = None,
        session_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        self._require_key(user_id, session_id)

        result = await self.db.execute(select(Product).where(Product.id == product_id))
        product = result.scalar_one_or_none()

        if not product or product.deleted_at is not None:
            raise NotFoundError("Product not found")
        if product.status != ProductStatus.PUBLISHED.value:
            raise BadRequestError("Product is not available")
        if product.stock_status == StockStatus.OUT_OF_STOCK.value:
            raise BadRequestError("Product is out of stock")
        if not user_id and not product.guest_purchaseable:
            raise ForbiddenError("Login required to purchase this product")

        cart = await self.get_or_create_cart(user_id, session_id)
        existing = next((i for i in cart.items if i.product_id == product_id), None)

        if existing:
            new_quantity = existing.quantity + quantity
            self._check_stock(product, new_quantity)
            existing.quantity = new_quantity
        else:
            self._check_stock(product, quantity)
            self.db.add(CartItem(cart_id=cart.id, product_id=product_id, quantity=quantity))

        await self.db.flush()
        return await self.get_cart(user_id, session_id)

    async def update_item(
        self,
        item_id: int,
        quantity: int,
        user_id: Optional[int] = None,
        session_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        item = await self._get_item(item_id, user_id, session_id)
        self._check_stock(item.product, quantity)
        item.quantity = quantity
        await self.db.flush()
        return await self.get_cart(user_id, session_id)

    async def remove_item(
        self,
        item_id: int,
        user_id: Optional[int] = None,
        session_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        item = await self._get_item(item_id, user_id, session_id)
        await self.db.delete(item)
        await self.db.flush()
        return await self.get_cart(user_id, session_id)

    async def clear_cart(self, user_id: Optional[int] = None, session_id: Optional[str] = None) -> Dict[str, Any]:
        cart = await self.find_cart(user_id, session_id)
        if cart:
            await self.db.execute(delete(CartItem).where(CartItem.cart_id == cart.id))
            await self.db.flush()
        return await self.get_cart(user_id, session_id)

    async def merge_cart(self, user_id: int, session_id: str) -> Dict[str, Any]:
        """
        Merge a guest cart into the user's cart.

        Quantities are summed for products in both carts, the remaining guest
        lines move to the user cart, then the guest cart is deleted.
        """
        guest_cart = await self.find_cart(session_id=session_id)
        if not guest_cart or not guest_cart.items:
            return await self.get_cart(user_id=user_id)

        target = await self.get_or_create_cart(user_id=user_id)
        target_items = {item.product_id: item for item in target.items}

        merged = moved = 0
        for guest_item in guest_cart.items:
            existing = target_items.get(guest_item.product_id)
            if existing:
                await self.db.execute(
                    update(CartItem)
                    .where(CartItem.id == existing.id)
                    .values(quantity=existing.quantity + guest_item.quantity)
                )
                merged += 1
            else:
                await self.db.execute(
                    update(CartItem)
                    .where(CartItem.id == guest_item.id)
                    .values(cart_id=target.id)
                )
                moved += 1

        # Whatever is still attached to the guest cart was summed into the user cart
        await self.db.execute(delete(CartItem).where(CartItem.cart_id == guest_cart.id))
        await self.db.execute(delete(Cart).where(Cart.id == guest_cart.id))
        await self.db.flush()

        logger.info(
            f"Merged guest cart {guest_cart.id} into user {user_id} cart "
            f"({merged} summed, {moved} moved)"
        )
        return await self.get_cart(user_id=user_id)
