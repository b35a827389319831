"""
Tests for guest/user carts and the login merge.
"""
from decimal import Decimal

import pytest

from app.core.exceptions import BadRequestError, ForbiddenError, NotFoundError
from app.services.cart_service import CartService


class TestCartItems:

    @pytest.mark.asyncio
    async def test_requires_user_or_session(self, db_session):
        with pytest.raises(BadRequestError):
            await CartService(db_session).get_cart()

    @pytest.mark.asyncio
    async def test_empty_cart_structure(self, db_session):
        cart = await CartService(db_session).get_cart(session_id="guest-1")
        assert cart == {"id": None, "items": [], "item_count": 0, "subtotal": 0.0}

    @pytest.mark.asyncio
    async def test_add_item_creates_guest_cart(self, db_session, make_product):
        product = await make_product(price=Decimal("12.50"))

        cart = await CartService(db_session).add_item(product.id, 2, session_id="guest-1")

        assert cart["id"] is not None
        assert cart["item_count"] == 2
        assert cart["subtotal"] == 25.0
        assert cart["items"][0]["line_total"] == 25.0

    @pytest.mark.asyncio
    async def test_add_existing_line_accumulates(self, db_session, make_product, make_user):
        user = await make_user()
        product = await make_product()
        service = CartService(db_session)

        await service.add_item(product.id, 1, user_id=user.id)
        cart = await service.add_item(product.id, 3, user_id=user.id)

        assert len(cart["items"]) == 1
        assert cart["items"][0]["quantity"] == 4

    @pytest.mark.asyncio
    async def test_quantity_over_stock_rejected(self, db_session, make_product):
        product = await make_product(stock_quantity=2)

        with pytest.raises(BadRequestError):
            await CartService(db_session).add_item(product.id, 3, session_id="guest-1")

    @pytest.mark.asyncio
    async def test_backorder_allows_over_stock(self, db_session, make_product):
        product = await make_product(stock_quantity=0, stock_status="backorder")

        cart = await CartService(db_session).add_item(product.id, 5, session_id="guest-1")
        assert cart["item_count"] == 5

    @pytest.mark.asyncio
    async def test_out_of_stock_rejected(self, db_session, make_product):
        product = await make_product(stock_quantity=0, stock_status="out_of_stock")

        with pytest.raises(BadRequestError):
            await CartService(db_session).add_item(product.id, 1, session_id="guest-1")

    @pytest.mark.asyncio
    async def test_unpublished_product_rejected(self, db_session, make_product):
        product = await make_product(status="draft")

        with pytest.raises(BadRequestError):
            await CartService(db_session).add_item(product.id, 1, session_id="guest-1")

    @pytest.mark.asyncio
    async def test_missing_product(self, db_session):
        with pytest.raises(NotFoundError):
            await CartService(db_session).add_item(9999, 1, session_id="guest-1")

    @pytest.mark.asyncio
    async def test_guest_cannot_buy_member_only_product(self, db_session, make_product):
        product = await make_product(guest_purchaseable=False)

        with pytest.raises(ForbiddenError):
            await CartService(db_session).add_item(product.id, 1, session_id="guest-1")

    @pytest.mark.asyncio
    async def test_update_item_of_other_cart_forbidden(self, db_session, make_product):
        product = await make_product()
        service = CartService(db_session)
        cart = await service.add_item(product.id, 1, session_id="guest-1")
        item_id = cart["items"][0]["id"]

        with pytest.raises(ForbiddenError):
            await service.update_item(item_id, 2, session_id="guest-2")

    @pytest.mark.asyncio
    async def test_update_and_remove_item(self, db_session, make_product):
        product = await make_product()
        service = CartService(db_session)
        cart = await service.add_item(product.id, 1, session_id="guest-1")
        item_id = cart["items"][0]["id"]

        cart = await service.update_item(item_id, 3, session_id="guest-1")
        assert cart["items"][0]["quantity"] == 3

        cart = await service.remove_item(item_id, session_id="guest-1")
        assert cart["items"] == []

    @pytest.mark.asyncio
    async def test_missing_item(self, db_session):
        with pytest.raises(NotFoundError):
            await CartService(db_session).remove_item(9999, session_id="guest-1")

    @pytest.mark.asyncio
    async def test_clear_cart(self, db_session, make_product):
        first = await make_product()
        second = await make_product()
        service = CartService(db_session)
        await service.add_item(first.id, 1, session_id="guest-1")
        await service.add_item(second.id, 1, session_id="guest-1")

        cart = await service.clear_cart(session_id="guest-1")

        assert cart["items"] == []
        assert cart["item_count"] == 0


class TestCartMerge:

    @pytest.mark.asyncio
    async def test_merge_sums_shared_products(self, db_session, make_product, make_user):
        user = await make_user()
        product = await make_product()
        service = CartService(db_session)
        await service.add_item(product.id, 2, user_id=user.id)
        await service.add_item(product.id, 1, session_id="guest-1")

        cart = await service.merge_cart(user.id, "guest-1")

        assert len(cart["items"]) == 1
        assert cart["items"][0]["quantity"] == 3
        assert await service.find_cart(session_id="guest-1") is None

    @pytest.mark.asyncio
    async def test_merge_moves_other_lines(self, db_session, make_product, make_user):
        user = await make_user()
        shared = await make_product()
        guest_only = await make_product()
        service = CartService(db_session)
        await service.add_item(shared.id, 1, user_id=user.id)
        await service.add_item(shared.id, 1, session_id="guest-1")
        await service.add_item(guest_only.id, 2, session_id="guest-1")

        cart = await service.merge_cart(user.id, "guest-1")

        quantities = {item["product_id"]: item["quantity"] for item in cart["items"]}
        assert quantities == {shared.id: 2, guest_only.id: 2}

    @pytest.mark.asyncio
    async def test_merge_creates_user_cart(self, db_session, make_product, make_user):
        user = await make_user()
        product = await make_product()
        service = CartService(db_session)
        await service.add_item(product.id, 2, session_id="guest-1")

        cart = await service.merge_cart(user.id, "guest-1")

        assert cart["item_count"] == 2
        assert (await service.find_cart(user_id=user.id)) is not None

    @pytest.mark.asyncio
    async def test_merge_without_guest_cart_is_noop(self, db_session, make_user):
        user = await make_user()

        cart = await CartService(db_session).merge_cart(user.id, "nobody")

        assert cart["items"] == []
