"""
Tests for order creation, the status table and mark-as-paid.
"""
from decimal import Decimal

import pytest

from app.core.exceptions import (
    BadRequestError,
    ForbiddenError,
    InvalidStatusTransitionError,
    NotFoundError,
)
from app.models.order import OrderStatus
from app.services.cart_service import CartService
from app.services.order_service import (
    OrderService,
    can_transition,
    generate_order_number,
    validate_status_transition,
)


class TestStatusTable:

    @pytest.mark.parametrize("current,new", [
        ("pending", "processing"),
        ("pending", "cancelled"),
        ("processing", "completed"),
        ("processing", "cancelled"),
        ("processing", "refunded"),
        ("completed", "refunded"),
    ])
    def test_allowed(self, current, new):
        assert can_transition(current, new)
        validate_status_transition(current, new)

    @pytest.mark.parametrize("current,new", [
        ("pending", "completed"),
        ("pending", "refunded"),
        ("completed", "pending"),
        ("cancelled", "processing"),
        ("refunded", "processing"),
        ("refunded", "refunded"),
    ])
    def test_rejected(self, current, new):
        assert not can_transition(current, new)
        with pytest.raises(InvalidStatusTransitionError) as exc_info:
            validate_status_transition(current, new)
        assert exc_info.value.details == {"current_status": current, "new_status": new}

    def test_terminal_states(self):
        for status in (OrderStatus.CANCELLED.value, OrderStatus.REFUNDED.value):
            assert not any(can_transition(status, s.value) for s in OrderStatus)

    def test_order_number_format(self):
        number = generate_order_number()
        prefix, date, suffix = number.split("-")
        assert prefix == "QC"
        assert len(date) == 8 and date.isdigit()
        assert len(suffix) == 8


async def _order_from_cart(db, make_product, user_id=None, session_id="guest-1", **product_kwargs):
    product = await make_product(**product_kwargs)
    await CartService(db).add_item(product.id, 2, user_id=user_id, session_id=None if user_id else session_id)
    order = await OrderService(db).create_from_cart(
        email="buyer@example.com",
        payment_method="stripe",
        shipping_address={
            "name": "Jordan Reader",
            "line1": "123 Main Street",
            "city": "Portland",
            "state": "OR",
            "postal_code": "97201",
            "country": "US",
        },
        user_id=user_id,
        session_id=None if user_id else session_id,
    )
    return order, product


class TestCreateFromCart:

    @pytest.mark.asyncio
    async def test_snapshots_prices_and_decrements_stock(self, db_session, make_product):
        order, product = await _order_from_cart(
            db_session, make_product, price=Decimal("15.00"), stock_quantity=5
        )

        assert order.status == "pending"
        assert Decimal(str(order.total)) == Decimal("30.00")
        assert len(order.items) == 1
        assert order.items[0].product_name == product.name
        assert product.stock_quantity == 3

        cart = await CartService(db_session).get_cart(session_id="guest-1")
        assert cart["items"] == []

    @pytest.mark.asyncio
    async def test_last_units_mark_out_of_stock(self, db_session, make_product):
        _, product = await _order_from_cart(db_session, make_product, stock_quantity=2)
        assert product.stock_status == "out_of_stock"

    @pytest.mark.asyncio
    async def test_empty_cart(self, db_session):
        with pytest.raises(BadRequestError):
            await OrderService(db_session).create_from_cart(
                email="buyer@example.com", payment_method="stripe", session_id="guest-1"
            )

    @pytest.mark.asyncio
    async def test_physical_product_requires_address(self, db_session, make_product):
        product = await make_product()
        await CartService(db_session).add_item(product.id, 1, session_id="guest-1")

        with pytest.raises(BadRequestError):
            await OrderService(db_session).create_from_cart(
                email="buyer@example.com", payment_method="stripe", session_id="guest-1"
            )

    @pytest.mark.asyncio
    async def test_digital_product_needs_no_address(self, db_session, make_product):
        product = await make_product(product_type="digital")
        await CartService(db_session).add_item(product.id, 1, session_id="guest-1")

        order = await OrderService(db_session).create_from_cart(
            email="buyer@example.com", payment_method="paypal", session_id="guest-1"
        )
        assert order.shipping_city is None


class TestAccess:

    @pytest.mark.asyncio
    async def test_owner_can_read(self, db_session, make_product, make_user):
        user = await make_user()
        order, _ = await _order_from_cart(db_session, make_product, user_id=user.id)

        found = await OrderService(db_session).find_by_id(order.id, user_id=user.id)
        assert found.id == order.id

    @pytest.mark.asyncio
    async def test_other_user_forbidden(self, db_session, make_product, make_user):
        owner = await make_user()
        other = await make_user()
        order, _ = await _order_from_cart(db_session, make_product, user_id=owner.id)

        with pytest.raises(ForbiddenError):
            await OrderService(db_session).find_by_id(order.id, user_id=other.id)

    @pytest.mark.asyncio
    async def test_admin_can_read_any(self, db_session, make_product, make_user):
        owner = await make_user()
        order, _ = await _order_from_cart(db_session, make_product, user_id=owner.id)

        found = await OrderService(db_session).find_by_order_number(
            order.order_number, user_id=None, is_admin=True
        )
        assert found.id == order.id

    @pytest.mark.asyncio
    async def test_missing_order(self, db_session):
        with pytest.raises(NotFoundError):
            await OrderService(db_session).find_by_id(9999)


class TestMarkAsPaid:

    @pytest.mark.asyncio
    async def test_pending_becomes_processing(self, db_session, make_product):
        order, _ = await _order_from_cart(db_session, make_product)

        paid = await OrderService(db_session).mark_as_paid(order.id, "pi_123")

        assert paid.status == "processing"
        assert paid.payment_intent_id == "pi_123"
        assert paid.paid_at is not None

    @pytest.mark.asyncio
    async def test_second_confirmation_is_noop(self, db_session, make_product):
        order, _ = await _order_from_cart(db_session, make_product)
        service = OrderService(db_session)
        first = await service.mark_as_paid(order.id, "pi_123")
        paid_at = first.paid_at

        again = await service.mark_as_paid(order.id, "pi_other")

        assert again.status == "processing"
        assert again.payment_intent_id == "pi_123"
        assert again.paid_at == paid_at

    @pytest.mark.asyncio
    async def test_cancelled_order_cannot_be_paid(self, db_session, make_product):
        order, _ = await _order_from_cart(db_session, make_product)
        service = OrderService(db_session)
        await service.cancel(order.id, is_admin=True)

        with pytest.raises(InvalidStatusTransitionError):
            await service.mark_as_paid(order.id, "pi_123")

    @pytest.mark.asyncio
    async def test_missing_order(self, db_session):
        with pytest.raises(NotFoundError):
            await OrderService(db_session).mark_as_paid(9999, "pi_123")


class TestStatusUpdates:

    @pytest.mark.asyncio
    async def test_update_status_follows_table(self, db_session, make_product):
        order, _ = await _order_from_cart(db_session, make_product)
        service = OrderService(db_session)

        with pytest.raises(InvalidStatusTransitionError):
            await service.update_status(order.id, "completed")

        await service.mark_as_paid(order.id, "pi_123")
        updated = await service.update_status(order.id, "completed")
        assert updated.status == "completed"

    @pytest.mark.asyncio
    async def test_cancel_restores_stock(self, db_session, make_product):
        order, product = await _order_from_cart(db_session, make_product, stock_quantity=2)
        assert product.stock_status == "out_of_stock"

        cancelled = await OrderService(db_session).cancel(order.id, is_admin=True)

        assert cancelled.status == "cancelled"
        assert product.stock_quantity == 2
        assert product.stock_status == "in_stock"

    @pytest.mark.asyncio
    async def test_cancel_only_pending(self, db_session, make_product):
        order, _ = await _order_from_cart(db_session, make_product)
        service = OrderService(db_session)
        await service.mark_as_paid(order.id, "pi_123")

        with pytest.raises(BadRequestError):
            await service.cancel(order.id, is_admin=True)

    @pytest.mark.asyncio
    async def test_find_all_paginates_and_filters(self, db_session, make_product, make_user):
        user = await make_user()
        await _order_from_cart(db_session, make_product, user_id=user.id)
        await _order_from_cart(db_session, make_product, user_id=user.id)
        await _order_from_cart(db_session, make_product, session_id="guest-9")

        service = OrderService(db_session)
        mine = await service.find_all(user_id=user.id, limit=1)
        everything = await service.find_all()

        assert mine["meta"] == {"total": 2, "page": 1, "limit": 1, "total_pages": 2}
        assert len(mine["data"]) == 1
        assert everything["meta"]["total"] == 3
