"""
Order models

Status is a forward-only state machine:
    pending -> processing | cancelled
    processing -> completed | cancelled | refunded
    completed -> refunded
    cancelled, refunded: terminal
"""
import enum
from datetime import datetime, timezone
from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Text, Numeric, Index
from sqlalchemy.orm import relationship

from app.core.database import Base


class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


ORDER_STATUS_TRANSITIONS = {
    OrderStatus.PENDING.value: {OrderStatus.PROCESSING.value, OrderStatus.CANCELLED.value},
    OrderStatus.PROCESSING.value: {
        OrderStatus.COMPLETED.value,
        OrderStatus.CANCELLED.value,
        OrderStatus.REFUNDED.value,
    },
    OrderStatus.COMPLETED.value: {OrderStatus.REFUNDED.value},
    OrderStatus.CANCELLED.value: set(),
    OrderStatus.REFUNDED.value: set(),
}


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    # SET NULL preserves order history when a user goes away
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    # Order details
    order_number = Column(String(32), unique=True, index=True, nullable=False)
    email = Column(String(255), nullable=False)
    status = Column(String(20), default=OrderStatus.PENDING.value, nullable=False, index=True)

    # Pricing
    subtotal = Column(Numeric(12, 2), nullable=False)
    tax = Column(Numeric(12, 2), default=0)
    shipping = Column(Numeric(12, 2), default=0)
    total = Column(Numeric(12, 2), nullable=False)

    # Payment
    payment_method = Column(String(32))  # provider name
    payment_intent_id = Column(String(255), index=True)

    # Shipping address
    shipping_name = Column(String(255))
    shipping_address_line1 = Column(String(255))
    shipping_address_line2 = Column(String(255))
    shipping_city = Column(String(100))
    shipping_state = Column(String(100))
    shipping_postal_code = Column(String(20))
    shipping_country = Column(String(2))

    notes = Column(Text)

    # Timestamps
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), index=True)
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))
    paid_at = Column(DateTime(timezone=True))

    # Relationships
    user = relationship("User", back_populates="orders")
    items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan", order_by="OrderItem.id")

    __table_args__ = (
        Index('ix_orders_user_id', 'user_id'),
        Index('ix_orders_paid_at', 'paid_at', postgresql_where=paid_at.isnot(None)),
    )

    def __repr__(self):
        return f"<Order(id={self.id}, order_number='{self.order_number}', status='{self.status}')>"


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="SET NULL"), nullable=True, index=True)

    # Snapshot of product at time of order
    product_name = Column(String(255), nullable=False)
    product_sku = Column(String(64))
    price = Column(Numeric(12, 2), nullable=False)
    quantity = Column(Integer, nullable=False)

    # Relationships
    order = relationship("Order", back_populates="items")
    product = relationship("Product", back_populates="order_items")
