"""
Cart models

A cart is owned by either a user or an anonymous session id, never both.
Guest carts are merged into the user cart at login.
"""
from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Index, CheckConstraint, UniqueConstraint
from sqlalchemy.orm import relationship

from app.core.database import Base
from app.core.utils import utcnow


class Cart(Base):
    __tablename__ = "carts"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=True, unique=True)
    session_id = Column(String(128), nullable=True, unique=True)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    items = relationship(
        "CartItem",
        back_populates="cart",
        cascade="all, delete-orphan",
        order_by="CartItem.id",
    )

    __table_args__ = (
        CheckConstraint(
            '(user_id IS NOT NULL AND session_id IS NULL) OR (user_id IS NULL AND session_id IS NOT NULL)',
            name='check_cart_single_owner',
        ),
    )

    def __repr__(self):
        return f"<Cart(id={self.id}, user_id={self.user_id}, session_id={self.session_id!r})>"


class CartItem(Base):
    __tablename__ = "cart_items"

    id = Column(Integer, primary_key=True, index=True)
    cart_id = Column(Integer, ForeignKey("carts.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)

    quantity = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    # Relationships
    cart = relationship("Cart", back_populates="items")
    product = relationship("Product", back_populates="cart_items")

    __table_args__ = (
        UniqueConstraint('cart_id', 'product_id', name='uq_cart_item_product'),
        CheckConstraint('quantity > 0', name='check_cart_item_quantity_positive'),
        Index('ix_cart_items_cart_product', 'cart_id', 'product_id'),
    )
