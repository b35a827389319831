"""
Product model

Soft delete via deleted_at preserves order item references.
"""
import enum
from datetime import datetime, timezone
from sqlalchemy import Column, Integer, String, Boolean, DateTime, Text, Numeric, Index, CheckConstraint
from sqlalchemy.orm import relationship

from app.core.database import Base


class ProductType(str, enum.Enum):
    """Physical products require a shipping address at checkout."""
    PHYSICAL = "physical"
    DIGITAL = "digital"


class ProductStatus(str, enum.Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    ARCHIVED = "archived"


class StockStatus(str, enum.Enum):
    IN_STOCK = "in_stock"
    OUT_OF_STOCK = "out_of_stock"
    BACKORDER = "backorder"


class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False, index=True)
    slug = Column(String(255), unique=True, index=True, nullable=False)
    sku = Column(String(64), unique=True, index=True, nullable=True)
    description = Column(Text)

    # Pricing - Numeric(12,2) for monetary values
    price = Column(Numeric(12, 2), nullable=False)

    product_type = Column(String(20), nullable=False, default=ProductType.PHYSICAL.value)
    status = Column(String(20), nullable=False, default=ProductStatus.DRAFT.value, index=True)

    # Inventory
    stock_quantity = Column(Integer, nullable=False, default=0)
    stock_status = Column(String(20), nullable=False, default=StockStatus.IN_STOCK.value)
    guest_purchaseable = Column(Boolean, default=True)

    # Soft delete
    deleted_at = Column(DateTime(timezone=True), nullable=True, index=True)

    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))

    # Relationships
    cart_items = relationship("CartItem", back_populates="product")
    order_items = relationship("OrderItem", back_populates="product")

    __table_args__ = (
        CheckConstraint('price >= 0', name='check_product_price_positive'),
        Index('ix_products_status_deleted', 'status', 'deleted_at'),
    )

    def __repr__(self):
        return f"<Product(id={self.id}, slug='{self.slug}')>"

    @property
    def is_physical(self) -> bool:
        return self.product_type == ProductType.PHYSICAL.value

    @property
    def is_backorder(self) -> bool:
        return self.stock_status == StockStatus.BACKORDER.value
