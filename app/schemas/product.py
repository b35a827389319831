"""
Product schemas
"""
from datetime import datetime
from decimal import Decimal
from typing import Optional, List, Literal
from pydantic import BaseModel, Field

from app.schemas.order import PaginationMeta


class ProductBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    price: Decimal = Field(..., ge=0, max_digits=12, decimal_places=2)
    product_type: Literal["physical", "digital"] = "physical"
    status: Literal["draft", "published", "archived"] = "draft"
    stock_quantity: int = Field(0, ge=0)
    stock_status: Literal["in_stock", "out_of_stock", "backorder"] = "in_stock"
    guest_purchaseable: bool = True


class ProductCreate(ProductBase):
    slug: Optional[str] = Field(None, max_length=255)
    sku: Optional[str] = Field(None, max_length=64)


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    slug: Optional[str] = Field(None, max_length=255)
    sku: Optional[str] = Field(None, max_length=64)
    description: Optional[str] = None
    price: Optional[Decimal] = Field(None, ge=0, max_digits=12, decimal_places=2)
    product_type: Optional[Literal["physical", "digital"]] = None
    status: Optional[Literal["draft", "published", "archived"]] = None
    stock_quantity: Optional[int] = Field(None, ge=0)
    stock_status: Optional[Literal["in_stock", "out_of_stock", "backorder"]] = None
    guest_purchaseable: Optional[bool] = None


class ProductResponse(BaseModel):
    id: int
    name: str
    slug: str
    sku: Optional[str] = None
    description: Optional[str] = None
    price: float
    product_type: str
    status: str
    stock_quantity: int
    stock_status: str
    guest_purchaseable: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ProductList(BaseModel):
    data: List[ProductResponse]
    meta: PaginationMeta
