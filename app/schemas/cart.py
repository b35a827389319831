"""
Cart schemas
"""
from typing import Optional, List
from pydantic import BaseModel, Field


class CartItemCreate(BaseModel):
    product_id: int
    quantity: int = Field(1, ge=1, le=1000)


class CartItemUpdate(BaseModel):
    quantity: int = Field(..., ge=1, le=1000)


class CartProduct(BaseModel):
    id: int
    name: str
    slug: str
    price: float
    stock_status: str

    class Config:
        from_attributes = True


class CartItemResponse(BaseModel):
    id: int
    product_id: int
    quantity: int
    product: CartProduct
    line_total: float


class CartResponse(BaseModel):
    id: Optional[int] = None
    items: List[CartItemResponse] = []
    item_count: int = 0
    subtotal: float = 0.0
