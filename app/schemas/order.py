"""
Order schemas
"""
from datetime import datetime
from typing import Optional, List, Literal
from pydantic import BaseModel, EmailStr, Field


class ShippingAddress(BaseModel):
    name: str = Field(..., max_length=255)
    line1: str = Field(..., max_length=255)
    line2: Optional[str] = Field(None, max_length=255)
    city: str = Field(..., max_length=100)
    state: str = Field(..., max_length=100)
    postal_code: str = Field(..., max_length=20)
    country: str = Field("US", min_length=2, max_length=2)


class OrderCreate(BaseModel):
    email: EmailStr
    payment_method: Literal["stripe", "paypal", "amazon_pay"]
    shipping_address: Optional[ShippingAddress] = None
    notes: Optional[str] = Field(None, max_length=2000)


class OrderStatusUpdate(BaseModel):
    status: Literal["pending", "processing", "completed", "cancelled", "refunded"]


class OrderItemResponse(BaseModel):
    id: int
    product_id: Optional[int] = None
    product_name: str
    product_sku: Optional[str] = None
    price: float
    quantity: int

    class Config:
        from_attributes = True


class OrderResponse(BaseModel):
    id: int
    order_number: str
    user_id: Optional[int] = None
    email: str
    status: str
    subtotal: float
    tax: float
    shipping: float
    total: float
    payment_method: Optional[str] = None
    payment_intent_id: Optional[str] = None
    shipping_name: Optional[str] = None
    shipping_address_line1: Optional[str] = None
    shipping_address_line2: Optional[str] = None
    shipping_city: Optional[str] = None
    shipping_state: Optional[str] = None
    shipping_postal_code: Optional[str] = None
    shipping_country: Optional[str] = None
    items: List[OrderItemResponse] = []
    created_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class PaginationMeta(BaseModel):
    total: int
    page: int
    limit: int
    total_pages: int


class OrderList(BaseModel):
    data: List[OrderResponse]
    meta: PaginationMeta
