"""
Payment schemas
"""
from typing import Optional, List
from pydantic import BaseModel, Field


class CreateIntentRequest(BaseModel):
    order_id: int
    provider: str = Field(..., max_length=32)


class PaymentIntentResponse(BaseModel):
    payment_id: str
    client_secret: Optional[str] = None
    provider: str
    status: str
    test_mode: Optional[bool] = None


class CapturePayPalRequest(BaseModel):
    order_id: int
    paypal_order_id: str


class CaptureAmazonPayRequest(BaseModel):
    order_id: int
    checkout_session_id: str


class CaptureResponse(BaseModel):
    success: bool
    order_id: int
    payment_id: str
    status: str


class RefundRequest(BaseModel):
    amount: Optional[int] = Field(None, gt=0, description="Amount in cents; full refund when omitted")
    reason: Optional[str] = Field(None, max_length=500)


class RefundResponse(BaseModel):
    success: bool
    refund_id: str
    amount: int
    status: str


class ProvidersResponse(BaseModel):
    providers: List[str]
    test_mode: bool
