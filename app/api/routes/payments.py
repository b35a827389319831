"""
Payment routes

Checkout calls create-intent for a pending order, then either confirms
client-side (Stripe) or returns here to capture (PayPal, Amazon Pay).
Provider webhooks read the raw body so signatures can be verified.
"""
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_user, get_optional_user
from app.core.capabilities import require_capability
from app.core.config import settings
from app.core.database import get_db
from app.core.rate_limit import limiter
from app.models.user import User
from app.modules.payments.providers import PaymentProviderFactory
from app.modules.payments.providers.base import BasePaymentProvider
from app.schemas.payment import (
    CaptureAmazonPayRequest,
    CapturePayPalRequest,
    CaptureResponse,
    CreateIntentRequest,
    PaymentIntentResponse,
    ProvidersResponse,
    RefundRequest,
    RefundResponse,
)
from app.services.payment_service import PaymentService

logger = logging.getLogger(__name__)

router = APIRouter()


def get_payment_providers() -> Dict[str, BasePaymentProvider]:
    """Process-wide provider instances, closed by the app lifespan."""
    return PaymentProviderFactory.get_shared_providers()


def get_payment_service(
    db: AsyncSession = Depends(get_db),
    providers: Dict[str, BasePaymentProvider] = Depends(get_payment_providers),
) -> PaymentService:
    return PaymentService(db, providers=providers)


def _user_id(user: Optional[User]) -> Optional[int]:
    return user.id if user else None


@router.get("/providers", response_model=ProvidersResponse)
async def list_providers(service: PaymentService = Depends(get_payment_service)):
    return ProvidersResponse(
        providers=service.get_available_providers(),
        test_mode=service.test_mode,
    )


@router.post("/create-intent", response_model=PaymentIntentResponse)
@limiter.limit(settings.RATE_LIMIT_CHECKOUT)
async def create_intent(
    request: Request,
    body: CreateIntentRequest,
    current_user: Optional[User] = Depends(get_optional_user),
    service: PaymentService = Depends(get_payment_service)
):
    """Start payment for a pending order with the chosen provider."""
    return await service.create_payment_intent(
        body.order_id, body.provider, user_id=_user_id(current_user)
    )


@router.post("/capture-paypal", response_model=CaptureResponse)
async def capture_paypal(
    body: CapturePayPalRequest,
    current_user: Optional[User] = Depends(get_optional_user),
    service: PaymentService = Depends(get_payment_service)
):
    return await service.capture_payment(
        body.order_id, body.paypal_order_id, "paypal", user_id=_user_id(current_user)
    )


@router.post("/capture-amazon-pay", response_model=CaptureResponse)
async def capture_amazon_pay(
    body: CaptureAmazonPayRequest,
    current_user: Optional[User] = Depends(get_optional_user),
    service: PaymentService = Depends(get_payment_service)
):
    return await service.capture_payment(
        body.order_id, body.checkout_session_id, "amazon_pay", user_id=_user_id(current_user)
    )


@router.get("/amazon-pay/button-config")
async def amazon_pay_button_config(
    service: PaymentService = Depends(get_payment_service)
) -> Dict[str, Any]:
    return service.get_amazon_pay_button_config()


@router.post("/refund/{order_id}", response_model=RefundResponse)
async def refund_order(
    order_id: int,
    body: RefundRequest,
    current_user: User = Depends(require_capability("order.refund")),
    service: PaymentService = Depends(get_payment_service)
):
    logger.info(f"Refund of order {order_id} requested by user {current_user.id}")
    return await service.refund(order_id, amount_cents=body.amount, reason=body.reason)


# ----- Webhooks -----

@router.post("/webhooks/stripe")
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None, alias="stripe-signature"),
    service: PaymentService = Depends(get_payment_service)
):
    payload = await request.body()
    return await service.handle_webhook(
        "stripe", payload, stripe_signature, dict(request.headers)
    )


@router.post("/webhooks/paypal")
async def paypal_webhook(
    request: Request,
    transmission_sig: Optional[str] = Header(None, alias="paypal-transmission-sig"),
    service: PaymentService = Depends(get_payment_service)
):
    payload = await request.body()
    return await service.handle_webhook(
        "paypal", payload, transmission_sig, dict(request.headers)
    )


@router.post("/webhooks/amazon-pay")
async def amazon_pay_webhook(
    request: Request,
    message_type: Optional[str] = Header(None, alias="x-amz-sns-message-type"),
    service: PaymentService = Depends(get_payment_service)
):
    payload = await request.body()
    return await service.handle_webhook(
        "amazon_pay", payload, message_type, dict(request.headers)
    )


# ----- Test mode -----

@router.post("/test/simulate/{order_id}")
async def simulate_payment(
    order_id: int,
    current_user: User = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service)
):
    """Mark an order paid without a provider. Only works in test mode."""
    return await service.simulate_payment_completion(order_id)
