"""
Stripe Payment Provider

Uses the official stripe SDK. Calls pass api_key per request so an injected
config never leaks into the module-global stripe.api_key.
"""
import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional

import stripe

from app.core.exceptions import (
    PaymentCaptureError,
    PaymentError,
    PaymentRefundError,
    WebhookVerificationError,
)
from app.modules.payments.providers import register_provider
from app.modules.payments.providers.base import (
    BasePaymentProvider,
    PaymentCaptureResult,
    PaymentIntentResult,
    PaymentStatus,
    RefundResult,
    WebhookEvent,
)

logger = logging.getLogger(__name__)

STRIPE_STATUS_MAP = {
    "requires_payment_method": PaymentStatus.REQUIRES_PAYMENT_METHOD,
    "requires_confirmation": PaymentStatus.REQUIRES_CONFIRMATION,
    "requires_action": PaymentStatus.REQUIRES_ACTION,
    "processing": PaymentStatus.PROCESSING,
    "requires_capture": PaymentStatus.PROCESSING,
    "succeeded": PaymentStatus.SUCCEEDED,
    "canceled": PaymentStatus.CANCELLED,
}


@register_provider("stripe")
class StripeProvider(BasePaymentProvider):
    """Card payments through Stripe PaymentIntents."""

    def __init__(self, config: Optional[Any] = None):
        super().__init__(config)
        if self.is_available():
            logger.info("Stripe payment provider configured")
        else:
            logger.warning("Stripe payment provider not configured - STRIPE_SECRET_KEY missing")

    @property
    def api_key(self) -> Optional[str]:
        return self.get_config_value("STRIPE_SECRET_KEY")

    def is_available(self) -> bool:
        return bool(self.api_key)

    def map_status(self, provider_status: str) -> PaymentStatus:
        return STRIPE_STATUS_MAP.get(provider_status, PaymentStatus.FAILED)

    async def create_payment(
        self,
        amount_cents: int,
        currency: str,
        order_id: str,
        customer_email: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> PaymentIntentResult:
        self.ensure_available()

        intent_metadata = {"order_id": str(order_id)}
        intent_metadata.update({k: str(v) for k, v in (metadata or {}).items()})

        params = {
            "amount": amount_cents,
            "currency": currency.lower(),
            "metadata": intent_metadata,
            "automatic_payment_methods": {"enabled": True},
            "api_key": self.api_key,
        }
        if customer_email:
            params["receipt_email"] = customer_email

        try:
            intent = stripe.PaymentIntent.create(**params)
        except stripe.StripeError as e:
            logger.error(f"Stripe PaymentIntent.create failed for order {order_id}: {e}")
            raise PaymentError(f"Stripe error: {e.user_message or str(e)}")

        return PaymentIntentResult(
            id=intent.id,
            client_secret=intent.client_secret,
            amount=intent.amount,
            currency=intent.currency,
            status=self.map_status(intent.status),
            metadata=intent_metadata,
        )

    async def capture_payment(self, payment_id: str) -> PaymentCaptureResult:
        self.ensure_available()

        try:
            intent = stripe.PaymentIntent.capture(payment_id, api_key=self.api_key)
        except stripe.StripeError as e:
            logger.error(f"Stripe capture failed for {payment_id}: {e}")
            raise PaymentCaptureError(f"Stripe capture failed: {e}", payment_id=payment_id)

        status = self.map_status(intent.status)
        metadata = intent.metadata or {}
        return PaymentCaptureResult(
            id=intent.id,
            order_id=metadata.get("order_id"),
            amount=intent.amount,
            currency=intent.currency,
            status=status,
            paid_at=datetime.now(timezone.utc) if status == PaymentStatus.SUCCEEDED else None,
        )

    async def get_payment_status(self, payment_id: str) -> PaymentStatus:
        self.ensure_available()

        try:
            intent = stripe.PaymentIntent.retrieve(payment_id, api_key=self.api_key)
        except stripe.StripeError as e:
            logger.error(f"Stripe retrieve failed for {payment_id}: {e}")
            raise PaymentError(f"Stripe error: {e}")
        return self.map_status(intent.status)

    async def refund(self, payment_id: str, amount_cents: Optional[int] = None) -> RefundResult:
        self.ensure_available()

        params = {"payment_intent": payment_id, "api_key": self.api_key}
        if amount_cents is not None:
            params["amount"] = amount_cents

        try:
            refund = stripe.Refund.create(**params)
        except stripe.StripeError as e:
            logger.error(f"Stripe refund failed for {payment_id}: {e}")
            raise PaymentRefundError(f"Stripe refund failed: {e}", details={"payment_id": payment_id})

        return RefundResult(
            id=refund.id,
            payment_id=payment_id,
            amount=refund.amount,
            status="succeeded" if refund.status == "succeeded" else refund.status,
        )

    async def verify_webhook(
        self,
        payload: bytes,
        signature: Optional[str],
        headers: Optional[Mapping[str, str]] = None,
    ) -> WebhookEvent:
        secret = self.get_config_value("STRIPE_WEBHOOK_SECRET")
        if not secret:
            raise WebhookVerificationError("Stripe webhook secret not configured")
        if not signature:
            raise WebhookVerificationError("Missing stripe-signature header")

        try:
            stripe.Webhook.construct_event(payload, signature, secret)
        except ValueError as e:
            logger.warning(f"Stripe webhook invalid payload: {e}")
            raise WebhookVerificationError("Invalid payload")
        except stripe.SignatureVerificationError as e:
            logger.warning(f"Stripe webhook signature verification failed: {e}")
            raise WebhookVerificationError("Invalid signature")

        # Signature verified; work from the plain JSON body
        event = json.loads(payload)
        return WebhookEvent(
            type=event.get("type", ""),
            data=(event.get("data") or {}).get("object") or {},
            provider=self.name,
            id=event.get("id"),
        )
