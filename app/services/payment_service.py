"""
PaymentService - payment orchestration

Maps an order to a payment provider and drives the pay / capture / refund
lifecycle. Webhook success events and direct captures both end in
OrderService.mark_as_paid().

In test mode no provider is called; synthetic responses are returned so
environments without credentials can run the full checkout flow.
"""
import logging
from typing import Any, Dict, Mapping, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import (
    BadRequestError,
    ForbiddenError,
    NotFoundError,
    PaymentAlreadyInitiatedError,
    PaymentMismatchError,
    ProviderUnavailableError,
)
from app.core.redis_client import claim_webhook_event, release_webhook_event
from app.core.utils import dollars_to_cents, epoch_ms
from app.models.order import Order, OrderStatus
from app.modules.payments.providers import PaymentProviderFactory
from app.modules.payments.providers.base import (
    BasePaymentProvider,
    PaymentCaptureResult,
    PaymentStatus,
    WebhookEvent,
)
from app.services.order_service import OrderService, validate_status_transition

logger = logging.getLogger(__name__)

PAYMENT_SUCCEEDED_EVENTS = {
    "payment_intent.succeeded",     # Stripe
    "PAYMENT.CAPTURE.COMPLETED",    # PayPal
    "CHARGE.COMPLETED",             # Amazon Pay
    "CHARGE.CAPTURED",              # Amazon Pay
}

PAYMENT_FAILED_EVENTS = {
    "payment_intent.payment_failed",
    "PAYMENT.CAPTURE.DENIED",
    "CHARGE.DECLINED",
}


def extract_order_id(event: WebhookEvent) -> Optional[int]:
    """Pull our order id out of provider-specific webhook data."""
    data = event.data or {}
    if event.provider == "stripe":
        raw = (data.get("metadata") or {}).get("order_id")
    elif event.provider == "paypal":
        raw = data.get("custom_id") or ((data.get("purchase_units") or [{}])[0]).get("custom_id")
    else:
        raw = data.get("merchantReferenceId") or (data.get("merchantMetadata") or {}).get("merchantReferenceId")

    try:
        return int(raw) if raw is not None else None
    except (TypeError, ValueError):
        logger.warning(f"Unparseable order id {raw!r} in {event.provider} webhook")
        return None


def extract_payment_reference(event: WebhookEvent) -> Optional[str]:
    """
    Payment reference to store when a webhook marks an order paid.

    PayPal refunds are looked up by checkout order id, which the order
    already carries, so PayPal events keep the stored reference.
    """
    data = event.data or {}
    if event.provider == "stripe":
        return data.get("id")
    if event.provider == "amazon_pay":
        return data.get("ChargeId") or data.get("ObjectId")
    return None


class PaymentService:
    """Payment orchestration across registered providers."""

    def __init__(
        self,
        db: AsyncSession,
        test_mode: Optional[bool] = None,
        providers: Optional[Dict[str, BasePaymentProvider]] = None,
    ):
        self.db = db
        self.test_mode = settings.PAYMENT_TEST_MODE if test_mode is None else test_mode
        self.providers = providers if providers is not None else PaymentProviderFactory.get_shared_providers()
        self.orders = OrderService(db)

    def log_provider_status(self) -> None:
        available = [name for name, p in self.providers.items() if p.is_available()]
        unavailable = [name for name in self.providers if name not in available]

        if available:
            logger.info(f"Available payment providers: {', '.join(available)}")
        if unavailable:
            logger.warning(f"Unavailable payment providers (not configured): {', '.join(unavailable)}")
        if self.test_mode:
            logger.warning("Payment test mode enabled - payments will be simulated")

    def get_available_providers(self) -> list:
        return [
            name for name, provider in self.providers.items()
            if self.test_mode or provider.is_available()
        ]

    def _get_provider(self, name: str) -> BasePaymentProvider:
        provider = self.providers.get(name)
        if provider is None:
            raise BadRequestError(f"Unknown payment provider: {name}", details={"provider": name})
        return provider

    def _get_available_provider(self, name: str) -> BasePaymentProvider:
        provider = self._get_provider(name)
        if not provider.is_available():
            raise ProviderUnavailableError(name)
        return provider

    async def _get_owned_order(self, order_id: int, user_id: Optional[int]) -> Order:
        order = await self.orders.get_order(order_id)
        # Guest orders (no user_id) may be paid by whoever holds the id
        if order.user_id is not None and order.user_id != user_id:
            raise ForbiddenError("Access denied")
        return order

    # ----- Intent creation -----

    async def create_payment_intent(
        self,
        order_id: int,
        provider_name: str,
        user_id: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Start payment for a pending order.

        Raises:
            NotFoundError: Order missing
            ForbiddenError: Order belongs to another user
            BadRequestError: Order not pending, or provider unknown/unavailable
            PaymentAlreadyInitiatedError: Order already has a payment intent
        """
        order = await self._get_owned_order(order_id, user_id)

        if order.status != OrderStatus.PENDING.value:
            raise BadRequestError("Order is not in pending status")

        if order.payment_intent_id:
            raise PaymentAlreadyInitiatedError(
                order_id=order.id, payment_intent_id=order.payment_intent_id
            )

        self._get_provider(provider_name)

        if self.test_mode:
            payment_id = f"test_{provider_name}_{epoch_ms()}"
            if provider_name == "stripe":
                client_secret = f"test_secret_{payment_id}"
            elif provider_name == "paypal":
                client_secret = f"https://www.sandbox.paypal.com/checkoutnow?token={payment_id}"
            else:
                client_secret = payment_id

            order.payment_method = provider_name
            order.payment_intent_id = payment_id
            await self.db.flush()

            logger.info(f"Test-mode payment {payment_id} created for order {order.order_number}")
            return {
                "payment_id": payment_id,
                "client_secret": client_secret,
                "provider": provider_name,
                "status": PaymentStatus.REQUIRES_ACTION.value,
                "test_mode": True,
            }

        provider = self._get_available_provider(provider_name)
        intent = await provider.create_payment(
            amount_cents=dollars_to_cents(order.total),
            currency=settings.PAYMENT_CURRENCY,
            order_id=str(order.id),
            customer_email=order.email,
            metadata={"order_number": order.order_number},
        )

        order.payment_method = provider_name
        order.payment_intent_id = intent.id
        await self.db.flush()

        logger.info(f"Payment {intent.id} created with {provider_name} for order {order.order_number}")
        return {
            "payment_id": intent.id,
            "client_secret": intent.client_secret,
            "provider": provider_name,
            "status": PaymentStatus(intent.status).value,
        }

    # ----- Capture -----

    async def capture_payment(
        self,
        order_id: int,
        provider_payment_id: str,
        provider_name: str,
        user_id: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Capture an approved PayPal order or Amazon Pay checkout session.

        The payment id and provider must be the ones create_payment_intent
        stored on the order, and the captured amount must equal the order
        total. Repeating the call on a paid order asks the provider for the
        payment status instead of capturing again.

        Raises:
            PaymentMismatchError: Payment belongs to another order or amount
            InvalidStatusTransitionError: Order cancelled or refunded
        """
        order = await self._get_owned_order(order_id, user_id)

        if self.test_mode:
            self._get_provider(provider_name)
            await self.orders.mark_as_paid(order.id, provider_payment_id)
            return {
                "success": True,
                "order_id": order.id,
                "payment_id": provider_payment_id,
                "status": PaymentStatus.SUCCEEDED.value,
            }

        provider = self._get_available_provider(provider_name)
        if order.payment_method != provider_name:
            raise PaymentMismatchError(
                f"Order {order.order_number} was not started with {provider_name}", order_id=order.id
            )

        if order.status != OrderStatus.PENDING.value:
            return await self._reconcile_paid_order(order, provider)

        if order.payment_intent_id != provider_payment_id:
            logger.warning(
                f"Capture of {provider_name} payment {provider_payment_id} refused for order "
                f"{order.order_number} (stored payment {order.payment_intent_id})"
            )
            raise PaymentMismatchError("Payment does not belong to this order", order_id=order.id)

        capture = await provider.capture_payment(provider_payment_id)
        succeeded = capture.status == PaymentStatus.SUCCEEDED

        if succeeded:
            self._check_capture_matches_order(order, capture)
            # Amazon Pay refunds address the charge, not the checkout session
            reference = capture.id if provider_name == "amazon_pay" else provider_payment_id
            await self.orders.mark_as_paid(order.id, reference)
        else:
            logger.warning(
                f"{provider_name} capture for order {order.order_number} returned {capture.status.value}"
            )

        return {
            "success": succeeded,
            "order_id": order.id,
            "payment_id": capture.id,
            "status": PaymentStatus(capture.status).value,
        }

    @staticmethod
    def _check_capture_matches_order(order: Order, capture: PaymentCaptureResult) -> None:
        expected = dollars_to_cents(order.total)
        if capture.order_id is not None and str(capture.order_id) != str(order.id):
            logger.error(
                f"Capture {capture.id} references order {capture.order_id}, "
                f"not {order.order_number}; needs manual refund"
            )
            raise PaymentMismatchError("Captured payment belongs to another order", order_id=order.id)
        if capture.amount != expected:
            logger.error(
                f"Capture {capture.id} for order {order.order_number} is {capture.amount} cents, "
                f"expected {expected}; needs manual refund"
            )
            raise PaymentMismatchError(
                "Captured amount does not match order total",
                order_id=order.id,
                details={"captured": capture.amount, "expected": expected},
            )

    async def _reconcile_paid_order(self, order: Order, provider: BasePaymentProvider) -> Dict[str, Any]:
        # Only paid orders can be reconciled; cancelled/refunded raise here
        if order.status not in (OrderStatus.PROCESSING.value, OrderStatus.COMPLETED.value):
            validate_status_transition(order.status, OrderStatus.PROCESSING.value)

        status = await provider.get_payment_status(order.payment_intent_id)
        logger.info(f"Order {order.order_number} already paid, provider reports {status.value}")
        return {
            "success": status == PaymentStatus.SUCCEEDED,
            "order_id": order.id,
            "payment_id": order.payment_intent_id,
            "status": status.value,
        }

    # ----- Refund -----

    async def refund(
        self,
        order_id: int,
        amount_cents: Optional[int] = None,
        reason: Optional[str] = None,
    ) -> Dict[str, Any]:
        order = await self.orders.get_order(order_id)

        if not order.payment_intent_id:
            raise BadRequestError("Order has no payment to refund")
        if order.status == OrderStatus.REFUNDED.value:
            raise BadRequestError("Order is already refunded")
        if order.status == OrderStatus.CANCELLED.value:
            raise BadRequestError("Cannot refund cancelled order")
        validate_status_transition(order.status, OrderStatus.REFUNDED.value)

        if self.test_mode:
            refund_id = f"test_refund_{epoch_ms()}"
            await self.orders.update_status(order.id, OrderStatus.REFUNDED.value)
            logger.info(f"Test-mode refund {refund_id} for order {order.order_number}")
            return {
                "success": True,
                "refund_id": refund_id,
                "amount": amount_cents or dollars_to_cents(order.total),
                "status": PaymentStatus.SUCCEEDED.value,
            }

        provider = self._get_available_provider(order.payment_method or "")
        result = await provider.refund(order.payment_intent_id, amount_cents)
        succeeded = result.status == PaymentStatus.SUCCEEDED.value

        if succeeded:
            await self.orders.update_status(order.id, OrderStatus.REFUNDED.value)
            logger.info(
                f"Order {order.order_number} refunded via {order.payment_method} "
                f"({result.amount} cents, reason: {reason or 'n/a'})"
            )
        else:
            logger.warning(f"Refund {result.id} for order {order.order_number} is {result.status}")

        return {
            "success": succeeded,
            "refund_id": result.id,
            "amount": result.amount,
            "status": result.status,
        }

    # ----- Webhooks -----

    async def handle_webhook(
        self,
        provider_name: str,
        payload: bytes,
        signature: Optional[str],
        headers: Optional[Mapping[str, str]] = None,
    ) -> Dict[str, Any]:
        """
        Verify and dispatch a provider webhook.

        Verification failures raise before any state is touched. The event id
        is claimed before dispatch. Processing failures are logged and the
        event is dropped; an unexpected failure also releases the claim so a
        redelivery of the same event is processed instead of skipped.
        """
        provider = self._get_provider(provider_name)
        event = await provider.verify_webhook(payload, signature, headers)

        logger.info(f"Processing {event.provider} webhook: {event.type}")

        event_key = f"{provider_name}:{event.id}" if event.id else None
        if event_key and not await claim_webhook_event(event_key):
            logger.info(f"Webhook {event_key} already processed, skipping")
            return {"received": True}

        try:
            event = await provider.resolve_webhook_event(event)
            if event.type in PAYMENT_SUCCEEDED_EVENTS:
                await self._handle_payment_succeeded(event)
            elif event.type in PAYMENT_FAILED_EVENTS:
                self._handle_payment_failed(event)
            else:
                logger.info(f"Unhandled webhook event: {event.type}")
        except (NotFoundError, BadRequestError) as e:
            # Order missing or no longer payable; a redelivery cannot change that
            logger.warning(f"{provider_name} webhook {event.type} not applied: {e.message}")
        except Exception as e:
            logger.error(f"Failed to process {provider_name} webhook {event.type}: {e}", exc_info=True)
            await self.db.rollback()
            if event_key:
                await release_webhook_event(event_key)

        return {"received": True}

    async def _handle_payment_succeeded(self, event: WebhookEvent) -> None:
        order_id = extract_order_id(event)
        if order_id is None:
            logger.warning(f"{event.provider} payment succeeded but no order id found")
            return

        await self.orders.mark_as_paid(order_id, extract_payment_reference(event))

    def _handle_payment_failed(self, event: WebhookEvent) -> None:
        order_id = extract_order_id(event)
        if order_id is None:
            logger.warning(f"{event.provider} payment failed but no order id found")
            return
        # Order stays pending so the shopper can retry
        logger.warning(f"Payment failed for order {order_id}")

    # ----- Test mode / storefront helpers -----

    async def simulate_payment_completion(self, order_id: int) -> Dict[str, Any]:
        if not self.test_mode:
            raise BadRequestError("This endpoint is only available in test mode")

        order = await self.orders.get_order(order_id)
        await self.orders.mark_as_paid(order.id, order.payment_intent_id or f"test_{epoch_ms()}")
        return {
            "success": True,
            "message": "Payment simulated successfully",
            "order_id": order.id,
        }

    def get_amazon_pay_button_config(self) -> Dict[str, Any]:
        provider = self._get_provider("amazon_pay")
        if not provider.is_available() and not self.test_mode:
            raise BadRequestError("Amazon Pay is not available")
        return provider.get_button_config()
