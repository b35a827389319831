"""
PayPal Payment Provider

Orders API v2 over httpx with OAuth 2.0 client-credentials authentication.
Webhooks are verified through PayPal's verify-webhook-signature endpoint.
"""
import base64
import json
import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, Mapping, Optional

import httpx

from app.core.exceptions import (
    PaymentAuthError,
    PaymentCaptureError,
    PaymentError,
    PaymentProviderResponseError,
    PaymentRefundError,
    WebhookVerificationError,
)
from app.core.utils import format_amount
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

PAYPAL_LIVE_URL = "https://api-m.paypal.com"
PAYPAL_SANDBOX_URL = "https://api-m.sandbox.paypal.com"

OAUTH_TOKEN_PATH = "/v1/oauth2/token"
ORDERS_PATH = "/v2/checkout/orders"
CAPTURES_PATH = "/v2/payments/captures"
VERIFY_WEBHOOK_PATH = "/v1/notifications/verify-webhook-signature"

# Refresh the cached token this long before PayPal expires it
TOKEN_EXPIRY_MARGIN_SECONDS = 60

PAYPAL_STATUS_MAP = {
    "CREATED": PaymentStatus.REQUIRES_ACTION,
    "SAVED": PaymentStatus.REQUIRES_ACTION,
    "PAYER_ACTION_REQUIRED": PaymentStatus.REQUIRES_ACTION,
    "APPROVED": PaymentStatus.REQUIRES_CONFIRMATION,
    "VOIDED": PaymentStatus.CANCELLED,
    "COMPLETED": PaymentStatus.SUCCEEDED,
}

TRANSMISSION_HEADERS = {
    "auth_algo": "paypal-auth-algo",
    "cert_url": "paypal-cert-url",
    "transmission_id": "paypal-transmission-id",
    "transmission_sig": "paypal-transmission-sig",
    "transmission_time": "paypal-transmission-time",
}


def _to_cents(value: Optional[str]) -> int:
    return int((Decimal(value or "0") * 100).to_integral_value())


@register_provider("paypal")
class PayPalProvider(BasePaymentProvider):
    """PayPal Checkout (Orders v2)."""

    def __init__(self, config: Optional[Any] = None, http_client: Optional[httpx.AsyncClient] = None):
        super().__init__(config)
        self._access_token: Optional[str] = None
        self._token_expires_at: Optional[datetime] = None
        self._http_client = http_client

        if self.is_available():
            logger.info(f"PayPal payment provider configured ({self.mode} mode)")
        else:
            logger.warning("PayPal payment provider not configured - credentials missing")

    @property
    def mode(self) -> str:
        return self.get_config_value("PAYPAL_MODE", "sandbox")

    @property
    def base_url(self) -> str:
        return PAYPAL_LIVE_URL if self.mode == "live" else PAYPAL_SANDBOX_URL

    def is_available(self) -> bool:
        return bool(
            self.get_config_value("PAYPAL_CLIENT_ID")
            and self.get_config_value("PAYPAL_CLIENT_SECRET")
        )

    def map_status(self, provider_status: str) -> PaymentStatus:
        return PAYPAL_STATUS_MAP.get(provider_status, PaymentStatus.FAILED)

    # ----- HTTP plumbing -----

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=30.0)
        return self._http_client

    async def close(self):
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    async def _ensure_token(self) -> str:
        """Ensure we have a valid OAuth token."""
        if self._access_token and self._token_expires_at:
            if datetime.now(timezone.utc) < self._token_expires_at:
                return self._access_token

        client = await self._get_http_client()
        auth_string = f"{self.get_config_value('PAYPAL_CLIENT_ID')}:{self.get_config_value('PAYPAL_CLIENT_SECRET')}"
        auth_header = base64.b64encode(auth_string.encode()).decode()

        try:
            response = await client.post(
                f"{self.base_url}{OAUTH_TOKEN_PATH}",
                headers={
                    "Authorization": f"Basic {auth_header}",
                    "Content-Type": "application/x-www-form-urlencoded",
                },
                data={"grant_type": "client_credentials"},
            )
        except httpx.RequestError as e:
            logger.error(f"PayPal OAuth request failed: {e}")
            raise PaymentAuthError(f"Network error during PayPal authentication: {e}")

        if response.status_code != 200:
            logger.error(f"PayPal OAuth failed: {response.status_code} - {response.text[:500]}")
            raise PaymentAuthError(
                "Failed to authenticate with PayPal",
                details={"status": response.status_code},
            )

        data = response.json()
        self._access_token = data["access_token"]
        expires_in = int(data.get("expires_in", 3600))
        self._token_expires_at = datetime.now(timezone.utc) + timedelta(
            seconds=expires_in - TOKEN_EXPIRY_MARGIN_SECONDS
        )
        logger.info(f"PayPal OAuth token obtained, expires in {expires_in}s")
        return self._access_token

    async def _make_request(
        self,
        method: str,
        path: str,
        data: Optional[Dict] = None,
        headers: Optional[Dict[str, str]] = None,
        error_cls=PaymentError,
    ) -> Dict:
        """Make authenticated API request."""
        token = await self._ensure_token()
        client = await self._get_http_client()

        request_headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }
        if headers:
            request_headers.update(headers)

        try:
            response = await client.request(
                method.upper(),
                f"{self.base_url}{path}",
                headers=request_headers,
                json=data,
            )
        except httpx.RequestError as e:
            logger.error(f"PayPal API request failed: {e}")
            raise error_cls(f"Network error: {e}")

        logger.debug(f"PayPal API {method} {path} -> {response.status_code}")

        if response.status_code >= 400:
            try:
                error_data = response.json()
            except ValueError:
                error_data = {"raw": response.text[:500]}
            error_msg = error_data.get("message") or "Unknown error"
            logger.error(f"PayPal API error: {response.status_code} - {response.text[:500]}")
            raise error_cls(f"PayPal error: {error_msg}", details={"status": response.status_code})

        try:
            return response.json()
        except ValueError:
            raise PaymentProviderResponseError("PayPal returned a non-JSON response")

    # ----- Payment operations -----

    async def create_payment(
        self,
        amount_cents: int,
        currency: str,
        order_id: str,
        customer_email: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> PaymentIntentResult:
        self.ensure_available()

        frontend_url = self.get_config_value("FRONTEND_URL", "")
        body = {
            "intent": "CAPTURE",
            "purchase_units": [
                {
                    "reference_id": str(order_id),
                    "custom_id": str(order_id),
                    "amount": {
                        "currency_code": currency.upper(),
                        "value": format_amount(amount_cents),
                    },
                }
            ],
            "payment_source": {
                "paypal": {
                    "experience_context": {
                        "payment_method_preference": "IMMEDIATE_PAYMENT_REQUIRED",
                        "brand_name": self.get_config_value("STORE_NAME", ""),
                        "locale": "en-US",
                        "user_action": "PAY_NOW",
                        "return_url": f"{frontend_url}/checkout/success",
                        "cancel_url": f"{frontend_url}/checkout/cancel",
                    }
                }
            },
        }
        if customer_email:
            body["payment_source"]["paypal"]["email_address"] = customer_email

        order = await self._make_request(
            "POST",
            ORDERS_PATH,
            data=body,
            headers={"PayPal-Request-Id": str(order_id)},
        )

        if "id" not in order:
            raise PaymentProviderResponseError("PayPal order response missing id")

        approval_link = next(
            (link.get("href") for link in order.get("links", []) if link.get("rel") == "payer-action"),
            None,
        )

        return PaymentIntentResult(
            id=order["id"],
            client_secret=approval_link,
            amount=amount_cents,
            currency=currency,
            status=self.map_status(order.get("status", "")),
            metadata={"order_id": str(order_id), **(metadata or {})},
        )

    async def capture_payment(self, payment_id: str) -> PaymentCaptureResult:
        self.ensure_available()

        capture = await self._make_request(
            "POST",
            f"{ORDERS_PATH}/{payment_id}/capture",
            error_cls=PaymentCaptureError,
        )

        purchase_unit = (capture.get("purchase_units") or [{}])[0]
        captures = (purchase_unit.get("payments") or {}).get("captures") or [{}]
        capture_details = captures[0]
        amount = capture_details.get("amount") or {}
        status = self.map_status(capture.get("status", ""))

        return PaymentCaptureResult(
            id=capture_details.get("id") or capture.get("id", payment_id),
            order_id=purchase_unit.get("custom_id") or purchase_unit.get("reference_id"),
            amount=_to_cents(amount.get("value")),
            currency=amount.get("currency_code", "USD"),
            status=status,
            paid_at=datetime.now(timezone.utc) if status == PaymentStatus.SUCCEEDED else None,
        )

    async def get_payment_status(self, payment_id: str) -> PaymentStatus:
        self.ensure_available()
        order = await self._make_request("GET", f"{ORDERS_PATH}/{payment_id}")
        return self.map_status(order.get("status", ""))

    async def refund(self, payment_id: str, amount_cents: Optional[int] = None) -> RefundResult:
        self.ensure_available()

        order = await self._make_request(
            "GET", f"{ORDERS_PATH}/{payment_id}", error_cls=PaymentRefundError
        )
        purchase_unit = (order.get("purchase_units") or [{}])[0]
        captures = (purchase_unit.get("payments") or {}).get("captures") or []
        capture_id = captures[0].get("id") if captures else None

        if not capture_id:
            raise PaymentRefundError(
                "No capture found for this payment", details={"payment_id": payment_id}
            )

        body = {}
        if amount_cents is not None:
            body["amount"] = {
                "value": format_amount(amount_cents),
                "currency_code": (purchase_unit.get("amount") or {}).get("currency_code", "USD"),
            }

        refund = await self._make_request(
            "POST",
            f"{CAPTURES_PATH}/{capture_id}/refund",
            data=body,
            error_cls=PaymentRefundError,
        )

        refund_status = refund.get("status")
        if refund_status == "COMPLETED":
            status = "succeeded"
        elif refund_status == "PENDING":
            status = "pending"
        else:
            status = "failed"

        return RefundResult(
            id=refund.get("id", ""),
            payment_id=payment_id,
            amount=_to_cents((refund.get("amount") or {}).get("value")),
            status=status,
        )

    async def verify_webhook(
        self,
        payload: bytes,
        signature: Optional[str],
        headers: Optional[Mapping[str, str]] = None,
    ) -> WebhookEvent:
        webhook_id = self.get_config_value("PAYPAL_WEBHOOK_ID")
        if not webhook_id or not self.is_available():
            raise WebhookVerificationError("PayPal webhook verification not configured")

        try:
            event = json.loads(payload)
        except ValueError:
            raise WebhookVerificationError("Invalid payload")

        headers = {k.lower(): v for k, v in (headers or {}).items()}
        if signature:
            headers.setdefault("paypal-transmission-sig", signature)

        body = {field: headers.get(header) for field, header in TRANSMISSION_HEADERS.items()}
        missing = [header for field, header in TRANSMISSION_HEADERS.items() if not body[field]]
        if missing:
            raise WebhookVerificationError(f"Missing PayPal headers: {', '.join(missing)}")

        body["webhook_id"] = webhook_id
        body["webhook_event"] = event

        try:
            result = await self._make_request("POST", VERIFY_WEBHOOK_PATH, data=body)
        except PaymentError as e:
            logger.warning(f"PayPal webhook verification call failed: {e.message}")
            raise WebhookVerificationError("PayPal webhook verification failed")

        if result.get("verification_status") != "SUCCESS":
            logger.warning(f"PayPal webhook signature rejected: {result.get('verification_status')}")
            raise WebhookVerificationError("Invalid signature")

        return WebhookEvent(
            type=event.get("event_type", ""),
            data=event.get("resource") or {},
            provider=self.name,
            id=event.get("id"),
        )
