"""
Amazon Pay Payment Provider

Checkout v2 API over httpx. Requests are signed with the merchant's private
key (AMZN-PAY-RSASSA-PSS). Webhooks arrive as SNS notifications and are
verified against the SNS signing certificate.
"""
import base64
import hashlib
import json
import logging
import re
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Mapping, Optional
from urllib.parse import urlparse

import httpx
from cryptography import x509
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding

from app.core.exceptions import (
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

AMAZON_PAY_HOSTS = {
    "na": "pay-api.amazon.com",
    "eu": "pay-api.amazon.eu",
    "fe": "pay-api.amazon.jp",
}

SIGNING_ALGORITHM = "AMZN-PAY-RSASSA-PSS"
PSS_SALT_LENGTH = 20

AMAZON_STATUS_MAP = {
    "Open": PaymentStatus.REQUIRES_ACTION,
    "Authorized": PaymentStatus.REQUIRES_CONFIRMATION,
    "AuthorizationInitiated": PaymentStatus.PROCESSING,
    "CaptureInitiated": PaymentStatus.PROCESSING,
    "Captured": PaymentStatus.SUCCEEDED,
    "Completed": PaymentStatus.SUCCEEDED,
    "Declined": PaymentStatus.FAILED,
    "Canceled": PaymentStatus.CANCELLED,
    "Closed": PaymentStatus.CANCELLED,
}

SNS_CERT_HOST_PATTERN = re.compile(r"^sns\.[a-z0-9-]+\.amazonaws\.com(\.cn)?$")

# Fields covered by the SNS signature, in signing order
SNS_NOTIFICATION_FIELDS = ("Message", "MessageId", "Subject", "Timestamp", "TopicArn", "Type")
SNS_SUBSCRIPTION_FIELDS = ("Message", "MessageId", "SubscribeURL", "Timestamp", "Token", "TopicArn", "Type")

# SigningCertURL -> PEM bytes
_sns_cert_cache: Dict[str, bytes] = {}


def _to_cents(value: Optional[str]) -> int:
    return int((Decimal(value or "0") * 100).to_integral_value())


def build_canonical_request(
    method: str,
    path: str,
    query: str,
    headers: Mapping[str, str],
    payload: str,
) -> str:
    """Canonical request string covered by the Amazon Pay signature."""
    lowered = {k.lower(): str(v).strip() for k, v in headers.items()}
    signed = sorted(lowered)
    canonical_headers = "".join(f"{name}:{lowered[name]}\n" for name in signed)
    payload_hash = hashlib.sha256(payload.encode("utf-8")).hexdigest()
    return "\n".join([
        method.upper(),
        path,
        query,
        canonical_headers,
        ";".join(signed),
        payload_hash,
    ])


def build_string_to_sign(canonical_request: str) -> str:
    digest = hashlib.sha256(canonical_request.encode("utf-8")).hexdigest()
    return f"{SIGNING_ALGORITHM}\n{digest}"


def build_sns_string_to_sign(message: Mapping[str, Any]) -> str:
    """Canonical SNS string: "Key\\nValue\\n" for each signed field present."""
    if message.get("Type") == "Notification":
        fields = SNS_NOTIFICATION_FIELDS
    else:
        fields = SNS_SUBSCRIPTION_FIELDS
    return "".join(
        f"{name}\n{message[name]}\n" for name in fields if message.get(name) is not None
    )


@register_provider("amazon_pay")
class AmazonPayProvider(BasePaymentProvider):
    """Amazon Pay Checkout v2."""

    def __init__(self, config: Optional[Any] = None, http_client: Optional[httpx.AsyncClient] = None):
        super().__init__(config)
        self._http_client = http_client
        self._private_key = None

        if self.is_available():
            logger.info(
                f"Amazon Pay payment provider configured "
                f"({'sandbox' if self.sandbox else 'live'} mode, region: {self.region})"
            )
        else:
            logger.warning("Amazon Pay payment provider not configured - missing credentials")

    @property
    def region(self) -> str:
        region = self.get_config_value("AMAZON_PAY_REGION", "na")
        return region if region in AMAZON_PAY_HOSTS else "na"

    @property
    def sandbox(self) -> bool:
        return bool(self.get_config_value("AMAZON_PAY_SANDBOX", True))

    @property
    def host(self) -> str:
        return AMAZON_PAY_HOSTS[self.region]

    @property
    def path_prefix(self) -> str:
        return "/sandbox/v2" if self.sandbox else "/v2"

    @property
    def base_url(self) -> str:
        return f"https://{self.host}{self.path_prefix}"

    def is_available(self) -> bool:
        return bool(
            self.get_config_value("AMAZON_PAY_MERCHANT_ID")
            and self.get_config_value("AMAZON_PAY_PUBLIC_KEY_ID")
            and self.get_config_value("AMAZON_PAY_PRIVATE_KEY")
        )

    def map_status(self, provider_status: str) -> PaymentStatus:
        return AMAZON_STATUS_MAP.get(provider_status, PaymentStatus.FAILED)

    def get_button_config(self) -> Dict[str, Any]:
        """Settings the storefront needs to render the Amazon Pay button."""
        return {
            "merchantId": self.get_config_value("AMAZON_PAY_MERCHANT_ID"),
            "publicKeyId": self.get_config_value("AMAZON_PAY_PUBLIC_KEY_ID"),
            "ledgerCurrency": "USD",
            "checkoutLanguage": "en_US",
            "productType": "PayAndShip",
            "placement": "Checkout",
            "buttonColor": "Gold",
            "sandbox": self.sandbox,
        }

    # ----- Signing -----

    def _load_private_key(self):
        if self._private_key is None:
            pem = self.get_config_value("AMAZON_PAY_PRIVATE_KEY", "")
            # Env files often carry the PEM with escaped newlines
            pem = pem.replace("\\n", "\n")
            self._private_key = serialization.load_pem_private_key(pem.encode("utf-8"), password=None)
        return self._private_key

    def sign(self, string_to_sign: str) -> str:
        """RSA-PSS/SHA-256 signature, base64 encoded."""
        signature = self._load_private_key().sign(
            string_to_sign.encode("utf-8"),
            padding.PSS(mgf=padding.MGF1(hashes.SHA256()), salt_length=PSS_SALT_LENGTH),
            hashes.SHA256(),
        )
        return base64.b64encode(signature).decode("ascii")

    def build_signed_headers(self, method: str, path: str, payload: str) -> Dict[str, str]:
        """Headers for one request, Authorization included."""
        headers = {
            "accept": "application/json",
            "content-type": "application/json",
            "x-amz-pay-date": datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ"),
            "x-amz-pay-host": self.host,
            "x-amz-pay-region": self.region,
        }
        if method.upper() == "POST":
            headers["x-amz-pay-idempotency-key"] = uuid.uuid4().hex

        canonical = build_canonical_request(method, path, "", headers, payload)
        signature = self.sign(build_string_to_sign(canonical))
        signed_headers = ";".join(sorted(headers))
        headers["authorization"] = (
            f"{SIGNING_ALGORITHM} PublicKeyId={self.get_config_value('AMAZON_PAY_PUBLIC_KEY_ID')}, "
            f"SignedHeaders={signed_headers}, Signature={signature}"
        )
        return headers

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

    async def _make_request(
        self,
        method: str,
        endpoint: str,
        data: Optional[Dict] = None,
        error_cls=PaymentError,
    ) -> Dict:
        """Make a signed API request."""
        self.ensure_available()

        path = f"{self.path_prefix}{endpoint}"
        payload = json.dumps(data) if data is not None else ""
        headers = self.build_signed_headers(method, path, payload)
        client = await self._get_http_client()

        try:
            response = await client.request(
                method.upper(),
                f"https://{self.host}{path}",
                headers=headers,
                content=payload.encode("utf-8") if payload else None,
            )
        except httpx.RequestError as e:
            logger.error(f"Amazon Pay API request failed: {e}")
            raise error_cls(f"Network error: {e}")

        logger.debug(f"Amazon Pay API {method} {endpoint} -> {response.status_code}")

        if response.status_code >= 400:
            logger.error(f"Amazon Pay API error: {response.status_code} - {response.text[:500]}")
            raise error_cls(
                f"Amazon Pay API error: {response.status_code}",
                details={"status": response.status_code},
            )

        try:
            return response.json()
        except ValueError:
            raise PaymentProviderResponseError("Amazon Pay returned a non-JSON response")

    # ----- Payment operations -----

    async def create_payment(
        self,
        amount_cents: int,
        currency: str,
        order_id: str,
        customer_email: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> PaymentIntentResult:
        frontend_url = self.get_config_value("FRONTEND_URL", "")
        store_name = self.get_config_value("STORE_NAME", "")

        session = await self._make_request("POST", "/checkoutSessions", {
            "webCheckoutDetails": {
                "checkoutReviewReturnUrl": f"{frontend_url}/checkout/amazon-pay/review",
                "checkoutResultReturnUrl": f"{frontend_url}/checkout/amazon-pay/result",
            },
            "storeId": self.get_config_value("AMAZON_PAY_STORE_ID")
                       or self.get_config_value("AMAZON_PAY_MERCHANT_ID"),
            "chargePermissionType": "OneTime",
            "paymentDetails": {
                "paymentIntent": "Authorize",
                "canHandlePendingAuthorization": False,
                "chargeAmount": {
                    "amount": format_amount(amount_cents),
                    "currencyCode": currency.upper(),
                },
            },
            "merchantMetadata": {
                "merchantReferenceId": str(order_id),
                "merchantStoreName": store_name,
                "noteToBuyer": f"Order #{order_id}",
                "customInformation": json.dumps(metadata or {}),
            },
        })

        session_id = session.get("checkoutSessionId")
        if not session_id:
            raise PaymentProviderResponseError("Amazon Pay response missing checkoutSessionId")

        return PaymentIntentResult(
            id=session_id,
            client_secret=session_id,
            amount=amount_cents,
            currency=currency,
            status=PaymentStatus.REQUIRES_ACTION,
            metadata={"order_id": str(order_id), **(metadata or {})},
        )

    async def capture_payment(self, payment_id: str) -> PaymentCaptureResult:
        """Complete the checkout session, then charge it with captureNow."""
        result = await self._make_request(
            "POST",
            f"/checkoutSessions/{payment_id}/complete",
            {"chargeAmount": {}},
            error_cls=PaymentCaptureError,
        )

        charge_permission_id = result.get("chargePermissionId")
        charge_amount = (result.get("paymentDetails") or {}).get("chargeAmount") or {}
        if not charge_permission_id or not charge_amount.get("amount"):
            raise PaymentProviderResponseError("Amazon Pay completion response missing charge details")

        charge = await self._make_request("POST", "/charges", {
            "chargePermissionId": charge_permission_id,
            "chargeAmount": {
                "amount": charge_amount["amount"],
                "currencyCode": charge_amount.get("currencyCode", "USD"),
            },
            "captureNow": True,
            "softDescriptor": self.get_config_value("STORE_NAME", "")[:16],
        }, error_cls=PaymentCaptureError)

        state = (charge.get("statusDetails") or {}).get("state", "")
        amount = charge.get("chargeAmount") or charge_amount
        status = self.map_status(state)

        return PaymentCaptureResult(
            id=charge.get("chargeId", payment_id),
            order_id=(result.get("merchantMetadata") or {}).get("merchantReferenceId"),
            amount=_to_cents(amount.get("amount")),
            currency=(amount.get("currencyCode") or "USD").lower(),
            status=status,
            paid_at=datetime.now(timezone.utc) if status == PaymentStatus.SUCCEEDED else None,
        )

    async def get_payment_status(self, payment_id: str) -> PaymentStatus:
        charge = await self._make_request("GET", f"/charges/{payment_id}")
        return self.map_status((charge.get("statusDetails") or {}).get("state", ""))

    async def refund(self, payment_id: str, amount_cents: Optional[int] = None) -> RefundResult:
        charge = await self._make_request("GET", f"/charges/{payment_id}", error_cls=PaymentRefundError)
        charge_amount = charge.get("chargeAmount") or {}

        refund_amount = (
            format_amount(amount_cents) if amount_cents is not None else charge_amount.get("amount")
        )
        if not refund_amount:
            raise PaymentProviderResponseError("Amazon Pay charge missing amount")

        refund = await self._make_request("POST", "/refunds", {
            "chargeId": payment_id,
            "refundAmount": {
                "amount": refund_amount,
                "currencyCode": charge_amount.get("currencyCode", "USD"),
            },
            "softDescriptor": "REFUND",
        }, error_cls=PaymentRefundError)

        state = (refund.get("statusDetails") or {}).get("state")
        if state == "Refunded":
            status = "succeeded"
        elif state in ("Pending", "RefundInitiated"):
            status = "pending"
        else:
            status = "failed"

        return RefundResult(
            id=refund.get("refundId", ""),
            payment_id=payment_id,
            amount=_to_cents((refund.get("refundAmount") or {}).get("amount")),
            status=status,
        )

    # ----- Webhooks (SNS) -----

    async def _fetch_signing_cert(self, cert_url: str) -> bytes:
        if cert_url in _sns_cert_cache:
            return _sns_cert_cache[cert_url]

        client = await self._get_http_client()
        try:
            response = await client.get(cert_url)
        except httpx.RequestError as e:
            logger.warning(f"SNS certificate fetch failed: {e}")
            raise WebhookVerificationError("Could not fetch SNS signing certificate")

        if response.status_code != 200:
            raise WebhookVerificationError("Could not fetch SNS signing certificate")

        _sns_cert_cache[cert_url] = response.content
        return response.content

    async def verify_webhook(
        self,
        payload: bytes,
        signature: Optional[str],
        headers: Optional[Mapping[str, str]] = None,
    ) -> WebhookEvent:
        """
        Verify an SNS envelope and unwrap the Amazon Pay notification.

        The signature lives inside the envelope; the x-amz-sns-message-type
        header (passed as signature) must agree with the envelope Type.
        """
        try:
            envelope = json.loads(payload)
        except ValueError:
            raise WebhookVerificationError("Invalid payload")

        if signature and envelope.get("Type") != signature:
            raise WebhookVerificationError("SNS message type mismatch")

        cert_url = envelope.get("SigningCertURL", "")
        parsed = urlparse(cert_url)
        if parsed.scheme != "https" or not SNS_CERT_HOST_PATTERN.match(parsed.hostname or ""):
            logger.warning(f"Rejected SNS certificate URL: {cert_url}")
            raise WebhookVerificationError("Invalid SNS signing certificate URL")

        version = str(envelope.get("SignatureVersion", "1"))
        if version == "1":
            digest = hashes.SHA1()
        elif version == "2":
            digest = hashes.SHA256()
        else:
            raise WebhookVerificationError(f"Unsupported SNS signature version: {version}")

        try:
            sns_signature = base64.b64decode(envelope.get("Signature", ""))
        except ValueError:
            raise WebhookVerificationError("Invalid SNS signature encoding")

        cert_pem = await self._fetch_signing_cert(cert_url)
        try:
            public_key = x509.load_pem_x509_certificate(cert_pem).public_key()
            public_key.verify(
                sns_signature,
                build_sns_string_to_sign(envelope).encode("utf-8"),
                padding.PKCS1v15(),
                digest,
            )
        except (InvalidSignature, ValueError) as e:
            logger.warning(f"Amazon Pay SNS signature verification failed: {e}")
            raise WebhookVerificationError("Invalid signature")

        try:
            message = json.loads(envelope.get("Message") or "{}")
        except ValueError:
            message = {}
        if not isinstance(message, dict):
            message = {}

        return WebhookEvent(
            type=message.get("NotificationType") or envelope.get("Type", ""),
            data=message,
            provider=self.name,
            id=message.get("NotificationId") or envelope.get("MessageId"),
        )

    async def resolve_webhook_event(self, event: WebhookEvent) -> WebhookEvent:
        """
        Turn a charge STATE_CHANGE notification into a payment event.

        Amazon Pay notifications carry NotificationType=STATE_CHANGE,
        ObjectType=CHARGE and the charge id as ObjectId, but neither the new
        state nor our order id. The charge gives the state; its charge
        permission carries the merchantReferenceId set at checkout.
        """
        data = event.data or {}
        if data.get("ObjectType") != "CHARGE" or not data.get("ObjectId"):
            return event

        charge_id = data["ObjectId"]
        charge = await self._make_request("GET", f"/charges/{charge_id}")
        state = (charge.get("statusDetails") or {}).get("state", "")

        reference = None
        permission_id = charge.get("chargePermissionId")
        if permission_id:
            permission = await self._make_request("GET", f"/chargePermissions/{permission_id}")
            reference = (permission.get("merchantMetadata") or {}).get("merchantReferenceId")

        status = self.map_status(state)
        if status == PaymentStatus.SUCCEEDED:
            event_type = "CHARGE.COMPLETED"
        elif status == PaymentStatus.FAILED:
            event_type = "CHARGE.DECLINED"
        else:
            event_type = f"CHARGE.{state.upper()}"

        logger.info(f"Amazon Pay charge {charge_id} is {state or 'unknown'}")
        return WebhookEvent(
            type=event_type,
            data={"ChargeId": charge_id, "merchantReferenceId": reference, "state": state},
            provider=self.name,
            id=event.id,
        )
