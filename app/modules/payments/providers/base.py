"""
Base Payment Provider Interface

All payment providers implement this interface:
- Availability (credentials present)
- Payment creation, capture and refund
- Webhook verification
- Status mapping into the shared PaymentStatus vocabulary

The orchestrator never calls a provider whose is_available() is False.
"""
import enum
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Mapping, Optional

from app.core.exceptions import ProviderUnavailableError


class PaymentStatus(str, enum.Enum):
    """Provider-agnostic payment status."""
    REQUIRES_PAYMENT_METHOD = "requires_payment_method"
    REQUIRES_CONFIRMATION = "requires_confirmation"
    REQUIRES_ACTION = "requires_action"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


# =============================================================================
# Provider-Agnostic Data Classes
# =============================================================================

@dataclass
class PaymentIntentResult:
    """Result of creating a payment."""
    id: str
    client_secret: Optional[str]
    amount: int  # cents
    currency: str
    status: PaymentStatus
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class PaymentCaptureResult:
    """Result of capturing a payment."""
    id: str
    order_id: Optional[str]
    amount: int  # cents
    currency: str
    status: PaymentStatus
    paid_at: Optional[datetime] = None


@dataclass
class RefundResult:
    """Result of a refund."""
    id: str
    payment_id: str
    amount: int  # cents
    status: str


@dataclass
class WebhookEvent:
    """A verified provider webhook."""
    type: str
    data: Dict[str, Any]
    provider: str
    id: Optional[str] = None


# =============================================================================
# Base Provider Interface
# =============================================================================

class BasePaymentProvider(ABC):
    """
    Abstract base class for all payment providers.

    Providers read credentials through get_config_value() so tests can inject
    a config object in place of the global settings.
    """

    #: Registry name, e.g. "stripe"
    name: str = ""

    def __init__(self, config: Optional[Any] = None):
        """
        Initialize the provider.

        Args:
            config: Optional settings-like object with provider credentials
        """
        if config is None:
            from app.core.config import settings
            config = settings
        self._config = config

    @abstractmethod
    def is_available(self) -> bool:
        """Return True when all required credentials are configured."""
        pass

    @abstractmethod
    async def create_payment(
        self,
        amount_cents: int,
        currency: str,
        order_id: str,
        customer_email: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> PaymentIntentResult:
        """
        Create a provider-side payment for an order.

        Args:
            amount_cents: Amount in the smallest currency unit
            currency: ISO currency code
            order_id: Our order id, echoed back by webhooks
            customer_email: Receipt email when supported
            metadata: Extra key/value pairs stored with the payment

        Returns:
            PaymentIntentResult with the client-facing secret/token
        """
        pass

    @abstractmethod
    async def capture_payment(self, payment_id: str) -> PaymentCaptureResult:
        """Capture an approved payment."""
        pass

    @abstractmethod
    async def get_payment_status(self, payment_id: str) -> PaymentStatus:
        """Fetch the current status of a payment from the provider."""
        pass

    @abstractmethod
    async def refund(self, payment_id: str, amount_cents: Optional[int] = None) -> RefundResult:
        """
        Refund a payment, fully when amount_cents is None.
        """
        pass

    @abstractmethod
    async def verify_webhook(
        self,
        payload: bytes,
        signature: Optional[str],
        headers: Optional[Mapping[str, str]] = None,
    ) -> WebhookEvent:
        """
        Verify a webhook and return the parsed event.

        Raises:
            WebhookVerificationError: Signature or payload rejected
        """
        pass

    @abstractmethod
    def map_status(self, provider_status: str) -> PaymentStatus:
        """Map a provider-native status to PaymentStatus."""
        pass

    def get_config_value(self, key: str, default: Any = None) -> Any:
        """
        Get a configuration value from the provider config.

        Empty strings are treated as unset.
        """
        value = getattr(self._config, key, default)
        if value is None or value == "":
            return default
        return value

    def ensure_available(self) -> None:
        if not self.is_available():
            raise ProviderUnavailableError(self.name)

    async def close(self) -> None:
        """Release network resources. No-op for SDK-backed providers."""
        return None

    async def resolve_webhook_event(self, event: WebhookEvent) -> WebhookEvent:
        """
        Fill in what a verified notification leaves out.

        Providers whose webhooks only reference an object override this to
        fetch it. The default returns the event unchanged.
        """
        return event
