"""
Quill Commerce Exception Hierarchy

Structured exception classes raised by services at the point of detection.
Every error carries code, message and details for logging, plus the HTTP
status it is rendered with by the application exception handler.

Exception Hierarchy:
    QuillBaseError                       500
    ├── NotFoundError                    404
    ├── ConflictError                    409
    │   └── PaymentAlreadyInitiatedError
    ├── BadRequestError                  400
    │   ├── InvalidStatusTransitionError
    │   └── ProviderUnavailableError
    ├── ForbiddenError                   403
    └── PaymentError                     502
        ├── PaymentAuthError
        ├── PaymentCaptureError
        ├── PaymentRefundError
        ├── PaymentProviderResponseError 400
        └── WebhookVerificationError     400
"""
import logging
from typing import Optional, Dict, Any

logger = logging.getLogger(__name__)


class QuillBaseError(Exception):
    """
    Base exception for all Quill Commerce errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code for programmatic handling
        details: Additional context for debugging/audit
        severity: P0-P3 severity level
    """

    default_code: str = "INTERNAL_ERROR"
    default_severity: str = "P2"
    http_status: int = 500

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        severity: Optional[str] = None,
    ):
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}
        self.severity = severity or self.default_severity
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "severity": self.severity,
            "details": self.details,
        }

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code!r}, message={self.message!r})"


# =============================================================================
# REQUEST ERRORS
# =============================================================================

class NotFoundError(QuillBaseError):
    """Missing order, capability, user, product or grant."""
    default_code = "NOT_FOUND"
    default_severity = "P3"
    http_status = 404


class ConflictError(QuillBaseError):
    """Duplicate grant, slug/SKU collision."""
    default_code = "CONFLICT"
    default_severity = "P3"
    http_status = 409


class BadRequestError(QuillBaseError):
    """Missing precondition or invalid input."""
    default_code = "BAD_REQUEST"
    default_severity = "P3"
    http_status = 400


class ForbiddenError(QuillBaseError):
    """Capability or ownership check failed."""
    default_code = "FORBIDDEN"
    default_severity = "P2"
    http_status = 403


class InvalidStatusTransitionError(BadRequestError):
    """Order status change not allowed by the transition table."""
    default_code = "INVALID_STATUS_TRANSITION"

    def __init__(
        self,
        current_status: str,
        new_status: str,
        **kwargs
    ):
        details = kwargs.pop("details", {})
        details.update({
            "current_status": current_status,
            "new_status": new_status,
        })
        super().__init__(
            f"Cannot transition from {current_status} to {new_status}",
            details=details,
            **kwargs
        )


class ProviderUnavailableError(BadRequestError):
    """Payment provider has no credentials configured."""
    default_code = "PAYMENT_PROVIDER_UNAVAILABLE"

    def __init__(self, provider: str, **kwargs):
        details = kwargs.pop("details", {})
        details["provider"] = provider
        super().__init__(
            f"Payment provider {provider} is not available",
            details=details,
            **kwargs
        )


class PaymentAlreadyInitiatedError(ConflictError):
    """Order already has a payment intent."""
    default_code = "PAYMENT_ALREADY_INITIATED"

    def __init__(
        self,
        message: str = "Payment already initiated for this order",
        order_id: Optional[int] = None,
        payment_intent_id: Optional[str] = None,
        **kwargs
    ):
        details = kwargs.pop("details", {})
        details.update({
            "order_id": order_id,
            "payment_intent_id": payment_intent_id,
        })
        super().__init__(message, details=details, **kwargs)


class PaymentMismatchError(BadRequestError):
    """Provider payment does not match the order it is applied to."""
    default_code = "PAYMENT_MISMATCH"
    default_severity = "P1"

    def __init__(self, message: str, order_id: Optional[int] = None, **kwargs):
        details = kwargs.pop("details", {})
        details["order_id"] = order_id
        super().__init__(message, details=details, **kwargs)


# =============================================================================
# PAYMENT ERRORS
# =============================================================================

class PaymentError(QuillBaseError):
    """Base exception for payment provider failures."""
    default_code = "PAYMENT_ERROR"
    default_severity = "P0"  # Payment errors are always critical
    http_status = 502


class PaymentAuthError(PaymentError):
    """Provider rejected our credentials."""
    default_code = "PAYMENT_AUTH_FAILED"


class PaymentCaptureError(PaymentError):
    """Payment capture failed."""
    default_code = "PAYMENT_CAPTURE_FAILED"

    def __init__(
        self,
        message: str,
        payment_id: Optional[str] = None,
        **kwargs
    ):
        details = kwargs.pop("details", {})
        details["payment_id"] = payment_id
        super().__init__(message, details=details, **kwargs)


class PaymentRefundError(PaymentError):
    """Refund failed."""
    default_code = "PAYMENT_REFUND_FAILED"
    default_severity = "P1"


class PaymentProviderResponseError(PaymentError):
    """Provider answered with a payload we cannot use."""
    default_code = "PAYMENT_PROVIDER_BAD_RESPONSE"
    http_status = 400


class WebhookVerificationError(PaymentError):
    """Webhook signature or payload rejected before any state change."""
    default_code = "WEBHOOK_VERIFICATION_FAILED"
    default_severity = "P1"
    http_status = 400
