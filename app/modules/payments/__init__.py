"""
Payments Module

- BasePaymentProvider interface for all provider implementations
- PaymentProviderFactory for lookup by name
- Shared PaymentStatus vocabulary
"""
from app.modules.payments.providers import PaymentProviderFactory, get_provider
from app.modules.payments.providers.base import BasePaymentProvider, PaymentStatus

__all__ = [
    "PaymentProviderFactory",
    "get_provider",
    "BasePaymentProvider",
    "PaymentStatus",
]
