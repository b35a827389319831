"""
Payment Provider Registry and Factory

- register_provider() maps a provider name to its implementation
- PaymentProviderFactory creates provider instances by name
- Availability is decided by each provider from its credentials
- Shared instances keep HTTP clients and OAuth tokens across requests;
  close_providers() releases them on shutdown
"""
from typing import Any, Dict, List, Optional, Type
import logging

from app.modules.payments.providers.base import BasePaymentProvider

logger = logging.getLogger(__name__)

# Registry of provider implementations
_PROVIDER_REGISTRY: Dict[str, Type[BasePaymentProvider]] = {}

# Process-wide instances built from the global settings
_shared_providers: Dict[str, BasePaymentProvider] = {}


def register_provider(name: str):
    """
    Decorator to register a payment provider implementation.

    Usage:
        @register_provider("stripe")
        class StripeProvider(BasePaymentProvider):
            ...
    """
    def decorator(cls: Type[BasePaymentProvider]):
        cls.name = name
        _PROVIDER_REGISTRY[name] = cls
        logger.info(f"Registered payment provider: {name} -> {cls.__name__}")
        return cls
    return decorator


class PaymentProviderFactory:
    """
    Factory for creating payment provider instances.

    Returns None for unknown provider names.
    """

    @classmethod
    def get_provider(
        cls,
        name: str,
        config: Optional[Any] = None
    ) -> Optional[BasePaymentProvider]:
        """
        Get a provider instance by name.

        Args:
            name: Registered provider name
            config: Optional settings-like object with credentials

        Returns:
            BasePaymentProvider instance or None if not registered
        """
        provider_cls = _PROVIDER_REGISTRY.get(name)
        if not provider_cls:
            logger.warning(f"No implementation registered for payment provider: {name}")
            return None
        return provider_cls(config)

    @classmethod
    def get_all_providers(cls, config: Optional[Any] = None) -> Dict[str, BasePaymentProvider]:
        """Instantiate every registered provider, keyed by name."""
        return {name: provider_cls(config) for name, provider_cls in _PROVIDER_REGISTRY.items()}

    @classmethod
    def get_available_providers(cls, config: Optional[Any] = None) -> List[str]:
        """Names of registered providers whose credentials are configured."""
        return [
            name for name, provider in cls.get_all_providers(config).items()
            if provider.is_available()
        ]

    @classmethod
    def get_shared_providers(cls) -> Dict[str, BasePaymentProvider]:
        """Shared provider instances, created on first use."""
        if not _shared_providers:
            _shared_providers.update(cls.get_all_providers())
        return dict(_shared_providers)

    @classmethod
    def get_registered_providers(cls) -> List[str]:
        """Get list of all registered provider names."""
        return list(_PROVIDER_REGISTRY.keys())


def get_provider(name: str, config: Optional[Any] = None) -> Optional[BasePaymentProvider]:
    """
    Convenience function to get a provider.

    Equivalent to PaymentProviderFactory.get_provider().
    """
    return PaymentProviderFactory.get_provider(name, config)


async def close_providers() -> None:
    """Close shared provider clients. Safe to call when none were created."""
    for name, provider in list(_shared_providers.items()):
        try:
            await provider.close()
        except Exception as e:
            logger.warning(f"Error closing payment provider {name}: {e}")
    _shared_providers.clear()


# Import providers to trigger registration
# These imports must be at the bottom to avoid circular imports
from app.modules.payments.providers.stripe import StripeProvider  # noqa: E402, F401
from app.modules.payments.providers.paypal import PayPalProvider  # noqa: E402, F401
from app.modules.payments.providers.amazon_pay import AmazonPayProvider  # noqa: E402, F401
