"""
Core Utilities

Shared helpers used across the application.
"""
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP


def utcnow() -> datetime:
    """
    Return timezone-aware UTC datetime.

    Use this instead of datetime.utcnow() which returns naive datetime.
    """
    return datetime.now(timezone.utc)


def epoch_ms() -> int:
    """Milliseconds since the epoch, used for synthetic test-mode ids."""
    return int(utcnow().timestamp() * 1000)


def dollars_to_cents(amount) -> int:
    """Convert a dollar amount (Decimal/float/str) to integer cents, rounding half up."""
    if amount is None:
        return 0
    quantized = Decimal(str(amount)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    return int(quantized * 100)


def format_amount(amount_cents: int) -> str:
    """Render cents as a 2-decimal string ("12.50") for provider APIs."""
    return f"{Decimal(amount_cents) / Decimal(100):.2f}"

