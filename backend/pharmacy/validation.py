from __future__ import annotations

from typing import Any

from pharmacy.errors import ValidationError
from pharmacy.time_utils import parse_iso_date


# Maximum price: 9,999,999.99 (999,999,999 cents)
# This prevents database overflow issues and nonsensical prices
MAX_PRICE_CENTS = 999_999_999


def require_text(value: Any, field: str) -> str:
    """Non-empty stripped string or ValidationError."""
    if value is None:
        raise ValidationError(f"{field} is required")
    text = str(value).strip()
    if not text:
        raise ValidationError(f"{field} is required")
    return text


def optional_text(value: Any, default: str | None = None) -> str | None:
    if value is None:
        return default
    text = str(value).strip()
    return text if text else default


def coerce_int(value: Any, field: str, *, minimum: int | None = None) -> int:
    """
    Strict integer coercion for quantities and counts.

    Rejects floats, decimals in strings and scientific notation.
    """
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, int):
        result = value
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer")
        # Reject scientific notation (e.g., "1e15", "1E10")
        if "e" in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        # Reject decimal points (e.g., "12.5")
        if "." in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            result = int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    elif isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")
    else:
        raise ValidationError(f"{field} must be an integer")

    if minimum is not None and result < minimum:
        raise ValidationError(f"{field} must be >= {minimum}")
    return result


def coerce_price_cents(value: Any, field: str, *, negative_as_zero: bool = False) -> int | None:
    """
    Optional price in cents; None stays None.

    negative_as_zero: calculator inputs, where a negative amount counts as 0.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    cents = coerce_int(value, field, minimum=None if negative_as_zero else 0)
    if cents < 0:
        cents = 0
    if cents > MAX_PRICE_CENTS:
        raise ValidationError(f"{field} exceeds maximum allowed price")
    return cents


def coerce_date(value: Any, field: str):
    try:
        return parse_iso_date(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an ISO date (YYYY-MM-DD)")
