from __future__ import annotations

from datetime import date
from typing import Any, Iterable

from .errors import ValidationError
from .time_utils import parse_iso_date


# Maximum money amount: $9,999,999.99 (999,999,999 cents)
# This prevents database overflow issues and nonsensical prices
MAX_MONEY_CENTS = 999_999_999

# Basis points: 10000 = 100%
MAX_TAX_RATE_BPS = 10_000


def coerce_int(value: Any, field: str) -> int:
    """
    Strict integer coercion.

    Accepts ints (not bools) and plain digit strings with an optional sign.
    Rejects floats, decimals and scientific notation: quantities and cents
    are integral by construction and silently truncating 12.5 to 12 hides
    input bugs.
    """
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer", {"field": field})
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer", {"field": field})
        # Reject scientific notation (e.g., "1e15", "1E10")
        if "e" in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)", {"field": field})
        # Reject decimal points (e.g., "12.5")
        if "." in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)", {"field": field})
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer", {"field": field})
    if isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal", {"field": field})
    raise ValidationError(f"{field} must be an integer", {"field": field})


def require_positive_int(value: Any, field: str) -> int:
    if value is None:
        raise ValidationError(f"{field} is required", {"field": field})
    number = coerce_int(value, field)
    if number <= 0:
        raise ValidationError(f"{field} must be positive", {"field": field, "value": number})
    return number


def require_non_negative_int(value: Any, field: str) -> int:
    if value is None:
        raise ValidationError(f"{field} is required", {"field": field})
    number = coerce_int(value, field)
    if number < 0:
        raise ValidationError(f"{field} cannot be negative", {"field": field, "value": number})
    return number


def require_money(value: Any, field: str) -> int:
    cents = require_non_negative_int(value, field)
    if cents > MAX_MONEY_CENTS:
        raise ValidationError(f"{field} exceeds maximum allowed amount", {"field": field, "value": cents})
    return cents


def require_tax_rate(value: Any, field: str = "tax_rate_bps") -> int:
    bps = require_non_negative_int(value, field)
    if bps > MAX_TAX_RATE_BPS:
        raise ValidationError(f"{field} cannot exceed {MAX_TAX_RATE_BPS} (100%)", {"field": field, "value": bps})
    return bps


def require_text(value: Any, field: str, max_length: int = 255) -> str:
    if value is None or not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} is required", {"field": field})
    text = value.strip()
    if len(text) > max_length:
        raise ValidationError(f"{field} must be at most {max_length} characters", {"field": field})
    return text


def optional_text(value: Any, field: str, max_length: int | None = None) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string", {"field": field})
    text = value.strip()
    if not text:
        return None
    if max_length is not None and len(text) > max_length:
        raise ValidationError(f"{field} must be at most {max_length} characters", {"field": field})
    return text


def require_choice(value: Any, field: str, choices: Iterable[str]) -> str:
    options = list(choices)
    if not isinstance(value, str) or value.upper() not in options:
        raise ValidationError(
            f"Invalid {field}. Must be one of: {', '.join(options)}",
            {"field": field, "value": value, "choices": options},
        )
    return value.upper()


def optional_date(value: Any, field: str) -> date | None:
    try:
        return parse_iso_date(value)
    except ValueError:
        raise ValidationError(f"{field} must be an ISO date (YYYY-MM-DD)", {"field": field, "value": value})


def require_date(value: Any, field: str) -> date:
    parsed = optional_date(value, field)
    if parsed is None:
        raise ValidationError(f"{field} is required", {"field": field})
    return parsed
