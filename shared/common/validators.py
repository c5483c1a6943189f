"""
Shared Validators Module.

Input validation helpers raising the engine's ValidationError.
"""
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Optional
from uuid import UUID

from .exceptions import ValidationError


# =============================================================================
# UUID VALIDATORS
# =============================================================================

def validate_uuid(value: Any, field_name: str = "value") -> UUID:
    """Validate and convert a value to UUID."""
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except (ValueError, TypeError):
        raise ValidationError(f"Invalid UUID format for {field_name}", field=field_name)


# =============================================================================
# NUMERIC VALIDATORS
# =============================================================================

def validate_non_negative_int(value: Any, field_name: str = "value") -> int:
    """Validate a whole number >= 0."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field_name} must be an integer", field=field_name)

    if value < 0:
        raise ValidationError(f"{field_name} cannot be negative", field=field_name)

    return value


def validate_positive_decimal(
    value: Any,
    max_value: Optional[Decimal] = None,
    field_name: str = "value"
) -> Decimal:
    """Validate a non-negative decimal value."""
    if isinstance(value, bool) or not isinstance(value, (Decimal, int, float, str)):
        raise ValidationError(f"{field_name} must be a number", field=field_name)

    try:
        value = Decimal(str(value))
    except InvalidOperation:
        raise ValidationError(f"{field_name} must be a number", field=field_name)

    if value < 0:
        raise ValidationError(f"{field_name} must be positive", field=field_name)

    if max_value is not None and value > max_value:
        raise ValidationError(f"{field_name} cannot exceed {max_value}", field=field_name)

    return value


def validate_range(
    value: Any,
    min_value: float,
    max_value: float,
    field_name: str = "value"
) -> Any:
    """Validate that a number is within an inclusive range."""
    if isinstance(value, bool) or not isinstance(value, (int, float, Decimal)):
        raise ValidationError(f"{field_name} must be a number", field=field_name)

    if value < min_value or value > max_value:
        raise ValidationError(
            f"{field_name} must be between {min_value} and {max_value}",
            field=field_name
        )

    return value


def validate_rating(value: Any, field_name: str = "rating") -> int:
    """Validate a 1-5 star rating."""
    validate_range(value, 1, 5, field_name)
    return value


def validate_coordinates(longitude: Any, latitude: Any) -> tuple:
    """Validate a (longitude, latitude) pair."""
    validate_range(longitude, -180, 180, "longitude")
    validate_range(latitude, -90, 90, "latitude")
    return float(longitude), float(latitude)


# =============================================================================
# CHOICE VALIDATORS
# =============================================================================

def validate_choice(value: Any, choices: Iterable, field_name: str = "value") -> Any:
    """Validate that value is one of the allowed choices."""
    allowed = [getattr(choice, 'value', choice) for choice in choices]
    if value not in allowed:
        raise ValidationError(
            f"{field_name} must be one of: {', '.join(str(c) for c in allowed)}",
            field=field_name
        )
    return value
