"""Input validation for Trackr.

This module provides validation functions for user-supplied input.
All validators raise ValidationError with descriptive messages.

CRITICAL: This module must have NO network or UI dependencies.
"""

from __future__ import annotations

import math
from enum import Enum
from typing import Any, Optional, Type, TypeVar

__all__ = [
    "ValidationError",
    "DuplicateRegistrationError",
    "validate_required",
    "validate_email",
    "validate_pin",
    "validate_amount",
    "validate_enum",
    "normalize_email",
]

E = TypeVar("E", bound=Enum)

PIN_LENGTH = 4
MAX_NAME_LENGTH = 200


class ValidationError(ValueError):
    """Validation error with field and message attributes."""

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        self.message = message
        super().__init__(f"{field}: {message}")

    def __str__(self) -> str:
        return f"{self.field}: {self.message}"

    def __repr__(self) -> str:
        return f"ValidationError(field='{self.field}', message='{self.message}')"


class DuplicateRegistrationError(ValidationError):
    """Raised when registering an email that already exists anywhere."""

    def __init__(self, email: str) -> None:
        super().__init__("email", f"already registered: {email}")
        self.email = email


def normalize_email(email: str) -> str:
    """Lowercase and strip an email for comparison."""
    return email.strip().lower()


def validate_required(value: Optional[str], field_name: str) -> str:
    """Validate a non-empty text field and return it stripped."""
    if value is None or not isinstance(value, str):
        raise ValidationError(field_name, "is required")
    stripped = value.strip()
    if not stripped:
        raise ValidationError(field_name, "cannot be empty")
    if len(stripped) > MAX_NAME_LENGTH:
        raise ValidationError(
            field_name, f"exceeds maximum length of {MAX_NAME_LENGTH} characters"
        )
    return stripped


def validate_email(email: Optional[str], field_name: str = "email") -> str:
    """Validate an email address (loosely: one @ with text on both sides)."""
    value = validate_required(email, field_name)
    local, sep, domain = value.partition("@")
    if not sep or not local or not domain or "@" in domain:
        raise ValidationError(field_name, f"not a valid email address: '{value}'")
    return value


def validate_pin(pin: Optional[str], field_name: str = "pin") -> str:
    """Validate a 4-digit PIN."""
    if not isinstance(pin, str) or len(pin) != PIN_LENGTH or not pin.isdigit():
        raise ValidationError(field_name, f"must be exactly {PIN_LENGTH} digits")
    return pin


def validate_amount(amount: Any, field_name: str = "amount") -> float:
    """Validate a strictly positive, finite numeric amount."""
    try:
        value = float(amount)
    except (TypeError, ValueError):
        raise ValidationError(field_name, f"must be a number, got {amount!r}")
    if not math.isfinite(value):
        raise ValidationError(field_name, f"must be a finite number, got {amount!r}")
    if value <= 0:
        raise ValidationError(field_name, "must be greater than zero")
    return value


def validate_enum(value: Any, enum_cls: Type[E], field_name: str) -> E:
    """Coerce a string (or enum member) into ``enum_cls``."""
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).upper())
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValidationError(field_name, f"must be one of: {allowed}")
