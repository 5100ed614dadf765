from __future__ import annotations

# Registration input checks.
#
# These run at the edge (MQTT handler, CLI) before anything reaches the
# registry; the core assumes names and phones are already well formed.

import re

from .errors import ValidationError

# ASCII only: `\d` and `\s` would also accept other scripts.
_NAME_RE = re.compile(r"[A-Za-z\s]+", re.ASCII)
_PHONE_RE = re.compile(r"[0-9]+")
PHONE_DIGITS = 10


def validate_name(value: str) -> str | None:
    """Return an error message, or None if the name is acceptable."""
    if not value or not value.strip():
        return "Name is required"
    if len(value.strip()) < 2:
        return "Name must be at least 2 characters"
    if not _NAME_RE.fullmatch(value):
        return "Name can only contain letters and spaces"
    return None


def validate_phone(value: str) -> str | None:
    if not value:
        return "Phone number is required"
    if not _PHONE_RE.fullmatch(value):
        return "Phone number can only contain digits"
    if len(value) != PHONE_DIGITS:
        return f"Phone number must be exactly {PHONE_DIGITS} digits"
    return None


def validate_registration(name: str, phone: str) -> tuple[str, str]:
    """Validate both fields and return (trimmed name, phone).

    Raises:
        ValidationError: with one message per failing field.
    """
    errors: dict[str, str] = {}
    name_error = validate_name(name)
    if name_error:
        errors["name"] = name_error
    phone_error = validate_phone(phone)
    if phone_error:
        errors["phone"] = phone_error
    if errors:
        raise ValidationError(errors)
    return name.strip(), phone
