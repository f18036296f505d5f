import re

from scorebook.errors import ValidationError

UUID_PATTERN = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$")


def is_uuid(value) -> bool:
    return isinstance(value, str) and UUID_PATTERN.match(value) is not None


def validate_uuid(value, label: str = "") -> str:
    """Return `value` unchanged, or raise ValidationError if it is not a lowercase UUID"""
    if not is_uuid(value):
        name = f"{label} ID" if label else "ID"
        raise ValidationError(f"Invalid {name} format")
    return value
