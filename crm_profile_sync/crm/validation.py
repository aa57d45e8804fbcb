"""
Custom attribute constraints enforced before any write to the CRM.
"""

from typing import Mapping, Any

MAX_ATTRIBUTES = 100
MAX_KEY_LENGTH = 190
FORBIDDEN_KEY_CHARACTERS = ('.', '$')


class AttributeValidationError(ValueError):
    """Raised when custom attributes would be rejected by the CRM."""
    pass


def validate_custom_attributes(attributes: Mapping[str, Any]) -> None:
    """
    Check custom attributes against the CRM field rules.

    Args:
        attributes: Attribute name to value mapping

    Raises:
        AttributeValidationError: On the first rule violation found
    """
    if not attributes:
        return

    if len(attributes) > MAX_ATTRIBUTES:
        raise AttributeValidationError(
            f"Maximum of {MAX_ATTRIBUTES} fields, got {len(attributes)}")

    for key, value in attributes.items():
        if any(ch in key for ch in FORBIDDEN_KEY_CHARACTERS):
            raise AttributeValidationError(
                f"Field names must not contain Periods (.) or Dollar ($) characters. key: {key}")

        if len(key) > MAX_KEY_LENGTH:
            raise AttributeValidationError(
                f"Field names must be no longer than {MAX_KEY_LENGTH} characters. key: {key}")

        if value is None:
            raise AttributeValidationError(f"'value' is null. key: {key}")
