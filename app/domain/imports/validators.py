"""
Preset regex validators for facility field formats.

A ``FieldSpec.pattern`` names one of these presets; the row validator checks
cells through ``validate_with_preset`` so every format rule lives here.
"""

import re
from typing import Dict, Optional, Pattern, Tuple


PRESET_PATTERNS = {
    "email": r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$",
    "postal_code_us": r"^\d{5}(-\d{4})?$",
    "url": r"^https?://\S+$",
    "decimal": r"^[-+]?(\d+(\.\d*)?|\.\d+)$",
}


PRESET_DESCRIPTIONS = {
    "email": "Standard email format",
    "postal_code_us": "US ZIP code (12345 or 12345-6789)",
    "url": "HTTP/HTTPS URL",
    "decimal": "Decimal number",
}

_COMPILED: Dict[str, Pattern[str]] = {name: re.compile(pattern) for name, pattern in PRESET_PATTERNS.items()}


def validate_with_preset(
    value: str,
    preset_name: str,
    allow_null: bool = True
) -> Tuple[bool, Optional[str]]:
    """
    Check a cell against a preset.

    Args:
        value: Cell text; surrounding whitespace is ignored
        preset_name: Key of PRESET_PATTERNS
        allow_null: Whether an empty cell passes

    Returns:
        Tuple of (is_valid, error_message)
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        if allow_null:
            return True, None
        return False, "Value is required"

    compiled = _COMPILED.get(preset_name)
    if compiled is None:
        return False, f"Unknown preset validator: {preset_name}"

    text = str(value).strip()
    if compiled.match(text) is None:
        description = PRESET_DESCRIPTIONS.get(preset_name, preset_name)
        return False, f"Value '{text}' does not match {description} format"
    return True, None
