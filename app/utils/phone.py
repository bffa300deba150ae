"""
Phone number normalization for facility contact numbers.

Imported numbers are stored as canonical digit strings: North American
numbers drop the leading country code so "+1 440 123 1234", "440-123-1234"
and "4401231234" all become "4401231234". Other international numbers keep
their country code digits.
"""

import re
from typing import Any, Optional
import logging

logger = logging.getLogger(__name__)

NANP_COUNTRY_CODE = "1"


def normalize_phone(
    value: Any,
    *,
    min_digits: int = 10,
    max_digits: int = 15,
) -> Optional[str]:
    """
    Normalize a phone number to its canonical digit string.

    Handles formats such as:
    - (440) 123-1234
    - 440.123.1234
    - +1 440 123 1234
    - +44 20 7946 1234

    Args:
        value: Phone number in any format
        min_digits: Minimum number of digits to consider valid
        max_digits: Maximum number of digits to consider valid

    Returns:
        Canonical digits, or None if the value is empty or has the wrong
        number of digits
    """
    if value is None or value == "":
        return None

    text = str(value).strip()
    if not text:
        return None

    digits = re.sub(r'\D', '', text)

    if len(digits) < min_digits or len(digits) > max_digits:
        logger.debug(
            f"Phone number '{value}' has {len(digits)} digits, "
            f"expected between {min_digits} and {max_digits}"
        )
        return None

    # North American numbers drop the leading "1"
    if len(digits) == 11 and digits.startswith(NANP_COUNTRY_CODE):
        return digits[1:]

    return digits
