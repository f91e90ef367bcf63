import re
from typing import Optional

MOBILE_PATTERN = re.compile(r"^[0-9]{10}$")
_NON_DIGITS = re.compile(r"[^0-9]")


def normalize(phone: Optional[str]) -> str:
    return _NON_DIGITS.sub("", phone or "")


def is_valid_input(mobile: Optional[str]) -> bool:
    """Customer-entered numbers must be exactly 10 digits, nothing else."""
    return bool(mobile) and MOBILE_PATTERN.match(mobile) is not None


def matches(stored_phone: Optional[str], input_phone: Optional[str]) -> bool:
    """
    Suffix match on digits only, so any country-code prefix on the stored
    number is tolerated: "+91 98765 43210" matches "9876543210".
    """
    stored = normalize(stored_phone)
    given = normalize(input_phone)
    if not stored or not given:
        return False
    return stored.endswith(given)
