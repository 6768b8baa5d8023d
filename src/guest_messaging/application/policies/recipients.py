from __future__ import annotations

import re

_E164 = re.compile(r"^\+?[1-9]\d{1,14}$")
_NON_DIGITS = re.compile(r"\D")


def normalize_number(number: str) -> str:
    return _NON_DIGITS.sub("", number or "")


def is_valid_phone_number(number: str) -> bool:
    return bool(_E164.match(normalize_number(number)))


def to_chat_id(number: str) -> str:
    """WAHA chat id for a phone number: digits only, ``@c.us`` suffix.

    Ten-digit numbers without a leading ``1`` are treated as North American
    and get the country code prepended.
    """
    digits = normalize_number(number)
    if not digits.startswith("1") and len(digits) == 10:
        digits = "1" + digits
    return f"{digits}@c.us"
