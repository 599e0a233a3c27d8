"""
Phone number normalization to E.164 (``+<digits>``).
"""

import re
from typing import List

_NON_DIGITS = re.compile(r"[^\d+]")
_PHONE_CANDIDATE = re.compile(r"\+?\d[\d\s().\-]{6,}\d")


def normalize_phone(value: str) -> str:
    """
    Normalize a dialed/caller number to E.164.

    Punctuation and whitespace are dropped. A bare 10-digit number is a NANP
    national number and gets the ``+1`` country code, so ``(425) 555-0100``,
    ``1-425-555-0100`` and ``+1 425 555 0100`` all become ``+14255550100``.
    Anything else gets a ``+`` prefix when it lacks one.
    """
    raw = _NON_DIGITS.sub("", value or "")
    digits = raw.replace("+", "")
    if not digits:
        return ""
    if raw.startswith("+"):
        return f"+{digits}"
    if len(digits) == 10:
        return f"+1{digits}"
    return f"+{digits}"


def find_phone_numbers(text: str) -> List[str]:
    """Return normalized phone numbers mentioned in free text, in order, deduplicated."""
    seen: List[str] = []
    for match in _PHONE_CANDIDATE.finditer(text or ""):
        normalized = normalize_phone(match.group(0))
        digit_count = len(normalized) - 1
        if 10 <= digit_count <= 15 and normalized not in seen:
            seen.append(normalized)
    return seen
