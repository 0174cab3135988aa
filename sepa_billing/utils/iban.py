"""IBAN helpers (ISO 13616)"""

import re

_WHITESPACE = re.compile(r"\s+")
_IBAN_SHAPE = re.compile(r"^[A-Z]{2}\d{2}[A-Z0-9]{10,30}$")


def clean_iban(value: str) -> str:
    """Strip all whitespace and upper-case."""
    return _WHITESPACE.sub("", value or "").upper()


def has_iban_shape(value: str) -> bool:
    """Country code + check digits + BBAN, tolerant of embedded spaces and case."""
    return bool(_IBAN_SHAPE.match(clean_iban(value)))


def is_valid_iban(value: str) -> bool:
    """
    Shape check plus the mod-97 checksum.

    The first four characters move to the end, letters become 10..35, and the
    resulting integer must leave remainder 1 when divided by 97.
    """
    iban = clean_iban(value)
    if not _IBAN_SHAPE.match(iban):
        return False
    rearranged = iban[4:] + iban[:4]
    digits = "".join(str(int(ch, 36)) for ch in rearranged)
    return int(digits) % 97 == 1
