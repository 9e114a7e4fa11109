"""
Turkish tax identification number handling.

Two formats are in use:
- VKN (Vergi Kimlik Numarası): 10 digits, issued to legal entities
- TCKN (T.C. Kimlik Numarası): 11 digits, issued to individuals and also
  used as the tax number of sole proprietors

The first digits of a VKN are allocated per tax office, so two entities
registered through the same office share a prefix. The related-party check
relies on that locality.
"""

import re
from dataclasses import dataclass
from typing import Optional

VKN_LENGTH = 10
TCKN_LENGTH = 11

# Digits compared when inferring registration proximity
REGISTRATION_PREFIX_LENGTH = 6


@dataclass
class TaxNumberInfo:
    """Parsed tax number information."""

    normalized: str
    kind: str  # 'vkn', 'tckn' or 'unknown'
    is_valid: bool


def normalize_tax_number(value: Optional[str]) -> str:
    """
    Strip everything but digits from a tax number.

    Returns an empty string for None or digit-free input.
    """
    if not value:
        return ""
    return re.sub(r"\D", "", str(value))


def vkn_checksum(digits: str) -> int:
    """
    Calculate the VKN check digit from the first 9 digits.

    For each digit at position i (0-based):
    1. tmp = (digit + 9 - i) mod 10
    2. val = (tmp * 2^(9 - i)) mod 9, or 9 if tmp != 0 and that yields 0
    Check digit is (10 - (sum mod 10)) mod 10.
    """
    total = 0
    for i, digit in enumerate(digits[:9]):
        tmp = (int(digit) + 9 - i) % 10
        val = (tmp * 2 ** (9 - i)) % 9
        if tmp != 0 and val == 0:
            val = 9
        total += val
    return (10 - (total % 10)) % 10


def validate_vkn(vkn: str) -> bool:
    """Validate a 10-digit VKN including its check digit."""
    vkn = normalize_tax_number(vkn)
    if len(vkn) != VKN_LENGTH:
        return False
    return vkn_checksum(vkn) == int(vkn[9])


def validate_tckn(tckn: str) -> bool:
    """
    Validate an 11-digit TCKN.

    Rules:
    - First digit is not zero
    - 10th digit = ((sum of digits 1,3,5,7,9) * 7 - sum of digits 2,4,6,8) mod 10
    - 11th digit = sum of the first 10 digits mod 10
    """
    tckn = normalize_tax_number(tckn)
    if len(tckn) != TCKN_LENGTH or tckn[0] == "0":
        return False

    digits = [int(d) for d in tckn]
    odd_sum = sum(digits[0:9:2])
    even_sum = sum(digits[1:8:2])

    if (odd_sum * 7 - even_sum) % 10 != digits[9]:
        return False
    return sum(digits[:10]) % 10 == digits[10]


def identify_tax_number(value: Optional[str]) -> TaxNumberInfo:
    """Classify a tax number as VKN or TCKN by length and validate it."""
    normalized = normalize_tax_number(value)

    if len(normalized) == VKN_LENGTH:
        return TaxNumberInfo(normalized, "vkn", validate_vkn(normalized))
    if len(normalized) == TCKN_LENGTH:
        return TaxNumberInfo(normalized, "tckn", validate_tckn(normalized))
    return TaxNumberInfo(normalized, "unknown", False)


def share_registration_prefix(
    a: Optional[str],
    b: Optional[str],
    length: int = REGISTRATION_PREFIX_LENGTH,
) -> bool:
    """
    Check whether two distinct tax numbers share a registration prefix.

    Identical numbers are the same party, not related parties, and
    numbers shorter than the prefix cannot be compared.
    """
    first = normalize_tax_number(a)
    second = normalize_tax_number(b)

    if len(first) < length or len(second) < length:
        return False
    if first == second:
        return False
    return first[:length] == second[:length]
