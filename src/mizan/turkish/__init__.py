"""Turkish-specific utilities for tax identification numbers."""

from mizan.turkish.vergi_no import (
    REGISTRATION_PREFIX_LENGTH,
    TaxNumberInfo,
    identify_tax_number,
    normalize_tax_number,
    share_registration_prefix,
    validate_tckn,
    validate_vkn,
    vkn_checksum,
)

__all__ = [
    "REGISTRATION_PREFIX_LENGTH",
    "TaxNumberInfo",
    "identify_tax_number",
    "normalize_tax_number",
    "share_registration_prefix",
    "validate_tckn",
    "validate_vkn",
    "vkn_checksum",
]
