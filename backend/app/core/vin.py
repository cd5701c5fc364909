"""VIN normalization and validation shared by every entry point."""

from __future__ import annotations

import re
from typing import Optional

VIN_MIN_LENGTH = 11
VIN_MAX_LENGTH = 17

_ALPHABET = re.compile(r"^[A-Z0-9]+$")
_FORBIDDEN_FULL_LENGTH = re.compile(r"[IOQ]")


def normalize_vin(value: Optional[str]) -> str:
    return (value or "").strip().upper()


def vin_error_reason(value: Optional[str]) -> Optional[str]:
    """Return LEN, CHAR or IOQ for an invalid VIN, None when it is valid."""
    vin = normalize_vin(value)
    if len(vin) < VIN_MIN_LENGTH or len(vin) > VIN_MAX_LENGTH:
        return "LEN"
    if not _ALPHABET.match(vin):
        return "CHAR"
    if len(vin) == VIN_MAX_LENGTH and _FORBIDDEN_FULL_LENGTH.search(vin):
        return "IOQ"
    return None


def is_valid_vin(value: Optional[str]) -> bool:
    return vin_error_reason(value) is None


def vehicle_path(vin: str, lang: str = "en") -> Optional[str]:
    """Canonical public path for a VIN page, or None when the VIN is invalid."""
    normalized = normalize_vin(vin)
    if not is_valid_vin(normalized):
        return None
    return f"/{lang}/vin/{normalized}"
