from __future__ import annotations

import re
from typing import Literal, Optional

Lang = Literal["en", "ru"]
SUPPORTED_LANGS = ("en", "ru")
DEFAULT_LANG: Lang = "en"

_NON_ALNUM = re.compile(r"[^a-z0-9]+")

# domain -> code prefix used by the taxonomy tables
TAXONOMY_PREFIXES = {
    "statuses": "status",
    "damage_types": "damage",
    "title_types": "title",
    "odometer_brands": "odometer",
    "body_styles": "body",
    "fuel_types": "fuel",
    "transmission_types": "transmission",
    "drive_types": "drive",
    "colors": "color",
}


def normalize_lang(value: Optional[str], accept_language: Optional[str] = None) -> Lang:
    if value in SUPPORTED_LANGS:
        return value  # type: ignore[return-value]
    if value is None and accept_language:
        primary = accept_language.split(",")[0].strip().lower()
        if primary.startswith("ru"):
            return "ru"
    return DEFAULT_LANG


def taxonomy_code(domain: str, raw: Optional[str]) -> Optional[str]:
    """Map a raw feed value (``FRONT END``) to its taxonomy code (``damage_front_end``)."""
    if raw is None:
        return None
    slug = _NON_ALNUM.sub("_", raw.strip().lower()).strip("_")
    if not slug:
        return None
    prefix = TAXONOMY_PREFIXES.get(domain)
    if prefix and not slug.startswith(f"{prefix}_"):
        slug = f"{prefix}_{slug}"
    return slug
