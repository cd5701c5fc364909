"""Opaque keyset-pagination cursors.

A cursor is base64url(JSON) holding the last VIN of a page, the active sort,
the value of the sort column on that row and a fingerprint of the filter set.
It is client-held and unsigned; every field is re-validated on decode and only
ever reaches SQL as a bound parameter.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Mapping, Optional, Union

from backend.app.core.errors import InvalidCursorError

SORT_KEYS = ("auction_date", "year", "created_at", "updated_at")
SORT_DIRECTIONS = ("asc", "desc")
VALID_SORTS = tuple(f"{key}_{direction}" for key in SORT_KEYS for direction in SORT_DIRECTIONS)
DEFAULT_SORT = "updated_at_desc"

CursorValue = Union[None, int, datetime]


@dataclass(frozen=True)
class Cursor:
    last_vin: str
    sort: str
    last_value: CursorValue = None
    fingerprint: Optional[str] = None


def split_sort(sort: str) -> tuple[str, str]:
    key, _, direction = sort.rpartition("_")
    return key, direction


def filters_fingerprint(filters: Mapping[str, Any]) -> str:
    canonical = json.dumps(
        {k: v for k, v in filters.items() if v is not None},
        sort_keys=True,
        separators=(",", ":"),
        default=str,
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]


def encode_cursor(cursor: Cursor) -> str:
    value = cursor.last_value
    if isinstance(value, datetime):
        value = value.isoformat()
    payload: Dict[str, Any] = {"v": cursor.last_vin, "s": cursor.sort, "k": value}
    if cursor.fingerprint is not None:
        payload["f"] = cursor.fingerprint
    raw = json.dumps(payload, separators=(",", ":")).encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def decode_cursor(token: str) -> Cursor:
    try:
        padded = token + "=" * (-len(token) % 4)
        payload = json.loads(base64.urlsafe_b64decode(padded.encode("ascii")).decode("utf-8"))
    except (binascii.Error, UnicodeError, ValueError) as exc:
        raise InvalidCursorError() from exc

    if not isinstance(payload, dict):
        raise InvalidCursorError()
    last_vin = payload.get("v")
    sort = payload.get("s")
    fingerprint = payload.get("f")
    if not isinstance(last_vin, str) or not last_vin or len(last_vin) > 17:
        raise InvalidCursorError()
    if sort not in VALID_SORTS:
        raise InvalidCursorError()
    if fingerprint is not None and not isinstance(fingerprint, str):
        raise InvalidCursorError()

    return Cursor(
        last_vin=last_vin,
        sort=sort,
        last_value=_decode_value(split_sort(sort)[0], payload.get("k")),
        fingerprint=fingerprint,
    )


def _decode_value(sort_key: str, raw: Any) -> CursorValue:
    if raw is None:
        return None
    if sort_key == "year":
        if isinstance(raw, bool) or not isinstance(raw, int):
            raise InvalidCursorError()
        return raw
    if not isinstance(raw, str):
        raise InvalidCursorError()
    try:
        return datetime.fromisoformat(raw)
    except ValueError as exc:
        raise InvalidCursorError() from exc
