"""Vehicle lookup: VIN -> vehicle + current lot + images + sale history.

The outcome of a lookup is one of five terminal states, evaluated in order:
INVALID (422), NOT_FOUND (404), SUPPRESSED (410), then FRESH (200) or
NOT_MODIFIED (304) depending on the conditional request headers.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import format_datetime, parsedate_to_datetime
from enum import Enum
from typing import Any, Iterable, List, Optional

from sqlalchemy import select

from backend.app.core.i18n import Lang
from backend.app.core.vin import normalize_vin, vin_error_reason
from backend.app.db import models
from backend.app.db.gateway import ReadOnlyGateway
from backend.app.db.queries import current_lot_id, not_flagged
from backend.app.schemas.vehicle import ImageDetails, LotDetails, SaleEventDetails, VehicleDetails
from backend.app.services.taxonomy import TaxonomyLabels, TaxonomyResolver

SALE_EVENT_LIMIT = 10
CACHE_CONTROL_FRESH = "public, max-age=60, stale-while-revalidate=300"
CACHE_CONTROL_NEGATIVE = "no-store, must-revalidate"


class ResolutionState(str, Enum):
    INVALID = "invalid"
    NOT_FOUND = "not_found"
    SUPPRESSED = "suppressed"
    FRESH = "fresh"
    NOT_MODIFIED = "not_modified"


STATUS_CODES = {
    ResolutionState.INVALID: 422,
    ResolutionState.NOT_FOUND: 404,
    ResolutionState.SUPPRESSED: 410,
    ResolutionState.FRESH: 200,
    ResolutionState.NOT_MODIFIED: 304,
}


@dataclass
class Resolution:
    state: ResolutionState
    vin: str
    body: Optional[dict] = None
    etag: Optional[str] = None
    last_modified: Optional[datetime] = None
    reason: Optional[str] = None

    @property
    def status_code(self) -> int:
        return STATUS_CODES[self.state]

    @property
    def cacheable(self) -> bool:
        return self.state in (ResolutionState.FRESH, ResolutionState.NOT_MODIFIED)

    def headers(self) -> dict[str, str]:
        if not self.cacheable:
            return {"Cache-Control": CACHE_CONTROL_NEGATIVE}
        headers = {"Cache-Control": CACHE_CONTROL_FRESH, "ETag": self.etag or ""}
        if self.last_modified is not None:
            headers["Last-Modified"] = http_date(self.last_modified)
        return headers


def _as_float(value: Any) -> Optional[float]:
    return float(value) if value is not None else None


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def http_date(value: datetime) -> str:
    return format_datetime(_as_utc(value), usegmt=True)


def canonical_json(payload: Any) -> str:
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)


def weak_etag(payload: Any) -> str:
    digest = hashlib.sha1(canonical_json(payload).encode("utf-8")).hexdigest()
    return f'W/"{digest}"'


def etag_matches(if_none_match: Optional[str], etag: str) -> bool:
    """Weak comparison against a (possibly comma-separated) If-None-Match value."""
    if not if_none_match:
        return False
    opaque = etag[2:] if etag.startswith("W/") else etag
    for candidate in if_none_match.split(","):
        candidate = candidate.strip()
        if candidate == "*":
            return True
        if candidate.startswith("W/"):
            candidate = candidate[2:]
        if candidate == opaque:
            return True
    return False


def not_modified_since(if_modified_since: Optional[str], last_modified: Optional[datetime]) -> bool:
    if not if_modified_since or last_modified is None:
        return False
    try:
        since = parsedate_to_datetime(if_modified_since)
    except (TypeError, ValueError):
        return False
    if since is None:
        return False
    return _as_utc(last_modified).replace(microsecond=0) <= _as_utc(since)


def latest(values: Iterable[Optional[datetime]]) -> Optional[datetime]:
    present = [_as_utc(v) for v in values if v is not None]
    return max(present) if present else None


class VehicleResolver:
    def __init__(self, gateway: ReadOnlyGateway, taxonomy: Optional[TaxonomyResolver] = None):
        self.gateway = gateway
        self.taxonomy = taxonomy or TaxonomyResolver(gateway)

    async def resolve(
        self,
        raw_vin: str,
        lang: Lang = "en",
        *,
        if_none_match: Optional[str] = None,
        if_modified_since: Optional[str] = None,
        trace_id: Optional[str] = None,
    ) -> Resolution:
        vin = normalize_vin(raw_vin)
        reason = vin_error_reason(vin)
        if reason is not None:
            return Resolution(ResolutionState.INVALID, vin, reason=reason)

        rows = await self.gateway.execute(self._vehicle_statement(vin), trace_id=trace_id)
        if not rows:
            return Resolution(ResolutionState.NOT_FOUND, vin)
        row = rows[0]

        if row["v_hidden"] or row["l_hidden"]:
            return Resolution(ResolutionState.SUPPRESSED, vin)

        lot_id = row["lot_id"]
        images = await self._images(vin, lot_id, trace_id) if lot_id is not None else []
        events = await self._sale_events(vin, trace_id)
        labels = await self.taxonomy.resolve(
            [
                ("body_styles", row["body"]),
                ("fuel_types", row["fuel"]),
                ("transmission_types", row["transmission"]),
                ("drive_types", row["drive"]),
                ("statuses", row["status"]),
                ("damage_types", row["damage_description"]),
                ("title_types", row["title_type"]),
                ("odometer_brands", row["odometer_brand"]),
                ("colors", row["color"]),
            ],
            lang,
            trace_id=trace_id,
        )

        vehicle = build_vehicle_details(row, images, events, labels, lang)
        body = vehicle.model_dump(mode="json", by_alias=True)
        etag = weak_etag(body)
        last_modified = latest(
            [row["v_updated_at"], row["l_updated_at"]]
            + [img["updated_at"] for img in images]
            + [ev["updated_at"] for ev in events]
        )

        if if_none_match:
            unchanged = etag_matches(if_none_match, etag)
        else:
            unchanged = not_modified_since(if_modified_since, last_modified)
        state = ResolutionState.NOT_MODIFIED if unchanged else ResolutionState.FRESH
        return Resolution(state, vin, body=body, etag=etag, last_modified=last_modified)

    @staticmethod
    def _vehicle_statement(vin: str):
        v, lot = models.Vehicle, models.Lot
        return (
            select(
                v.vin, v.year, v.make, v.model, v.trim, v.body, v.fuel, v.transmission, v.drive, v.engine,
                v.is_hidden.label("v_hidden"),
                v.updated_at.label("v_updated_at"),
                lot.id.label("lot_id"),
                lot.status, lot.site_code, lot.city, lot.region, lot.country,
                lot.auction_datetime_utc, lot.retail_value_usd, lot.runs_drives, lot.has_keys,
                lot.damage_description, lot.title_type, lot.odometer, lot.odometer_brand, lot.color,
                lot.is_hidden.label("l_hidden"),
                lot.updated_at.label("l_updated_at"),
            )
            .select_from(v)
            .outerjoin(lot, lot.id == current_lot_id(v.vin))
            .where(v.vin == vin)
            .limit(1)
        )

    async def _images(self, vin: str, lot_id: int, trace_id: Optional[str]) -> List[Any]:
        img = models.Image
        stmt = (
            select(img.vin, img.lot_id, img.seq, img.variant, img.url, img.updated_at)
            .where(img.vin == vin, img.lot_id == lot_id, not_flagged(img.is_removed))
            .order_by(img.seq.asc())
        )
        return await self.gateway.execute(stmt, trace_id=trace_id)

    async def _sale_events(self, vin: str, trace_id: Optional[str]) -> List[Any]:
        ev = models.SaleEvent
        stmt = (
            select(ev.event_type, ev.price_usd, ev.occurred_at, ev.updated_at)
            .where(ev.vin == vin)
            .order_by(ev.occurred_at.desc(), ev.id.desc())
            .limit(SALE_EVENT_LIMIT)
        )
        return await self.gateway.execute(stmt, trace_id=trace_id)


def build_vehicle_details(row: Any, images: List[Any], events: List[Any], labels: TaxonomyLabels, lang: Lang) -> VehicleDetails:
    image_details = [
        ImageDetails(lot_id=img["lot_id"], vin=img["vin"], seq=img["seq"], variant=img["variant"], url=img["url"])
        for img in images
    ]
    current_lot = None
    if row["lot_id"] is not None:
        current_lot = LotDetails(
            lot_id=row["lot_id"],
            status=row["status"],
            status_label=labels.label("statuses", row["status"]),
            site_code=row["site_code"],
            city=row["city"],
            region=row["region"],
            country=row["country"],
            auction_date_time_utc=row["auction_datetime_utc"],
            est_retail_value_usd=_as_float(row["retail_value_usd"]),
            runs_drives=row["runs_drives"],
            has_keys=row["has_keys"],
            damage_description=row["damage_description"],
            damage_label=labels.label("damage_types", row["damage_description"]),
            title_type=row["title_type"],
            title_label=labels.label("title_types", row["title_type"]),
            odometer=_as_float(row["odometer"]),
            odometer_brand=row["odometer_brand"],
            odometer_brand_label=labels.label("odometer_brands", row["odometer_brand"]),
            color=row["color"],
            color_label=labels.label("colors", row["color"]),
            primary_image_url=image_details[0].url if image_details else None,
            image_count=len(image_details),
        )

    return VehicleDetails(
        vin=row["vin"],
        year=row["year"],
        make=row["make"],
        model=row["model"],
        trim=row["trim"],
        body=row["body"],
        body_label=labels.label("body_styles", row["body"]),
        fuel=row["fuel"],
        fuel_label=labels.label("fuel_types", row["fuel"]),
        transmission=row["transmission"],
        transmission_label=labels.label("transmission_types", row["transmission"]),
        drive=row["drive"],
        drive_label=labels.label("drive_types", row["drive"]),
        engine=row["engine"],
        current_lot=current_lot,
        images=image_details,
        sale_events=[
            SaleEventDetails(
                event_type=ev["event_type"],
                price_usd=_as_float(ev["price_usd"]),
                occurred_at_utc=ev["occurred_at"],
            )
            for ev in events
        ],
        updated_at=row["v_updated_at"],
        lang=lang,
    )
