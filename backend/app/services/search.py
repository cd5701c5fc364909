"""Catalog search with keyset pagination.

Every sort is ``<column> <dir> NULLS LAST, vin ASC`` so the order is total and
the continuation predicate can be derived from the last row alone.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy import and_, func, or_, select
from sqlalchemy.sql.elements import ColumnElement

from backend.app.core.errors import InvalidCursorError, ValidationError
from backend.app.core.i18n import Lang, normalize_lang
from backend.app.db import models
from backend.app.db.gateway import ReadOnlyGateway
from backend.app.db.queries import current_lot_id, image_count, not_flagged, primary_image_url
from backend.app.schemas.search import Pagination, SearchFiltersEcho, SearchItem, SearchResponse
from backend.app.services.cache import ResponseCache, search_cache_key
from backend.app.services.cursor import (
    DEFAULT_SORT,
    VALID_SORTS,
    Cursor,
    decode_cursor,
    encode_cursor,
    filters_fingerprint,
    split_sort,
)
from backend.app.services.taxonomy import TaxonomyResolver
from backend.app.services.vehicle_types import NULL_BODY_TYPE, VEHICLE_TYPE_BODIES, body_codes_for

logger = logging.getLogger(__name__)

MAX_LIMIT = 100
DEFAULT_LIMIT = 20
YEAR_MIN = 1900
YEAR_MAX = 2100
SEARCH_CACHE_TTL_SECONDS = 300

CACHE_CONTROL_BROAD = "public, max-age=60, stale-while-revalidate=300"
CACHE_CONTROL_NARROW = "public, max-age=30, stale-while-revalidate=120"

FILTER_FIELDS = (
    "make",
    "model",
    "model_detail",
    "year_min",
    "year_max",
    "status",
    "site_code",
    "country",
    "vehicle_type",
)


def _sort_column(sort_key: str) -> ColumnElement:
    return {
        "auction_date": models.Lot.auction_datetime_utc,
        "year": models.Vehicle.year,
        "created_at": models.Lot.created_at,
        "updated_at": models.Lot.updated_at,
    }[sort_key]


# row label holding each sort column's value in the result set
SORT_VALUE_FIELDS = {
    "auction_date": "auction_datetime_utc",
    "year": "year",
    "created_at": "lot_created_at",
    "updated_at": "lot_updated_at",
}


@dataclass
class SearchParams:
    make: Optional[str] = None
    model: Optional[str] = None
    model_detail: Optional[str] = None
    year_min: Optional[int] = None
    year_max: Optional[int] = None
    status: Optional[str] = None
    site_code: Optional[str] = None
    country: Optional[str] = None
    vehicle_type: Optional[str] = None
    limit: int = DEFAULT_LIMIT
    cursor: Optional[str] = None
    sort: str = DEFAULT_SORT
    lang: Lang = "en"

    def filters(self) -> Dict[str, Any]:
        return {name: getattr(self, name) for name in FILTER_FIELDS}

    def active_filter_count(self) -> int:
        return sum(1 for value in self.filters().values() if value is not None)

    def cache_key(self) -> str:
        return search_cache_key({**self.filters(), "limit": self.limit, "sort": self.sort, "lang": self.lang})

    def fingerprint(self) -> str:
        return filters_fingerprint(self.filters())


@dataclass
class SearchPage:
    items: List[SearchItem] = field(default_factory=list)
    next_cursor: Optional[str] = None
    has_more: bool = False


def _upper(value: Optional[str]) -> Optional[str]:
    value = (value or "").strip()
    return value.upper() or None


def _lower(value: Optional[str]) -> Optional[str]:
    value = (value or "").strip()
    return value.lower() or None


def _parse_year(name: str, raw: Optional[str]) -> Optional[int]:
    if raw is None or raw.strip() == "":
        return None
    try:
        year = int(raw)
    except ValueError as exc:
        raise ValidationError(f"Invalid {name} (must be {YEAR_MIN}-{YEAR_MAX})") from exc
    if year < YEAR_MIN or year > YEAR_MAX:
        raise ValidationError(f"Invalid {name} (must be {YEAR_MIN}-{YEAR_MAX})")
    return year


def _parse_limit(raw: Optional[str]) -> int:
    if raw is None:
        return DEFAULT_LIMIT
    try:
        limit = int(raw)
    except ValueError:
        return DEFAULT_LIMIT
    return min(max(limit, 1), MAX_LIMIT)


def parse_search_params(query: Mapping[str, str], accept_language: Optional[str] = None) -> SearchParams:
    """Validate raw query parameters.

    Unknown ``sort`` values and unknown vehicle types are ignored rather than
    rejected so that stale links keep working; a bad year range is an error.
    """
    year_min = _parse_year("year_min", query.get("year_min"))
    year_max = _parse_year("year_max", query.get("year_max"))
    if year_min is not None and year_max is not None and year_min > year_max:
        raise ValidationError("year_min cannot be greater than year_max")

    sort = query.get("sort") or DEFAULT_SORT
    if sort not in VALID_SORTS:
        sort = DEFAULT_SORT

    vehicle_type = _lower(query.get("vehicle_type") or query.get("type"))
    if vehicle_type not in VEHICLE_TYPE_BODIES:
        vehicle_type = None

    return SearchParams(
        make=_upper(query.get("make")),
        model=_upper(query.get("model")),
        model_detail=_upper(query.get("model_detail")),
        year_min=year_min,
        year_max=year_max,
        status=_lower(query.get("status")),
        site_code=_upper(query.get("site_code")),
        country=_upper(query.get("country")),
        vehicle_type=vehicle_type,
        limit=_parse_limit(query.get("limit")),
        cursor=query.get("cursor") or None,
        sort=sort,
        lang=normalize_lang(query.get("lang"), accept_language),
    )


def search_cache_control(params: SearchParams) -> str:
    return CACHE_CONTROL_BROAD if params.active_filter_count() <= 2 else CACHE_CONTROL_NARROW


def keyset_condition(sort: str, cursor: Cursor) -> ColumnElement:
    """Rows strictly after the cursor under ``<col> <dir> NULLS LAST, vin ASC``."""
    sort_key, direction = split_sort(sort)
    column = _sort_column(sort_key)
    vin = models.Vehicle.vin
    if cursor.last_value is None:
        return and_(column.is_(None), vin > cursor.last_vin)
    beyond = column < cursor.last_value if direction == "desc" else column > cursor.last_value
    return or_(
        beyond,
        and_(column == cursor.last_value, vin > cursor.last_vin),
        column.is_(None),
    )


def order_by_clause(sort: str) -> tuple:
    sort_key, direction = split_sort(sort)
    column = _sort_column(sort_key)
    ordered = column.desc() if direction == "desc" else column.asc()
    return (ordered.nulls_last(), models.Vehicle.vin.asc())


def filter_conditions(params: SearchParams) -> List[ColumnElement]:
    v, lot = models.Vehicle, models.Lot
    conditions: List[ColumnElement] = [not_flagged(v.is_hidden), not_flagged(lot.is_hidden)]

    if params.vehicle_type:
        bodies = body_codes_for(params.vehicle_type)
        if bodies:
            if params.vehicle_type == NULL_BODY_TYPE:
                conditions.append(or_(v.body.in_(bodies), v.body.is_(None)))
            else:
                conditions.append(v.body.in_(bodies))
    if params.make:
        conditions.append(v.make == params.make)
    if params.model:
        conditions.append(v.model == params.model)
    if params.model_detail:
        conditions.append(func.coalesce(func.nullif(v.trim, ""), v.model_detail) == params.model_detail)
    if params.year_min is not None:
        conditions.append(v.year >= params.year_min)
    if params.year_max is not None:
        conditions.append(v.year <= params.year_max)
    if params.status:
        conditions.append(lot.status == params.status)
    if params.site_code:
        conditions.append(lot.site_code == params.site_code)
    if params.country:
        conditions.append(lot.country == params.country)
    return conditions


def build_search_statement(params: SearchParams, cursor: Optional[Cursor] = None):
    v, lot = models.Vehicle, models.Lot
    conditions = filter_conditions(params)
    if cursor is not None:
        conditions.append(keyset_condition(params.sort, cursor))

    return (
        select(
            v.vin, v.make, v.model, v.year, v.body, v.updated_at,
            lot.id.label("lot_id"),
            lot.status, lot.site_code, lot.city, lot.region, lot.country,
            lot.auction_datetime_utc,
            lot.created_at.label("lot_created_at"),
            lot.updated_at.label("lot_updated_at"),
            lot.retail_value_usd, lot.damage_description, lot.title_type, lot.odometer,
            lot.buy_it_now_usd, lot.current_bid_usd,
            lot.outcome, lot.outcome_confidence, lot.outcome_date, lot.relist_count, lot.final_bid_usd,
            primary_image_url(v.vin, lot.id).label("primary_image_url"),
            image_count(v.vin, lot.id).label("image_count"),
        )
        .select_from(v)
        .outerjoin(lot, lot.id == current_lot_id(v.vin))
        .where(*conditions)
        .order_by(*order_by_clause(params.sort))
        .limit(params.limit + 1)
    )


def _as_float(value: Any) -> Optional[float]:
    return float(value) if value is not None else None


class SearchService:
    def __init__(
        self,
        gateway: ReadOnlyGateway,
        cache: Optional[ResponseCache] = None,
        *,
        taxonomy: Optional[TaxonomyResolver] = None,
        cache_ttl_seconds: int = SEARCH_CACHE_TTL_SECONDS,
        bind_cursor: bool = True,
    ):
        self.gateway = gateway
        self.cache = cache
        self.taxonomy = taxonomy or TaxonomyResolver(gateway)
        self.cache_ttl_seconds = cache_ttl_seconds
        self.bind_cursor = bind_cursor

    async def search(self, params: SearchParams, *, trace_id: Optional[str] = None) -> Dict[str, Any]:
        """Return the JSON-ready search payload; first pages are served through the cache."""
        cursor = self.decode(params) if params.cursor else None

        async def compute() -> Dict[str, Any]:
            page = await self.fetch_page(params, cursor, trace_id=trace_id)
            return self.render(params, page)

        if cursor is None and self.cache is not None:
            return await self.cache.cache_or_compute(params.cache_key(), compute, self.cache_ttl_seconds)
        return await compute()

    def decode(self, params: SearchParams) -> Cursor:
        cursor = decode_cursor(params.cursor or "")
        if cursor.sort != params.sort:
            raise InvalidCursorError("Cursor does not match the requested sort order")
        if self.bind_cursor and cursor.fingerprint != params.fingerprint():
            raise InvalidCursorError("Cursor does not match the requested filters")
        return cursor

    async def fetch_page(
        self,
        params: SearchParams,
        cursor: Optional[Cursor] = None,
        *,
        trace_id: Optional[str] = None,
    ) -> SearchPage:
        rows = await self.gateway.execute(build_search_statement(params, cursor), trace_id=trace_id)
        has_more = len(rows) > params.limit
        rows = rows[: params.limit]

        next_cursor = None
        if has_more and rows:
            sort_key, _ = split_sort(params.sort)
            last = rows[-1]
            next_cursor = encode_cursor(
                Cursor(
                    last_vin=last["vin"],
                    sort=params.sort,
                    last_value=last[SORT_VALUE_FIELDS[sort_key]],
                    fingerprint=params.fingerprint() if self.bind_cursor else None,
                )
            )

        labels = await self.taxonomy.resolve(
            [
                (domain, row[column])
                for row in rows
                for domain, column in (
                    ("body_styles", "body"),
                    ("statuses", "status"),
                    ("damage_types", "damage_description"),
                    ("title_types", "title_type"),
                )
            ],
            params.lang,
            trace_id=trace_id,
        )

        items = [
            SearchItem(
                vin=row["vin"],
                year=row["year"],
                make=row["make"],
                model=row["model"],
                body=row["body"],
                body_label=labels.label("body_styles", row["body"]),
                lot_id=row["lot_id"],
                status=row["status"],
                status_label=labels.label("statuses", row["status"]),
                site_code=row["site_code"],
                city=row["city"],
                region=row["region"],
                country=row["country"],
                auction_date_time_utc=row["auction_datetime_utc"],
                est_retail_value_usd=_as_float(row["retail_value_usd"]),
                buy_it_now_usd=_as_float(row["buy_it_now_usd"]),
                current_bid_usd=_as_float(row["current_bid_usd"]),
                damage_description=row["damage_description"],
                damage_label=labels.label("damage_types", row["damage_description"]),
                title_type=row["title_type"],
                title_label=labels.label("title_types", row["title_type"]),
                odometer=_as_float(row["odometer"]),
                primary_image_url=row["primary_image_url"],
                image_count=int(row["image_count"] or 0),
                updated_at=row["updated_at"],
                outcome=row["outcome"],
                outcome_confidence=_as_float(row["outcome_confidence"]),
                outcome_date=row["outcome_date"],
                relist_count=row["relist_count"],
                final_bid_usd=_as_float(row["final_bid_usd"]),
            )
            for row in rows
        ]
        logger.debug(
            "search.page",
            extra={"extra_data": {"count": len(items), "has_more": has_more, "sort": params.sort}},
        )
        return SearchPage(items=items, next_cursor=next_cursor, has_more=has_more)

    @staticmethod
    def render(params: SearchParams, page: SearchPage) -> Dict[str, Any]:
        response = SearchResponse(
            items=page.items,
            pagination=Pagination(next_cursor=page.next_cursor, has_more=page.has_more, count=len(page.items)),
            filters=SearchFiltersEcho(**params.filters(), limit=params.limit, sort=params.sort),
            lang=params.lang,
        )
        return response.model_dump(mode="json", by_alias=True)
