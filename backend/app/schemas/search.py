"""
Response DTOs for the search endpoint.
"""

from datetime import datetime

from pydantic import BaseModel, Field

from backend.app.schemas.vehicle import CamelModel


class SearchItem(CamelModel):
    vin: str
    year: int | None = None
    make: str | None = None
    model: str | None = None
    body: str | None = None
    body_label: str | None = None
    lot_id: int | None = None
    status: str | None = None
    status_label: str | None = None
    site_code: str | None = None
    city: str | None = None
    region: str | None = None
    country: str | None = None
    auction_date_time_utc: datetime | None = None
    est_retail_value_usd: float | None = None
    buy_it_now_usd: float | None = None
    current_bid_usd: float | None = None
    damage_description: str | None = None
    damage_label: str | None = None
    title_type: str | None = None
    title_label: str | None = None
    odometer: float | None = None
    primary_image_url: str | None = None
    image_count: int = 0
    updated_at: datetime | None = None
    outcome: str | None = None
    outcome_confidence: float | None = None
    outcome_date: datetime | None = None
    relist_count: int | None = None
    final_bid_usd: float | None = None


class Pagination(CamelModel):
    next_cursor: str | None = None
    has_more: bool = False
    count: int = 0


class SearchFiltersEcho(CamelModel):
    make: str | None = None
    model: str | None = None
    model_detail: str | None = None
    year_min: int | None = None
    year_max: int | None = None
    status: str | None = None
    site_code: str | None = None
    country: str | None = None
    vehicle_type: str | None = None
    limit: int = 20
    sort: str = "updated_at_desc"


class SearchResponse(BaseModel):
    items: list[SearchItem] = Field(default_factory=list)
    pagination: Pagination
    filters: SearchFiltersEcho
    lang: str = "en"
