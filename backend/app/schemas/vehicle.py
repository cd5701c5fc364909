"""
Response DTOs for the vehicle lookup endpoint.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ImageDetails(BaseModel):
    lot_id: int
    vin: str
    seq: int
    variant: str
    url: str | None = None


class SaleEventDetails(BaseModel):
    event_type: str
    price_usd: float | None = None
    occurred_at_utc: datetime | None = None


class LotDetails(CamelModel):
    lot_id: int
    status: str | None = None
    status_label: str | None = None
    site_code: str | None = None
    city: str | None = None
    region: str | None = None
    country: str | None = None
    auction_date_time_utc: datetime | None = None
    est_retail_value_usd: float | None = None
    runs_drives: str | None = None
    has_keys: bool | None = None
    damage_description: str | None = None
    damage_label: str | None = None
    title_type: str | None = None
    title_label: str | None = None
    odometer: float | None = None
    odometer_brand: str | None = None
    odometer_brand_label: str | None = None
    color: str | None = None
    color_label: str | None = None
    primary_image_url: str | None = None
    image_count: int = 0


class VehicleDetails(CamelModel):
    vin: str
    year: int | None = None
    make: str | None = None
    model: str | None = None
    trim: str | None = None
    body: str | None = None
    body_label: str | None = None
    fuel: str | None = None
    fuel_label: str | None = None
    transmission: str | None = None
    transmission_label: str | None = None
    drive: str | None = None
    drive_label: str | None = None
    engine: str | None = None
    current_lot: LotDetails | None = None
    images: list[ImageDetails] = Field(default_factory=list)
    sale_events: list[SaleEventDetails] = Field(default_factory=list)
    updated_at: datetime | None = None
    lang: str = "en"
