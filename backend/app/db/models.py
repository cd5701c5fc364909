"""Read-side mapping of the vehicle/lot store.

The tables are populated by the ETL and are never written by this service.
"""

from sqlalchemy import (
    Column, Integer, BigInteger, String, Numeric, Boolean, Text, DateTime, ForeignKey, PrimaryKeyConstraint, text
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()

# SQLite only autoincrements INTEGER primary keys
Identity = BigInteger().with_variant(Integer, "sqlite")


class Vehicle(Base):
    __tablename__ = "vehicles"
    vin = Column(String(17), primary_key=True)
    year = Column(Integer)
    make = Column(Text)
    model = Column(Text)
    model_detail = Column(Text)
    trim = Column(Text)
    body = Column(Text)
    fuel = Column(Text)
    transmission = Column(Text)
    drive = Column(Text)
    engine = Column(Text)
    is_hidden = Column(Boolean, default=False)
    created_at = Column(DateTime(timezone=True), server_default=text("CURRENT_TIMESTAMP"))
    updated_at = Column(DateTime(timezone=True))


class Lot(Base):
    __tablename__ = "lots"
    id = Column(BigInteger, primary_key=True, autoincrement=False)
    vin = Column(String(17), ForeignKey("vehicles.vin"), nullable=False, index=True)
    status = Column(Text)  # active|scheduled|pending_result|sold|on_hold|cancelled
    site_code = Column(Text)
    city = Column(Text)
    region = Column(Text)
    country = Column(Text)
    auction_datetime_utc = Column(DateTime(timezone=True))
    retail_value_usd = Column(Numeric(12, 2))
    runs_drives = Column(Text)
    has_keys = Column(Boolean)
    damage_description = Column(Text)
    title_type = Column(Text)
    odometer = Column(Numeric(10, 1))
    odometer_brand = Column(Text)
    color = Column(Text)
    current_bid_usd = Column(Numeric(12, 2))
    final_bid_usd = Column(Numeric(12, 2))
    buy_it_now_usd = Column(Numeric(12, 2))
    relist_count = Column(Integer, default=0)
    outcome = Column(Text)  # sold|not_sold|on_approval|unknown
    outcome_confidence = Column(Numeric(4, 3))
    outcome_date = Column(DateTime(timezone=True))
    is_hidden = Column(Boolean, default=False)
    created_at = Column(DateTime(timezone=True), server_default=text("CURRENT_TIMESTAMP"))
    updated_at = Column(DateTime(timezone=True))


class Image(Base):
    __tablename__ = "images"
    id = Column(Identity, primary_key=True, autoincrement=True)
    vin = Column(String(17), nullable=False, index=True)
    lot_id = Column(BigInteger, nullable=False)
    seq = Column(Integer, nullable=False)
    variant = Column(Text, nullable=False, default="xl")
    url = Column(Text)
    is_removed = Column(Boolean, nullable=False, default=False)
    updated_at = Column(DateTime(timezone=True))


class SaleEvent(Base):
    __tablename__ = "sale_events"
    id = Column(Identity, primary_key=True, autoincrement=True)
    vin = Column(String(17), nullable=False, index=True)
    lot_id = Column(BigInteger)
    event_type = Column(Text, nullable=False)  # sold|no_sale|relisted|cancelled
    price_usd = Column(Numeric(12, 2))
    occurred_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True))


class Taxonomy(Base):
    __tablename__ = "taxonomies"
    domain = Column(Text, nullable=False)
    code = Column(Text, nullable=False)
    en = Column(Text, nullable=False)
    ru = Column(Text, nullable=False)
    __table_args__ = (PrimaryKeyConstraint("domain", "code"),)
