from __future__ import annotations

from sqlalchemy import false, func, select
from sqlalchemy.orm import aliased
from sqlalchemy.sql.elements import ColumnElement

from backend.app.db import models


def current_lot_id(vin_column: ColumnElement) -> ColumnElement:
    """Scalar subquery: id of the lot with the latest auction (or update) time for a VIN."""
    lot = aliased(models.Lot)
    return (
        select(lot.id)
        .where(lot.vin == vin_column)
        .order_by(
            func.coalesce(lot.auction_datetime_utc, lot.updated_at).desc().nulls_last(),
            lot.id.desc(),
        )
        .limit(1)
        .correlate_except(lot)
        .scalar_subquery()
    )


def not_flagged(column: ColumnElement) -> ColumnElement:
    return func.coalesce(column, false()) == false()


def primary_image_url(vin_column: ColumnElement, lot_id_column: ColumnElement) -> ColumnElement:
    image = aliased(models.Image)
    return (
        select(image.url)
        .where(image.vin == vin_column, image.lot_id == lot_id_column, not_flagged(image.is_removed))
        .order_by(image.seq.asc())
        .limit(1)
        .correlate_except(image)
        .scalar_subquery()
    )


def image_count(vin_column: ColumnElement, lot_id_column: ColumnElement) -> ColumnElement:
    image = aliased(models.Image)
    return (
        select(func.count(image.id))
        .where(image.vin == vin_column, image.lot_id == lot_id_column, not_flagged(image.is_removed))
        .correlate_except(image)
        .scalar_subquery()
    )
