from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy import func, or_, select

from backend.app.api.deps import ServiceContainer, get_container
from backend.app.api.http import json_response
from backend.app.core.i18n import normalize_lang
from backend.app.core.log_config import get_trace_id
from backend.app.db import models
from backend.app.db.queries import not_flagged
from backend.app.services.vehicle_types import NULL_BODY_TYPE, VEHICLE_TYPE_BODIES, body_codes_for, vehicle_type_label

TOP_MAKES = 20
TOP_MODELS = 50
CATALOG_CACHE_CONTROL = "public, max-age=3600, stale-while-revalidate=86400"

router = APIRouter()


@router.get("")
async def makes_models(
    request: Request,
    make: Optional[str] = None,
    vehicle_type: str = Query(default=NULL_BODY_TYPE, alias="type"),
    lang: Optional[str] = None,
    container: ServiceContainer = Depends(get_container),
):
    """Top makes, or the top models of one make, for the catalog filters."""
    v = models.Vehicle
    vehicle_type = vehicle_type.lower() if vehicle_type.lower() in VEHICLE_TYPE_BODIES else NULL_BODY_TYPE
    make = (make or "").strip().upper() or None

    conditions = [not_flagged(v.is_hidden)]
    bodies = body_codes_for(vehicle_type)
    if bodies:
        if vehicle_type == NULL_BODY_TYPE:
            conditions.append(or_(v.body.in_(bodies), v.body.is_(None)))
        else:
            conditions.append(v.body.in_(bodies))

    if make:
        column, limit = v.model, TOP_MODELS
        conditions += [v.make == make, v.model.is_not(None), v.model != "", v.model != "ALL MODELS"]
    else:
        column, limit = v.make, TOP_MAKES
        conditions += [v.make.is_not(None), v.make != ""]

    count = func.count().label("count")
    stmt = (
        select(column.label("name"), count)
        .where(*conditions)
        .group_by(column)
        .order_by(count.desc(), column.asc())
        .limit(limit)
    )
    rows = await container.gateway.execute(stmt, trace_id=get_trace_id())
    names = [row["name"] for row in rows]

    body = {
        "type": vehicle_type,
        "typeLabel": vehicle_type_label(vehicle_type, normalize_lang(lang, request.headers.get("accept-language"))),
    }
    if make:
        body.update({"make": make, "models": names})
    else:
        body["makes"] = names
    return json_response(request, body, headers={"Cache-Control": CATALOG_CACHE_CONTROL})
