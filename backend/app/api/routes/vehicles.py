from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Header, Request, Response

from backend.app.api.deps import ServiceContainer, get_container, rate_limit
from backend.app.api.http import base_headers, json_response, preflight_response
from backend.app.core.errors import GoneError, InvalidVinError, NotFoundError
from backend.app.core.i18n import normalize_lang
from backend.app.core.log_config import get_trace_id
from backend.app.core.rate_limit import RateLimitDecision
from backend.app.services.vehicles import ResolutionState

router = APIRouter()


@router.options("/{vin}")
async def vehicle_preflight(request: Request) -> Response:
    return preflight_response(request)


@router.get("/{vin}")
async def vehicle_detail(
    vin: str,
    request: Request,
    lang: Optional[str] = None,
    if_none_match: Optional[str] = Header(default=None),
    if_modified_since: Optional[str] = Header(default=None),
    accept_language: Optional[str] = Header(default=None),
    container: ServiceContainer = Depends(get_container),
    _: RateLimitDecision = Depends(rate_limit("vehicles", "vehicle_rate_limit")),
):
    """Vehicle card: specs, current lot, photos and recent sale events."""
    resolution = await container.vehicles.resolve(
        vin,
        normalize_lang(lang, accept_language),
        if_none_match=if_none_match,
        if_modified_since=if_modified_since,
        trace_id=get_trace_id(),
    )

    if resolution.state is ResolutionState.INVALID:
        raise InvalidVinError(resolution.reason)
    if resolution.state is ResolutionState.NOT_FOUND:
        raise NotFoundError()
    if resolution.state is ResolutionState.SUPPRESSED:
        raise GoneError()

    if resolution.state is ResolutionState.NOT_MODIFIED:
        headers = base_headers(request)
        headers.update(resolution.headers())
        return Response(status_code=304, headers=headers)
    return json_response(request, resolution.body, headers=resolution.headers())
