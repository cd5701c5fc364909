from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response

from backend.app.api.deps import ServiceContainer, get_container, rate_limit
from backend.app.api.http import json_response, preflight_response
from backend.app.core.log_config import get_trace_id
from backend.app.core.rate_limit import RateLimitDecision
from backend.app.services.search import parse_search_params, search_cache_control

router = APIRouter()


@router.options("")
async def search_preflight(request: Request) -> Response:
    return preflight_response(request)


@router.get("")
async def search(
    request: Request,
    container: ServiceContainer = Depends(get_container),
    _: RateLimitDecision = Depends(rate_limit("search", "search_rate_limit")),
):
    params = parse_search_params(request.query_params, request.headers.get("accept-language"))
    body = await container.search.search(params, trace_id=get_trace_id())
    return json_response(request, body, headers={"Cache-Control": search_cache_control(params)})
