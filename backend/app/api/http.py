"""Response helpers shared by the public routes: CORS, error envelope, preflight."""

from __future__ import annotations

from typing import Any, Dict, Iterable, Mapping, Optional

from fastapi import Request
from fastapi.responses import JSONResponse, Response

from backend.app.core.errors import ApiError, RateLimitError
from backend.app.core.log_config import get_trace_id
from backend.app.core.settings import settings

ALLOW_METHODS = "GET, OPTIONS"
ALLOW_HEADERS = "Content-Type, Accept-Language, If-None-Match, If-Modified-Since"
PREFLIGHT_MAX_AGE = "600"
NO_STORE = "no-store, must-revalidate"


def cors_headers(origin: Optional[str], allowed: Iterable[str] | None = None) -> Dict[str, str]:
    headers = {
        "X-Api-Version": settings.api_version,
        "Vary": "Origin, Accept-Language",
        "Access-Control-Allow-Methods": ALLOW_METHODS,
        "Access-Control-Allow-Headers": ALLOW_HEADERS,
    }
    allowed = settings.cors_origins if allowed is None else allowed
    if origin and origin in allowed:
        headers["Access-Control-Allow-Origin"] = origin
    return headers


def base_headers(request: Request) -> Dict[str, str]:
    """CORS headers plus whatever the rate-limit dependency left on ``request.state``."""
    headers = cors_headers(request.headers.get("origin"))
    headers.update(getattr(request.state, "rate_limit_headers", {}))
    return headers


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("cf-connecting-ip") or request.headers.get("x-forwarded-for") or ""
    ip = forwarded.split(",")[0].strip()
    if ip:
        return ip
    if request.client and request.client.host:
        return request.client.host
    return "anon"


def json_response(
    request: Request,
    body: Any,
    *,
    status_code: int = 200,
    headers: Optional[Mapping[str, str]] = None,
) -> JSONResponse:
    merged = base_headers(request)
    if headers:
        merged.update(headers)
    return JSONResponse(body, status_code=status_code, headers=merged)


def error_response(request: Request, exc: ApiError) -> JSONResponse:
    trace_id = get_trace_id()
    headers = base_headers(request)
    headers["Cache-Control"] = NO_STORE
    headers["X-Trace-Id"] = trace_id
    if isinstance(exc, RateLimitError):
        headers["Retry-After"] = str(exc.retry_after)
    return JSONResponse(
        {"error": {"code": exc.code, "message": exc.message}, "traceId": trace_id},
        status_code=exc.status_code,
        headers=headers,
    )


def preflight_response(request: Request) -> Response:
    headers = cors_headers(request.headers.get("origin"))
    headers["Access-Control-Max-Age"] = PREFLIGHT_MAX_AGE
    headers["Cache-Control"] = NO_STORE
    return Response(status_code=204, headers=headers)
