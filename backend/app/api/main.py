from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError

from backend.app.api.deps import ServiceContainer, build_container
from backend.app.api.http import error_response
from backend.app.core.errors import ApiError, InternalError, ValidationError
from backend.app.core.log_config import configure_logging, new_trace_id
from backend.app.core.settings import Settings, settings as default_settings
from .routes import catalog, health, images, search, vehicles

logger = logging.getLogger(__name__)


def create_app(container: Optional[ServiceContainer] = None, settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or (container.settings if container else default_settings)
    configure_logging(level=settings.log_level, fmt=settings.log_format)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        services = container or build_container(settings)
        app.state.container = services
        logger.info("api.startup", extra={"extra_data": {"cache": type(services.cache.client).__name__}})
        try:
            yield
        finally:
            await services.aclose()
            logger.info("api.shutdown")

    app = FastAPI(title="vinops public API", version="1.0.0", lifespan=lifespan)
    if container is not None:
        app.state.container = container

    @app.middleware("http")
    async def trace_id_middleware(request: Request, call_next: Any) -> Response:
        tid = new_trace_id()
        response = await call_next(request)
        response.headers.setdefault("X-Trace-Id", tid)
        return response

    @app.exception_handler(ApiError)
    async def api_error_handler(request: Request, exc: ApiError) -> Response:
        if exc.status_code >= 500:
            logger.error("api.error", exc_info=exc, extra={"extra_data": {"code": exc.code, "path": request.url.path}})
            if isinstance(exc, InternalError):
                exc = InternalError()
        else:
            logger.info("api.reject", extra={"extra_data": {"code": exc.code, "status": exc.status_code}})
        return error_response(request, exc)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError) -> Response:
        return error_response(request, ValidationError())

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> Response:
        logger.error("api.unhandled", exc_info=exc, extra={"extra_data": {"path": request.url.path}})
        return error_response(request, InternalError())

    app.include_router(vehicles.router, prefix="/vehicles", tags=["vehicles"])
    app.include_router(search.router, prefix="/search", tags=["search"])
    app.include_router(images.router, prefix="/images", tags=["images"])
    app.include_router(catalog.router, prefix="/makes-models", tags=["catalog"])
    app.include_router(health.router, prefix="/health", tags=["health"])
    return app


app = create_app()
