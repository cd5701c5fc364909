from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from backend.app.api.deps import ServiceContainer, get_container

router = APIRouter()


@router.get("")
async def health(container: ServiceContainer = Depends(get_container)):
    db_ok = await container.gateway.ping()
    cache_ok = await container.cache.ping()
    return JSONResponse(
        {"status": "ok" if db_ok else "degraded", "db": db_ok, "cache": cache_ok},
        status_code=200 if db_ok else 503,
        headers={"Cache-Control": "no-store"},
    )
