from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends, Response

from backend.app.api.deps import ServiceContainer, get_container
from backend.app.services.images import parse_image_path, placeholder

router = APIRouter()


@router.get("/{path:path}")
async def image(
    path: str,
    background_tasks: BackgroundTasks,
    container: ServiceContainer = Depends(get_container),
):
    """Always answers with an image; malformed paths get the placeholder."""
    request = parse_image_path(path)
    result = placeholder() if request is None else await container.images.resolve(request)
    if result.needs_persist:
        background_tasks.add_task(container.images.persist, result.storage_key, result.body, result.content_type)
    return Response(content=result.body, media_type=result.content_type, headers=result.headers())
