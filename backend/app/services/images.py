"""Photo resolution: archived object store, then the auction CDN, then a placeholder.

``resolve`` always produces an image; callers never see an error from this path.
"""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass
from typing import Dict, List, Optional

from backend.app.core.vin import is_valid_vin, normalize_vin
from backend.app.services.blob_store import BlobStore, build_key
from backend.app.services.cdn_client import SIZE_MAP, CdnImageClient

logger = logging.getLogger(__name__)

DEFAULT_VARIANT = "xl"
CACHE_CONTROL_STORAGE = "public, max-age=31536000, immutable"
CACHE_CONTROL_CDN = "public, max-age=3600, stale-while-revalidate=86400"
CACHE_CONTROL_PLACEHOLDER = "public, max-age=300"

SOURCE_STORAGE = "storage"
SOURCE_CDN = "cdn"
SOURCE_PLACEHOLDER = "placeholder"

_FILE_RE = re.compile(r"^(?P<seq>\d+)\.(?:webp|jpg|jpeg|png)$", re.IGNORECASE)

PLACEHOLDER_SVG = (
    '<svg width="800" height="600" xmlns="http://www.w3.org/2000/svg">'
    '<rect width="100%" height="100%" fill="#f3f4f6"/>'
    '<text x="50%" y="50%" font-family="system-ui, -apple-system, sans-serif" font-size="24" '
    'fill="#9ca3af" text-anchor="middle" dominant-baseline="middle">Image Unavailable</text>'
    '<text x="50%" y="55%" font-family="system-ui, -apple-system, sans-serif" font-size="14" '
    'fill="#d1d5db" text-anchor="middle" dominant-baseline="middle">Photo not found in archive</text>'
    "</svg>"
).encode("utf-8")


@dataclass(frozen=True)
class ImageRequest:
    vin: str
    lot_id: int
    variant: str
    seq: int


@dataclass
class ImageResult:
    body: bytes
    content_type: str
    cache_control: str
    source: str
    storage_key: Optional[str] = None
    source_url: Optional[str] = None

    def headers(self) -> Dict[str, str]:
        headers = {"Cache-Control": self.cache_control, "X-Image-Source": self.source}
        if self.source == SOURCE_STORAGE and self.storage_key:
            headers["X-Storage-Key"] = self.storage_key
        if self.source_url:
            headers["X-Source-URL"] = self.source_url
        return headers

    @property
    def needs_persist(self) -> bool:
        return self.source == SOURCE_CDN and self.storage_key is not None


def parse_image_path(path: str) -> Optional[ImageRequest]:
    """``{vin}/{lot_id}[/{variant}]/{seq}.{ext}`` -> ImageRequest, or None when malformed."""
    segments: List[str] = [s for s in path.split("/") if s]
    if len(segments) == 3:
        vin, lot_id, filename = segments
        variant = DEFAULT_VARIANT
    elif len(segments) == 4:
        vin, lot_id, variant, filename = segments
        variant = variant.lower()
    else:
        return None

    vin = normalize_vin(vin)
    match = _FILE_RE.match(filename)
    if not is_valid_vin(vin) or not lot_id.isdigit() or match is None or variant not in SIZE_MAP:
        return None
    return ImageRequest(vin=vin, lot_id=int(lot_id), variant=variant, seq=int(match.group("seq")))


def placeholder() -> ImageResult:
    return ImageResult(
        body=PLACEHOLDER_SVG,
        content_type="image/svg+xml",
        cache_control=CACHE_CONTROL_PLACEHOLDER,
        source=SOURCE_PLACEHOLDER,
    )


class ImagePipeline:
    def __init__(self, blob_store: BlobStore, cdn: CdnImageClient, *, prefix: str = "copart"):
        self.blob_store = blob_store
        self.cdn = cdn
        self.prefix = prefix

    def storage_key(self, request: ImageRequest) -> str:
        return build_key(self.prefix, request.vin, request.lot_id, request.variant, request.seq)

    async def resolve(self, request: ImageRequest) -> ImageResult:
        started = time.perf_counter()
        key = self.storage_key(request)

        try:
            stored = await self.blob_store.get_bytes(key)
        except Exception as exc:
            logger.warning("image.storage.error", extra={"extra_data": {"key": key, "error": str(exc)}})
            stored = None
        if stored is not None:
            body, content_type = stored
            self._log(SOURCE_STORAGE, key, started)
            return ImageResult(
                body=body,
                content_type=content_type or "image/webp",
                cache_control=CACHE_CONTROL_STORAGE,
                source=SOURCE_STORAGE,
                storage_key=key,
            )

        try:
            fetched = await self.cdn.fetch(request.lot_id, request.seq, request.variant)
        except Exception as exc:
            logger.warning("image.cdn.error", extra={"extra_data": {"key": key, "error": str(exc)}})
            fetched = None
        if fetched is not None:
            self._log(SOURCE_CDN, key, started)
            return ImageResult(
                body=fetched.body,
                content_type=fetched.content_type,
                cache_control=CACHE_CONTROL_CDN,
                source=SOURCE_CDN,
                storage_key=key,
                source_url=fetched.url,
            )

        self._log(SOURCE_PLACEHOLDER, key, started)
        return placeholder()

    async def persist(self, key: str, body: bytes, content_type: str) -> None:
        """Back-fill the archive after a CDN hit. Failures are logged only."""
        try:
            await self.blob_store.put_bytes(key, body, content_type)
        except Exception as exc:
            logger.error("image.persist.fail", extra={"extra_data": {"key": key, "error": str(exc)}})
            return
        logger.info("image.persist.ok", extra={"extra_data": {"key": key, "bytes": len(body)}})

    @staticmethod
    def _log(source: str, key: str, started: float) -> None:
        elapsed_ms = int((time.perf_counter() - started) * 1000)
        logger.info("image.served", extra={"extra_data": {"source": source, "key": key, "ms": elapsed_ms}})
