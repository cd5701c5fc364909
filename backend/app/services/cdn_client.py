from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Protocol

import httpx

from backend.app.core.settings import settings

logger = logging.getLogger(__name__)

CDN_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Referer": "https://www.copart.com/",
    "Accept": "image/avif,image/webp,image/apng,image/svg+xml,image/*,*/*;q=0.8",
}

SIZE_MAP = {"xl": "full", "lg": "800", "md": "400", "thumb": "200"}

UrlTemplate = Callable[[str, str, str], str]

URL_TEMPLATES: List[UrlTemplate] = [
    lambda lot_id, seq, size: f"https://cs.copart.com/v1/AUTH_svc.pdoc00001/{lot_id}/{size}/{seq}.jpg",
    lambda lot_id, seq, size: f"https://vis.copart.com/images/lot/{lot_id}/{seq}_{size}.jpg",
    lambda lot_id, seq, size: f"https://cs.copart.com/images/{lot_id}/{seq}.jpg",
]


@dataclass
class CdnImage:
    url: str
    body: bytes
    content_type: str


class AsyncTransport(Protocol):
    async def get(self, url: str, headers: Dict[str, str], timeout: float) -> httpx.Response: ...

    async def close(self) -> None: ...


class HttpxTransport:
    """httpx-based transport with connection pooling."""

    def __init__(self):
        self._client = httpx.AsyncClient(timeout=None, follow_redirects=True)

    async def get(self, url: str, headers: Dict[str, str], timeout: float) -> httpx.Response:
        return await self._client.get(url, headers=headers, timeout=timeout)

    async def close(self) -> None:
        await self._client.aclose()


class CdnImageClient:
    """Fetches lot photos straight from the auction CDN, trying each known URL layout in turn."""

    def __init__(
        self,
        *,
        timeout: Optional[float] = None,
        templates: Optional[List[UrlTemplate]] = None,
        transport: Optional[AsyncTransport] = None,
    ):
        self.timeout = timeout if timeout is not None else settings.cdn_timeout_seconds
        self.templates = templates or URL_TEMPLATES
        self._transport = transport or HttpxTransport()
        self._owns_transport = transport is None

    async def aclose(self) -> None:
        if self._owns_transport:
            await self._transport.close()

    def candidate_urls(self, lot_id: int | str, seq: int | str, variant: str) -> List[str]:
        size = SIZE_MAP.get(variant, "full")
        return [template(str(lot_id), str(seq), size) for template in self.templates]

    async def fetch(self, lot_id: int | str, seq: int | str, variant: str = "xl") -> Optional[CdnImage]:
        for url in self.candidate_urls(lot_id, seq, variant):
            try:
                response = await asyncio.wait_for(
                    self._transport.get(url, headers=CDN_HEADERS, timeout=self.timeout), self.timeout
                )
            except (httpx.TimeoutException, asyncio.TimeoutError):
                continue
            except httpx.RequestError as exc:
                logger.warning("cdn.fetch.error", extra={"extra_data": {"url": url, "error": str(exc)}})
                continue

            if response.status_code != 200:
                continue
            content_type = response.headers.get("content-type") or "image/jpeg"
            if not content_type.startswith("image/"):
                continue
            return CdnImage(url=url, body=response.content, content_type=content_type)
        return None
