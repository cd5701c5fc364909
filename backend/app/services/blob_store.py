from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Optional

import boto3
from botocore.exceptions import ClientError

logger = logging.getLogger(__name__)

MISSING_KEY_CODES = {"NoSuchKey", "404", "NotFound"}


def build_key(prefix: str, vin: str, lot_id: int | str, variant: str, seq: int | str) -> str:
    return f"{prefix}/{vin}/{lot_id}/{variant}/{seq}.webp"


class BlobStore:
    async def get_bytes(self, key: str) -> Optional[tuple[bytes, str]]:
        """Return ``(body, content_type)`` or ``None`` when the key does not exist."""
        raise NotImplementedError

    async def put_bytes(self, key: str, body: bytes, content_type: str) -> str:
        raise NotImplementedError


class LocalBlobStore(BlobStore):
    """Filesystem-backed blob store for archived vehicle photos."""

    def __init__(self, root: Optional[str | Path] = None):
        self.root = Path(root or Path.cwd() / "data" / "images")
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if self.root.resolve() not in path.parents:
            raise ValueError(f"Key escapes blob root: {key}")
        return path

    async def get_bytes(self, key: str) -> Optional[tuple[bytes, str]]:
        path = self._path(key)
        try:
            body = await asyncio.to_thread(path.read_bytes)
        except FileNotFoundError:
            return None
        return body, _content_type_for(path)

    async def put_bytes(self, key: str, body: bytes, content_type: str) -> str:
        path = self._path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        await asyncio.to_thread(path.write_bytes, body)
        return key


def _content_type_for(path: Path) -> str:
    return {
        ".webp": "image/webp",
        ".jpg": "image/jpeg",
        ".jpeg": "image/jpeg",
        ".png": "image/png",
    }.get(path.suffix.lower(), "application/octet-stream")


class S3BlobStore(BlobStore):
    """S3-compatible object store (AWS S3, Cloudflare R2)."""

    def __init__(
        self,
        bucket: str,
        *,
        endpoint_url: Optional[str] = None,
        access_key: Optional[str] = None,
        secret_key: Optional[str] = None,
        client: Any = None,
    ):
        self.bucket = bucket
        if client is None:
            session = boto3.Session(
                aws_access_key_id=access_key,
                aws_secret_access_key=secret_key,
                region_name="auto",
            )
            client = session.client("s3", endpoint_url=endpoint_url)
        self.s3 = client

    async def get_bytes(self, key: str) -> Optional[tuple[bytes, str]]:
        return await asyncio.to_thread(self._get, key)

    async def put_bytes(self, key: str, body: bytes, content_type: str) -> str:
        await asyncio.to_thread(
            self.s3.put_object, Bucket=self.bucket, Key=key, Body=body, ContentType=content_type
        )
        return key

    def _get(self, key: str) -> Optional[tuple[bytes, str]]:
        try:
            response = self.s3.get_object(Bucket=self.bucket, Key=key)
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") in MISSING_KEY_CODES:
                return None
            raise
        body = response["Body"].read()
        return body, response.get("ContentType") or "image/webp"
