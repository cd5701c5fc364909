import pytest

from backend.app.services.blob_store import LocalBlobStore
from backend.app.services.cdn_client import CdnImage
from backend.app.services.images import (
    CACHE_CONTROL_CDN,
    CACHE_CONTROL_PLACEHOLDER,
    CACHE_CONTROL_STORAGE,
    ImagePipeline,
    ImageRequest,
    parse_image_path,
)
from backend.tests.factories import FakeCdn, MemoryBlobStore

VIN = "1FMCU93184KA46160"
REQUEST = ImageRequest(vin=VIN, lot_id=12345678, variant="xl", seq=1)
KEY = f"copart/{VIN}/12345678/xl/1.webp"


@pytest.mark.parametrize(
    "path, expected",
    [
        (f"{VIN}/12345678/1.webp", ImageRequest(VIN, 12345678, "xl", 1)),
        (f"{VIN.lower()}/12345678/md/3.JPG", ImageRequest(VIN, 12345678, "md", 3)),
        (f"{VIN}/12345678/thumb/10.png", ImageRequest(VIN, 12345678, "thumb", 10)),
    ],
)
def test_parse_image_path(path, expected):
    assert parse_image_path(path) == expected


@pytest.mark.parametrize(
    "path",
    [
        f"{VIN}/12345678",
        f"{VIN}/12345678/one.webp",
        f"{VIN}/12345678/1.gif",
        f"{VIN}/lot/1.webp",
        f"{VIN}/12345678/huge/1.webp",
        "BAD/12345678/1.webp",
        f"{VIN}/12345678/xl/1.webp/extra",
    ],
)
def test_parse_image_path_rejects_malformed(path):
    assert parse_image_path(path) is None


@pytest.mark.asyncio
async def test_storage_hit_skips_cdn():
    store = MemoryBlobStore({KEY: (b"webp", "image/webp")})
    cdn = FakeCdn()
    result = await ImagePipeline(store, cdn).resolve(REQUEST)

    assert result.source == "storage"
    assert result.body == b"webp"
    assert result.cache_control == CACHE_CONTROL_STORAGE
    assert result.headers()["X-Storage-Key"] == KEY
    assert not result.needs_persist
    assert cdn.calls == []


@pytest.mark.asyncio
async def test_cdn_hit_after_storage_miss_then_persist():
    store = MemoryBlobStore()
    cdn = FakeCdn(CdnImage(url="https://cs.copart.com/x.jpg", body=b"jpeg", content_type="image/jpeg"))
    pipeline = ImagePipeline(store, cdn)
    result = await pipeline.resolve(REQUEST)

    assert result.source == "cdn"
    assert result.cache_control == CACHE_CONTROL_CDN
    assert result.headers()["X-Image-Source"] == "cdn"
    assert result.needs_persist
    assert store.gets == 1
    assert cdn.calls == [(12345678, 1, "xl")]

    await pipeline.persist(result.storage_key, result.body, result.content_type)
    assert store.puts == [KEY]

    again = await pipeline.resolve(REQUEST)
    assert again.source == "storage"
    assert len(cdn.calls) == 1


@pytest.mark.asyncio
async def test_storage_error_still_tries_cdn():
    cdn = FakeCdn(CdnImage(url="u", body=b"jpeg", content_type="image/jpeg"))
    result = await ImagePipeline(MemoryBlobStore(fail_get=True), cdn).resolve(REQUEST)
    assert result.source == "cdn"


@pytest.mark.asyncio
async def test_everything_failing_yields_placeholder():
    pipeline = ImagePipeline(MemoryBlobStore(fail_get=True), FakeCdn(error=RuntimeError("boom")))
    result = await pipeline.resolve(REQUEST)

    assert result.source == "placeholder"
    assert result.content_type == "image/svg+xml"
    assert result.cache_control == CACHE_CONTROL_PLACEHOLDER
    assert b"Image Unavailable" in result.body
    assert b'width="800"' in result.body
    assert result.headers() == {"Cache-Control": CACHE_CONTROL_PLACEHOLDER, "X-Image-Source": "placeholder"}


@pytest.mark.asyncio
async def test_persist_failure_is_swallowed():
    pipeline = ImagePipeline(MemoryBlobStore(fail_put=True), FakeCdn())
    await pipeline.persist(KEY, b"jpeg", "image/jpeg")


@pytest.mark.asyncio
async def test_local_blob_store_round_trip(tmp_path):
    store = LocalBlobStore(tmp_path)
    assert await store.get_bytes(KEY) is None
    await store.put_bytes(KEY, b"webp-bytes", "image/webp")
    assert await store.get_bytes(KEY) == (b"webp-bytes", "image/webp")
    with pytest.raises(ValueError):
        await store.get_bytes("../outside.webp")
