from dataclasses import fields
from datetime import datetime

import pytest

from backend.app.db import models
from backend.app.services.vehicles import (
    CACHE_CONTROL_FRESH,
    CACHE_CONTROL_NEGATIVE,
    ResolutionState,
    VehicleResolver,
    etag_matches,
    weak_etag,
)
from backend.tests.factories import make_lot, make_vehicle

VIN = "WDB1240221A123456"


@pytest.fixture
def vehicle(seed):
    seed(
        make_vehicle(VIN, make="MERCEDES-BENZ", model="E-CLASS", body="SEDAN 4D", updated_at=datetime(2024, 5, 1, 12, 0)),
        make_lot(
            500,
            VIN,
            damage_description="FRONT END",
            odometer=120000,
            updated_at=datetime(2024, 5, 3, 8, 30),
        ),
        models.Image(vin=VIN, lot_id=500, seq=2, url="https://img/2.webp", updated_at=datetime(2024, 5, 2)),
        models.Image(vin=VIN, lot_id=500, seq=1, url="https://img/1.webp", updated_at=datetime(2024, 5, 2)),
        models.Image(vin=VIN, lot_id=500, seq=3, url="https://img/3.webp", is_removed=True),
        *[
            models.SaleEvent(
                vin=VIN,
                lot_id=500,
                event_type="relisted",
                price_usd=1000 + i,
                occurred_at=datetime(2024, 1, 1 + i),
                updated_at=datetime(2024, 1, 1 + i),
            )
            for i in range(12)
        ],
        models.Taxonomy(domain="damage_types", code="damage_front_end", en="Front End", ru="Передняя часть"),
    )


@pytest.mark.asyncio
async def test_invalid_vin(gateway):
    resolution = await VehicleResolver(gateway).resolve("ABC")
    assert resolution.state is ResolutionState.INVALID
    assert resolution.status_code == 422
    assert resolution.reason == "LEN"
    assert resolution.headers() == {"Cache-Control": CACHE_CONTROL_NEGATIVE}


@pytest.mark.asyncio
async def test_unknown_vin_is_not_found_and_not_cached(vehicle, gateway):
    resolution = await VehicleResolver(gateway).resolve("1FMCU93184KA46160")
    assert resolution.state is ResolutionState.NOT_FOUND
    assert resolution.status_code == 404
    assert resolution.headers()["Cache-Control"] == "no-store, must-revalidate"


@pytest.mark.asyncio
async def test_hidden_vehicle_or_lot_is_suppressed(seed, gateway):
    seed(
        make_vehicle("1FMCU93184KA46160", is_hidden=True),
        make_vehicle("2T1BURHE0JC012345"),
        make_lot(1, "2T1BURHE0JC012345", is_hidden=True),
    )
    resolver = VehicleResolver(gateway)
    for vin in ("1FMCU93184KA46160", "2T1BURHE0JC012345"):
        resolution = await resolver.resolve(vin)
        assert resolution.state is ResolutionState.SUPPRESSED
        assert resolution.status_code == 410
        assert resolution.headers() == {"Cache-Control": CACHE_CONTROL_NEGATIVE}


@pytest.mark.asyncio
async def test_fresh_vehicle_payload(vehicle, gateway):
    resolution = await VehicleResolver(gateway).resolve(VIN.lower(), "ru")
    assert resolution.state is ResolutionState.FRESH
    body = resolution.body

    assert body["vin"] == VIN
    assert body["lang"] == "ru"
    assert [img["seq"] for img in body["images"]] == [1, 2]
    assert body["images"][0]["lot_id"] == 500
    assert body["currentLot"]["lotId"] == 500
    assert body["currentLot"]["damageLabel"] == "Передняя часть"
    assert body["currentLot"]["primaryImageUrl"] == "https://img/1.webp"
    assert body["currentLot"]["imageCount"] == 2
    assert body["currentLot"]["odometer"] == 120000.0
    assert len(body["saleEvents"]) == 10
    assert body["saleEvents"][0]["price_usd"] == 1011.0
    assert body["bodyLabel"] == "SEDAN 4D"

    headers = resolution.headers()
    assert headers["Cache-Control"] == CACHE_CONTROL_FRESH
    assert headers["ETag"].startswith('W/"')
    assert headers["Last-Modified"] == "Fri, 03 May 2024 08:30:00 GMT"
    assert [f.name for f in fields(resolution)] == ["state", "vin", "body", "etag", "last_modified", "reason"]


@pytest.mark.asyncio
async def test_etag_is_deterministic_and_drives_304(vehicle, gateway):
    resolver = VehicleResolver(gateway)
    first = await resolver.resolve(VIN)
    second = await resolver.resolve(VIN)
    assert first.etag == second.etag == weak_etag(first.body)

    not_modified = await resolver.resolve(VIN, if_none_match=first.etag)
    assert not_modified.state is ResolutionState.NOT_MODIFIED
    assert not_modified.status_code == 304
    assert not_modified.headers()["ETag"] == first.etag

    changed = await resolver.resolve(VIN, if_none_match='W/"something-else"')
    assert changed.state is ResolutionState.FRESH

    other_lang = await resolver.resolve(VIN, "ru", if_none_match=first.etag)
    assert other_lang.state is ResolutionState.FRESH


@pytest.mark.asyncio
async def test_if_modified_since_only_without_if_none_match(vehicle, gateway):
    resolver = VehicleResolver(gateway)
    later = "Sat, 04 May 2024 00:00:00 GMT"
    earlier = "Thu, 02 May 2024 00:00:00 GMT"

    assert (await resolver.resolve(VIN, if_modified_since=later)).state is ResolutionState.NOT_MODIFIED
    assert (await resolver.resolve(VIN, if_modified_since=earlier)).state is ResolutionState.FRESH
    assert (await resolver.resolve(VIN, if_modified_since="not a date")).state is ResolutionState.FRESH
    mismatched = await resolver.resolve(VIN, if_none_match='W/"nope"', if_modified_since=later)
    assert mismatched.state is ResolutionState.FRESH


def test_etag_matches():
    etag = 'W/"abc"'
    assert etag_matches('W/"abc"', etag)
    assert etag_matches('"abc"', etag)
    assert etag_matches('W/"zzz", W/"abc"', etag)
    assert etag_matches("*", etag)
    assert not etag_matches('W/"zzz"', etag)
    assert not etag_matches(None, etag)
