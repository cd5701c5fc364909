from dataclasses import replace
from datetime import datetime

import pytest

from backend.app.core.errors import InvalidCursorError, ValidationError
from backend.app.db import models
from backend.app.services.cache import MemoryCacheClient, ResponseCache
from backend.app.services.cursor import VALID_SORTS, split_sort
from backend.app.services.search import (
    CACHE_CONTROL_BROAD,
    CACHE_CONTROL_NARROW,
    SearchService,
    parse_search_params,
    search_cache_control,
)
from backend.tests.factories import make_lot, make_vehicle

# vin -> values of each sort key on the row the search returns
RECORDS = {
    "1FMCU93184KA46160": {
        "year": 2018,
        "auction_date": datetime(2024, 6, 1, 17, 0),
        "created_at": datetime(2024, 5, 1, 10, 0),
        "updated_at": datetime(2024, 5, 2, 10, 0),
    },
    "2T1BURHE0JC012345": {
        "year": 2018,
        "auction_date": datetime(2024, 6, 3, 17, 0),
        "created_at": datetime(2024, 5, 3, 10, 0),
        "updated_at": datetime(2024, 5, 1, 10, 0),
    },
    "3VWDX7AJ5DM123456": {
        "year": 2013,
        "auction_date": None,
        "created_at": datetime(2024, 5, 2, 10, 0),
        "updated_at": datetime(2024, 5, 5, 10, 0),
    },
    "4T1BF1FK5CU123456": {
        "year": None,
        "auction_date": datetime(2024, 6, 1, 17, 0),
        "created_at": datetime(2024, 5, 1, 10, 0),
        "updated_at": None,
    },
    "5YJSA1E26HF123456": {"year": 2020, "auction_date": None, "created_at": None, "updated_at": None},
}


def expected_order(sort):
    key, direction = split_sort(sort)
    present = sorted((vin for vin, r in RECORDS.items() if r[key] is not None))
    present.sort(key=lambda vin: RECORDS[vin][key], reverse=direction == "desc")
    missing = sorted(vin for vin, r in RECORDS.items() if r[key] is None)
    return present + missing


@pytest.fixture
def catalog(seed):
    seed(
        make_vehicle("1FMCU93184KA46160", year=2018, body="SPORTS V", trim="SE"),
        make_vehicle("2T1BURHE0JC012345", year=2018, make="TOYOTA", model="TUNDRA", body="CREW PIC"),
        make_vehicle("3VWDX7AJ5DM123456", year=2013, model="FOCUS", trim="", model_detail="TITANIUM"),
        make_vehicle("4T1BF1FK5CU123456", year=None),
        make_vehicle("5YJSA1E26HF123456", year=2020),
        make_vehicle("6HIDDEN0000000001", is_hidden=True),
        make_vehicle("7HIDDENLOT0000001"),
        # older lot for the first VIN; only the current one may surface
        make_lot(90, "1FMCU93184KA46160", auction_datetime_utc=datetime(2023, 1, 1), status="sold"),
        make_lot(
            101,
            "1FMCU93184KA46160",
            auction_datetime_utc=datetime(2024, 6, 1, 17, 0),
            created_at=datetime(2024, 5, 1, 10, 0),
            updated_at=datetime(2024, 5, 2, 10, 0),
            damage_description="FRONT END",
            retail_value_usd=12500,
        ),
        make_lot(
            102,
            "2T1BURHE0JC012345",
            auction_datetime_utc=datetime(2024, 6, 3, 17, 0),
            created_at=datetime(2024, 5, 3, 10, 0),
            updated_at=datetime(2024, 5, 1, 10, 0),
            site_code="TX-HO",
        ),
        make_lot(
            103,
            "3VWDX7AJ5DM123456",
            auction_datetime_utc=None,
            created_at=datetime(2024, 5, 2, 10, 0),
            updated_at=datetime(2024, 5, 5, 10, 0),
            status="sold",
        ),
        make_lot(
            104,
            "4T1BF1FK5CU123456",
            auction_datetime_utc=datetime(2024, 6, 1, 17, 0),
            created_at=datetime(2024, 5, 1, 10, 0),
            updated_at=None,
        ),
        make_lot(105, "6HIDDEN0000000001"),
        make_lot(106, "7HIDDENLOT0000001", is_hidden=True),
        models.Image(vin="1FMCU93184KA46160", lot_id=101, seq=2, url="https://img/2.webp"),
        models.Image(vin="1FMCU93184KA46160", lot_id=101, seq=1, url="https://img/1.webp"),
        models.Image(vin="1FMCU93184KA46160", lot_id=101, seq=3, url="https://img/3.webp", is_removed=True),
        models.Image(vin="1FMCU93184KA46160", lot_id=90, seq=1, url="https://img/old.webp"),
        models.Taxonomy(domain="statuses", code="status_active", en="Active", ru="Активен"),
        models.Taxonomy(domain="damage_types", code="damage_front_end", en="Front End", ru="Передняя часть"),
    )


async def collect_all(service, params):
    vins, pages = [], 0
    while True:
        body = await service.search(params)
        pages += 1
        vins += [item["vin"] for item in body["items"]]
        cursor = body["pagination"]["nextCursor"]
        if not body["pagination"]["hasMore"]:
            assert cursor is None
            return vins, pages
        params = replace(params, cursor=cursor)


@pytest.mark.asyncio
@pytest.mark.parametrize("sort", VALID_SORTS)
async def test_every_sort_pages_in_total_order_with_nulls_last(catalog, gateway, sort):
    service = SearchService(gateway)
    params = parse_search_params({"sort": sort, "limit": "2"})
    vins, pages = await collect_all(service, params)
    assert vins == expected_order(sort)
    assert pages == 3


@pytest.mark.asyncio
async def test_limit_two_over_three_records(seed, gateway):
    seed(*[make_vehicle(vin, year=2015) for vin in ("AAAAAAAAAAA", "BBBBBBBBBBB", "CCCCCCCCCCC")])
    service = SearchService(gateway)
    params = parse_search_params({"sort": "year_desc", "limit": "2"})

    first = await service.search(params)
    assert [i["vin"] for i in first["items"]] == ["AAAAAAAAAAA", "BBBBBBBBBBB"]
    assert first["pagination"]["hasMore"] is True
    assert first["pagination"]["count"] == 2

    second = await service.search(replace(params, cursor=first["pagination"]["nextCursor"]))
    assert [i["vin"] for i in second["items"]] == ["CCCCCCCCCCC"]
    assert second["pagination"] == {"nextCursor": None, "hasMore": False, "count": 1}


@pytest.mark.asyncio
async def test_items_use_current_lot_and_skip_hidden(catalog, gateway):
    service = SearchService(gateway)
    body = await service.search(parse_search_params({"limit": "50", "lang": "ru"}))
    items = {item["vin"]: item for item in body["items"]}

    assert set(items) == set(RECORDS)
    first = items["1FMCU93184KA46160"]
    assert first["lotId"] == 101
    assert first["primaryImageUrl"] == "https://img/1.webp"
    assert first["imageCount"] == 2
    assert first["statusLabel"] == "Активен"
    assert first["damageLabel"] == "Передняя часть"
    assert first["estRetailValueUsd"] == 12500.0
    assert first["bodyLabel"] == "SPORTS V"
    assert items["5YJSA1E26HF123456"]["lotId"] is None
    assert items["5YJSA1E26HF123456"]["imageCount"] == 0
    assert body["lang"] == "ru"


@pytest.mark.asyncio
async def test_filters(catalog, gateway):
    service = SearchService(gateway)

    async def vins(query):
        body = await service.search(parse_search_params({**query, "limit": "50"}))
        return sorted(item["vin"] for item in body["items"])

    assert await vins({"make": "toyota"}) == ["2T1BURHE0JC012345"]
    assert await vins({"vehicle_type": "pickup"}) == ["2T1BURHE0JC012345"]
    assert "2T1BURHE0JC012345" not in await vins({"type": "auto"})
    assert "4T1BF1FK5CU123456" in await vins({"type": "auto"})
    assert await vins({"model_detail": "se"}) == ["1FMCU93184KA46160"]
    assert await vins({"model_detail": "TITANIUM"}) == ["3VWDX7AJ5DM123456"]
    assert await vins({"status": "SOLD"}) == ["3VWDX7AJ5DM123456"]
    assert await vins({"site_code": "tx-ho"}) == ["2T1BURHE0JC012345"]
    assert await vins({"year_min": "2018", "year_max": "2018"}) == ["1FMCU93184KA46160", "2T1BURHE0JC012345"]


@pytest.mark.asyncio
async def test_cursor_bound_to_filters_and_sort(catalog, gateway):
    service = SearchService(gateway)
    params = parse_search_params({"make": "FORD", "sort": "year_desc", "limit": "1"})
    token = (await service.search(params))["pagination"]["nextCursor"]
    assert token

    with pytest.raises(InvalidCursorError):
        await service.search(replace(params, make="TOYOTA", cursor=token))
    with pytest.raises(InvalidCursorError):
        await service.search(replace(params, sort="year_asc", cursor=token))
    with pytest.raises(InvalidCursorError):
        await service.search(replace(params, cursor="garbage"))

    # a different page size keeps the cursor valid
    body = await service.search(replace(params, limit=10, cursor=token))
    assert body["pagination"]["hasMore"] is False


@pytest.mark.asyncio
async def test_first_page_served_from_cache(catalog, seed, gateway):
    cache = ResponseCache(MemoryCacheClient())
    service = SearchService(gateway, cache)
    params = parse_search_params({"limit": "50"})

    first = await service.search(params)
    await cache.drain()
    seed(make_vehicle("8NEWVEHICLE000001"))
    second = await service.search(params)
    assert second == first

    uncached = await SearchService(gateway).search(params)
    assert len(uncached["items"]) == len(first["items"]) + 1


def test_parse_search_params_normalizes():
    params = parse_search_params(
        {"make": " ford ", "status": "ACTIVE", "limit": "500", "sort": "price_asc", "type": "Moto"}
    )
    assert params.make == "FORD"
    assert params.status == "active"
    assert params.limit == 100
    assert params.sort == "updated_at_desc"
    assert params.vehicle_type == "moto"
    assert parse_search_params({"limit": "0"}).limit == 1
    assert parse_search_params({"limit": "abc"}).limit == 20
    assert parse_search_params({"vehicle_type": "spaceship"}).vehicle_type is None
    assert parse_search_params({}, "ru-RU").lang == "ru"


@pytest.mark.parametrize(
    "query",
    [
        {"year_min": "1899"},
        {"year_max": "2101"},
        {"year_min": "twenty"},
        {"year_min": "2020", "year_max": "2010"},
    ],
)
def test_parse_search_params_rejects_bad_years(query):
    with pytest.raises(ValidationError):
        parse_search_params(query)


def test_cache_control_depends_on_filter_count():
    assert search_cache_control(parse_search_params({})) == CACHE_CONTROL_BROAD
    assert search_cache_control(parse_search_params({"make": "FORD", "model": "ESCAPE"})) == CACHE_CONTROL_BROAD
    narrow = parse_search_params({"make": "FORD", "model": "ESCAPE", "year_min": "2010"})
    assert search_cache_control(narrow) == CACHE_CONTROL_NARROW
