"""Fulfillment fetch, store merge and availability normalization."""

import asyncio
from datetime import datetime

from conftest import part_availability, raw_store
from pickup_api.core.config import STORE_TZ, get_config
from pickup_api.scrapers.fulfillment import (
    DEFAULT_PICKUP_QUOTE,
    DEFAULT_PICKUP_TYPE,
    fetch_all_stores,
    fulfillment_params,
    hours_rows,
    maps_url,
    merge_stores,
    normalize_availability,
    normalize_store,
    phone_href,
    store_key,
)

NOW = STORE_TZ.localize(datetime(2026, 10, 21, 15, 0))   # Wednesday afternoon

PARTS = [
    {"name": "iPhone 17 256GB 黑色", "partNumber": "P1", "sku": None, "family": "iphone-17", "price": 29900},
    {"name": "iPhone 17 Pro 256GB 銀色", "partNumber": "P2", "sku": None, "family": "iphone-17-pro", "price": 39900},
]


class TestFulfillmentParams:
    def test_query_shape(self):
        params = fulfillment_params(["P1", "P2"], "台北")
        assert params == {
            "pl": "true",
            "mt": "regular",
            "searchNearby": "true",
            "location": "台北",
            "parts.0": "P1",
            "parts.1": "P2",
        }


class TestFetchAllStores:
    def test_collects_seeds_in_order(self, fake_apple):
        fake_apple.seed("台北", [raw_store("R713", "Apple 信義 A13")])
        fake_apple.seed("高雄", [raw_store("R694", "Apple 台北 101"), raw_store("R713", "Apple 信義 A13")])

        lists = asyncio.run(fetch_all_stores(get_config(), ["P1", "P2"]))

        assert [[s["storeNumber"] for s in lst] for lst in lists] == [["R713"], ["R694", "R713"]]
        calls = fake_apple.fulfillment_calls()
        assert [c.url.params["location"] for c in calls] == ["台北", "高雄"]
        assert calls[0].url.params["parts.1"] == "P2"
        assert calls[0].url.params["mt"] == "regular"

    def test_failed_seed_is_skipped(self, fake_apple):
        fake_apple.seed("台北", [], status=500)
        fake_apple.seed("高雄", [raw_store("R694", "Apple 台北 101")])

        lists = asyncio.run(fetch_all_stores(get_config(), ["P1"]))

        assert [s["storeNumber"] for s in lists[0]] == ["R694"]
        assert len(lists) == 1

    def test_unparseable_body_is_skipped(self, fake_apple):
        fake_apple.seed("台北", "<html>oops</html>")
        fake_apple.seed("高雄", [raw_store("R694", "Apple 台北 101")])

        lists = asyncio.run(fetch_all_stores(get_config(), ["P1"]))

        assert len(lists) == 1

    def test_non_object_body_means_no_stores(self, fake_apple):
        fake_apple.seed("台北", "null")
        fake_apple.seed("高雄", [raw_store("R694", "Apple 台北 101")])

        lists = asyncio.run(fetch_all_stores(get_config(), ["P1"]))

        assert [[s["storeNumber"] for s in lst] for lst in lists] == [["R694"]]

    def test_list_body_means_no_stores(self, fake_apple):
        fake_apple.seed("台北", "[1, 2]")
        fake_apple.seed("高雄", [raw_store("R694", "Apple 台北 101")])

        lists = asyncio.run(fetch_all_stores(get_config(), ["P1"]))

        assert len(lists) == 1
        assert lists[0][0]["storeNumber"] == "R694"

    def test_empty_and_missing_stores(self, fake_apple):
        fake_apple.seed("台北", {"body": {"content": {}}})
        fake_apple.seed("高雄", [])

        assert asyncio.run(fetch_all_stores(get_config(), ["P1"])) == []


class TestMergeStores:
    def test_dedupe_by_store_number_first_seed_wins(self):
        a = [raw_store("R713", "Apple 信義 A13", city="first")]
        b = [raw_store("R713", "Apple 信義 A13", city="second"), raw_store("R694", "Apple 台北 101")]
        merged = merge_stores([a, b])
        assert [s["storeNumber"] for s in merged] == ["R713", "R694"]
        assert merged[0]["city"] == "first"

    def test_composite_key_without_store_number(self):
        s1 = raw_store(None, "Apple 信義 A13", city="台北市")
        s2 = raw_store(None, "Apple 信義 A13", city="台北市")
        s3 = raw_store(None, "Apple 信義 A13", city="新北市")
        assert store_key(s1) == "TW:台北市:Apple 信義 A13"
        assert len(merge_stores([[s1], [s2, s3]])) == 2


class TestNormalizeStore:
    def test_hours_rows_from_all_sources(self):
        raw = {
            "storeHours": {"hours": [{"storeDays": "週一-週五", "storeTimings": "10:00 - 21:00"}]},
            "retailStore": {"storeHours": [{"days": "週六", "timings": "10:00 - 22:00"}]},
        }
        assert hours_rows(raw) == [
            {"storeDays": "週一-週五", "storeTimings": "10:00 - 21:00"},
            {"storeDays": "週六", "storeTimings": "10:00 - 22:00"},
        ]
        assert hours_rows({"storeHours": [{"days": "週日", "timings": "11:00 - 20:00"}]}) == [
            {"storeDays": "週日", "storeTimings": "11:00 - 20:00"},
        ]

    def test_fields(self):
        raw = raw_store(
            "R713", "Apple 信義 A13",
            phoneNumber="(02) 8729-5900",
            address={"address2": "台北市信義區松壽路 11 號", "address3": "1F"},
            hoursUrl="https://apple.test/tw/retail/xinyia13",
            storelatitude=25.036, storelongitude=121.567,
            storeImageUrl="https://apple.test/img.png",
            storeHours={"hours": [{"storeDays": "週一-週日:", "storeTimings": "上午11:00 - 下午9:30"}]},
        )
        store = normalize_store(raw, NOW)
        assert store["storeNumber"] == "R713"
        assert store["address"] == "台北市信義區松壽路 11 號 1F"
        assert store["url"] == "https://apple.test/tw/retail/xinyia13"
        assert store["image"] == "https://apple.test/img.png"
        assert store["isOpen"] is True
        assert store["todayHours"] == "上午11:00 - 下午9:30"
        assert store["phoneHref"] == "tel:0287295900"
        assert store["mapsUrl"].startswith("https://maps.apple.com/?ll=25.036%2C121.567&q=Apple%20")

    def test_retail_store_fallbacks(self):
        raw = raw_store(
            "R694", "Apple 台北 101",
            retailStore={
                "phoneNumber": "+886 2 8101 8800",
                "address": {"street": "台北市信義區市府路 45 號"},
                "latitude": 25.033, "longitude": 121.564,
            },
        )
        store = normalize_store(raw, NOW)
        assert store["phoneNumber"] == "+886 2 8101 8800"
        assert store["phoneHref"] == "tel:+886281018800"
        assert store["address"] == "台北市信義區市府路 45 號"
        assert store["latitude"] == 25.033

    def test_no_hours_means_closed(self):
        store = normalize_store(raw_store("R1", "Apple 測試"), NOW)
        assert store["isOpen"] is False
        assert store["todayHours"] is None

    def test_no_phone_no_coordinates(self):
        store = normalize_store(raw_store("R1", "Apple 測試", address={"address2": "某路 1 號"}), NOW)
        assert "phoneHref" not in store
        assert store["mapsUrl"].startswith("https://www.google.com/maps/search/?api=1&query=")

    def test_no_location_at_all(self):
        store = normalize_store({"storeNumber": "R9"}, NOW)
        assert "mapsUrl" not in store


class TestLinks:
    def test_maps_url_prefers_coordinates(self):
        assert maps_url("Apple 101", "addr", 25.0, 121.5) == (
            "https://maps.apple.com/?ll=25.0%2C121.5&q=Apple%20101"
        )

    def test_maps_url_text_search(self):
        assert maps_url(None, "市府路 45 號", None, None) == (
            "https://www.google.com/maps/search/?api=1&query="
            "Apple%20Store%20%E5%B8%82%E5%BA%9C%E8%B7%AF%2045%20%E8%99%9F"
        )

    def test_maps_url_nothing(self):
        assert maps_url(None, None, None, None) is None

    def test_phone_href(self):
        assert phone_href("02-2345-6789 ext. 1") == "tel:02234567891"
        assert phone_href("") is None
        assert phone_href(None) is None


class TestNormalizeAvailability:
    def test_record_per_reported_pair(self):
        stores = [
            raw_store("R713", "Apple 信義 A13", parts={
                "P1": part_availability(True, quote="今天", display="available"),
                "P2": part_availability(False, display="unavailable"),
            }),
            raw_store("R694", "Apple 台北 101", parts={
                "P2": part_availability(True),
            }),
        ]
        records = normalize_availability(stores, PARTS, now=NOW)

        pairs = [(r["store"]["storeNumber"], r["part"]["partNumber"]) for r in records]
        assert pairs == [("R713", "P1"), ("R713", "P2"), ("R694", "P2")]

        first = records[0]
        assert first["status"] == "available"
        assert first["isBuyable"] is True
        assert first["pickupQuote"] == "今天"
        assert first["pickupType"] == DEFAULT_PICKUP_TYPE
        assert first["part"] == PARTS[0]

    def test_status_derived_from_buyability(self):
        stores = [raw_store("R1", "A", parts={
            "P1": part_availability(True),
            "P2": part_availability(False),
        })]
        records = normalize_availability(stores, PARTS, now=NOW)
        assert [r["status"] for r in records] == ["available", "unavailable"]
        assert [r["isBuyable"] for r in records] == [True, False]

    def test_quote_fallbacks(self):
        stores = [raw_store("R1", "A", parts={
            "P1": {"messageTypes": {"regular": {"storePickupQuote": "明天可取貨"}}},
            "P2": {"pickupType": "店內取貨 (預約)"},
        })]
        records = normalize_availability(stores, PARTS, now=NOW)
        assert records[0]["pickupQuote"] == "明天可取貨"
        assert records[1]["pickupQuote"] == DEFAULT_PICKUP_QUOTE
        assert records[1]["pickupType"] == "店內取貨 (預約)"
        assert records[1]["isBuyable"] is False

    def test_unknown_parts_and_empty_entries_ignored(self):
        stores = [raw_store("R1", "A", parts={"OTHER": part_availability(True), "P1": {}})]
        assert normalize_availability(stores, PARTS, now=NOW) == []

    def test_store_embedded_is_normalized_once(self):
        stores = [raw_store("R1", "A", parts={
            "P1": part_availability(True),
            "P2": part_availability(True),
        })]
        records = normalize_availability(stores, PARTS, now=NOW)
        assert records[0]["store"] is records[1]["store"]
        assert "partsAvailability" not in records[0]["store"]
