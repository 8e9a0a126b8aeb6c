"""
pickup_api/scrapers/fulfillment.py
═══════════════════════════════════════════════════════════════════════════════
Apple fulfillment-messages API → per-store pickup availability.

One request per location seed, all parts at once, retail pickup only.
Seeds run one after another in configured order; a failing seed is logged
and contributes no stores. Stores seen from several seeds are merged by
storeNumber (first seed wins), then every store × part pair that upstream
reports on becomes one availability record.
═══════════════════════════════════════════════════════════════════════════════
"""

import logging
import re
from datetime import datetime
from typing import Optional
from urllib.parse import quote

import httpx

from pickup_api.core.config import get_config, shop_url
from pickup_api.core.hours import compute_open_now, local_now
from pickup_api.core.http_client import apple_client
from pickup_api.scrapers.buy_page import ScrapeError

log = logging.getLogger("fulfillment")

DEFAULT_PICKUP_TYPE  = "店內取貨"
DEFAULT_PICKUP_QUOTE = "目前無法提供"

# encodeURIComponent leaves these alone; map links stay readable
_URI_SAFE = "-_.!~*'()"


# ── Fetch ─────────────────────────────────────────────────────────────────────

def fulfillment_params(part_numbers: list[str], seed: str) -> dict:
    params = {
        "pl":           "true",
        "mt":           "regular",
        "searchNearby": "true",
        "location":     seed,
    }
    for idx, pn in enumerate(part_numbers):
        params[f"parts.{idx}"] = pn
    return params


async def fetch_seed_stores(conf: dict, part_numbers: list[str], seed: str) -> list[dict]:
    url  = shop_url(conf, "/shop/fulfillment-messages")
    resp = await apple_client().get(url, params=fulfillment_params(part_numbers, seed))
    if not resp.is_success:
        raise ScrapeError(f"fulfillment API failed ({seed}): {resp.status_code}")
    data = resp.json()
    if not isinstance(data, dict):
        return []
    stores = (((data.get("body") or {}).get("content") or {}).get("pickupMessage") or {}).get("stores")
    return stores or []


async def fetch_all_stores(conf: Optional[dict], part_numbers: list[str]) -> list[list[dict]]:
    conf = conf or get_config()
    store_lists = []
    for seed in conf["location_seeds"]:
        try:
            stores = await fetch_seed_stores(conf, part_numbers, seed)
        except (ScrapeError, httpx.HTTPError, ValueError) as ex:
            log.warning(f"Seed {seed!r} skipped: {ex}")
            continue
        log.info(f"Seed {seed!r}: {len(stores)} stores")
        if stores:
            store_lists.append(stores)
    return store_lists


# ── Merge ─────────────────────────────────────────────────────────────────────

def store_key(store: dict) -> str:
    return store.get("storeNumber") or (
        f"{store.get('country')}:{store.get('city')}:{store.get('storeName')}"
    )


def merge_stores(store_lists: list[list[dict]]) -> list[dict]:
    merged: dict[str, dict] = {}
    for stores in store_lists:
        for s in stores:
            merged.setdefault(store_key(s), s)
    return list(merged.values())


# ── Normalize ─────────────────────────────────────────────────────────────────

def hours_rows(raw: dict) -> list[dict]:
    rows = []
    store_hours = raw.get("storeHours")
    if isinstance(store_hours, dict) and isinstance(store_hours.get("hours"), list):
        rows.extend(store_hours["hours"])
    if isinstance(store_hours, list):
        rows.extend(store_hours)
    retail_hours = (raw.get("retailStore") or {}).get("storeHours")
    if isinstance(retail_hours, list):
        rows.extend(retail_hours)
    return [
        {
            "storeDays":    r.get("storeDays") or r.get("days"),
            "storeTimings": r.get("storeTimings") or r.get("timings"),
        }
        for r in rows
        if isinstance(r, dict)
    ]


def _address(raw: dict) -> Optional[str]:
    addr = raw.get("address") or {}
    if addr.get("address2"):
        extra = addr.get("address3")
        return f"{addr['address2']} {extra}" if extra else addr["address2"]
    return ((raw.get("retailStore") or {}).get("address") or {}).get("street")


def maps_url(name: Optional[str], address: Optional[str], lat, lon) -> Optional[str]:
    """Apple Maps pin when coordinates are known, else a Google Maps text search."""
    label = name or "Apple Store"
    if lat and lon:
        return (
            f"https://maps.apple.com/?ll={quote(f'{lat},{lon}', safe=_URI_SAFE)}"
            f"&q={quote(label, safe=_URI_SAFE)}"
        )
    if address or name:
        return (
            "https://www.google.com/maps/search/?api=1&query="
            + quote(f"{label} {address or ''}", safe=_URI_SAFE)
        )
    return None


def phone_href(phone) -> Optional[str]:
    if not phone:
        return None
    return "tel:" + re.sub(r"[^+\d]", "", str(phone))


def normalize_store(raw: dict, now: datetime) -> dict:
    retail = raw.get("retailStore") or {}
    store = {
        "storeNumber": raw.get("storeNumber"),
        "storeName":   raw.get("storeName"),
        "city":        raw.get("city"),
        "phoneNumber": raw.get("phoneNumber") or retail.get("phoneNumber"),
        "address":     _address(raw),
        "url":         raw.get("hoursUrl") or raw.get("makeReservationUrl") or raw.get("reservationUrl"),
        "latitude":    raw.get("storelatitude") or retail.get("latitude"),
        "longitude":   raw.get("storelongitude") or retail.get("longitude"),
        "image":       raw.get("storeImageUrl"),
        "hoursRows":   hours_rows(raw),
    }
    store["isOpen"], store["todayHours"] = compute_open_now(store["hoursRows"], now)

    link = maps_url(store["storeName"], store["address"], store["latitude"], store["longitude"])
    if link:
        store["mapsUrl"] = link
    tel = phone_href(store["phoneNumber"])
    if tel:
        store["phoneHref"] = tel
    return store


def _record(store: dict, part: dict, pa: dict) -> dict:
    buyable = bool((pa.get("buyability") or {}).get("isBuyable"))
    regular = (pa.get("messageTypes") or {}).get("regular") or {}
    return {
        "store":       store,
        "part":        part,
        "status":      pa.get("pickupDisplay") or ("available" if buyable else "unavailable"),
        "isBuyable":   buyable,
        "pickupType":  pa.get("pickupType") or DEFAULT_PICKUP_TYPE,
        "pickupQuote": pa.get("pickupSearchQuote") or regular.get("storePickupQuote") or DEFAULT_PICKUP_QUOTE,
    }


def normalize_availability(stores: list[dict], parts: list[dict], now: Optional[datetime] = None) -> list[dict]:
    """One record per (store, part) that upstream reports; silence means no record."""
    now = now or local_now()
    out = []
    for raw in stores:
        store = normalize_store(raw, now)
        pa_map = raw.get("partsAvailability") or {}
        for part in parts:
            pa = pa_map.get(part["partNumber"])
            if pa:
                out.append(_record(store, part, pa))
    return out
