"""
pickup_api/core/snapshot.py
═══════════════════════════════════════════════════════════════════════════════
Snapshot build + two-tier read path.

  Read path for GET /api/availability:

    forced ─────────────► rebuild now → KV → edge          (source=fresh)
    edge hit ───────────► cached response as stored
    KV hit ─────────────► KV snapshot                      (source=kv)
                          + background: seed edge, rebuild → KV → edge
    nothing ────────────► empty placeholder                (source=warmup)
                          + background: rebuild → KV → edge

  Background work rides on FastAPI BackgroundTasks: it runs after the
  response is sent and is not awaited by the client. A failed background
  rebuild is logged and leaves both tiers as they were.

  Two requests that both miss both tiers will both rebuild; last write wins.
═══════════════════════════════════════════════════════════════════════════════
"""

import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from fastapi import BackgroundTasks
from starlette.responses import Response

from pickup_api.core.cache import ResponseCache
from pickup_api.core.config import SNAPSHOT_KEY, SNAPSHOT_TTL_S, get_config
from pickup_api.core.kv import FileKVStore
from pickup_api.scrapers.buy_page import discover_parts
from pickup_api.scrapers.fulfillment import fetch_all_stores, merge_stores, normalize_availability

log = logging.getLogger("snapshot")

CACHE_ONLY_PARAMS = ("force", "refresh")

# Entry cached once a cold-start rebuild lands
WARMUP_REFRESH_TTLS = {"browser_max_age": 5, "edge_max_age": 60, "swr": 300}


def _utc_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


# ── Build ─────────────────────────────────────────────────────────────────────

async def build_snapshot(conf: Optional[dict] = None) -> dict:
    conf  = conf or get_config()
    parts = await discover_parts(conf)
    store_lists  = await fetch_all_stores(conf, [p["partNumber"] for p in parts])
    stores       = merge_stores(store_lists)
    availability = normalize_availability(stores, parts)
    return {
        "generatedAt":  _utc_iso(),
        "models":       parts,
        "stores":       [
            {"storeNumber": s.get("storeNumber"), "storeName": s.get("storeName"), "city": s.get("city")}
            for s in stores
        ],
        "availability": availability,
    }


async def refresh_snapshot(kv: FileKVStore) -> dict:
    """Rebuild and persist. Errors propagate to the caller."""
    payload = await build_snapshot()
    await asyncio.to_thread(kv.put, SNAPSHOT_KEY, payload, ttl=SNAPSHOT_TTL_S)
    log.info(
        f"Snapshot refreshed: {len(payload['models'])} models, "
        f"{len(payload['stores'])} stores, {len(payload['availability'])} records"
    )
    return payload


def placeholder_snapshot() -> dict:
    return {"generatedAt": _utc_iso(), "models": [], "stores": [], "availability": []}


def tagged(source: str, payload: dict) -> dict:
    return {"source": source, **{k: v for k, v in payload.items() if k != "source"}}


# ── Response shaping ──────────────────────────────────────────────────────────

def has_availability(payload: dict) -> bool:
    records = payload.get("availability") if isinstance(payload, dict) else None
    if not isinstance(records, list):
        return False
    return any(a.get("isBuyable") or a.get("status") == "available" for a in records if a)


def compute_ttls(payload: dict) -> dict:
    """Availability is volatile → shorter edge/SWR windows than 'nothing in stock'."""
    avail = has_availability(payload)
    return {"browser_max_age": 0, "edge_max_age": 10 if avail else 20, "swr": 60 if avail else 90}


def cache_control(ttls: dict) -> str:
    return (
        f"public, max-age={ttls['browser_max_age']}, "
        f"s-maxage={ttls['edge_max_age']}, stale-while-revalidate={ttls['swr']}"
    )


def make_json(payload: dict, ttls: dict) -> Response:
    return Response(
        content=json.dumps(payload, ensure_ascii=False),
        media_type="application/json; charset=utf-8",
        headers={
            "Access-Control-Allow-Origin": "*",
            "Cache-Control":               cache_control(ttls),
        },
    )


def cache_key(url: str) -> str:
    """Request URL without the params that only steer caching."""
    parts = urlsplit(str(url))
    query = urlencode([(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True)
                       if k not in CACHE_ONLY_PARAMS])
    return urlunsplit((parts.scheme, parts.netloc, parts.path, query, ""))


def is_forced(params) -> bool:
    return params.get("force") == "1" or params.get("refresh") == "1"


# ── Background repairs ────────────────────────────────────────────────────────

async def refresh_and_cache(kv: FileKVStore, edge: ResponseCache, key: str,
                            ttls: Optional[dict] = None) -> None:
    """Rebuild → KV → edge. Best effort: failures keep the previous tiers."""
    try:
        fresh = tagged("fresh", await refresh_snapshot(kv))
        edge.put(key, make_json(fresh, ttls or compute_ttls(fresh)))
    except Exception as ex:
        log.error(f"Background refresh failed: {ex}")


def seed_edge(edge: ResponseCache, key: str, response: Response) -> None:
    edge.put(key, response)


# ── Read path ─────────────────────────────────────────────────────────────────

async def serve_forced(kv: FileKVStore, edge: ResponseCache, key: str) -> Response:
    fresh = tagged("fresh", await refresh_snapshot(kv))
    res   = make_json(fresh, compute_ttls(fresh))
    edge.put(key, res)
    return res


def serve_durable(snapshot: dict, background: BackgroundTasks, kv: FileKVStore,
                  edge: ResponseCache, key: str) -> Response:
    payload = tagged("kv", snapshot)
    res     = make_json(payload, compute_ttls(payload))
    background.add_task(seed_edge, edge, key, res)
    background.add_task(refresh_and_cache, kv, edge, key)
    return res


def serve_warmup(background: BackgroundTasks, kv: FileKVStore,
                 edge: ResponseCache, key: str) -> Response:
    background.add_task(refresh_and_cache, kv, edge, key, WARMUP_REFRESH_TTLS)
    warm = tagged("warmup", placeholder_snapshot())
    return make_json(warm, compute_ttls(warm))


async def serve_availability(url: str, force: bool, background: BackgroundTasks,
                             kv: FileKVStore, edge: ResponseCache) -> Response:
    key = cache_key(url)

    if force:
        return await serve_forced(kv, edge, key)

    hit = edge.match(key)
    if hit is not None:
        return hit

    snapshot = await asyncio.to_thread(kv.get, SNAPSHOT_KEY)
    if snapshot:
        return serve_durable(snapshot, background, kv, edge, key)

    return serve_warmup(background, kv, edge, key)
