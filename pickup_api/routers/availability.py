"""
pickup_api/routers/availability.py
Endpoints:
  GET /api/availability           → snapshot from edge cache / KV / warm-up
  GET /api/availability?force=1   → synchronous rebuild (also ?refresh=1)

Response body:
{
    "source":       "kv" | "fresh" | "warmup",
    "generatedAt":  ISO-8601,
    "models":       [{"name","partNumber","sku","family","price"}],
    "stores":       [{"storeNumber","storeName","city"}],
    "availability": [{"store","part","status","isBuyable","pickupType","pickupQuote"}]
}
"""

from fastapi import APIRouter, BackgroundTasks, Depends, Request

from pickup_api.core.cache import ResponseCache, get_edge_cache
from pickup_api.core.kv import FileKVStore, get_kv
from pickup_api.core.snapshot import is_forced, serve_availability

router = APIRouter(prefix="/api", tags=["availability"])


@router.get("/availability")
async def get_availability(
    request: Request,
    background_tasks: BackgroundTasks,
    kv:   FileKVStore   = Depends(get_kv),
    edge: ResponseCache = Depends(get_edge_cache),
):
    return await serve_availability(
        str(request.url),
        is_forced(request.query_params),
        background_tasks,
        kv,
        edge,
    )
