"""
pickup_api/core/cache.py
═══════════════════════════════════════════════════════════════════════════
Response (edge) cache, the fast tier in front of the durable snapshot.
  • Keyed by canonical request URL (cache-only query params stripped)
  • Stores status + body + headers, never a live Response object
  • Entry lifetime = the s-maxage of the stored Cache-Control header
  • Expired entries are dropped on every put; at most EDGE_MAX_ENTRIES are
    kept, oldest evicted first
  • Writes are protected by a threading lock → atomic replace, never partial
═══════════════════════════════════════════════════════════════════════════
"""

import re
import time
import threading
from typing import Optional

from starlette.responses import Response

_S_MAXAGE = re.compile(r"s-maxage=(\d+)")
EDGE_MAX_ENTRIES = 256


def edge_ttl(headers) -> int:
    """Seconds an edge copy may be served, taken from s-maxage (0 if absent)."""
    m = _S_MAXAGE.search(headers.get("cache-control", ""))
    return int(m.group(1)) if m else 0


class ResponseCache:
    def __init__(self, max_entries: int = EDGE_MAX_ENTRIES):
        self._store: dict[str, dict] = {}
        self._lock  = threading.Lock()
        self.max_entries = max_entries

    def match(self, key: str) -> Optional[Response]:
        """Fresh copy of the cached response, or None if missing/expired."""
        with self._lock:
            e = self._store.get(key)
            if e and time.time() - e["ts"] >= e["ttl"]:
                del self._store[key]
                e = None
        if not e:
            return None
        return Response(
            content=e["body"],
            status_code=e["status"],
            headers=e["headers"],
        )

    def put(self, key: str, response: Response) -> None:
        headers = {
            k: v for k, v in response.headers.items() if k.lower() != "content-length"
        }
        ttl = edge_ttl(response.headers)
        if ttl <= 0:
            return
        now = time.time()
        with self._lock:
            self._store.pop(key, None)
            self._purge(now)
            while self._store and len(self._store) >= self.max_entries:
                del self._store[next(iter(self._store))]
            self._store[key] = {
                "status":  response.status_code,
                "body":    bytes(response.body),
                "headers": headers,
                "ts":      now,
                "ttl":     ttl,
            }

    def _purge(self, now: float) -> None:
        """Drop every expired entry. Caller holds the lock."""
        for k in [k for k, e in self._store.items() if now - e["ts"] >= e["ttl"]]:
            del self._store[k]

    def delete(self, key: str) -> None:
        with self._lock:
            self._store.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._store.clear()

    def summary(self) -> dict:
        """Metadata only: keys and ages."""
        with self._lock:
            return {k: {"age_s": round(time.time() - v["ts"], 1)} for k, v in self._store.items()}


_edge = ResponseCache()


def get_edge_cache() -> ResponseCache:
    return _edge
