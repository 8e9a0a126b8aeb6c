"""
pickup_api/core/http_client.py
Shared async httpx client.
  • apple_client() → client for apple.com buy pages + fulfillment API
No retries anywhere: a failed fetch is reported to the caller as-is.
"""

import httpx
from pickup_api.core.config import APPLE_HEADERS

_apple_client: httpx.AsyncClient | None = None

_LIMITS  = httpx.Limits(max_connections=10, max_keepalive_connections=5)
_TIMEOUT = httpx.Timeout(30.0, connect=15.0)


def apple_client() -> httpx.AsyncClient:
    global _apple_client
    if _apple_client is None or _apple_client.is_closed:
        _apple_client = httpx.AsyncClient(
            headers=APPLE_HEADERS,
            timeout=_TIMEOUT,
            follow_redirects=True,
            limits=_LIMITS,
        )
    return _apple_client


def set_apple_client(client: httpx.AsyncClient | None) -> None:
    """Swap the shared client (tests install one backed by httpx.MockTransport)."""
    global _apple_client
    _apple_client = client


async def close_all() -> None:
    if _apple_client and not _apple_client.is_closed:
        await _apple_client.aclose()
