"""
pickup_api/core/config.py
═══════════════════════════════════════════════════════════════════════════════
UPSTREAM:

  apple.com/{region}/shop/buy-iphone/{family}   →  part numbers (script#metrics)
  apple.com/{region}/shop/fulfillment-messages  →  per-store pickup availability

Region, seeds and families come from the environment on every call so a
deploy (or a test) can change them without a restart. Everything else is a
module constant, read once at import.
═══════════════════════════════════════════════════════════════════════════════
"""

import os
import pytz

# ── Upstream defaults ─────────────────────────────────────────────────────────
DEFAULT_APPLE_BASE     = "https://www.apple.com"
DEFAULT_REGION_PATH    = "/tw"
DEFAULT_LOCATION_SEEDS = ["Taiwan"]
DEFAULT_FAMILIES       = ["iphone-17", "iphone-17-pro", "iphone-air"]

APPLE_HEADERS = {
    "User-Agent":      "Mozilla/5.0 (compatible; iPhoneAvailabilityWorker/1.0)",
    "Accept-Language": "zh-TW,zh;q=0.9,en;q=0.8",
}

# Store hours are published in the retail region's local time
STORE_TZ = pytz.timezone(os.environ.get("STORE_TZ", "Asia/Taipei"))

# ── Durable snapshot ──────────────────────────────────────────────────────────
KV_DIR         = os.environ.get("KV_DIR", ".kv")
SNAPSHOT_KEY   = "availability.latest"
SNAPSHOT_TTL_S = 15 * 60    # safety expiry, well above the refresh period

# ── Periodic refresh ──────────────────────────────────────────────────────────
REFRESH_INTERVAL_S = int(os.environ.get("REFRESH_INTERVAL_S", str(5 * 60)))
SCHEDULER_ENABLED  = os.environ.get("SCHEDULER_ENABLED", "1").lower() not in ("0", "false", "no")


def _csv(value: str) -> list[str]:
    return [s.strip() for s in value.split(",") if s.strip()]


def get_config() -> dict:
    """Upstream settings, env overrides first, hardcoded fallbacks second."""
    seeds    = _csv(os.environ.get("LOCATION_SEEDS", ""))
    families = _csv(os.environ.get("FAMILIES", ""))
    return {
        "apple_base":     os.environ.get("APPLE_BASE") or DEFAULT_APPLE_BASE,
        "region_path":    os.environ.get("REGION_PATH") or DEFAULT_REGION_PATH,
        "location_seeds": seeds or list(DEFAULT_LOCATION_SEEDS),
        "families":       families or list(DEFAULT_FAMILIES),
    }


def shop_url(conf: dict, path: str) -> str:
    """'/shop/buy-iphone/iphone-17' → 'https://www.apple.com/tw/shop/buy-iphone/iphone-17'"""
    return f"{conf['apple_base'].rstrip('/')}{conf['region_path']}{path}"
