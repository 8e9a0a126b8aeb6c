"""
pickup_api/core/scheduler.py
═══════════════════════════════════════════════════════════════════════════════
Periodic snapshot refresh, independent of traffic.

  1. ONE scheduler instance ever (guarded by _running flag)
  2. Every REFRESH_INTERVAL_S: rebuild → KV; the result is discarded
  3. Failed refresh → logged, previous KV snapshot stays until its TTL
  4. KV TTL (15 min) outlives several missed ticks

For an external cron instead of the in-process loop:
    python -m pickup_api.core.scheduler
═══════════════════════════════════════════════════════════════════════════════
"""

import asyncio
import logging
import time

from pickup_api.core.config import REFRESH_INTERVAL_S
from pickup_api.core.http_client import close_all
from pickup_api.core.kv import FileKVStore, get_kv
from pickup_api.core.snapshot import refresh_snapshot

log = logging.getLogger("scheduler")

_running = False


async def scheduled_refresh(kv: FileKVStore | None = None) -> bool:
    """One refresh tick. Returns True when the snapshot was persisted."""
    t0 = time.time()
    try:
        await refresh_snapshot(kv or get_kv())
    except Exception as ex:
        log.error(f"Scheduled refresh error: {ex}")
        return False
    log.info(f"Scheduled refresh complete in {time.time() - t0:.1f}s")
    return True


async def run_scheduler() -> None:
    """
    Called once at startup. Runs indefinitely.
    Never starts a second instance, guarded by the _running flag.
    """
    global _running
    if _running:
        log.warning("Scheduler already running, ignoring duplicate start")
        return
    _running = True
    log.info(f"Scheduler started (every {REFRESH_INTERVAL_S}s)")

    try:
        while True:
            await asyncio.sleep(REFRESH_INTERVAL_S)
            await scheduled_refresh()
    finally:
        _running = False


async def _main() -> None:
    try:
        ok = await scheduled_refresh()
    finally:
        await close_all()
    raise SystemExit(0 if ok else 1)


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    asyncio.run(_main())
