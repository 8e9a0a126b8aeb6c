"""
pickup_api/core/kv.py
═══════════════════════════════════════════════════════════════════════════
Durable key-value store: one JSON file per key under KV_DIR.
  • put() writes to a temp file then os.replace() → readers never see a
    half-written snapshot
  • Every value may carry an expiry; expired entries read as missing and
    are removed on the read that notices them
  • Only the latest value per key is kept, no history
═══════════════════════════════════════════════════════════════════════════
"""

import json
import os
import re
import tempfile
import time
from pathlib import Path
from typing import Any, Optional

from pickup_api.core.config import KV_DIR

_UNSAFE = re.compile(r"[^A-Za-z0-9._-]")


class FileKVStore:
    def __init__(self, root: str | os.PathLike = KV_DIR):
        self.root = Path(root)

    def _path(self, key: str) -> Path:
        return self.root / f"{_UNSAFE.sub('_', key)}.json"

    def get(self, key: str) -> Optional[Any]:
        path = self._path(key)
        try:
            entry = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        expires = entry.get("expiresAt")
        if expires is not None and time.time() >= expires:
            path.unlink(missing_ok=True)
            return None
        return entry["value"]

    def put(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        entry = {
            "value":     value,
            "expiresAt": time.time() + ttl if ttl else None,
        }
        fd, tmp = tempfile.mkstemp(dir=self.root, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(entry, f, ensure_ascii=False)
            os.replace(tmp, self._path(key))
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

    def delete(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)


_kv: FileKVStore | None = None


def get_kv() -> FileKVStore:
    global _kv
    if _kv is None:
        _kv = FileKVStore()
    return _kv
