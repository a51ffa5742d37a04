from __future__ import annotations

import asyncio
import json
import logging
import re
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, List, Optional


logger = logging.getLogger(__name__)

CACHE_VERSION = 1
DEFAULT_MAX_BYTES = 50 * 1024 * 1024
TRIM_TARGET = 0.8

_SAFE_KEY_RE = re.compile(r"[^A-Za-z0-9_.-]+")


@dataclass(frozen=True)
class CacheEntry:
    key: str
    timestamp: float  # epoch seconds
    payload: Any
    source: str = ""

    def age_s(self, now: float) -> float:
        return now - self.timestamp

    def is_fresh(self, ttl_s: float, now: float) -> bool:
        return self.age_s(now) <= ttl_s


class DiskCache:
    """One JSON file per logical dataset.

    Best effort: unreadable entries count as misses, and the directory is
    trimmed oldest-first whenever it grows past ``max_bytes``.
    """

    def __init__(
        self,
        cache_dir: Path,
        *,
        max_bytes: int = DEFAULT_MAX_BYTES,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.cache_dir = Path(cache_dir)
        self.max_bytes = int(max_bytes)
        self._clock = clock

    def _path_for_key(self, key: str) -> Path:
        return self.cache_dir / f"{_SAFE_KEY_RE.sub('_', key)}.json"

    def _read(self, key: str) -> Optional[CacheEntry]:
        path = self._path_for_key(key)
        if not path.exists():
            return None
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            return None
        if not isinstance(raw, dict) or raw.get("v") != CACHE_VERSION:
            return None
        ts = raw.get("ts")
        if not isinstance(ts, (int, float)):
            return None
        return CacheEntry(key=key, timestamp=float(ts), payload=raw.get("payload"), source=str(raw.get("source") or ""))

    def _write(self, entry: CacheEntry) -> None:
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        body = {"v": CACHE_VERSION, "ts": entry.timestamp, "source": entry.source, "payload": entry.payload}
        self._path_for_key(entry.key).write_text(json.dumps(body), encoding="utf-8")
        self._trim()

    def _trim(self) -> List[Path]:
        files = [p for p in self.cache_dir.glob("*.json") if p.is_file()]
        total = sum(p.stat().st_size for p in files)
        if total <= self.max_bytes:
            return []
        target = self.max_bytes * TRIM_TARGET
        removed: List[Path] = []
        for p in sorted(files, key=lambda p: p.stat().st_mtime):
            if total <= target:
                break
            size = p.stat().st_size
            p.unlink(missing_ok=True)
            total -= size
            removed.append(p)
        logger.info("Cache over budget; removed %d oldest entries", len(removed))
        return removed

    async def get(self, key: str, ttl_s: float) -> Optional[CacheEntry]:
        """Fresh entry or None. Expired entries stay on disk for :meth:`get_stale`."""
        entry = await asyncio.to_thread(self._read, key)
        if entry is None or not entry.is_fresh(ttl_s, self._clock()):
            return None
        return entry

    async def get_stale(self, key: str) -> Optional[CacheEntry]:
        return await asyncio.to_thread(self._read, key)

    async def set(self, key: str, payload: Any, *, source: str = "") -> CacheEntry:
        entry = CacheEntry(key=key, timestamp=self._clock(), payload=payload, source=source)
        await asyncio.to_thread(self._write, entry)
        return entry

