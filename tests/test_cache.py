from __future__ import annotations

import asyncio
import os
from pathlib import Path
from typing import List

from sports_feed.cache import DiskCache


def test_fresh_expired_and_stale(tmp_path: Path) -> None:
    now: List[float] = [1000.0]
    cache = DiskCache(tmp_path, clock=lambda: now[0])

    async def scenario() -> None:
        await cache.set("football_matches_2025-06-15", [{"teamA": "Arsenal"}], source="football-site")

        now[0] += 900
        fresh = await cache.get("football_matches_2025-06-15", 900)
        assert fresh is not None
        assert fresh.payload == [{"teamA": "Arsenal"}]
        assert fresh.source == "football-site"

        now[0] += 1
        assert await cache.get("football_matches_2025-06-15", 900) is None

        stale = await cache.get_stale("football_matches_2025-06-15")
        assert stale is not None
        assert stale.age_s(now[0]) == 901
        assert await cache.get_stale("ufc_events_latest") is None

    asyncio.run(scenario())


def test_unreadable_entry_is_a_miss(tmp_path: Path) -> None:
    (tmp_path / "ufc_events_latest.json").write_text("{oops", encoding="utf-8")
    cache = DiskCache(tmp_path)

    assert asyncio.run(cache.get_stale("ufc_events_latest")) is None


def test_byte_budget_trims_oldest_first(tmp_path: Path) -> None:
    cache = DiskCache(tmp_path, clock=lambda: 1000.0)
    payload = [{"title": "x" * 100}]

    async def scenario() -> None:
        await cache.set("a", payload)
        size = (tmp_path / "a.json").stat().st_size
        cache.max_bytes = int(size * 2.5)

        await cache.set("b", payload)
        os.utime(tmp_path / "a.json", (1000, 1000))
        os.utime(tmp_path / "b.json", (2000, 2000))

        await cache.set("c", payload)

    asyncio.run(scenario())

    assert not (tmp_path / "a.json").exists()
    assert (tmp_path / "b.json").exists()
    assert (tmp_path / "c.json").exists()
