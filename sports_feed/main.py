from __future__ import annotations

import argparse
import asyncio
import json
import logging
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from .cache import DiskCache
from .config import FeedConfig
from .eviction import fixture_status
from .orchestrator import Orchestrator, RefreshResult, build_default_sources
from .store import FeedDocument, JsonFileStore
from .util import now_utc


MODES = ("full", "fetch", "football", "ufc", "cleanup", "status", "show")


def _uk_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not a YYYY-MM-DD date: {value!r}") from None


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="sports-feed",
        description="Refresh, clean up and inspect the stored football fixtures and UFC events",
    )
    p.add_argument("mode", nargs="?", default="full", choices=MODES, help="What to run (default: full)")
    p.add_argument("--data", default=None, help="Path of the JSON data document")
    p.add_argument("--cache-dir", default=None, help="Response cache directory")
    p.add_argument(
        "--date", type=_uk_date, default=None, help="UK date for the football refresh (YYYY-MM-DD, default: today)"
    )
    p.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return p


def describe_document(doc: FeedDocument, now: datetime, config: FeedConfig) -> Dict[str, List[Dict[str, Any]]]:
    football = [
        {
            "date": f.date.isoformat(),
            "time": f.time,
            "match": f"{f.team_a} v {f.team_b}",
            "competition": f.competition,
            "channels": list(f.display_channels),
            "status": fixture_status(
                f, now, live_window=config.live_window, soon_window=config.soon_window
            ).value,
        }
        for f in sorted(doc.football_matches, key=lambda f: (f.date, f.time))
    ]
    ufc = [
        {
            "title": e.title,
            "date": e.date.isoformat(),
            "venue": e.venue,
            "broadcast": e.broadcast,
            "ukPrelimTime": e.uk_prelim_time,
            "ukMainCardTime": e.uk_main_card_time,
        }
        for e in sorted(doc.ufc_events, key=lambda e: e.main_card_start_utc)
    ]
    return {"footballMatches": football, "ufcEvents": ufc}


def _report(label: str, result: RefreshResult) -> None:
    print(f"{label}: {json.dumps(result.to_dict())}")


async def run(args: argparse.Namespace) -> int:
    config = FeedConfig.from_env(
        data_path=Path(args.data) if args.data else None,
        cache_dir=Path(args.cache_dir) if args.cache_dir else None,
    )
    store = JsonFileStore(config.data_path)

    if args.mode == "status":
        orch = Orchestrator(store=store, config=config)
        print(json.dumps(await orch.status(), indent=2))
        return 0
    if args.mode == "show":
        doc = await store.load()
        print(json.dumps(describe_document(doc, now_utc(), config), indent=2))
        return 0

    football_sources, ufc_sources = build_default_sources(config)
    orch = Orchestrator(
        store=store,
        cache=DiskCache(config.cache_dir, max_bytes=config.cache_max_bytes),
        football_sources=football_sources,
        ufc_sources=ufc_sources,
        config=config,
    )

    ok = True
    try:
        if args.mode in ("full", "fetch"):
            football, ufc = await orch.refresh_all(args.date)
            _report("football", football)
            _report("ufc", ufc)
            ok = football.success and ufc.success
        elif args.mode == "football":
            football = await orch.refresh_football(args.date)
            _report("football", football)
            ok = football.success
        elif args.mode == "ufc":
            ufc = await orch.refresh_ufc()
            _report("ufc", ufc)
            ok = ufc.success

        if args.mode in ("full", "cleanup"):
            cleaned = await orch.cleanup()
            print(f"cleanup: {json.dumps(cleaned.to_dict())}")
            ok = ok and cleaned.success
    finally:
        await orch.aclose()

    return 0 if ok else 1


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return asyncio.run(run(args))


if __name__ == "__main__":
    raise SystemExit(main())
