from __future__ import annotations

import asyncio
import json
from datetime import date, datetime, timezone
from pathlib import Path

from sports_feed.models import Bout, FootballFixture, UFCEvent
from sports_feed.store import FeedDocument, JsonFileStore, MemoryStore, dumps_document, loads_document


NOW = datetime(2025, 6, 15, 10, 0, tzinfo=timezone.utc)


def _document() -> FeedDocument:
    return FeedDocument(
        football_matches=[
            FootballFixture(
                time="15:00",
                date=date(2025, 6, 15),
                team_a="Arsenal",
                team_b="Chelsea",
                competition="Premier League",
                channels=("Sky Sports Premier League",),
                id="abc@football",
            )
        ],
        ufc_events=[
            UFCEvent(
                title="UFC 318: Holloway vs Poirier",
                date=date(2025, 7, 19),
                main_card_start_utc=datetime(2025, 7, 20, 2, 0, tzinfo=timezone.utc),
                main_card=(Bout("Max Holloway", "Dustin Poirier", "Lightweight", "Main Event"),),
                external_id="ufc-318",
                id="def@ufc",
            )
        ],
        last_fetch=NOW,
    )


def test_json_file_store_round_trip(tmp_path: Path) -> None:
    store = JsonFileStore(tmp_path / "data" / "feed.json")
    doc = _document()

    assert asyncio.run(store.save(doc)) is True
    loaded = asyncio.run(store.load())

    assert loaded == doc
    raw = json.loads((tmp_path / "data" / "feed.json").read_text(encoding="utf-8"))
    assert raw["lastFetch"] == "2025-06-15T10:00:00Z"
    assert raw["lastCleanup"] is None
    event = raw["ufcEvents"][0]
    assert event["mainCardStartUTC"] == "2025-07-20T02:00:00Z"
    assert event["ukMainCardTime"] == "03:00 (Sun)"
    assert event["ukPrelimTime"] == "01:00 (Sun)"
    assert raw["footballMatches"][0]["teamA"] == "Arsenal"


def test_missing_or_corrupt_file_loads_empty(tmp_path: Path) -> None:
    assert asyncio.run(JsonFileStore(tmp_path / "nope.json").load()) == FeedDocument()

    broken = tmp_path / "broken.json"
    broken.write_text("{not json", encoding="utf-8")
    assert asyncio.run(JsonFileStore(broken).load()) == FeedDocument()


def test_malformed_records_are_skipped() -> None:
    raw = json.loads(dumps_document(_document()))
    raw["footballMatches"].append({"time": "TBC", "date": "2025-06-15", "teamA": "X", "teamB": "Y"})
    raw["footballMatches"].append({"teamA": "No time"})
    raw["footballMatches"].append("not a record")
    raw["ufcEvents"].append({"title": "UFC 999", "date": "2025-07-19", "mainCardStartUTC": "2025-07-20T02:00:00"})

    doc = loads_document(json.dumps(raw))

    assert len(doc.football_matches) == 1
    # Naive instants are read as UTC.
    assert len(doc.ufc_events) == 2
    assert doc.ufc_events[1].main_card_start_utc == datetime(2025, 7, 20, 2, 0, tzinfo=timezone.utc)


def test_unwritable_path_reports_failure(tmp_path: Path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("", encoding="utf-8")

    store = JsonFileStore(blocker / "feed.json")

    assert asyncio.run(store.save(_document())) is False


def test_memory_store_quota() -> None:
    store = MemoryStore(quota_bytes=50)
    assert asyncio.run(store.save(_document())) is False
    assert store.blob is None

    roomy = MemoryStore()
    assert asyncio.run(roomy.save(_document())) is True
    assert asyncio.run(roomy.load()) == _document()
