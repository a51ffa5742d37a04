from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol, TypeVar

from .models import SOURCE_DEFAULT, Bout, FootballFixture, UFCEvent
from .util import isoformat_z, parse_iso_datetime


logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class FeedDocument:
    football_matches: List[FootballFixture] = field(default_factory=list)
    ufc_events: List[UFCEvent] = field(default_factory=list)
    last_cleanup: Optional[datetime] = None
    last_fetch: Optional[datetime] = None
    last_ufc_fetch: Optional[datetime] = None


def fixture_to_dict(f: FootballFixture) -> Dict[str, Any]:
    return {
        "id": f.id,
        "time": f.time,
        "date": f.date.isoformat(),
        "teamA": f.team_a,
        "teamB": f.team_b,
        "competition": f.competition,
        "channels": list(f.channels),
        "source": f.source,
    }


def dict_to_fixture(d: Dict[str, Any]) -> FootballFixture:
    return FootballFixture(
        id=str(d.get("id") or ""),
        time=str(d["time"]),
        date=date.fromisoformat(str(d["date"])),
        team_a=str(d["teamA"]),
        team_b=str(d["teamB"]),
        competition=str(d.get("competition") or ""),
        channels=tuple(str(c) for c in d.get("channels") or []),
        source=str(d.get("source") or SOURCE_DEFAULT),
    )


def bout_to_dict(b: Bout) -> Dict[str, Any]:
    return {"fighter1": b.fighter1, "fighter2": b.fighter2, "weightClass": b.weight_class, "title": b.title}


def dict_to_bout(d: Dict[str, Any]) -> Bout:
    return Bout(
        fighter1=str(d["fighter1"]),
        fighter2=str(d["fighter2"]),
        weight_class=str(d.get("weightClass") or "TBD"),
        title=str(d.get("title") or ""),
    )


def event_to_dict(e: UFCEvent) -> Dict[str, Any]:
    return {
        "id": e.id,
        "title": e.title,
        "date": e.date.isoformat(),
        "mainCardStartUTC": isoformat_z(e.main_card_start_utc),
        "prelimStartUTC": isoformat_z(e.prelim_start_utc) if e.prelim_start_utc else None,
        "venue": e.venue,
        "broadcast": e.broadcast,
        "mainCard": [bout_to_dict(b) for b in e.main_card],
        "prelimCard": [bout_to_dict(b) for b in e.prelim_card],
        "earlyPrelimCard": [bout_to_dict(b) for b in e.early_prelim_card],
        "source": e.source,
        "externalId": e.external_id,
        # Display only; recomputed on load.
        "ukMainCardTime": e.uk_main_card_time,
        "ukPrelimTime": e.uk_prelim_time,
    }


def dict_to_event(d: Dict[str, Any]) -> UFCEvent:
    prelim = d.get("prelimStartUTC")
    return UFCEvent(
        id=str(d.get("id") or ""),
        title=str(d["title"]),
        date=date.fromisoformat(str(d["date"])),
        main_card_start_utc=parse_iso_datetime(str(d["mainCardStartUTC"])),
        prelim_start_utc=parse_iso_datetime(str(prelim)) if prelim else None,
        venue=str(d.get("venue") or ""),
        broadcast=str(d.get("broadcast") or ""),
        main_card=tuple(dict_to_bout(b) for b in d.get("mainCard") or []),
        prelim_card=tuple(dict_to_bout(b) for b in d.get("prelimCard") or []),
        early_prelim_card=tuple(dict_to_bout(b) for b in d.get("earlyPrelimCard") or []),
        source=str(d.get("source") or SOURCE_DEFAULT),
        external_id=str(d["externalId"]) if d.get("externalId") else None,
    )


def decode_records(raw: Iterable[Any], decode: Callable[[Dict[str, Any]], T]) -> List[T]:
    """Decode what can be decoded; malformed records are dropped."""
    out: List[T] = []
    skipped = 0
    for d in raw or []:
        if not isinstance(d, dict):
            skipped += 1
            continue
        try:
            out.append(decode(d))
        except (KeyError, TypeError, ValueError):
            skipped += 1
    if skipped:
        logger.warning("Skipped %d malformed stored records", skipped)
    return out


def _ts(value: Optional[datetime]) -> Optional[str]:
    return isoformat_z(value) if value else None


def _parse_ts(value: Any) -> Optional[datetime]:
    if not value:
        return None
    try:
        return parse_iso_datetime(str(value))
    except ValueError:
        return None


def document_to_dict(doc: FeedDocument) -> Dict[str, Any]:
    return {
        "footballMatches": [fixture_to_dict(f) for f in doc.football_matches],
        "ufcEvents": [event_to_dict(e) for e in doc.ufc_events],
        "lastCleanup": _ts(doc.last_cleanup),
        "lastFetch": _ts(doc.last_fetch),
        "lastUFCFetch": _ts(doc.last_ufc_fetch),
    }


def dict_to_document(d: Dict[str, Any]) -> FeedDocument:
    return FeedDocument(
        football_matches=decode_records(d.get("footballMatches") or [], dict_to_fixture),
        ufc_events=decode_records(d.get("ufcEvents") or [], dict_to_event),
        last_cleanup=_parse_ts(d.get("lastCleanup")),
        last_fetch=_parse_ts(d.get("lastFetch")),
        last_ufc_fetch=_parse_ts(d.get("lastUFCFetch")),
    )


def loads_document(text: str) -> FeedDocument:
    try:
        raw = json.loads(text)
    except ValueError:
        logger.warning("Stored document is not valid JSON; starting empty")
        return FeedDocument()
    if not isinstance(raw, dict):
        return FeedDocument()
    return dict_to_document(raw)


def dumps_document(doc: FeedDocument) -> str:
    return json.dumps(document_to_dict(doc), indent=2)


class DataStore(Protocol):
    async def load(self) -> FeedDocument: ...

    async def save(self, doc: FeedDocument) -> bool: ...


class JsonFileStore:
    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def _read(self) -> FeedDocument:
        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return FeedDocument()
        except OSError as e:
            logger.warning("Could not read %s: %s", self.path, e)
            return FeedDocument()
        return loads_document(text)

    def _write(self, text: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(text, encoding="utf-8")
        tmp.replace(self.path)

    async def load(self) -> FeedDocument:
        return await asyncio.to_thread(self._read)

    async def save(self, doc: FeedDocument) -> bool:
        try:
            await asyncio.to_thread(self._write, dumps_document(doc))
        except OSError as e:
            logger.error("Failed to write %s: %s", self.path, e)
            return False
        return True


class MemoryStore:
    """Key-value style store with an optional byte quota, like browser storage."""

    def __init__(self, *, quota_bytes: Optional[int] = None, initial: Optional[str] = None) -> None:
        self.quota_bytes = quota_bytes
        self.blob: Optional[str] = initial
        self.writes = 0

    async def load(self) -> FeedDocument:
        if self.blob is None:
            return FeedDocument()
        return loads_document(self.blob)

    async def save(self, doc: FeedDocument) -> bool:
        text = dumps_document(doc)
        if self.quota_bytes is not None and len(text.encode("utf-8")) > self.quota_bytes:
            logger.error("Store quota exceeded (%d bytes > %d)", len(text.encode("utf-8")), self.quota_bytes)
            return False
        self.blob = text
        self.writes += 1
        return True
