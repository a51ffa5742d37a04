from __future__ import annotations

import json
import logging
import re
from dataclasses import replace
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from bs4 import BeautifulSoup

from .models import (
    DEFAULT_BROADCAST,
    DEFAULT_VENUE,
    PRELIM_OFFSET,
    SOURCE_UFC_SEARCH,
    Bout,
    UFCEvent,
)
from .util import clean_text, uk_local_to_utc


logger = logging.getLogger(__name__)

# US evening cards land in the early UK morning of the following day.
EARLY_MORNING_CUTOFF_HOUR = 6
DEFAULT_MAIN_CARD_UK = "03:00"

_MONTH = (
    r"(Jan(?:uary)?|Feb(?:ruary)?|Mar(?:ch)?|Apr(?:il)?|May|June?|July?|Aug(?:ust)?"
    r"|Sep(?:t(?:ember)?)?|Oct(?:ober)?|Nov(?:ember)?|Dec(?:ember)?)"
)
_MONTHS = {m: i for i, m in enumerate(
    ("jan", "feb", "mar", "apr", "may", "jun", "jul", "aug", "sep", "oct", "nov", "dec"), start=1
)}
_STOP = r"(?!(?:Mon|Tue|Wed|Thu|Fri|Sat|Sun|Jan|Feb|Mar|Apr|May|Jun|Jul|Aug|Sep|Oct|Nov|Dec)[a-z]*\b)"
_NAME = rf"{_STOP}[A-ZÀ-Ý][\w.'-]*(?:\s+{_STOP}[A-ZÀ-Ý][\w.'-]*){{0,3}}"

TITLE_RE = re.compile(rf"UFC\s+(?:\d{{2,3}}\b|Fight\s+Night\b)(?:\s*:\s*{_NAME}\s+vs\.?\s+{_NAME})?")

DATE_PATTERNS = [
    ("iso", re.compile(r"\b(\d{4})-(\d{2})-(\d{2})\b")),
    ("dmy", re.compile(rf"\b(\d{{1,2}})(?:st|nd|rd|th)?\s+(?:of\s+)?{_MONTH}\.?,?\s+(\d{{4}})\b", re.IGNORECASE)),
    ("mdy", re.compile(rf"\b{_MONTH}\.?\s+(\d{{1,2}})(?:st|nd|rd|th)?,?\s+(\d{{4}})\b", re.IGNORECASE)),
    ("numeric", re.compile(r"\b(\d{1,2})/(\d{1,2})/(\d{4})\b")),
]

UK_TIME_RE = re.compile(
    r"\b(\d{1,2})(?:[:.](\d{2}))?\s*(am|pm)?\s*\(?(?:UK|BST|GMT)\b",
    re.IGNORECASE,
)

_VENUE_WORD = r"(?!(?:Sports?|Pass|Card|Prelims?|Main|Live)\b)[A-Z][a-z][\w.'&-]*"
VENUE_RE = re.compile(
    rf"(UFC APEX|(?:{_VENUE_WORD}\s+){{1,3}}(?:Arena|Center|Centre|Garden|Stadium|Dome|Hall|Pavilion)\b)"
)
BROADCAST_RE = re.compile(r"\b(TNT Sports(?: \d)?|BT Sport|UFC Fight Pass|discovery\+)", re.IGNORECASE)

EVENT_LINK_RE = re.compile(r"/event/([a-z0-9-]+)", re.IGNORECASE)

_TITLE_SUFFIXES = [
    re.compile(r"\s*\|\s*[^|]*$"),
    re.compile(r"\s*[-–]\s*UFC(?:\.com)?\s*$", re.IGNORECASE),
]
_TITLE_PREFIX = re.compile(r"^\s*UFC\s*:\s*", re.IGNORECASE)


def clean_title(title: str) -> str:
    out = clean_text(title)
    for pat in _TITLE_SUFFIXES:
        out = pat.sub("", out)
    cleaned = _TITLE_PREFIX.sub("", out).strip()
    return cleaned or out


def find_date(text: str) -> Optional[Tuple[int, date]]:
    """Earliest recognisable calendar date in ``text`` as (position, date)."""
    best: Optional[Tuple[int, date]] = None
    for kind, pat in DATE_PATTERNS:
        for m in pat.finditer(text):
            try:
                if kind == "iso":
                    d = date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
                elif kind == "dmy":
                    d = date(int(m.group(3)), _MONTHS[m.group(2)[:3].lower()], int(m.group(1)))
                elif kind == "mdy":
                    d = date(int(m.group(3)), _MONTHS[m.group(1)[:3].lower()], int(m.group(2)))
                else:
                    d = date(int(m.group(3)), int(m.group(2)), int(m.group(1)))
            except ValueError:
                continue
            if best is None or m.start() < best[0]:
                best = (m.start(), d)
            break
    return best


def _clock(m: re.Match[str]) -> Optional[str]:
    hour = int(m.group(1))
    minute = int(m.group(2) or 0)
    meridiem = (m.group(3) or "").lower()
    if meridiem == "pm" and hour < 12:
        hour += 12
    elif meridiem == "am" and hour == 12:
        hour = 0
    if hour > 23 or minute > 59:
        return None
    return f"{hour:02d}:{minute:02d}"


def find_uk_times(text: str) -> Dict[str, str]:
    """First main-card and prelim clock times marked UK/BST/GMT, keyed "main" / "prelim"."""
    found: Dict[str, str] = {}
    for m in UK_TIME_RE.finditer(text):
        clock = _clock(m)
        if clock is None:
            continue
        # The nearest label before the time decides which card it belongs to.
        lead = text[max(0, m.start() - 40):m.start()].lower()
        prelim_at = lead.rfind("prelim")
        if prelim_at > lead.rfind("main"):
            early_at = lead.rfind("early prelim")
            if early_at != -1 and early_at + len("early ") == prelim_at:
                continue
            slot = "prelim"
        else:
            slot = "main"
        found.setdefault(slot, clock)
    return found


def uk_clock_to_utc(listed: date, clock: str) -> datetime:
    day = listed
    if int(clock[:2]) < EARLY_MORNING_CUTOFF_HOUR:
        day = listed + timedelta(days=1)
    return uk_local_to_utc(day, clock)


def _start_from_iso(value: Any) -> Optional[Tuple[date, datetime]]:
    if not value:
        return None
    try:
        dt = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    listed = dt.date()
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return listed, dt.astimezone(timezone.utc)


def _as_list(value: Any) -> List[Any]:
    return value if isinstance(value, list) else []


def _bouts(raw: Any) -> Tuple[Bout, ...]:
    out: List[Bout] = []
    for b in _as_list(raw):
        if not isinstance(b, dict):
            continue
        fighters = b.get("fighters")
        if not isinstance(fighters, list):
            fighters = [b.get("fighter1"), b.get("fighter2")]
        if len(fighters) < 2 or not fighters[0] or not fighters[1]:
            continue
        out.append(
            Bout(
                fighter1=clean_text(str(fighters[0])),
                fighter2=clean_text(str(fighters[1])),
                weight_class=clean_text(str(b.get("weightClass") or b.get("weight_class") or "")) or "TBD",
                title=clean_text(str(b.get("title") or "")),
            )
        )
    return tuple(out)


class EventParser:
    """Turn a UFC source response into events.

    Search-API JSON (``items``) and structured event JSON are preferred; anything
    else is treated as a page whose text is scanned for titles, dates and UK times.
    """

    def __init__(self, *, source: str = SOURCE_UFC_SEARCH) -> None:
        self.source = source

    def parse(self, raw: Union[str, Dict[str, Any], List[Any]]) -> List[UFCEvent]:
        data: Any = raw
        if isinstance(raw, str):
            try:
                data = json.loads(raw)
            except ValueError:
                data = None

        if isinstance(data, dict) and "items" in data:
            events = self.parse_search_items(_as_list(data.get("items")))
        elif isinstance(data, dict) and "events" in data:
            events = self.parse_structured(_as_list(data.get("events")))
        elif isinstance(data, list):
            events = self.parse_structured(data)
        elif data is None:
            events = self.parse_text(self._page_text(str(raw)))
        else:
            logger.debug("Unrecognised JSON payload from %s", self.source)
            events = []

        logger.info("Parsed %d UFC events (%s)", len(events), self.source)
        return events

    @staticmethod
    def _page_text(html: str) -> str:
        soup = BeautifulSoup(html, "lxml")
        for tag in soup(["script", "style", "noscript"]):
            tag.decompose()
        return clean_text(soup.get_text(" "))

    def _event(
        self,
        title: str,
        listed: date,
        main_utc: datetime,
        *,
        venue: str = "",
        broadcast: str = "",
        external_id: Optional[str] = None,
        prelim_utc: Optional[datetime] = None,
        cards: Optional[Dict[str, Any]] = None,
    ) -> Optional[UFCEvent]:
        cards = cards or {}
        try:
            return UFCEvent(
                title=clean_title(title),
                date=listed,
                main_card_start_utc=main_utc,
                venue=clean_text(venue) or DEFAULT_VENUE,
                broadcast=clean_text(broadcast) or DEFAULT_BROADCAST,
                main_card=_bouts(cards.get("mainCard")),
                prelim_card=_bouts(cards.get("prelimCard")),
                early_prelim_card=_bouts(cards.get("earlyPrelimCard")),
                source=self.source,
                external_id=external_id,
                prelim_start_utc=prelim_utc,
            )
        except ValueError:
            return None

    def parse_structured(self, items: Iterable[Any]) -> List[UFCEvent]:
        out: List[UFCEvent] = []
        for ev in items:
            if not isinstance(ev, dict):
                continue
            title = str(ev.get("title") or ev.get("name") or "")
            start = _start_from_iso(ev.get("mainCardStart") or ev.get("startDate") or ev.get("start"))
            if start is None and ev.get("date"):
                listed = _start_from_iso(ev.get("date"))
                if listed is None:
                    continue
                start = (listed[0], uk_clock_to_utc(listed[0], DEFAULT_MAIN_CARD_UK))
            if start is None:
                continue
            prelim = _start_from_iso(ev.get("prelimStart"))
            location = ev.get("venue") or ev.get("location") or ""
            if isinstance(location, dict):
                location = location.get("name") or ""
            event = self._event(
                title,
                start[0],
                start[1],
                venue=str(location),
                broadcast=str(ev.get("broadcast") or ""),
                external_id=str(ev["id"]) if ev.get("id") else None,
                prelim_utc=prelim[1] if prelim else None,
                cards=ev,
            )
            if event is not None:
                out.append(event)
        return out

    def parse_search_items(self, items: Iterable[Any]) -> List[UFCEvent]:
        out: List[UFCEvent] = []
        for item in items:
            if not isinstance(item, dict):
                continue
            item_title = clean_text(str(item.get("title") or ""))
            snippet = clean_text(str(item.get("snippet") or ""))
            link = str(item.get("link") or "")
            link_match = EVENT_LINK_RE.search(link)
            external_id = link_match.group(1).lower() if link_match else None

            pagemap = item.get("pagemap")
            if not isinstance(pagemap, dict):
                pagemap = {}
            structured = None
            for block in _as_list(pagemap.get("event")) + _as_list(pagemap.get("metatags")):
                if not isinstance(block, dict):
                    continue
                structured = _start_from_iso(
                    block.get("startdate") or block.get("startDate") or block.get("event:start_time")
                )
                if structured:
                    break

            if structured is not None:
                m = TITLE_RE.search(item_title) or TITLE_RE.search(snippet)
                title = m.group(0) if m else item_title
                if "ufc" not in title.lower():
                    continue
                event = self._event(
                    title,
                    structured[0],
                    structured[1],
                    venue=self._venue(f"{item_title} {snippet}"),
                    broadcast=self._broadcast(snippet),
                    external_id=external_id,
                )
                if event is not None:
                    out.append(event)
                continue

            found = self.parse_text(f"{item_title}. {snippet}")
            if found:
                event = found[0]
                if external_id:
                    event = replace(event, external_id=external_id)
                out.append(event)
        return out

    @staticmethod
    def _venue(text: str) -> str:
        m = VENUE_RE.search(text)
        return m.group(1).strip() if m else ""

    @staticmethod
    def _broadcast(text: str) -> str:
        m = BROADCAST_RE.search(text)
        return m.group(1) if m else ""

    def parse_text(self, text: str) -> List[UFCEvent]:
        titles = list(TITLE_RE.finditer(text))
        out: List[UFCEvent] = []
        seen = set()
        for i, m in enumerate(titles):
            end = titles[i + 1].start() if i + 1 < len(titles) else len(text)
            context = text[m.end():min(end, m.end() + 400)]
            # Search results often lead with the date ("Jul 19, 2025 ... UFC 318").
            found_date = find_date(context) or (find_date(text[:m.start()]) if i == 0 else None)
            if found_date is None:
                continue
            listed = found_date[1]

            times = find_uk_times(context)
            prelim_utc = uk_clock_to_utc(listed, times["prelim"]) if "prelim" in times else None
            if "main" in times:
                main_utc = uk_clock_to_utc(listed, times["main"])
            elif prelim_utc is not None:
                main_utc = prelim_utc + PRELIM_OFFSET
            else:
                main_utc = uk_clock_to_utc(listed, DEFAULT_MAIN_CARD_UK)

            key = (m.group(0), listed)
            if key in seen:
                continue
            seen.add(key)
            event = self._event(
                m.group(0),
                listed,
                main_utc,
                venue=self._venue(context),
                broadcast=self._broadcast(context),
                prelim_utc=prelim_utc,
            )
            if event is not None:
                out.append(event)
        return out
