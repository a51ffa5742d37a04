from __future__ import annotations

import json
import logging
import re
from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from bs4 import BeautifulSoup
from bs4.element import Tag

from .models import (
    DEFAULT_COMPETITION,
    NO_CHANNEL_LABEL,
    SOURCE_FOOTBALL_API,
    SOURCE_FOOTBALL_SITE,
    FootballFixture,
)
from .util import clean_text, parse_clock, parse_iso_datetime, utc_to_uk


logger = logging.getLogger(__name__)


# Listing-page markup.
DATE_HEADING_CLASS = "fixture-date"
FIXTURE_CLASS = "fixture"

EXCLUDED_TIMES = {"tbc", "tba", "postponed", "cancelled", "canceled"}

TEAM_SEPARATORS = [
    re.compile(r"^(.+?)\s+v\s+(.+)$", re.IGNORECASE),
    re.compile(r"^(.+?)\s+vs\.?\s+(.+)$", re.IGNORECASE),
    re.compile(r"^(.+?)\s+-\s+(.+)$"),
]

# Women's football and youth age-grades are out of scope.
EXCLUSION_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"\bwomen",
        r"\bladies\b",
        r"\bgirls\b",
        r"\bu-?(1[6-9]|2[0-3])s?\b",
        r"\bunder[- ]?(1[6-9]|2[0-3])s?\b",
        r"\byouth\b",
        r"\bacademy\b",
    )
]

CHANNEL_ALIASES: Dict[str, str] = {
    "bbc one": "BBC One",
    "bbc 1": "BBC One",
    "bbc two": "BBC Two",
    "bbc 2": "BBC Two",
    "bbc three": "BBC Three",
    "bbc four": "BBC Four",
    "bbc iplayer": "BBC iPlayer",
    "itv1": "ITV1",
    "itv 1": "ITV1",
    "itv": "ITV1",
    "itv2": "ITV2",
    "itv4": "ITV4",
    "itvx": "ITVX",
    "channel 4": "Channel 4",
    "channel 5": "Channel 5",
    "sky sports premier league": "Sky Sports Premier League",
    "sky sports pl": "Sky Sports Premier League",
    "sky sports football": "Sky Sports Football",
    "sky sports main event": "Sky Sports Main Event",
    "sky sports action": "Sky Sports Action",
    "tnt sports": "TNT Sports",
    "tnt sports 1": "TNT Sports 1",
    "tnt sports 2": "TNT Sports 2",
    "tnt sports 3": "TNT Sports 3",
    "premier sports 1": "Premier Sports 1",
    "premier sports 2": "Premier Sports 2",
    "amazon prime video": "Amazon Prime Video",
    "prime video": "Amazon Prime Video",
    "discovery+": "Discovery+",
    "eurosport 1": "Eurosport 1",
    "eurosport 2": "Eurosport 2",
}

# football-data.org competition codes.
COMPETITION_NAMES: Dict[str, str] = {
    "PL": "Premier League",
    "ELC": "Championship",
    "CL": "Champions League",
    "EL": "Europa League",
    "WC": "World Cup",
    "EC": "European Championship",
    "PD": "La Liga",
    "SA": "Serie A",
    "BL1": "Bundesliga",
    "FL1": "Ligue 1",
    "DED": "Eredivisie",
}

CHANNELS_BY_COMPETITION: Dict[str, Tuple[str, ...]] = {
    "PL": ("Sky Sports Premier League",),
    "ELC": ("Sky Sports Football",),
    "CL": ("TNT Sports",),
    "EL": ("TNT Sports",),
    "WC": ("BBC One", "ITV1"),
    "EC": ("BBC One", "ITV1"),
    "PD": ("Premier Sports 1",),
    "DED": ("Premier Sports 1",),
    "SA": ("BT Sport",),
    "FL1": ("BT Sport",),
    "BL1": ("Sky Sports Football",),
}


def canonical_channel(name: str) -> str:
    text = clean_text(name)
    return CHANNEL_ALIASES.get(text.lower(), text)


def unique_channels(names: Iterable[str]) -> Tuple[str, ...]:
    out: List[str] = []
    for name in names:
        ch = canonical_channel(name)
        if not ch or ch == NO_CHANNEL_LABEL or ch in out:
            continue
        out.append(ch)
    return tuple(out)


def split_teams(text: str) -> Optional[Tuple[str, str]]:
    cleaned = clean_text(text)
    for pat in TEAM_SEPARATORS:
        m = pat.match(cleaned)
        if not m:
            continue
        team_a, team_b = m.group(1).strip(), m.group(2).strip()
        if len(team_a) >= 2 and len(team_b) >= 2 and team_a != team_b:
            return team_a, team_b
    return None


def is_excluded(*texts: str) -> bool:
    return any(p.search(t or "") for p in EXCLUSION_PATTERNS for t in texts)


def _ordinal(day: int) -> str:
    if 11 <= day % 100 <= 13:
        return "th"
    return {1: "st", 2: "nd", 3: "rd"}.get(day % 10, "th")


def date_heading_patterns(target: date) -> List[re.Pattern[str]]:
    """Heading formats the listing uses, most specific first ("Sunday 16th June 2025")."""
    weekday = target.strftime("%A")
    month = target.strftime("%B")
    day = f"{target.day}(?:{_ordinal(target.day)})?"
    forms = [
        rf"{weekday}\s+{day}\s+{month}\s+{target.year}",
        rf"{day}\s+{month}\s+{target.year}",
        rf"{weekday}\s+{day}\s+{month}",
    ]
    return [re.compile(rf"(?<!\d){f}\b", re.IGNORECASE) for f in forms]


def _classes(el: Tag) -> List[str]:
    return list(el.get("class") or [])


def _text_of(el: Tag, selector: str) -> Optional[str]:
    found = el.select_one(selector)
    if found is None:
        return None
    return clean_text(found.get_text(" "))


class FixtureParser:
    """Extract one day's fixtures from the listing HTML."""

    def __init__(self, *, source: str = SOURCE_FOOTBALL_SITE) -> None:
        self.source = source

    def section_for(self, soup: BeautifulSoup, target: date) -> Tuple[List[Tag], bool]:
        nodes = soup.select(f".{DATE_HEADING_CLASS}, .{FIXTURE_CLASS}")
        patterns = date_heading_patterns(target)

        start = None
        for i, node in enumerate(nodes):
            if DATE_HEADING_CLASS not in _classes(node):
                continue
            heading = clean_text(node.get_text(" "))
            if any(p.search(heading) for p in patterns):
                start = i
                break

        if start is None:
            return [n for n in nodes if FIXTURE_CLASS in _classes(n)], False

        section: List[Tag] = []
        for node in nodes[start + 1:]:
            if DATE_HEADING_CLASS in _classes(node):
                break
            if FIXTURE_CLASS in _classes(node):
                section.append(node)
        return section, True

    def parse_entry(self, entry: Tag, target: date) -> Optional[FootballFixture]:
        raw_time = _text_of(entry, ".fixture__time")
        if not raw_time or raw_time.lower() in EXCLUDED_TIMES:
            return None
        kickoff = parse_clock(raw_time)
        if kickoff is None:
            return None

        teams_text = _text_of(entry, ".fixture__teams")
        teams = split_teams(teams_text or "")
        if teams is None:
            return None

        competition = _text_of(entry, ".fixture__competition") or DEFAULT_COMPETITION
        if is_excluded(teams[0], teams[1], competition):
            return None

        channels = unique_channels(pill.get_text(" ") for pill in entry.select(".channel-pill"))
        try:
            return FootballFixture(
                time=kickoff,
                date=target,
                team_a=teams[0],
                team_b=teams[1],
                competition=competition,
                channels=channels,
                source=self.source,
            )
        except ValueError:
            return None

    def parse(self, html: str, target: date) -> List[FootballFixture]:
        soup = BeautifulSoup(html, "lxml")
        entries, anchored = self.section_for(soup, target)
        if not anchored:
            logger.info("No heading for %s; assigning that date to every fixture on the page", target.isoformat())

        out: List[FootballFixture] = []
        for entry in entries:
            fixture = self.parse_entry(entry, target)
            if fixture is not None:
                out.append(fixture)
        logger.info("Parsed %d of %d fixture entries for %s", len(out), len(entries), target.isoformat())
        return out


def _as_list(value: Any) -> List[Any]:
    return value if isinstance(value, list) else []


def _team_name(team: Any) -> str:
    if not isinstance(team, dict):
        return ""
    return clean_text(str(team.get("name") or team.get("shortName") or ""))


def parse_api_matches(payload: Union[str, Dict[str, Any]], target: date) -> List[FootballFixture]:
    """Map a football-data.org ``/v4/matches`` response to fixtures on ``target`` (UK date)."""
    data = json.loads(payload) if isinstance(payload, str) else payload
    matches = _as_list(data.get("matches") if isinstance(data, dict) else None)

    out: List[FootballFixture] = []
    for m in matches:
        if not isinstance(m, dict) or not m.get("utcDate"):
            continue
        try:
            local = utc_to_uk(parse_iso_datetime(str(m["utcDate"])))
        except ValueError:
            continue
        if local.date() != target:
            continue

        comp = m.get("competition")
        if not isinstance(comp, dict):
            comp = {}
        code = str(comp.get("code") or "")
        competition = COMPETITION_NAMES.get(code) or clean_text(str(comp.get("name") or "")) or DEFAULT_COMPETITION
        team_a = _team_name(m.get("homeTeam"))
        team_b = _team_name(m.get("awayTeam"))
        if is_excluded(team_a, team_b, competition):
            continue
        try:
            out.append(
                FootballFixture(
                    time=f"{local:%H:%M}",
                    date=target,
                    team_a=team_a,
                    team_b=team_b,
                    competition=competition,
                    channels=CHANNELS_BY_COMPETITION.get(code, ()),
                    source=SOURCE_FOOTBALL_API,
                )
            )
        except ValueError:
            continue
    logger.info("Mapped %d of %d API matches for %s", len(out), len(matches), target.isoformat())
    return out
