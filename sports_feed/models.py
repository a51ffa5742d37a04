from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import Optional, Tuple

from .util import format_uk_clock, uk_local_to_utc


TIME_RE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")

NO_CHANNEL_LABEL = "Check TV Guide"
DEFAULT_COMPETITION = "Football"
DEFAULT_VENUE = "Venue TBD"
DEFAULT_BROADCAST = "TNT Sports"
PRELIM_OFFSET = timedelta(hours=2)


class Provenance(str, Enum):
    """Where a refresh result came from; callers show an "outdated" hint for anything but LIVE/CACHE."""

    LIVE = "live"
    CACHE = "cache"
    STALE_CACHE = "stale-cache"
    FALLBACK_DEFAULT = "fallback-default"


class FixtureStatus(str, Enum):
    UPCOMING = "upcoming"
    SOON = "soon"
    LIVE = "live"
    FINISHED = "finished"


# Record-level provenance tags.
SOURCE_FOOTBALL_SITE = "live-footballontv.com"
SOURCE_FOOTBALL_API = "football-data.org"
SOURCE_UFC_SEARCH = "ufc-search-api"
SOURCE_UFC_PAGE = "ufc.com"
SOURCE_DEFAULT = "fallback-default"

_CARD_FIELDS = ("main_card", "prelim_card", "early_prelim_card")


@dataclass(frozen=True, slots=True)
class FootballFixture:
    time: str  # HH:MM, UK local
    date: date  # UK calendar date
    team_a: str
    team_b: str
    competition: str = DEFAULT_COMPETITION
    channels: Tuple[str, ...] = ()
    source: str = SOURCE_FOOTBALL_SITE
    id: str = ""  # surrogate, assigned on merge

    def __post_init__(self) -> None:
        if not TIME_RE.match(self.time):
            raise ValueError(f"invalid kickoff time: {self.time!r}")
        if not self.team_a.strip() or not self.team_b.strip():
            raise ValueError("team names must be non-empty")
        if not isinstance(self.channels, tuple):
            object.__setattr__(self, "channels", tuple(self.channels))
        if not self.competition:
            object.__setattr__(self, "competition", DEFAULT_COMPETITION)

    @property
    def kickoff_utc(self) -> datetime:
        return uk_local_to_utc(self.date, self.time)

    @property
    def display_channels(self) -> Tuple[str, ...]:
        return self.channels or (NO_CHANNEL_LABEL,)


@dataclass(frozen=True, slots=True)
class Bout:
    fighter1: str
    fighter2: str
    weight_class: str = "TBD"
    title: str = ""


@dataclass(frozen=True, slots=True)
class UFCEvent:
    title: str
    date: date
    main_card_start_utc: datetime
    venue: str = DEFAULT_VENUE
    broadcast: str = DEFAULT_BROADCAST
    main_card: Tuple[Bout, ...] = ()
    prelim_card: Tuple[Bout, ...] = ()
    early_prelim_card: Tuple[Bout, ...] = ()
    source: str = SOURCE_UFC_SEARCH
    external_id: Optional[str] = None  # stable identifier from the source, when it has one
    prelim_start_utc: Optional[datetime] = None  # only when the source states it
    id: str = ""

    def __post_init__(self) -> None:
        if not self.title.strip():
            raise ValueError("event title must be non-empty")
        for name in ("main_card_start_utc", "prelim_start_utc"):
            value = getattr(self, name)
            if value is None:
                continue
            if value.tzinfo is None:
                raise ValueError(f"{name} must be timezone-aware")
            object.__setattr__(self, name, value.astimezone(timezone.utc))
        for name in _CARD_FIELDS:
            value = getattr(self, name)
            if not isinstance(value, tuple):
                object.__setattr__(self, name, tuple(value))
        if not self.venue:
            object.__setattr__(self, "venue", DEFAULT_VENUE)
        if not self.broadcast:
            object.__setattr__(self, "broadcast", DEFAULT_BROADCAST)

    @property
    def prelim_start(self) -> datetime:
        # Estimated when the source gives no prelim time.
        return self.prelim_start_utc or (self.main_card_start_utc - PRELIM_OFFSET)

    @property
    def uk_main_card_time(self) -> str:
        return format_uk_clock(self.main_card_start_utc)

    @property
    def uk_prelim_time(self) -> str:
        return format_uk_clock(self.prelim_start)
