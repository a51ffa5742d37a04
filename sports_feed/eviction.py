from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Sequence, Tuple, TypeVar

from .models import FixtureStatus, FootballFixture, UFCEvent
from .util import ensure_tzaware_utc, uk_today


logger = logging.getLogger(__name__)

LIVE_WINDOW = timedelta(hours=2)
SOON_WINDOW = timedelta(minutes=30)

T = TypeVar("T", FootballFixture, UFCEvent)


def fixture_status(
    fixture: FootballFixture,
    now: datetime,
    *,
    live_window: timedelta = LIVE_WINDOW,
    soon_window: timedelta = SOON_WINDOW,
) -> FixtureStatus:
    kickoff = fixture.kickoff_utc
    now = ensure_tzaware_utc(now)
    if now > kickoff:
        return FixtureStatus.LIVE if now - kickoff <= live_window else FixtureStatus.FINISHED
    if kickoff - now <= soon_window:
        return FixtureStatus.SOON
    return FixtureStatus.UPCOMING


@dataclass(frozen=True)
class EvictionPolicy:
    football_grace: timedelta = timedelta(hours=3)
    ufc_duration: timedelta = timedelta(hours=5)
    ufc_grace: timedelta = timedelta(hours=3)

    def keep_fixture(self, fixture: FootballFixture, now: datetime) -> bool:
        return fixture.kickoff_utc >= ensure_tzaware_utc(now) - self.football_grace

    def keep_event(self, event: UFCEvent, now: datetime) -> bool:
        return event.main_card_start_utc + self.ufc_duration + self.ufc_grace >= ensure_tzaware_utc(now)

    def evict(self, collection: Sequence[T], now: datetime) -> Tuple[List[T], int]:
        survivors: List[T] = []
        for record in collection:
            if isinstance(record, FootballFixture):
                keep = self.keep_fixture(record, now)
            else:
                keep = self.keep_event(record, now)
            if keep:
                survivors.append(record)
        return survivors, len(collection) - len(survivors)


def emergency_evict(
    fixtures: Sequence[FootballFixture],
    events: Sequence[UFCEvent],
    now: datetime,
) -> Tuple[List[FootballFixture], List[UFCEvent]]:
    """Aggressive trim used when the store refuses a write: today's fixtures and unstarted events only."""
    today = uk_today(now)
    now = ensure_tzaware_utc(now)
    kept_fixtures = [f for f in fixtures if f.date == today]
    kept_events = [e for e in events if e.main_card_start_utc > now]
    logger.warning(
        "Emergency eviction kept %d/%d fixtures and %d/%d events",
        len(kept_fixtures),
        len(fixtures),
        len(kept_events),
        len(events),
    )
    return kept_fixtures, kept_events
