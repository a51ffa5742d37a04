from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import List

from .merge import with_identity
from .models import SOURCE_DEFAULT, FootballFixture, UFCEvent
from .util import uk_local_to_utc, uk_today


# (time, home, away, competition, channels)
_FIXTURES = [
    ("13:00", "Manchester City", "Arsenal", "Premier League", ("Sky Sports Premier League", "Sky Sports Main Event")),
    ("15:30", "Liverpool", "Chelsea", "Premier League", ("BBC One", "BBC iPlayer")),
    ("16:00", "Tottenham", "Manchester United", "Premier League", ("ITV1", "ITVX")),
    ("17:45", "Real Madrid", "Barcelona", "La Liga", ("Premier Sports 1",)),
    ("19:45", "PSG", "Marseille", "Ligue 1", ("TNT Sports 1", "TNT Sports 2")),
    ("20:00", "Bayern Munich", "Borussia Dortmund", "Bundesliga", ("Sky Sports Football",)),
]


def default_fixtures(day: date) -> List[FootballFixture]:
    return [
        with_identity(
            FootballFixture(
                time=t,
                date=day,
                team_a=home,
                team_b=away,
                competition=comp,
                channels=channels,
                source=SOURCE_DEFAULT,
            )
        )
        for t, home, away, comp, channels in _FIXTURES
    ]


def default_ufc_events(now: datetime) -> List[UFCEvent]:
    """One placeholder Fight Night on the coming Saturday, main card 03:00 UK Sunday."""
    today = uk_today(now)
    saturday = today + timedelta(days=(5 - today.weekday()) % 7 or 7)
    return [
        with_identity(
            UFCEvent(
                title="UFC Fight Night",
                date=saturday,
                main_card_start_utc=uk_local_to_utc(saturday + timedelta(days=1), "03:00"),
                venue="UFC APEX, Las Vegas",
                source=SOURCE_DEFAULT,
            )
        )
    ]
