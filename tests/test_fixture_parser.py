from __future__ import annotations

from datetime import date
from pathlib import Path

from sports_feed.fixtures import (
    FixtureParser,
    canonical_channel,
    is_excluded,
    parse_api_matches,
    split_teams,
)
from sports_feed.models import SOURCE_FOOTBALL_API, SOURCE_FOOTBALL_SITE


FIXTURES = Path(__file__).parent / "fixtures"
SUNDAY = date(2025, 6, 15)


def _fixture_html(time: str, teams: str, competition: str = "", channels: tuple = ()) -> str:
    pills = "".join(f'<span class="channel-pill">{c}</span>' for c in channels)
    comp = f'<div class="fixture__competition">{competition}</div>' if competition else ""
    return (
        '<div class="fixture">'
        f'<div class="fixture__time">{time}</div>'
        f'<div class="fixture__teams">{teams}</div>'
        f"{comp}{pills}</div>"
    )


def test_today_section_with_tbc_entry() -> None:
    html = (
        '<div class="fixture-date">Sunday 15th June 2025</div>'
        + _fixture_html("15:00", "Arsenal v Chelsea", "Premier League", ("Sky Sports Premier League",))
        + _fixture_html("TBC", "Team X v Team Y")
    )

    fixtures = FixtureParser().parse(html, SUNDAY)

    assert len(fixtures) == 1
    f = fixtures[0]
    assert (f.time, f.team_a, f.team_b) == ("15:00", "Arsenal", "Chelsea")
    assert f.competition == "Premier League"
    assert list(f.channels) == ["Sky Sports Premier League"]
    assert f.date == SUNDAY
    assert f.source == SOURCE_FOOTBALL_SITE


def test_listing_page_is_bounded_to_the_target_day() -> None:
    text = (FIXTURES / "football_listing.html").read_text(encoding="utf-8")

    fixtures = FixtureParser().parse(text, SUNDAY)

    pairs = [(f.time, f.team_a, f.team_b) for f in fixtures]
    assert pairs == [
        ("15:00", "Arsenal", "Chelsea"),
        ("19:45", "Brighton & Hove Albion", "Nott'm Forest"),
        ("20:00", "England", "Scotland"),
    ]
    assert all(f.date == SUNDAY for f in fixtures)

    brighton = fixtures[1]
    assert brighton.channels == ("Sky Sports Premier League", "ITV1")

    england = fixtures[2]
    assert england.channels == ()
    assert england.display_channels == ("Check TV Guide",)


def test_other_days_use_their_own_section() -> None:
    text = (FIXTURES / "football_listing.html").read_text(encoding="utf-8")

    saturday = FixtureParser().parse(text, date(2025, 6, 14))
    monday = FixtureParser().parse(text, date(2025, 6, 16))

    assert [(f.team_a, f.team_b) for f in saturday] == [("Leeds United", "Everton")]
    assert [(f.team_a, f.team_b) for f in monday] == [("Tottenham Hotspur", "Wolves")]
    assert monday[0].channels == ("Amazon Prime Video",)


def test_missing_heading_assigns_target_date_to_everything() -> None:
    html = (
        '<div class="fixture-date">Friday 20th June 2025</div>'
        + _fixture_html("19:00", "Celtic v Rangers", "Scottish Premiership")
        + _fixture_html("20:00", "Hearts v Hibs", "Scottish Premiership")
    )

    fixtures = FixtureParser().parse(html, SUNDAY)

    assert [f.team_a for f in fixtures] == ["Celtic", "Hearts"]
    assert all(f.date == SUNDAY for f in fixtures)


def test_heading_without_year_or_ordinal_matches() -> None:
    html = (
        '<h2 class="fixture-date">Sunday 15 June</h2>'
        + _fixture_html("16:30", "Wrexham v Stockport", "League One")
        + '<h2 class="fixture-date">Sunday 22 June</h2>'
        + _fixture_html("16:30", "Bolton v Barnsley", "League One")
    )

    fixtures = FixtureParser().parse(html, SUNDAY)

    assert [(f.team_a, f.team_b) for f in fixtures] == [("Wrexham", "Stockport")]


def test_single_digit_day_does_not_match_two_digit_heading() -> None:
    html = (
        '<div class="fixture-date">Sunday 15th June 2025</div>'
        + _fixture_html("15:00", "Arsenal v Chelsea")
        + '<div class="fixture-date">Thursday 5th June 2025</div>'
        + _fixture_html("19:45", "Norway v Italy")
    )

    fixtures = FixtureParser().parse(html, date(2025, 6, 5))

    assert [f.team_a for f in fixtures] == ["Norway"]


def test_competition_defaults_to_football() -> None:
    html = '<div class="fixture-date">Sunday 15th June 2025</div>' + _fixture_html("14:00", "Bath City v Yeovil")

    fixtures = FixtureParser().parse(html, SUNDAY)

    assert fixtures[0].competition == "Football"


def test_bad_entries_are_skipped_not_raised() -> None:
    html = (
        '<div class="fixture-date">Sunday 15th June 2025</div>'
        + _fixture_html("25:00", "Arsenal v Chelsea")
        + _fixture_html("15:00", "Arsenal v Arsenal")
        + _fixture_html("15:00", "A v Chelsea")
        + _fixture_html("Postponed", "Fulham v Brentford")
        + '<div class="fixture"><div class="fixture__teams">No time v Here</div></div>'
        + _fixture_html("9.30", "Luton vs Watford")
    )

    fixtures = FixtureParser().parse(html, SUNDAY)

    assert [(f.time, f.team_a, f.team_b) for f in fixtures] == [("09:30", "Luton", "Watford")]


def test_split_teams_separators() -> None:
    assert split_teams("Arsenal v Chelsea") == ("Arsenal", "Chelsea")
    assert split_teams("Arsenal VS Chelsea") == ("Arsenal", "Chelsea")
    assert split_teams("Arsenal V Chelsea") == ("Arsenal", "Chelsea")
    assert split_teams("Arsenal - Chelsea") == ("Arsenal", "Chelsea")
    assert split_teams("Arsenal &amp; Friends v Chelsea") == ("Arsenal & Friends", "Chelsea")
    assert split_teams("Arsenal") is None
    assert split_teams("Arsenal v ") is None


def test_exclusion_filter() -> None:
    assert is_excluded("England U20", "Spain U20", "Friendly")
    assert is_excluded("Chelsea", "Arsenal", "Women's Super League")
    assert is_excluded("Man City Under-21", "Leeds", "Premier League 2")
    assert is_excluded("Arsenal Ladies", "Spurs", "")
    assert not is_excluded("England", "Scotland", "International Friendly")
    assert not is_excluded("Sheffield United", "Leeds United", "Championship")


def test_channel_canonicalisation() -> None:
    assert canonical_channel("sky sports pl") == "Sky Sports Premier League"
    assert canonical_channel(" ITV ") == "ITV1"
    assert canonical_channel("Prime Video") == "Amazon Prime Video"
    assert canonical_channel("S4C") == "S4C"


def test_api_matches_keep_only_target_uk_date() -> None:
    payload = (FIXTURES / "football_api.json").read_text(encoding="utf-8")

    fixtures = parse_api_matches(payload, SUNDAY)

    assert [(f.time, f.team_a, f.team_b) for f in fixtures] == [
        ("15:00", "Arsenal FC", "Chelsea FC"),
        ("19:00", "Flamengo", "Palmeiras"),
    ]
    arsenal, flamengo = fixtures
    assert arsenal.competition == "Premier League"
    assert arsenal.channels == ("Sky Sports Premier League",)
    assert arsenal.source == SOURCE_FOOTBALL_API
    assert flamengo.competition == "Copa Libertadores"
    assert flamengo.channels == ()


def test_api_late_kickoff_belongs_to_next_uk_day() -> None:
    payload = (FIXTURES / "football_api.json").read_text(encoding="utf-8")

    fixtures = parse_api_matches(payload, date(2025, 6, 16))

    assert [(f.time, f.team_a, f.competition) for f in fixtures] == [("00:30", "Real Madrid CF", "La Liga")]
    assert fixtures[0].channels == ("Premier Sports 1",)


def test_api_payload_with_wrong_shapes_yields_what_it_can() -> None:
    assert parse_api_matches({"matches": 5}, date(2025, 6, 15)) == []
    assert parse_api_matches([{"utcDate": "2025-06-15T14:00:00Z"}], date(2025, 6, 15)) == []

    payload = {
        "matches": [
            {
                "utcDate": "2025-06-15T14:00:00Z",
                "competition": "PL",
                "homeTeam": {"name": "Arsenal"},
                "awayTeam": {"name": "Chelsea"},
            },
            {"utcDate": "2025-06-15T18:00:00Z", "competition": ["PL"], "homeTeam": None, "awayTeam": {"name": "Hull"}},
        ]
    }
    fixtures = parse_api_matches(payload, date(2025, 6, 15))

    assert [(f.team_a, f.competition, f.channels) for f in fixtures] == [("Arsenal", "Football", ())]
