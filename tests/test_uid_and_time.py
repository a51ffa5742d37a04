from __future__ import annotations

import asyncio
from datetime import date, datetime, timezone
from typing import List

from sports_feed.util import (
    RateLimiter,
    RetryConfig,
    clean_text,
    format_uk_clock,
    isoformat_z,
    parse_clock,
    stable_uid,
    uk_local_to_utc,
    uk_today,
    utc_to_uk,
)


def test_uid_stable() -> None:
    uid1 = stable_uid("Arsenal", "Chelsea", "15:00", "2025-06-15", namespace="football")
    uid2 = stable_uid("Arsenal ", " Chelsea", "15:00", "2025-06-15", namespace="football")
    other = stable_uid("Chelsea", "Arsenal", "15:00", "2025-06-15", namespace="football")
    assert uid1 == uid2
    assert uid1 != other
    assert uid1.endswith("@football")
    assert len(uid1.split("@")[0]) == 32


def test_isoformat_z() -> None:
    dt = datetime(2025, 7, 20, 2, 0, 30, 123456, tzinfo=timezone.utc)
    assert isoformat_z(dt) == "2025-07-20T02:00:30Z"


def test_clock_change_hours() -> None:
    # Clocks go forward at 01:00 UTC on 2025-03-30 and back at 01:00 UTC on 2025-10-26.
    assert utc_to_uk(datetime(2025, 3, 30, 0, 30, tzinfo=timezone.utc)).strftime("%H:%M") == "00:30"
    assert utc_to_uk(datetime(2025, 3, 30, 1, 30, tzinfo=timezone.utc)).strftime("%H:%M") == "02:30"
    assert utc_to_uk(datetime(2025, 10, 26, 0, 30, tzinfo=timezone.utc)).strftime("%H:%M") == "01:30"
    assert utc_to_uk(datetime(2025, 10, 26, 1, 30, tzinfo=timezone.utc)).strftime("%H:%M") == "01:30"

    assert uk_local_to_utc(date(2025, 10, 26), "00:30") == datetime(2025, 10, 25, 23, 30, tzinfo=timezone.utc)
    assert uk_local_to_utc(date(2025, 10, 26), "03:00") == datetime(2025, 10, 26, 3, 0, tzinfo=timezone.utc)
    assert uk_local_to_utc(date(2025, 3, 30), "00:30") == datetime(2025, 3, 30, 0, 30, tzinfo=timezone.utc)
    assert uk_local_to_utc(date(2025, 3, 30), "03:00") == datetime(2025, 3, 30, 2, 0, tzinfo=timezone.utc)


def test_uk_today_follows_local_midnight() -> None:
    assert uk_today(datetime(2025, 10, 25, 23, 30, tzinfo=timezone.utc)) == date(2025, 10, 26)
    assert uk_today(datetime(2025, 12, 6, 23, 30, tzinfo=timezone.utc)) == date(2025, 12, 6)


def test_uk_local_time_conversion() -> None:
    assert uk_local_to_utc(date(2025, 7, 1), "22:00") == datetime(2025, 7, 1, 21, 0, tzinfo=timezone.utc)
    assert uk_local_to_utc(date(2025, 1, 1), "22:00") == datetime(2025, 1, 1, 22, 0, tzinfo=timezone.utc)


def test_utc_to_uk_and_display() -> None:
    summer = datetime(2025, 7, 20, 2, 0, tzinfo=timezone.utc)
    winter = datetime(2025, 12, 7, 3, 0, tzinfo=timezone.utc)
    assert utc_to_uk(summer).hour == 3
    assert utc_to_uk(winter).hour == 3
    assert format_uk_clock(summer) == "03:00 (Sun)"
    assert format_uk_clock(winter) == "03:00 (Sun)"
    # 23:30 UTC on the Saturday is already Sunday in the UK during BST.
    assert format_uk_clock(datetime(2025, 7, 19, 23, 30, tzinfo=timezone.utc)) == "00:30 (Sun)"


def test_parse_clock() -> None:
    assert parse_clock("15:00") == "15:00"
    assert parse_clock(" 9:30 ") == "09:30"
    assert parse_clock("21.45") == "21:45"
    assert parse_clock("TBC") is None
    assert parse_clock("24:00") is None
    assert parse_clock("") is None


def test_clean_text_entities() -> None:
    assert clean_text("Brighton &amp; Hove") == "Brighton & Hove"
    assert clean_text("Nott&#x27;m&nbsp;Forest") == "Nott'm Forest"
    assert clean_text("&quot;Derby&quot;  day\n") == '"Derby" day'
    assert clean_text("&amp;#x27;") == "'"


def test_retry_delay_is_bounded() -> None:
    retry = RetryConfig(max_attempts=5, base_delay_s=1.0, max_delay_s=4.0)
    for attempt in range(1, 6):
        expected = min(4.0, 2 ** (attempt - 1))
        assert expected * 0.8 <= retry.delay_for(attempt) <= expected * 1.2
    assert retry.delay_for(1, retry_after=30) >= 30 * 0.8


def test_rate_limiter_sleeps_remaining_interval() -> None:
    now = [100.0]
    slept: List[float] = []

    async def fake_sleep(s: float) -> None:
        slept.append(s)
        now[0] += s

    limiter = RateLimiter(2.0, clock=lambda: now[0], sleep=fake_sleep)

    async def scenario() -> None:
        await limiter.wait("a.example/")
        now[0] += 0.5
        await limiter.wait("a.example/")
        await limiter.wait("b.example/")
        now[0] += 10
        await limiter.wait("a.example/", 5.0)

    asyncio.run(scenario())
    assert slept == [1.5]
