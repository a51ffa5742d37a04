from __future__ import annotations

import asyncio
import hashlib
import html
import random
import re
import time
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Awaitable, Callable, Dict, Optional
from zoneinfo import ZoneInfo


DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/120.0.0.0 Safari/537.36"
)

LONDON = ZoneInfo("Europe/London")

_WS_RE = re.compile(r"\s+")
_CLOCK_RE = re.compile(r"^\s*(\d{1,2})[:.](\d{2})\s*$")


def sha256_hex(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def stable_uid(*parts: str, namespace: str) -> str:
    base = "|".join(p.strip() for p in parts)
    return f"{sha256_hex(base)[:32]}@{namespace}"


def ensure_tzaware_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        raise ValueError("datetime must be timezone-aware")
    return dt.astimezone(timezone.utc)


def isoformat_z(dt: datetime) -> str:
    dt_utc = ensure_tzaware_utc(dt)
    return dt_utc.replace(microsecond=0).isoformat().replace("+00:00", "Z")


def parse_iso_datetime(value: str) -> datetime:
    """Parse an ISO-8601 instant; naive values are taken as UTC."""
    dt = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def clean_text(text: str) -> str:
    # Entities can arrive double-encoded (&amp;#x27;), so unescape until stable.
    prev = None
    out = text or ""
    while prev != out:
        prev = out
        out = html.unescape(out)
    out = out.replace("\xa0", " ")
    return _WS_RE.sub(" ", out).strip()


def parse_clock(value: str) -> Optional[str]:
    """Normalise "9:30" / "21.45" to "HH:MM"; None when it is not a clock time."""
    m = _CLOCK_RE.match(value or "")
    if not m:
        return None
    h, mnt = int(m.group(1)), int(m.group(2))
    if h > 23 or mnt > 59:
        return None
    return f"{h:02d}:{mnt:02d}"


def uk_local_to_utc(day: date, hhmm: str) -> datetime:
    hour, minute = (int(x) for x in hhmm.split(":"))
    local = datetime(day.year, day.month, day.day, hour, minute, tzinfo=LONDON)
    return local.astimezone(timezone.utc)


def utc_to_uk(dt: datetime) -> datetime:
    return ensure_tzaware_utc(dt).astimezone(LONDON)


def uk_today(now: datetime) -> date:
    return utc_to_uk(now).date()


def format_uk_clock(dt: datetime) -> str:
    local = utc_to_uk(dt)
    return f"{local:%H:%M} ({local:%a})"


@dataclass
class RetryConfig:
    max_attempts: int = 3
    base_delay_s: float = 0.8
    max_delay_s: float = 10.0

    def delay_for(self, attempt: int, retry_after: Optional[float] = None) -> float:
        delay = min(self.max_delay_s, self.base_delay_s * (2 ** (attempt - 1)))
        if retry_after is not None:
            delay = max(delay, retry_after)
        return delay * random.uniform(0.8, 1.2)


Sleep = Callable[[float], Awaitable[None]]


class RateLimiter:
    """Minimum interval between requests to the same endpoint; callers wait rather than fail."""

    def __init__(
        self,
        min_interval_s: float = 2.0,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.min_interval_s = float(min_interval_s)
        self._clock = clock
        self._sleep = sleep
        self._last_by_endpoint: Dict[str, float] = {}

    async def wait(self, endpoint: str, min_interval_s: Optional[float] = None) -> float:
        interval = self.min_interval_s if min_interval_s is None else float(min_interval_s)
        now = self._clock()
        last = self._last_by_endpoint.get(endpoint)
        waited = 0.0
        if last is not None:
            delta = now - last
            if delta < interval:
                waited = interval - delta
                await self._sleep(waited)
        self._last_by_endpoint[endpoint] = self._clock() if waited == 0.0 else now + waited
        return waited
