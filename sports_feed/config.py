from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from datetime import timedelta
from pathlib import Path
from typing import Any, Mapping, Optional

from .cache import DEFAULT_MAX_BYTES
from .eviction import LIVE_WINDOW, SOON_WINDOW, EvictionPolicy
from .util import RetryConfig


FOOTBALL_SITE_URL = "https://www.live-footballontv.com"
FOOTBALL_API_URL = "https://api.football-data.org"
UFC_SEARCH_URL = "https://www.googleapis.com"
UFC_EVENTS_URL = "https://www.ufc.com"


@dataclass(frozen=True)
class SourceSettings:
    base_url: str
    path: str = "/"
    timeout_s: float = 15.0
    min_interval_s: float = 2.0


@dataclass(frozen=True)
class FeedConfig:
    data_path: Path = Path("data") / "sports-feed.json"
    cache_dir: Path = Path(".cache") / "sports_feed"
    cache_max_bytes: int = DEFAULT_MAX_BYTES

    football_ttl: timedelta = timedelta(minutes=15)
    ufc_ttl: timedelta = timedelta(minutes=30)

    eviction: EvictionPolicy = field(default_factory=EvictionPolicy)
    live_window: timedelta = LIVE_WINDOW
    soon_window: timedelta = SOON_WINDOW

    football_site: SourceSettings = SourceSettings(FOOTBALL_SITE_URL, "/", 15.0, 2.0)
    football_api: SourceSettings = SourceSettings(FOOTBALL_API_URL, "/v4/matches", 10.0, 3.0)
    ufc_search: SourceSettings = SourceSettings(UFC_SEARCH_URL, "/customsearch/v1", 30.0, 5.0)
    ufc_events: SourceSettings = SourceSettings(UFC_EVENTS_URL, "/events", 15.0, 5.0)

    retry: RetryConfig = field(default_factory=RetryConfig)

    football_data_api_key: Optional[str] = None
    ufc_search_api_key: Optional[str] = None
    ufc_search_engine_id: Optional[str] = None

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None, **overrides: Any) -> "FeedConfig":
        env = os.environ if env is None else env
        values: dict = {
            "football_data_api_key": env.get("FOOTBALL_DATA_API_KEY") or None,
            "ufc_search_api_key": env.get("UFC_SEARCH_API_KEY") or None,
            "ufc_search_engine_id": env.get("UFC_SEARCH_ENGINE_ID") or None,
        }
        if env.get("SPORTS_FEED_DATA"):
            values["data_path"] = Path(env["SPORTS_FEED_DATA"])
        if env.get("SPORTS_FEED_CACHE_DIR"):
            values["cache_dir"] = Path(env["SPORTS_FEED_CACHE_DIR"])
        values.update({k: v for k, v in overrides.items() if v is not None})
        return replace(cls(), **values)
