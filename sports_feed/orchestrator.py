from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import httpx

from .cache import CacheEntry, DiskCache
from .config import FeedConfig, SourceSettings
from .defaults import default_fixtures, default_ufc_events
from .eviction import emergency_evict
from .events import EventParser
from .fixtures import FixtureParser, parse_api_matches
from .merge import merge
from .models import SOURCE_UFC_PAGE, SOURCE_UFC_SEARCH, Provenance
from .source import (
    FetchError,
    FetchNetworkError,
    FetchTimeoutError,
    HttpStatusError,
    MalformedBodyError,
    SourceClient,
    SourceNotConfiguredError,
)
from .store import (
    DataStore,
    FeedDocument,
    decode_records,
    dict_to_event,
    dict_to_fixture,
    event_to_dict,
    fixture_to_dict,
)
from .util import DEFAULT_USER_AGENT, RateLimiter, RetryConfig, Sleep, isoformat_z, now_utc, uk_today


logger = logging.getLogger(__name__)

FOOTBALL = "football"
UFC = "ufc"

# ufc.com answers 403 to the default header set from some networks.
ALTERNATE_BROWSER_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
        "AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.1 Safari/605.1.15"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-GB,en;q=0.9",
    "Referer": "https://www.google.com/",
}

ParseFn = Callable[[str, date], List[Any]]


class FetchState(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    SUCCESS = "success"
    FAILED = "failed"


def _no_params(_: date) -> Dict[str, Any]:
    return {}


@dataclass
class Source:
    name: str
    client: SourceClient
    parse: ParseFn
    path: str = "/"
    params: Callable[[date], Dict[str, Any]] = _no_params
    headers: Optional[Dict[str, str]] = None
    alternate_headers: Optional[Dict[str, str]] = None
    min_interval_s: float = 2.0
    retry: RetryConfig = field(default_factory=RetryConfig)
    configured: bool = True

    @property
    def endpoint(self) -> str:
        return f"{self.client.host}{self.path}"


@dataclass
class RefreshResult:
    success: bool
    source: Provenance
    added: int = 0
    records: List[Any] = field(default_factory=list)
    error: Optional[str] = None
    origin: Optional[str] = None  # which source produced the records

    @property
    def total(self) -> int:
        return len(self.records)

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "success": self.success,
            "added": self.added,
            "total": self.total,
            "source": self.source.value,
        }
        if self.error:
            out["error"] = self.error
        return out


@dataclass
class CleanupResult:
    success: bool
    football_removed: int = 0
    ufc_removed: int = 0
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "success": self.success,
            "footballRemoved": self.football_removed,
            "ufcRemoved": self.ufc_removed,
        }
        if self.error:
            out["error"] = self.error
        return out


@dataclass(frozen=True)
class _Dataset:
    name: str
    records_attr: str
    fetched_attr: str
    ttl: timedelta
    encode: Callable[[Any], Dict[str, Any]]
    decode: Callable[[Dict[str, Any]], Any]


class Orchestrator:
    """Refresh pipeline: fresh cache, then live sources in order, then stale cache, then defaults.

    Every read-modify-write of the store goes through one lock, so a refresh
    and a cleanup started together cannot lose each other's updates.
    """

    def __init__(
        self,
        *,
        store: DataStore,
        football_sources: Sequence[Source] = (),
        ufc_sources: Sequence[Source] = (),
        cache: Optional[DiskCache] = None,
        config: Optional[FeedConfig] = None,
        logger: Optional[logging.Logger] = None,
        clock: Callable[[], datetime] = now_utc,
        sleep: Sleep = asyncio.sleep,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config or FeedConfig()
        self.store = store
        self.cache = cache
        self.football_sources = list(football_sources)
        self.ufc_sources = list(ufc_sources)
        self.log = logger if logger is not None else logging.getLogger(__name__)
        self._clock = clock
        self._sleep = sleep
        self.rate_limiter = RateLimiter(clock=monotonic, sleep=sleep)
        self._store_lock = asyncio.Lock()
        self.state: Dict[str, FetchState] = {FOOTBALL: FetchState.IDLE, UFC: FetchState.IDLE}

        self._football = _Dataset(
            FOOTBALL, "football_matches", "last_fetch", self.config.football_ttl, fixture_to_dict, dict_to_fixture
        )
        self._ufc = _Dataset(UFC, "ufc_events", "last_ufc_fetch", self.config.ufc_ttl, event_to_dict, dict_to_event)

    async def aclose(self) -> None:
        clients = {id(s.client): s.client for s in self.football_sources + self.ufc_sources}
        for client in clients.values():
            await client.aclose()

    # Cache is best effort: read misses and write failures never fail a refresh.
    async def _cache_get(self, key: str, ttl: timedelta) -> Optional[CacheEntry]:
        if self.cache is None:
            return None
        return await self.cache.get(key, ttl.total_seconds())

    async def _cache_get_stale(self, key: str) -> Optional[CacheEntry]:
        if self.cache is None:
            return None
        return await self.cache.get_stale(key)

    async def _cache_set(self, key: str, payload: Any, origin: str) -> None:
        if self.cache is None:
            return
        try:
            await self.cache.set(key, payload, source=origin)
        except OSError as e:
            self.log.warning("Could not write cache entry %s: %s", key, e)

    async def _fetch_from(self, src: Source, target: date) -> List[Any]:
        if not src.configured:
            raise SourceNotConfiguredError(f"{src.name} is not configured")

        headers = src.headers
        attempt = 0
        while True:
            attempt += 1
            await self.rate_limiter.wait(src.endpoint, src.min_interval_s)
            try:
                body = await src.client.fetch(src.path, params=src.params(target), headers=headers)
            except HttpStatusError as e:
                if attempt >= src.retry.max_attempts:
                    raise
                if e.status_code == 403 and src.alternate_headers and headers is not src.alternate_headers:
                    self.log.info("%s answered 403; retrying with alternate headers", src.name)
                    headers = src.alternate_headers
                    continue
                if not e.retryable:
                    raise
                delay = src.retry.delay_for(attempt)
            except (FetchTimeoutError, FetchNetworkError):
                if attempt >= src.retry.max_attempts:
                    raise
                delay = src.retry.delay_for(attempt)
            else:
                try:
                    return src.parse(body, target)
                except Exception as e:
                    raise MalformedBodyError(f"{src.name} sent a body that could not be parsed: {e!r}") from e

            self.log.info("%s attempt %d failed; retrying in %.1fs", src.name, attempt, delay)
            await self._sleep(delay)

    async def _save(self, doc: FeedDocument) -> bool:
        if await self.store.save(doc):
            return True
        self.log.warning("Store rejected the write; evicting aggressively and retrying once")
        doc.football_matches, doc.ufc_events = emergency_evict(doc.football_matches, doc.ufc_events, self._clock())
        if await self.store.save(doc):
            return True
        self.log.error("Store write failed after emergency eviction")
        return False

    async def _commit(self, ds: _Dataset, cache_key: str, records: List[Any], origin: str) -> RefreshResult:
        now = self._clock()
        # Records already past their eviction window are not worth storing.
        records, expired = self.config.eviction.evict(records, now)
        if expired:
            self.log.debug("Dropped %d already-expired %s records from %s", expired, ds.name, origin)

        async with self._store_lock:
            doc = await self.store.load()
            merged, added = merge(getattr(doc, ds.records_attr), records)
            setattr(doc, ds.records_attr, merged)
            setattr(doc, ds.fetched_attr, now)
            saved = await self._save(doc)
            stored = list(getattr(doc, ds.records_attr))

        await self._cache_set(cache_key, [ds.encode(r) for r in stored], origin)
        self.log.info("%s: %d new records from %s (%d stored)", ds.name, added, origin, len(stored))
        return RefreshResult(
            success=saved,
            source=Provenance.LIVE,
            added=added,
            records=stored,
            error=None if saved else "refreshed data could not be saved",
            origin=origin,
        )

    async def _refresh(
        self,
        ds: _Dataset,
        sources: Sequence[Source],
        target: date,
        cache_key: str,
        defaults: Callable[[], List[Any]],
    ) -> RefreshResult:
        cached = await self._cache_get(cache_key, ds.ttl)
        if cached is not None:
            records = decode_records(cached.payload or [], ds.decode)
            self.log.info("%s: serving %d records from fresh cache", ds.name, len(records))
            return RefreshResult(success=True, source=Provenance.CACHE, records=records, origin=cached.source)

        self.state[ds.name] = FetchState.FETCHING
        errors: List[str] = []
        for src in sources:
            try:
                records = await self._fetch_from(src, target)
            except SourceNotConfiguredError as e:
                self.log.info("Skipping %s: %s", src.name, e)
                errors.append(str(e))
                continue
            except FetchError as e:
                self.log.warning("%s failed: %s", src.name, e)
                errors.append(f"{src.name}: {e}")
                continue
            result = await self._commit(ds, cache_key, records, src.name)
            self.state[ds.name] = FetchState.SUCCESS if result.success else FetchState.FAILED
            return result

        self.state[ds.name] = FetchState.FAILED
        error = "; ".join(errors) or "no sources available"

        stale = await self._cache_get_stale(cache_key)
        if stale is not None:
            records = decode_records(stale.payload or [], ds.decode)
            self.log.warning("%s: all sources failed; serving stale cache (%d records)", ds.name, len(records))
            return RefreshResult(
                success=False, source=Provenance.STALE_CACHE, records=records, error=error, origin=stale.source
            )

        records = defaults()
        self.log.warning("%s: all sources failed; serving %d built-in records", ds.name, len(records))
        return RefreshResult(success=False, source=Provenance.FALLBACK_DEFAULT, records=records, error=error)

    async def refresh_football(self, target: Optional[date] = None) -> RefreshResult:
        day = target or uk_today(self._clock())
        return await self._refresh(
            self._football,
            self.football_sources,
            day,
            f"football_matches_{day.isoformat()}",
            lambda: default_fixtures(day),
        )

    async def refresh_ufc(self) -> RefreshResult:
        now = self._clock()
        return await self._refresh(
            self._ufc,
            self.ufc_sources,
            uk_today(now),
            "ufc_events_latest",
            lambda: default_ufc_events(now),
        )

    async def refresh_all(self, target: Optional[date] = None) -> Tuple[RefreshResult, RefreshResult]:
        football, ufc = await asyncio.gather(self.refresh_football(target), self.refresh_ufc())
        return football, ufc

    async def cleanup(self) -> CleanupResult:
        policy = self.config.eviction
        async with self._store_lock:
            doc = await self.store.load()
            now = self._clock()
            doc.football_matches, football_removed = policy.evict(doc.football_matches, now)
            doc.ufc_events, ufc_removed = policy.evict(doc.ufc_events, now)
            doc.last_cleanup = now
            saved = await self._save(doc)
        self.log.info("Cleanup removed %d fixtures and %d UFC events", football_removed, ufc_removed)
        return CleanupResult(
            success=saved,
            football_removed=football_removed,
            ufc_removed=ufc_removed,
            error=None if saved else "cleaned data could not be saved",
        )

    async def status(self) -> Dict[str, Any]:
        doc = await self.store.load()
        return {
            "lastCleanup": isoformat_z(doc.last_cleanup) if doc.last_cleanup else None,
            "lastFetch": isoformat_z(doc.last_fetch) if doc.last_fetch else None,
            "lastUFCFetch": isoformat_z(doc.last_ufc_fetch) if doc.last_ufc_fetch else None,
            "footballMatches": len(doc.football_matches),
            "ufcEvents": len(doc.ufc_events),
            "state": {name: state.value for name, state in self.state.items()},
        }


def _client(settings: SourceSettings, transport: Optional[httpx.AsyncBaseTransport]) -> SourceClient:
    return SourceClient(settings.base_url, timeout_s=settings.timeout_s, transport=transport)


def build_default_sources(
    config: FeedConfig,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Tuple[List[Source], List[Source]]:
    """Football and UFC sources in priority order."""
    fixture_parser = FixtureParser()
    search_parser = EventParser(source=SOURCE_UFC_SEARCH)
    page_parser = EventParser(source=SOURCE_UFC_PAGE)

    football = [
        Source(
            name="football-site",
            client=_client(config.football_site, transport),
            parse=fixture_parser.parse,
            path=config.football_site.path,
            headers={"Accept": "text/html,application/xhtml+xml"},
            min_interval_s=config.football_site.min_interval_s,
            retry=config.retry,
        ),
        Source(
            name="football-api",
            client=_client(config.football_api, transport),
            parse=parse_api_matches,
            path=config.football_api.path,
            params=lambda d: {"dateFrom": d.isoformat(), "dateTo": (d + timedelta(days=1)).isoformat()},
            headers={"X-Auth-Token": config.football_data_api_key or "", "Accept": "application/json"},
            min_interval_s=config.football_api.min_interval_s,
            retry=config.retry,
            configured=bool(config.football_data_api_key),
        ),
    ]
    ufc = [
        Source(
            name="ufc-search",
            client=_client(config.ufc_search, transport),
            parse=lambda body, _: search_parser.parse(body),
            path=config.ufc_search.path,
            params=lambda _: {
                "key": config.ufc_search_api_key or "",
                "cx": config.ufc_search_engine_id or "",
                "q": "UFC next event date UK time main card",
                "num": 10,
            },
            min_interval_s=config.ufc_search.min_interval_s,
            retry=config.retry,
            configured=bool(config.ufc_search_api_key and config.ufc_search_engine_id),
        ),
        Source(
            name="ufc-events-page",
            client=_client(config.ufc_events, transport),
            parse=lambda body, _: page_parser.parse(body),
            path=config.ufc_events.path,
            headers={"Accept": "text/html,application/xhtml+xml", "User-Agent": DEFAULT_USER_AGENT},
            alternate_headers=ALTERNATE_BROWSER_HEADERS,
            min_interval_s=config.ufc_events.min_interval_s,
            retry=config.retry,
        ),
    ]
    return football, ufc
