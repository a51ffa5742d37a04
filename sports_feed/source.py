from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional

import httpx

from .util import DEFAULT_USER_AGENT


logger = logging.getLogger(__name__)

SNIPPET_LIMIT = 200


class FetchError(Exception):
    """Base class for anything that stops a source from returning a body."""


class FetchTimeoutError(FetchError):
    pass


class FetchNetworkError(FetchError):
    pass


class HttpStatusError(FetchError):
    def __init__(self, status_code: int, snippet: str = "", *, url: str = "") -> None:
        self.status_code = int(status_code)
        self.snippet = (snippet or "")[:SNIPPET_LIMIT]
        self.url = url
        super().__init__(f"HTTP {self.status_code} from {url or 'source'}: {self.snippet}")

    @property
    def retryable(self) -> bool:
        return self.status_code == 429 or 500 <= self.status_code <= 599


class MalformedBodyError(FetchError):
    """The source answered, but its body could not be turned into records."""


class SourceNotConfiguredError(FetchError):
    pass


class SourceClient:
    """Thin async GET wrapper around one host.

    Holds no retry or cache logic; callers decide what a failure means.
    """

    def __init__(
        self,
        base_url: str,
        *,
        headers: Optional[Mapping[str, str]] = None,
        timeout_s: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout_s = float(timeout_s)
        default_headers: Dict[str, str] = {"User-Agent": DEFAULT_USER_AGENT}
        default_headers.update(headers or {})
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=default_headers,
            timeout=self.timeout_s,
            follow_redirects=True,
            transport=transport,
        )

    @property
    def host(self) -> str:
        return httpx.URL(self.base_url).host or self.base_url

    async def fetch(
        self,
        path: str = "/",
        *,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Mapping[str, str]] = None,
        timeout_s: Optional[float] = None,
    ) -> str:
        timeout = self.timeout_s if timeout_s is None else float(timeout_s)
        try:
            resp = await self.client.get(path, params=params, headers=headers, timeout=timeout)
        except httpx.TimeoutException as e:
            raise FetchTimeoutError(f"timed out after {timeout:.0f}s fetching {self.host}{path}") from e
        except httpx.RequestError as e:
            raise FetchNetworkError(f"{type(e).__name__} fetching {self.host}{path}: {e}") from e

        if not resp.is_success:
            raise HttpStatusError(resp.status_code, resp.text, url=str(resp.request.url))
        logger.debug("GET %s%s -> %s (%d bytes)", self.host, path, resp.status_code, len(resp.content))
        return resp.text

    async def aclose(self) -> None:
        await self.client.aclose()

    async def __aenter__(self) -> "SourceClient":
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.aclose()


async def http_get(
    host: str,
    path: str,
    headers: Optional[Mapping[str, str]] = None,
    timeout_ms: int = 15000,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> str:
    """One-shot GET against ``https://{host}{path}``."""
    async with SourceClient(f"https://{host}", headers=headers, timeout_s=timeout_ms / 1000, transport=transport) as client:
        return await client.fetch(path)
