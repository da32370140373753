"""GitHub HTTP client (REST + GraphQL) with rate-limit tracking.

The client performs exactly one HTTP call per method call: no retries, no
sleeping.  Pacing and back-off belong to :class:`core.throttle.ThrottleQueue`,
and callers decide what a status code means via :mod:`core.errors`.

``requests`` is blocking, so each call runs in a worker thread; the throttle
queue guarantees at most one of them is in flight.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Optional

try:
    import requests
    from requests.structures import CaseInsensitiveDict
except ImportError:
    raise ImportError("requests library required. Install with: pip install requests")

from core.errors import classify_transport_failure, rate_limit_info
from core.models import FetchSettings

log = logging.getLogger("gfi.api")

USER_AGENT = "github-fresh-issues/1.0"


@dataclass
class ApiResponse:
    """The parts of an HTTP response the fetchers care about.

    ``body`` is the parsed JSON, the raw text if parsing failed, or ``None``
    for an empty body (e.g. 304).
    """
    status_code: int
    headers: CaseInsensitiveDict = field(default_factory=CaseInsensitiveDict)
    body: Any = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def not_modified(self) -> bool:
        return self.status_code == 304

    @property
    def etag(self) -> Optional[str]:
        return self.headers.get("ETag")

    @classmethod
    def from_requests(cls, resp) -> "ApiResponse":
        headers = CaseInsensitiveDict(resp.headers or {})
        body = None
        if resp.status_code != 304:
            try:
                body = resp.json()
            except ValueError:
                body = resp.text
        return cls(status_code=resp.status_code, headers=headers, body=body)


class GitHubApiClient:
    """Thin async wrapper around a :class:`requests.Session`.

    The token is passed per call rather than stored on the session: the
    caller owns the credential and may change it between calls.
    """

    def __init__(self, settings: Optional[FetchSettings] = None,
                 session: Optional[requests.Session] = None):
        self.settings = settings or FetchSettings()
        self.session = session or requests.Session()
        self.session.headers["Accept"] = "application/vnd.github+json"
        self.session.headers["User-Agent"] = USER_AGENT
        # Last observed quota, from response headers
        self.rate_remaining: Optional[int] = None
        self.rate_reset: Optional[int] = None

    @staticmethod
    def _auth_headers(token: Optional[str]) -> dict:
        return {"Authorization": f"Bearer {token}"} if token else {}

    def _track_rate_limit(self, headers):
        remaining, reset = rate_limit_info(headers)
        if remaining is not None:
            self.rate_remaining = remaining
            self.rate_reset = reset
            if remaining < 5:
                log.warning("API 配额即将耗尽 (剩余 %d)", remaining)

    def _send(self, method: str, url: str, **kwargs) -> ApiResponse:
        try:
            resp = self.session.request(method, url, timeout=self.settings.timeout, **kwargs)
        except requests.RequestException as e:
            log.error("请求失败: %s %s: %s", method, url, e)
            raise classify_transport_failure(e) from e
        result = ApiResponse.from_requests(resp)
        self._track_rate_limit(result.headers)
        log.debug("%s %s -> %d", method, url, result.status_code)
        return result

    async def get(self, url: str, params: Optional[dict] = None,
                  token: Optional[str] = None, etag: Optional[str] = None) -> ApiResponse:
        """Conditional GET: sends ``If-None-Match`` when *etag* is given."""
        headers = self._auth_headers(token)
        if etag:
            headers["If-None-Match"] = etag
        return await asyncio.to_thread(self._send, "GET", url, params=params, headers=headers)

    async def graphql(self, query: str, variables: Optional[dict], token: str) -> ApiResponse:
        """POST ``{query, variables}`` to the GraphQL endpoint."""
        payload = {"query": query, "variables": variables or {}}
        headers = self._auth_headers(token)
        headers["Content-Type"] = "application/json"
        return await asyncio.to_thread(self._send, "POST", self.settings.graphql_url,
                                       json=payload, headers=headers)
