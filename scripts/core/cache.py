"""In-memory response cache (TTL + ETag revalidation) and GraphQL cursor map.

Entry lifecycle for one fingerprint::

    absent ──load──▶ fresh ──TTL elapses──▶ stale
                       ▲                      │
                       └── 304 / new payload ◀┘  (loader gets the stored ETag)

A stale entry is not a miss: its ETag is forwarded so GitHub can answer
``304 Not Modified`` without spending quota.  Cold misses take the same path
with no ETag.  Nothing here survives the process.
"""

import enum
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from core.errors import ErrorCategory, GitHubApiError
from core.throttle import ThrottleQueue

log = logging.getLogger("gfi.cache")

# ETags extend perceived freshness beyond this
CACHE_TTL = 120.0


class CacheState(str, enum.Enum):
    ABSENT = "absent"
    FRESH = "fresh"
    STALE = "stale"


@dataclass
class CacheEntry:
    fingerprint: str
    payload: Any
    captured_at: float
    etag: Optional[str] = None


@dataclass
class LoadResult:
    """What a cache loader returns.

    ``not_modified=True`` means "keep what you have"; payload and etag are
    ignored in that case.
    """
    not_modified: bool = False
    payload: Any = None
    etag: Optional[str] = None


Loader = Callable[[Optional[str]], Awaitable[LoadResult]]


class ResponseCache:
    """Fingerprint -> payload cache whose loads go through the throttle queue."""

    def __init__(self, throttle: ThrottleQueue, ttl: float = CACHE_TTL,
                 clock: Callable[[], float] = time.time):
        self.throttle = throttle
        self.ttl = ttl
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self.hits = 0
        self.revalidated = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, fingerprint: str) -> bool:
        return fingerprint in self._entries

    def _is_fresh(self, entry: CacheEntry) -> bool:
        return self._clock() - entry.captured_at < self.ttl

    def state(self, fingerprint: str) -> CacheState:
        entry = self._entries.get(fingerprint)
        if entry is None:
            return CacheState.ABSENT
        return CacheState.FRESH if self._is_fresh(entry) else CacheState.STALE

    def peek(self, fingerprint: str) -> Optional[CacheEntry]:
        return self._entries.get(fingerprint)

    async def get(self, fingerprint: str, loader: Loader):
        """Return the payload for *fingerprint*, loading it if not fresh.

        *loader* receives the stored ETag (or ``None``) and runs inside the
        throttle queue.  Loader exceptions propagate and leave any existing
        entry untouched.
        """
        entry = self._entries.get(fingerprint)
        if entry is not None and self._is_fresh(entry):
            self.hits += 1
            log.debug("[缓存] 命中 %s", fingerprint)
            return entry.payload

        etag = entry.etag if entry is not None else None
        outcome = await self.throttle.submit(lambda: loader(etag))

        # Re-read: a concurrent caller may have replaced the entry meanwhile
        current = self._entries.get(fingerprint) or entry
        if outcome.not_modified and current is not None:
            current.captured_at = self._clock()
            self._entries[fingerprint] = current
            self.revalidated += 1
            log.debug("[缓存] 304 未修改，续期 %s", fingerprint)
            return current.payload

        if outcome.not_modified:
            log.warning("[缓存] 收到 304 但无缓存条目: %s", fingerprint)
            raise GitHubApiError(
                ErrorCategory.UNKNOWN,
                "GitHub answered 'not modified' for a result that is not cached. "
                "Please try again.",
                status=304,
                technical_message=f"304 without cache entry for {fingerprint}",
            )

        self._entries[fingerprint] = CacheEntry(
            fingerprint=fingerprint,
            payload=outcome.payload,
            captured_at=self._clock(),
            etag=outcome.etag,
        )
        return outcome.payload

    def invalidate(self, fingerprint: str) -> bool:
        return self._entries.pop(fingerprint, None) is not None

    def clear(self):
        self._entries.clear()


class CursorMap:
    """GraphQL end cursors: base key -> {page: end cursor of that page}.

    The cursor for page *k* only exists once page *k-1* has been fetched in
    this process; otherwise the request for page *k* starts unpositioned.
    """

    def __init__(self):
        self._cursors: dict[str, dict[int, str]] = {}

    def cursor_for(self, base_key: str, page: int) -> Optional[str]:
        """The ``after`` cursor needed to request *page*."""
        if page <= 1:
            return None
        return self._cursors.get(base_key, {}).get(page - 1)

    def remember(self, base_key: str, page: int, end_cursor: Optional[str]):
        if end_cursor:
            self._cursors.setdefault(base_key, {})[page] = end_cursor

    def __len__(self) -> int:
        return len(self._cursors)

    def clear(self):
        self._cursors.clear()
