"""REST fetcher — ``GET /search/issues``, one call per page, ETag-aware."""

import logging
from typing import Optional

from core.aggregator import BatchOutcome
from core.api_client import GitHubApiClient
from core.cache import LoadResult, ResponseCache
from core.errors import GitHubApiError, apply_backoff, classify_response, rate_limit_info
from core.models import FetchResult, SearchFilter
from core.normalize import normalize_rest_issue
from core.query_builder import build_search_query
from fetchers.base import BaseFetcher

log = logging.getLogger("gfi.fetcher.rest")


class RestIssueFetcher(BaseFetcher):
    """Search issues via the REST Search API.

    Works with or without a token.  Every page goes through the response
    cache, so repeated polls inside the TTL cost nothing and later polls are
    conditional GETs.
    """

    protocol = "rest"
    batch_size = 1

    def __init__(self, api: GitHubApiClient, cache: ResponseCache):
        super().__init__(api, cache.throttle)
        self.cache = cache

    @staticmethod
    def fingerprint(query: str, sort_by: str, page: int, per_page: int) -> str:
        return f"rest:{query}:{sort_by}:{page}:{per_page}"

    async def fetch_page(self, query: str, sort_by: str, page: int = 1, per_page: int = 30,
                         token: Optional[str] = None) -> FetchResult:
        params = {
            "q": query,
            "sort": sort_by,
            "order": "desc",
            "page": page,
            "per_page": per_page,
        }

        async def _load(etag: Optional[str]) -> LoadResult:
            resp = await self.api.get(self.api.settings.search_url, params=params,
                                      token=token, etag=etag)
            if not resp.ok and not resp.not_modified:
                self._raise_for(classify_response(resp.status_code, resp.body, resp.headers))

            # Retry-After counts on 2xx and 304 alike
            apply_backoff(self.throttle, headers=resp.headers)
            if resp.not_modified:
                return LoadResult(not_modified=True)

            data = resp.body if isinstance(resp.body, dict) else {}
            remaining, reset = rate_limit_info(resp.headers)
            result = FetchResult(
                total_count=data.get("total_count", 0) or 0,
                items=[normalize_rest_issue(item) for item in data.get("items") or [] if item],
                rate_limit_remaining=remaining,
                rate_limit_reset=reset,
            )
            log.info("  [REST] 第 %d 页: %d 条 (共 %d)", page, len(result.items), result.total_count)
            return LoadResult(payload=result, etag=resp.etag)

        return await self.cache.get(self.fingerprint(query, sort_by, page, per_page), _load)

    async def fetch_batch(self, repos: list, filt: SearchFilter, token: Optional[str],
                          page: int, per_page: int) -> BatchOutcome:
        outcome = BatchOutcome()
        for repo in repos:
            query = build_search_query(filt.for_repository(repo))
            try:
                result = await self.fetch_page(query, filt.sort_by, page, per_page, token)
            except GitHubApiError as e:
                outcome.errors.extend(self._source_errors([repo], e))
                if e.is_rate_limit:
                    outcome.rate_limited = True
                    break
            else:
                outcome.results.append((repo, result))
        return outcome
