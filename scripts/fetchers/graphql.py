"""GraphQL fetcher — cursor-paginated search and batched multi-repo search.

Requires a token (GitHub's GraphQL API is not available without auth).
A batch of up to ``batch_size`` repositories costs one request: each
repository becomes an aliased ``search`` field of the same document.
"""

import logging
from typing import Optional

from core.aggregator import BatchOutcome
from core.api_client import GitHubApiClient
from core.cache import CursorMap, LoadResult, ResponseCache
from core.errors import (
    GitHubApiError, apply_backoff, classify_graphql_errors, classify_response, rate_limit_info,
)
from core.models import FetchResult, SearchFilter
from core.normalize import normalize_graphql_issue
from core.query_builder import build_search_query, with_sort_qualifier
from fetchers.base import BaseFetcher

log = logging.getLogger("gfi.fetcher.graphql")

# Keeps the aggregate query cost under GitHub's per-request ceiling
GQL_BATCH_SIZE = 10

# Issue fields requested everywhere — single source of truth
GQL_ISSUE_FIELDS = """
          databaseId number title url bodyText state createdAt updatedAt
          comments { totalCount }
          reactions { totalCount }
          labels(first: 10) { nodes { name color } }
          author { login avatarUrl url }
          assignees(first: 1) { nodes { login } }
          repository { nameWithOwner url }
"""

SEARCH_ISSUES_QUERY = """
query SearchIssues($query: String!, $first: Int!, $after: String) {
  rateLimit { remaining resetAt cost }
  search(query: $query, type: ISSUE, first: $first, after: $after) {
    issueCount
    pageInfo { endCursor hasNextPage }
    nodes {
      ... on Issue {%s      }
    }
  }
}
""" % GQL_ISSUE_FIELDS


def build_batch_query(count: int) -> str:
    """One aliased ``search`` per repository: ``repo_0`` .. ``repo_{count-1}``.

    Search strings and cursors travel as variables ``$q<i>`` / ``$a<i>``.
    """
    params = ["$first: Int!"]
    aliases = []
    for i in range(count):
        params.append(f"$q{i}: String!")
        params.append(f"$a{i}: String")
        aliases.append(
            f"  repo_{i}: search(query: $q{i}, type: ISSUE, first: $first, after: $a{i}) {{\n"
            f"    issueCount\n"
            f"    pageInfo {{ endCursor hasNextPage }}\n"
            f"    nodes {{ ... on Issue {{{GQL_ISSUE_FIELDS}    }} }}\n"
            f"  }}"
        )
    return ("query BatchSearchIssues(" + ", ".join(params) + ") {\n"
            "  rateLimit { remaining resetAt cost }\n"
            + "\n".join(aliases) + "\n}\n")


class GraphQLIssueFetcher(BaseFetcher):
    """Search issues via the GraphQL API."""

    protocol = "graphql"

    def __init__(self, api: GitHubApiClient, cache: ResponseCache,
                 cursors: Optional[CursorMap] = None, batch_size: int = GQL_BATCH_SIZE):
        super().__init__(api, cache.throttle)
        self.cache = cache
        self.cursors = cursors if cursors is not None else CursorMap()
        self.batch_size = batch_size

    @staticmethod
    def fingerprint(query: str, sort_by: str, page: int, per_page: int) -> str:
        return f"gql:{query}:{sort_by}:{page}:{per_page}"

    @staticmethod
    def cursor_key(query: str, sort_by: str, per_page: int) -> str:
        return f"gql:{query}:{sort_by}:{per_page}"

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _post(self, query: str, variables: dict, token: str):
        """Send one GraphQL document; unthrottled, callers must queue it.

        Returns ``(data, rate_limit_remaining, rate_limit_reset)``.
        """
        if not token:
            raise ValueError("GraphQL API requires a GitHub token")

        resp = await self.api.graphql(query, variables, token)

        if not resp.ok:
            self._raise_for(classify_response(resp.status_code, resp.body, resp.headers))

        payload = resp.body if isinstance(resp.body, dict) else {}
        if payload.get("errors"):
            for err in payload["errors"][:3]:
                log.error("GraphQL error: %s", (err or {}).get("message", "?"))
            self._raise_for(classify_graphql_errors(payload["errors"], resp.headers))

        apply_backoff(self.throttle, headers=resp.headers)
        cost = ((payload.get("data") or {}).get("rateLimit") or {}).get("cost")
        if cost is not None:
            log.debug("  [GraphQL] 查询消耗 %s 点", cost)
        remaining, reset = rate_limit_info(resp.headers)
        return payload.get("data") or {}, remaining, reset

    async def request(self, query: str, variables: dict, token: str):
        """Queue one GraphQL document behind every other outbound request."""
        return await self.throttle.submit(lambda: self._post(query, variables, token))

    # ------------------------------------------------------------------
    # Single search
    # ------------------------------------------------------------------

    async def fetch_page(self, query: str, sort_by: str, page: int = 1, per_page: int = 30,
                         token: Optional[str] = None) -> FetchResult:
        if not token:
            raise ValueError("GraphQL API requires a GitHub token")

        base_key = self.cursor_key(query, sort_by, per_page)
        gql_query = with_sort_qualifier(query, sort_by)

        async def _load(_etag: Optional[str]) -> LoadResult:
            variables = {
                "query": gql_query,
                "first": per_page,
                "after": self.cursors.cursor_for(base_key, page),
            }
            data, remaining, reset = await self._post(SEARCH_ISSUES_QUERY, variables, token)
            search = data.get("search") or {}
            self.cursors.remember(base_key, page, (search.get("pageInfo") or {}).get("endCursor"))
            result = FetchResult(
                total_count=search.get("issueCount", 0) or 0,
                items=[normalize_graphql_issue(n) for n in search.get("nodes") or [] if n],
                rate_limit_remaining=remaining,
                rate_limit_reset=reset,
            )
            log.info("  [GraphQL] 第 %d 页: %d 条 (共 %d)", page, len(result.items), result.total_count)
            return LoadResult(payload=result)

        return await self.cache.get(self.fingerprint(query, sort_by, page, per_page), _load)

    # ------------------------------------------------------------------
    # Batched multi-repository search
    # ------------------------------------------------------------------

    async def fetch_batch(self, repos: list, filt: SearchFilter, token: Optional[str],
                          page: int, per_page: int) -> BatchOutcome:
        """One request for up to ``batch_size`` repositories.

        A failed request is reported once per repository of the chunk.
        """
        if not token:
            raise ValueError("GraphQL API requires a GitHub token")
        if len(repos) > self.batch_size:
            raise ValueError(f"batch of {len(repos)} repos exceeds batch_size={self.batch_size}")

        outcome = BatchOutcome()
        chunk = list(repos)
        variables = {"first": per_page}
        cursor_keys = []
        for i, repo in enumerate(chunk):
            query = build_search_query(filt.for_repository(repo))
            cursor_key = self.cursor_key(query, filt.sort_by, per_page)
            cursor_keys.append(cursor_key)
            variables[f"q{i}"] = with_sort_qualifier(query, filt.sort_by)
            variables[f"a{i}"] = self.cursors.cursor_for(cursor_key, page)

        try:
            data, remaining, reset = await self.request(build_batch_query(len(chunk)), variables, token)
        except GitHubApiError as e:
            outcome.errors.extend(self._source_errors(chunk, e))
            outcome.rate_limited = e.is_rate_limit
            return outcome

        for i, repo in enumerate(chunk):
            repo_data = data.get(f"repo_{i}")
            if not repo_data:
                log.debug("  [GraphQL] %s 无数据", repo)
                continue
            self.cursors.remember(cursor_keys[i], page,
                                  (repo_data.get("pageInfo") or {}).get("endCursor"))
            outcome.results.append((repo, FetchResult(
                total_count=repo_data.get("issueCount", 0) or 0,
                items=[normalize_graphql_issue(n) for n in repo_data.get("nodes") or [] if n],
                rate_limit_remaining=remaining,
                rate_limit_reset=reset,
            )))
        log.info("  [GraphQL] 批量 %d 个仓库: %d 个有结果", len(chunk), len(outcome.results))
        return outcome
