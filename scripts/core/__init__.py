"""GitHub Fresh Issues — Core modules."""

import logging

from core.models import Issue, FetchResult, FetchSettings, SearchFilter, SourceError
from core.errors import ErrorCategory, GitHubApiError
from core.throttle import ThrottleQueue
from core.cache import CursorMap, ResponseCache
from core.api_client import GitHubApiClient
from core.query_builder import build_search_query
from core.normalize import normalize_rest_issue, normalize_graphql_issue

__all__ = [
    "Issue", "FetchResult", "FetchSettings", "SearchFilter", "SourceError",
    "ErrorCategory", "GitHubApiError",
    "ThrottleQueue",
    "CursorMap", "ResponseCache",
    "GitHubApiClient",
    "build_search_query",
    "normalize_rest_issue", "normalize_graphql_issue",
]

# Package-level logger — submodules log under "gfi.<area>" (gfi.throttle,
# gfi.cache, gfi.api ...).  The entry point configures it once.
logger = logging.getLogger("gfi")  # gfi = GitHub Fresh Issues
