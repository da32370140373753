"""Base fetcher interface shared by the REST and GraphQL transports."""

import logging
from abc import ABC, abstractmethod
from typing import Optional

from core.aggregator import BatchOutcome
from core.api_client import GitHubApiClient
from core.errors import GitHubApiError, apply_backoff
from core.models import FetchResult, SearchFilter, SourceError
from core.throttle import ThrottleQueue

log = logging.getLogger("gfi.fetcher")


class BaseFetcher(ABC):
    """Abstract base class for issue transports.

    A fetcher answers two questions: one page of one search
    (:meth:`fetch_page`) and one chunk of a multi-repository search
    (:meth:`fetch_batch`, at most ``batch_size`` repositories).
    """

    protocol: str = "base"
    batch_size: int = 1

    def __init__(self, api: GitHubApiClient, throttle: ThrottleQueue):
        self.api = api
        self.throttle = throttle

    @abstractmethod
    async def fetch_page(self, query: str, sort_by: str, page: int, per_page: int,
                         token: Optional[str] = None) -> FetchResult:
        """Fetch one page of results for a pre-built search query."""
        ...

    @abstractmethod
    async def fetch_batch(self, repos: list, filt: SearchFilter, token: Optional[str],
                          page: int, per_page: int) -> BatchOutcome:
        """Fetch up to ``batch_size`` repositories, never raising API errors."""
        ...

    def _raise_for(self, error: GitHubApiError):
        """Apply the back-off an error implies, log it, then raise it."""
        apply_backoff(self.throttle, error,
                      default_seconds=self.api.settings.secondary_backoff)
        log.error("[%s] %s (HTTP %d): %s", self.protocol, error.category.value,
                  error.status, error.technical_message)
        raise error

    @staticmethod
    def _source_errors(repos: list, error: GitHubApiError) -> list:
        return [
            SourceError(repo=repo, message=error.message, status=error.status,
                        category=error.category.value)
            for repo in repos
        ]
