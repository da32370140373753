"""Shared fixtures for all tests."""

import asyncio
import sys
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

# Ensure scripts/ is on sys.path so 'core' and 'fetchers' are importable
SCRIPTS_DIR = Path(__file__).resolve().parent.parent
if str(SCRIPTS_DIR) not in sys.path:
    sys.path.insert(0, str(SCRIPTS_DIR))

from requests.structures import CaseInsensitiveDict

from core.api_client import ApiResponse, GitHubApiClient
from core.cache import ResponseCache
from core.models import FetchSettings
from core.throttle import ThrottleQueue


# ---------- Time ----------

class FakeClock:
    """Deterministic clock; ``sleep`` advances time instead of waiting."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start
        self.sleeps = []

    def time(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds

    async def sleep(self, seconds: float):
        self.sleeps.append(seconds)
        self.now += seconds
        await asyncio.sleep(0)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def throttle(clock) -> ThrottleQueue:
    return ThrottleQueue(min_interval=0.8, clock=clock.time, sleep=clock.sleep)


@pytest.fixture
def cache(throttle, clock) -> ResponseCache:
    return ResponseCache(throttle, ttl=120.0, clock=clock.time)


# ---------- HTTP ----------

def make_response(status: int = 200, body=None, headers=None) -> ApiResponse:
    return ApiResponse(status_code=status, headers=CaseInsensitiveDict(headers or {}), body=body)


@pytest.fixture
def mock_api():
    """Mock GitHubApiClient whose get/graphql return queued ApiResponses."""
    api = MagicMock(spec=GitHubApiClient)
    api.settings = FetchSettings()
    api.get = AsyncMock()
    api.graphql = AsyncMock()
    return api


# ---------- Raw upstream payloads ----------

def rest_item(issue_id=1001, number=1, repo="TestOrg/test-repo", reactions=0,
              comments=0, created_at="2025-06-15T10:00:00Z", **extra) -> dict:
    item = {
        "id": issue_id,
        "number": number,
        "title": f"Issue {number}",
        "html_url": f"https://github.com/{repo}/issues/{number}",
        "repository_url": f"https://api.github.com/repos/{repo}",
        "labels": [{"name": "good first issue", "color": "7057ff"}],
        "user": {
            "login": "octocat",
            "avatar_url": "https://avatars.githubusercontent.com/u/1",
            "html_url": "https://github.com/octocat",
        },
        "comments": comments,
        "created_at": created_at,
        "updated_at": created_at,
        "body": "Steps to reproduce",
        "state": "open",
        "assignee": None,
        "assignees": [],
        "reactions": {"total_count": reactions},
    }
    item.update(extra)
    return item


def graphql_node(issue_id=1001, number=1, repo="TestOrg/test-repo", reactions=0,
                 comments=0, created_at="2025-06-15T10:00:00Z", **extra) -> dict:
    node = {
        "databaseId": issue_id,
        "number": number,
        "title": f"Issue {number}",
        "url": f"https://github.com/{repo}/issues/{number}",
        "bodyText": "Steps to reproduce",
        "state": "OPEN",
        "createdAt": created_at,
        "updatedAt": created_at,
        "comments": {"totalCount": comments},
        "reactions": {"totalCount": reactions},
        "labels": {"nodes": [{"name": "good first issue", "color": "7057ff"}]},
        "author": {
            "login": "octocat",
            "avatarUrl": "https://avatars.githubusercontent.com/u/1",
            "url": "https://github.com/octocat",
        },
        "assignees": {"nodes": []},
        "repository": {"nameWithOwner": repo, "url": f"https://github.com/{repo}"},
    }
    node.update(extra)
    return node


def rest_search_body(items, total=None) -> dict:
    return {"total_count": len(items) if total is None else total,
            "incomplete_results": False, "items": items}
