"""Data models for GitHub Fresh Issues."""

import json
from dataclasses import dataclass, field, replace
from typing import Optional

SORT_KEYS = ("reactions", "comments", "created", "updated")

# GitHub Search API never returns more than 100 items per page
MAX_PER_PAGE = 100


# ============================================================================
# Issue record
# ============================================================================

@dataclass(frozen=True)
class Label:
    name: str
    color: str = ""


@dataclass(frozen=True)
class Author:
    login: str = "ghost"
    avatar: str = ""
    url: str = ""


@dataclass(frozen=True)
class Issue:
    """Canonical issue record, identical for REST and GraphQL sources."""
    id: int
    number: int
    title: str
    url: str
    repo_full_name: str
    labels: tuple = ()
    user: Author = field(default_factory=Author)
    comments: int = 0
    reactions: int = 0
    created_at: str = ""
    updated_at: str = ""
    body: str = ""
    state: str = "open"
    assignee: Optional[str] = None


# ============================================================================
# Results
# ============================================================================

@dataclass
class SourceError:
    """One failed repository inside a multi-repository fetch."""
    repo: str
    message: str
    status: int = 0
    category: str = "unknown"


@dataclass
class FetchResult:
    total_count: int = 0
    items: list = field(default_factory=list)
    rate_limit_remaining: Optional[int] = None
    rate_limit_reset: Optional[int] = None
    errors: list = field(default_factory=list)
    skipped: list = field(default_factory=list)
    source_count: int = 0

    @property
    def is_total_failure(self) -> bool:
        """No items and no repository answered successfully."""
        if self.items or not self.errors:
            return False
        attempted = self.source_count - len(self.skipped)
        return len({e.repo for e in self.errors}) >= attempted

    def copy(self) -> "FetchResult":
        return replace(self, items=list(self.items), errors=list(self.errors),
                       skipped=list(self.skipped))


# ============================================================================
# Filter
# ============================================================================

@dataclass(frozen=True)
class SearchFilter:
    """User-facing search filter.  Each field's zero value means "unset"."""
    labels: tuple = ()
    language: str = ""
    time_window: int = 0  # minutes; 0 = any time
    keyword: str = ""
    repo: str = ""
    no_assignee: bool = False
    min_stars: int = 0
    min_comments: int = 0
    sort_by: str = "reactions"

    def for_repository(self, repo: str) -> "SearchFilter":
        """Scope to one repository; a star floor is meaningless there."""
        return replace(self, repo=repo, min_stars=0)

    def validate(self) -> list[str]:
        errors = []
        if self.sort_by not in SORT_KEYS:
            errors.append(f"sort_by={self.sort_by!r} 无效，可选: {', '.join(SORT_KEYS)}")
        for field_name in ("time_window", "min_stars", "min_comments"):
            if getattr(self, field_name) < 0:
                errors.append(f"{field_name} 不能为负数")
        if self.repo and self.repo.count("/") != 1:
            errors.append(f"repo={self.repo!r} 格式错误，应为 owner/name")
        return errors

    @classmethod
    def from_dict(cls, data: dict) -> "SearchFilter":
        labels = data.get("labels") or ()
        if isinstance(labels, str):
            labels = (labels,)
        return cls(
            labels=tuple(labels),
            language=data.get("language", "") or "",
            time_window=int(data.get("time_window", 0) or 0),
            keyword=data.get("keyword", "") or "",
            repo=data.get("repo", "") or "",
            no_assignee=bool(data.get("no_assignee", False)),
            min_stars=int(data.get("min_stars", 0) or 0),
            min_comments=int(data.get("min_comments", 0) or 0),
            sort_by=data.get("sort_by", "reactions") or "reactions",
        )


# ============================================================================
# Configuration
# ============================================================================

@dataclass
class FetchSettings:
    """Tunables for the API-access layer, loadable from a JSON file."""
    api_url: str = "https://api.github.com"
    graphql_url: str = "https://api.github.com/graphql"
    min_interval: float = 0.8  # seconds between two outbound requests
    cache_ttl: float = 120.0
    batch_size: int = 10  # repos per batched GraphQL query
    timeout: float = 30.0
    secondary_backoff: float = 60.0

    @property
    def search_url(self) -> str:
        return f"{self.api_url}/search/issues"

    def validate(self) -> list[str]:
        errors = []
        if self.min_interval < 0:
            errors.append("min_interval 不能为负数")
        if self.cache_ttl < 0:
            errors.append("cache_ttl 不能为负数")
        if not 1 <= self.batch_size <= 10:
            errors.append(f"batch_size={self.batch_size} 超出范围 (1~10)")
        if self.timeout <= 0:
            errors.append("timeout 必须大于 0")
        return errors

    @classmethod
    def from_json(cls, path: str) -> "FetchSettings":
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        cfg = cls()
        for name in ("api_url", "graphql_url"):
            if data.get(name):
                setattr(cfg, name, data[name].rstrip("/") if name == "api_url" else data[name])
        for name in ("min_interval", "cache_ttl", "timeout", "secondary_backoff"):
            if name in data:
                setattr(cfg, name, float(data[name]))
        if "batch_size" in data:
            cfg.batch_size = int(data["batch_size"])
        return cfg
