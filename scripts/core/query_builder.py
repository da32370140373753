"""Search query builder.

把结构化的 :class:`SearchFilter` 转换成 GitHub 搜索语法。

Clause order is fixed so identical filters always produce identical query
strings, which matters because the query text is part of every cache
fingerprint::

    is:issue is:open  stars:>=N  comments:>=N  label:"x"...  language:X
    created:>TS  <keyword>  repo:owner/name  no:assignee
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from core.models import SearchFilter

log = logging.getLogger("gfi.query_builder")

# GraphQL search has no sort argument; ordering is a query qualifier
SORT_QUALIFIER = {
    "reactions": "sort:reactions-desc",
    "comments": "sort:comments-desc",
    "created": "sort:created-desc",
    "updated": "sort:updated-desc",
}
_DEFAULT_SORT_QUALIFIER = SORT_QUALIFIER["reactions"]


def _quote(value: str) -> str:
    """Always quote label names so multi-word labels survive.

    >>> _quote("good first issue")
    '"good first issue"'
    """
    return f'"{value}"'


def time_ago(minutes: int, now: Optional[datetime] = None) -> str:
    """ISO-8601 UTC instant *minutes* before *now*, truncated to seconds.

    >>> time_ago(60, datetime(2025, 1, 1, 12, 0, 0, 500, tzinfo=timezone.utc))
    '2025-01-01T11:00:00Z'
    """
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    then = (now - timedelta(minutes=minutes)).astimezone(timezone.utc)
    return then.replace(microsecond=0).strftime("%Y-%m-%dT%H:%M:%SZ")


def build_search_query(filt: SearchFilter, now: Optional[datetime] = None) -> str:
    """Build the search query string for *filt*.

    Fields left at their unset value (empty string, 0, False) emit no
    clause.  Never raises.
    """
    parts = ["is:issue", "is:open"]

    if not filt.repo and filt.min_stars > 0:
        parts.append(f"stars:>={filt.min_stars}")
    if filt.min_comments > 0:
        parts.append(f"comments:>={filt.min_comments}")

    for label in filt.labels:
        if label and label.strip():
            parts.append(f"label:{_quote(label.strip())}")

    if filt.language:
        parts.append(f"language:{filt.language}")
    if filt.time_window > 0:
        parts.append(f"created:>{time_ago(filt.time_window, now)}")
    if filt.keyword and filt.keyword.strip():
        parts.append(filt.keyword.strip())
    if filt.repo:
        parts.append(f"repo:{filt.repo}")
    if filt.no_assignee:
        parts.append("no:assignee")

    query = " ".join(parts)
    log.debug("[查询构建] %s", query)
    return query


def with_sort_qualifier(query: str, sort_by: str) -> str:
    """Append the GraphQL ``sort:`` qualifier for *sort_by*."""
    return f"{query} {SORT_QUALIFIER.get(sort_by, _DEFAULT_SORT_QUALIFIER)}"
