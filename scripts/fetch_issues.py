#!/usr/bin/env python3
"""
GitHub Fresh Issues
===================

在 GitHub 上查找新鲜的、适合贡献的 issue（例如 "good first issue"），
在严格的 API 配额下工作：全局请求节流、TTL + ETag 缓存、REST / GraphQL
双通道、多仓库聚合。

Library use::

    from fetch_issues import fetch_issues, fetch_issues_for_repositories
    result = await fetch_issues(SearchFilter(labels=("good first issue",)), token)

用法:
    # 全站搜索最近 24 小时的 good first issue
    python fetch_issues.py --labels "good first issue" --time-window 1440 --no-assignee

    # 只看关注的几个仓库
    python fetch_issues.py --repos owner/a owner/b --labels "help wanted" --json

环境变量:
    GITHUB_TOKEN: 设置后走 GraphQL（批量查询，配额更充足）；未设置走 REST
"""

import argparse
import asyncio
import json
import logging
import os
import sys
import time
from dataclasses import asdict
from typing import Optional

# Add script directory to path for package imports
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from core.aggregator import aggregate, dedupe_and_sort
from core.api_client import GitHubApiClient
from core.cache import CursorMap, ResponseCache
from core.errors import GitHubApiError
from core.models import FetchResult, FetchSettings, SearchFilter, MAX_PER_PAGE
from core.query_builder import build_search_query
from core.throttle import ThrottleQueue
from fetchers.graphql import GraphQLIssueFetcher
from fetchers.rest import RestIssueFetcher

log = logging.getLogger("gfi")


class FetchContext:
    """The process-wide API state: one queue, one cache, one cursor map.

    Every fetch in the process must share the same context, otherwise the
    throttle cannot see all outbound traffic.
    """

    def __init__(self, settings: Optional[FetchSettings] = None,
                 api: Optional[GitHubApiClient] = None,
                 throttle: Optional[ThrottleQueue] = None,
                 clock=time.time):
        self.settings = settings or FetchSettings()
        self.api = api or GitHubApiClient(self.settings)
        self.throttle = throttle or ThrottleQueue(self.settings.min_interval, clock=clock)
        self.cache = ResponseCache(self.throttle, ttl=self.settings.cache_ttl, clock=clock)
        self.cursors = CursorMap()
        self.rest = RestIssueFetcher(self.api, self.cache)
        self.graphql = GraphQLIssueFetcher(self.api, self.cache, self.cursors,
                                           batch_size=self.settings.batch_size)

    def fetcher_for(self, token: Optional[str]):
        """GraphQL when authenticated, REST otherwise."""
        return self.graphql if token else self.rest


_default_context: Optional[FetchContext] = None


def default_context() -> FetchContext:
    global _default_context
    if _default_context is None:
        _default_context = FetchContext()
    return _default_context


async def fetch_issues(filt: SearchFilter, token: Optional[str] = None, page: int = 1,
                       per_page: int = 30, context: Optional[FetchContext] = None) -> FetchResult:
    """Fetch one page of issues matching *filt*.

    Raises:
        GitHubApiError: classified failure (see :mod:`core.errors`).
    """
    ctx = context or default_context()
    query = build_search_query(filt)
    fetcher = ctx.fetcher_for(token)
    result = await fetcher.fetch_page(query, filt.sort_by, page, per_page, token)
    # Cached payloads are shared; hand out a copy
    out = result.copy()
    out.items = dedupe_and_sort(out.items, filt.sort_by)
    return out


async def fetch_issues_for_repositories(repos: list, filt: SearchFilter,
                                        token: Optional[str] = None, page: int = 1,
                                        per_page: int = 10,
                                        context: Optional[FetchContext] = None) -> FetchResult:
    """Fetch issues across several repositories.

    Per-repository failures are reported in ``FetchResult.errors`` instead of
    raising; see :func:`core.aggregator.aggregate`.
    """
    if not repos:
        return FetchResult()
    ctx = context or default_context()
    return await aggregate(ctx.fetcher_for(token), list(repos), filt, token, page, per_page)


# ============================================================================
# CLI
# ============================================================================

def _setup_logging(verbose: bool = False, quiet: bool = False):
    """Route the "gfi" loggers to stderr; stdout carries only results.

    -v → DEBUG (cache hits, every request), -q → WARNING (back-offs and
    failures), otherwise INFO.
    """
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.WARNING
    else:
        level = logging.INFO
    gfi_logger = logging.getLogger("gfi")
    gfi_logger.setLevel(level)
    # main() may run more than once per process (tests, embedding)
    for old in list(gfi_logger.handlers):
        gfi_logger.removeHandler(old)
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("  %(levelname)-7s %(message)s"))
    gfi_logger.addHandler(handler)
    gfi_logger.propagate = False


def _result_to_dict(result: FetchResult) -> dict:
    data = asdict(result)
    data["is_total_failure"] = result.is_total_failure
    return data


def format_text(result: FetchResult) -> str:
    lines = [f"共 {result.total_count} 条匹配，显示 {len(result.items)} 条"]
    for issue in result.items:
        labels = ", ".join(l.name for l in issue.labels)
        lines.append(f"  [{issue.reactions:>3}👍 {issue.comments:>3}💬] "
                     f"{issue.repo_full_name}#{issue.number} {issue.title}")
        lines.append(f"        {issue.url}" + (f"  ({labels})" if labels else ""))
    for err in result.errors:
        lines.append(f"  [!] {err.repo}: {err.message}")
    if result.skipped:
        lines.append(f"  [!] 已跳过 {len(result.skipped)} 个仓库: {', '.join(result.skipped)}")
    if result.rate_limit_remaining is not None:
        lines.append(f"API 剩余配额: {result.rate_limit_remaining}")
    return "\n".join(lines)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="GitHub Fresh Issues — 查找新鲜的可贡献 issue",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--filter", help="JSON 过滤条件文件 (SearchFilter 字段)")
    parser.add_argument("--settings", help="JSON 设置文件 (FetchSettings 字段)")
    parser.add_argument("--labels", nargs="*", default=None)
    parser.add_argument("--language", default=None)
    parser.add_argument("--time-window", type=int, default=None,
                        help="只看最近 N 分钟创建的 issue (0 = 不限)")
    parser.add_argument("--keyword", default=None)
    parser.add_argument("--repo", default=None, help="单个仓库 owner/name")
    parser.add_argument("--repos", nargs="*", default=None,
                        help="多个仓库 (聚合搜索)")
    parser.add_argument("--no-assignee", action="store_true", default=None)
    parser.add_argument("--min-stars", type=int, default=None)
    parser.add_argument("--min-comments", type=int, default=None)
    parser.add_argument("--sort", dest="sort_by", default=None,
                        choices=["reactions", "comments", "created", "updated"])
    parser.add_argument("--page", type=int, default=1)
    parser.add_argument("--per-page", type=int, default=None)
    parser.add_argument("--json", action="store_true")

    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument("--verbose", "-v", action="store_true",
                           help="显示调试信息")
    verbosity.add_argument("--quiet", "-q", action="store_true",
                           help="只显示警告和错误")
    return parser


def filter_from_args(args) -> SearchFilter:
    data = {}
    if args.filter:
        with open(args.filter, "r", encoding="utf-8") as f:
            data = json.load(f)
    overrides = {
        "labels": args.labels,
        "language": args.language,
        "time_window": args.time_window,
        "keyword": args.keyword,
        "repo": args.repo,
        "no_assignee": args.no_assignee,
        "min_stars": args.min_stars,
        "min_comments": args.min_comments,
        "sort_by": args.sort_by,
    }
    data.update({k: v for k, v in overrides.items() if v is not None})
    return SearchFilter.from_dict(data)


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    # Configure logging before any other work
    _setup_logging(verbose=args.verbose, quiet=args.quiet)

    settings = FetchSettings.from_json(args.settings) if args.settings else FetchSettings()
    filt = filter_from_args(args)
    problems = settings.validate() + filt.validate()
    if args.per_page is not None and not 1 <= args.per_page <= MAX_PER_PAGE:
        problems.append(f"--per-page 超出范围 (1~{MAX_PER_PAGE})")
    if problems:
        for p in problems:
            log.error("配置错误: %s", p)
        return 2

    token = os.environ.get("GITHUB_TOKEN", "")
    if not token:
        log.warning("[提示] 未检测到 GITHUB_TOKEN，使用 REST (未认证配额 10次/分钟)")

    ctx = FetchContext(settings)
    try:
        if args.repos:
            result = asyncio.run(fetch_issues_for_repositories(
                args.repos, filt, token or None, args.page, args.per_page or 10, context=ctx))
        else:
            result = asyncio.run(fetch_issues(
                filt, token or None, args.page, args.per_page or 30, context=ctx))
    except GitHubApiError as e:
        log.error("[%s] %s", e.category.value, e.message)
        return 1

    if args.json:
        print(json.dumps(_result_to_dict(result), ensure_ascii=False, indent=2))
    else:
        print(format_text(result))
    return 1 if result.is_total_failure else 0


if __name__ == "__main__":
    sys.exit(main())
