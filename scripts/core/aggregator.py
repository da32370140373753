"""Multi-repository fan-out, merge, de-duplication and ordering.

GitHub search has no "repo:A OR repo:B" across arbitrary repositories, so a
watch list is searched per repository (REST) or per batch of aliased
queries (GraphQL) and the partial results are merged here.  The fan-out is
parameterized only by the fetcher's ``batch_size`` and ``fetch_batch``.
"""

import logging
from dataclasses import dataclass, field

from core.models import FetchResult, SearchFilter

log = logging.getLogger("gfi.aggregator")


@dataclass
class BatchOutcome:
    """What one ``fetch_batch`` call produced.

    ``results`` holds ``(repo, FetchResult)`` pairs for the repositories that
    answered; ``errors`` one :class:`SourceError` per failed repository.
    """
    results: list = field(default_factory=list)
    errors: list = field(default_factory=list)
    rate_limited: bool = False


def _chunks(items: list, size: int):
    size = max(1, size)
    for start in range(0, len(items), size):
        yield items[start:start + size]


def _sort_key(sort_by: str):
    # Tie-break everywhere: reactions desc, then newest first
    if sort_by == "comments":
        return lambda i: (i.comments, i.reactions, i.created_at)
    if sort_by == "created":
        return lambda i: (i.created_at, i.reactions)
    if sort_by == "updated":
        return lambda i: (i.updated_at, i.reactions, i.created_at)
    return lambda i: (i.reactions, i.created_at)


def dedupe_and_sort(items: list, sort_by: str = "reactions") -> list:
    """Drop repeated issue ids (first wins) and order by *sort_by*, descending."""
    seen = set()
    unique = []
    for item in items:
        if item.id in seen:
            continue
        seen.add(item.id)
        unique.append(item)
    return sorted(unique, key=_sort_key(sort_by), reverse=True)


def merge_results(partials: list, sort_by: str = "reactions", errors=None,
                  skipped=None, source_count: int = 0) -> FetchResult:
    """Combine per-source results into one :class:`FetchResult`.

    ``total_count`` is the sum of the upstream-reported totals, not the
    number of merged items.
    """
    all_items = []
    total = 0
    remaining = None
    reset = None
    for result in partials:
        all_items.extend(result.items)
        total += result.total_count or 0
        if result.rate_limit_remaining is not None and (
                remaining is None or result.rate_limit_remaining < remaining):
            remaining = result.rate_limit_remaining
        if result.rate_limit_reset and (reset is None or result.rate_limit_reset > reset):
            reset = result.rate_limit_reset

    return FetchResult(
        total_count=total,
        items=dedupe_and_sort(all_items, sort_by),
        rate_limit_remaining=remaining,
        rate_limit_reset=reset,
        errors=list(errors or []),
        skipped=list(skipped or []),
        source_count=source_count,
    )


async def aggregate(fetcher, repos: list, filt: SearchFilter, token=None,
                    page: int = 1, per_page: int = 10) -> FetchResult:
    """Fetch *repos* through *fetcher* and merge the results.

    Chunks run strictly one after another.  A rate-limited chunk stops the
    fan-out: the remaining repositories are reported in ``skipped`` and no
    request is made for them.
    """
    repos = [r for r in dict.fromkeys(r.strip() for r in repos) if r]
    partials = []
    errors = []
    skipped = []

    chunks = list(_chunks(repos, fetcher.batch_size))
    for idx, chunk in enumerate(chunks):
        outcome = await fetcher.fetch_batch(chunk, filt, token, page, per_page)
        partials.extend(result for _repo, result in outcome.results)
        errors.extend(outcome.errors)
        for err in outcome.errors:
            log.warning("[聚合] %s 失败: %s", err.repo, err.message)
        if outcome.rate_limited:
            skipped = [repo for rest in chunks[idx + 1:] for repo in rest]
            if skipped:
                log.warning("[聚合] 触发速率限制，跳过剩余 %d 个仓库", len(skipped))
            break

    merged = merge_results(partials, filt.sort_by, errors=errors,
                           skipped=skipped, source_count=len(repos))
    log.info("[聚合] %s: %d 个仓库, %d 条结果, %d 个错误",
             fetcher.protocol, len(repos), len(merged.items), len(errors))
    return merged
