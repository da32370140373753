"""Tests for core.query_builder — filter -> GitHub search syntax."""

from datetime import datetime, timezone

import pytest

from core.models import SearchFilter
from core.query_builder import (
    SORT_QUALIFIER, _quote, build_search_query, time_ago, with_sort_qualifier,
)

NOW = datetime(2025, 6, 15, 12, 0, 0, 123456, tzinfo=timezone.utc)


class TestHelpers:
    def test_quote_single_word(self):
        assert _quote("bug") == '"bug"'

    def test_quote_multi_word(self):
        assert _quote("good first issue") == '"good first issue"'

    def test_time_ago_truncates_to_seconds(self):
        assert time_ago(60, NOW) == "2025-06-15T11:00:00Z"

    def test_time_ago_one_day(self):
        assert time_ago(1440, NOW) == "2025-06-14T12:00:00Z"

    def test_time_ago_naive_datetime_is_utc(self):
        assert time_ago(5, datetime(2025, 1, 1, 0, 0, 0)) == "2024-12-31T23:55:00Z"


class TestBuildSearchQuery:
    def test_empty_filter_only_state_clauses(self):
        assert build_search_query(SearchFilter(), NOW) == "is:issue is:open"

    def test_full_filter_clause_order(self):
        filt = SearchFilter(
            labels=("good first issue", "help wanted"),
            language="Python",
            time_window=60,
            keyword="parser",
            min_stars=100,
            min_comments=2,
            no_assignee=True,
        )
        assert build_search_query(filt, NOW) == (
            'is:issue is:open stars:>=100 comments:>=2 '
            'label:"good first issue" label:"help wanted" '
            'language:Python created:>2025-06-15T11:00:00Z parser no:assignee'
        )

    def test_repo_scope_drops_star_floor(self):
        filt = SearchFilter(repo="owner/name", min_stars=500)
        query = build_search_query(filt, NOW)
        assert "stars:" not in query
        assert query.endswith("repo:owner/name")

    def test_repo_before_no_assignee(self):
        filt = SearchFilter(repo="owner/name", no_assignee=True)
        assert build_search_query(filt, NOW) == "is:issue is:open repo:owner/name no:assignee"

    def test_keyword_inserted_verbatim(self):
        filt = SearchFilter(keyword='"null pointer" in:title')
        assert build_search_query(filt, NOW) == 'is:issue is:open "null pointer" in:title'

    @pytest.mark.parametrize("filt", [
        SearchFilter(labels=("", "  ")),
        SearchFilter(keyword="   "),
        SearchFilter(time_window=0),
        SearchFilter(min_stars=0, min_comments=0),
        SearchFilter(language=""),
    ])
    def test_unset_fields_emit_nothing(self, filt):
        query = build_search_query(filt, NOW)
        assert query == "is:issue is:open"
        assert "  " not in query

    def test_each_enabled_field_maps_to_one_clause(self):
        filt = SearchFilter(labels=("bug",), language="Go", min_comments=1)
        parts = build_search_query(filt, NOW).split(" ")
        assert parts.count('label:"bug"') == 1
        assert parts.count("language:Go") == 1
        assert parts.count("comments:>=1") == 1
        assert "" not in parts

    def test_deterministic(self):
        filt = SearchFilter(labels=("bug",), time_window=30)
        assert build_search_query(filt, NOW) == build_search_query(filt, NOW)


class TestSortQualifier:
    def test_known_sort(self):
        assert with_sort_qualifier("is:issue", "comments") == "is:issue sort:comments-desc"

    def test_unknown_sort_falls_back_to_reactions(self):
        assert with_sort_qualifier("q", "bogus") == f"q {SORT_QUALIFIER['reactions']}"
