"""Tests for core/models.py — data models."""

import json

import pytest

from core.models import FetchResult, FetchSettings, Issue, SearchFilter, SourceError


class TestSearchFilter:
    def test_defaults_are_unset(self):
        filt = SearchFilter()
        assert filt.labels == ()
        assert filt.time_window == 0
        assert filt.sort_by == "reactions"
        assert filt.validate() == []

    def test_for_repository_drops_star_floor(self):
        filt = SearchFilter(min_stars=100, labels=("bug",))
        scoped = filt.for_repository("o/r")
        assert scoped.repo == "o/r"
        assert scoped.min_stars == 0
        assert scoped.labels == ("bug",)
        assert filt.repo == ""

    def test_from_dict(self):
        filt = SearchFilter.from_dict({
            "labels": ["good first issue"],
            "time_window": "1440",
            "no_assignee": True,
            "sort_by": "comments",
            "unknown_key": 1,
        })
        assert filt.labels == ("good first issue",)
        assert filt.time_window == 1440
        assert filt.no_assignee is True
        assert filt.sort_by == "comments"

    def test_from_dict_single_label_string(self):
        assert SearchFilter.from_dict({"labels": "bug"}).labels == ("bug",)

    def test_from_dict_nulls(self):
        filt = SearchFilter.from_dict({"language": None, "min_stars": None, "sort_by": None})
        assert filt == SearchFilter()

    @pytest.mark.parametrize("kwargs", [
        {"sort_by": "stars"},
        {"time_window": -1},
        {"min_comments": -3},
        {"repo": "no-slash"},
        {"repo": "a/b/c"},
    ])
    def test_validate_rejects(self, kwargs):
        assert len(SearchFilter(**kwargs).validate()) == 1

    def test_hashable(self):
        assert len({SearchFilter(labels=("a",)), SearchFilter(labels=("a",))}) == 1


class TestFetchResult:
    def test_single_search_never_total_failure(self):
        assert not FetchResult().is_total_failure

    def test_partial_failure(self):
        result = FetchResult(items=[], errors=[SourceError("o/a", "x")], source_count=2)
        assert not result.is_total_failure

    def test_skipped_not_counted_as_attempted(self):
        result = FetchResult(errors=[SourceError("o/a", "x")], skipped=["o/b"], source_count=2)
        assert result.is_total_failure

    def test_copy_is_independent(self):
        issue = Issue(id=1, number=1, title="t", url="u", repo_full_name="o/a")
        original = FetchResult(total_count=1, items=[issue])
        clone = original.copy()
        clone.items.append(issue)
        assert len(original.items) == 1
        assert clone.total_count == 1


class TestFetchSettings:
    def test_defaults(self):
        settings = FetchSettings()
        assert settings.min_interval == 0.8
        assert settings.cache_ttl == 120.0
        assert settings.batch_size == 10
        assert settings.secondary_backoff == 60.0
        assert settings.validate() == []

    def test_from_json(self, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text(json.dumps({
            "api_url": "https://ghe.example.com/api/v3/",
            "min_interval": 2,
            "batch_size": 5,
        }), encoding="utf-8")
        settings = FetchSettings.from_json(str(path))
        assert settings.search_url == "https://ghe.example.com/api/v3/search/issues"
        assert settings.min_interval == 2.0
        assert settings.batch_size == 5
        assert settings.cache_ttl == 120.0

    @pytest.mark.parametrize("kwargs", [
        {"batch_size": 0},
        {"batch_size": 11},
        {"min_interval": -1},
        {"cache_ttl": -1},
        {"timeout": 0},
    ])
    def test_validate_rejects(self, kwargs):
        assert len(FetchSettings(**kwargs).validate()) == 1
