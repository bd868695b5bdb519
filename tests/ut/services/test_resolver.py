"""CommitResolver 测试 — 回退链各分支"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from pkgsync.core.exceptions import FetchError, ValidationError
from pkgsync.core.models import (
    BuildRecord,
    OutcomeStatus,
    PackageReference,
    Provenance,
    ResolutionMethod,
)
from pkgsync.services.feed_client import FeedClient
from pkgsync.services.resolver import CommitResolver
from pkgsync.services.source_host import SourceHostClient

PUBLISHED = datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc)
REF = PackageReference("PackageX", "1.2.0")


@pytest.fixture()
def feed() -> MagicMock:
    f = MagicMock(spec=FeedClient)
    f.find_package_id.return_value = "P1"
    f.find_version_id.return_value = "V1"
    f.get_provenance.return_value = Provenance(build_id="B1")
    f.get_publish_date.return_value = PUBLISHED
    return f


@pytest.fixture()
def host() -> MagicMock:
    h = MagicMock(spec=SourceHostClient)
    h.get_build.return_value = BuildRecord("B1", "abcdef")
    h.find_commit_near_date.return_value = "1234567"
    return h


@pytest.fixture()
def resolver(feed, host) -> CommitResolver:
    return CommitResolver(feed, host)


class TestProvenancePath:
    def test_complete_provenance_never_uses_history(self, resolver, host) -> None:
        outcome = resolver.resolve("internal", REF, "PackageX")
        assert outcome.is_found
        assert outcome.value.commit_id == "abcdef"
        assert outcome.value.method is ResolutionMethod.PROVENANCE
        assert outcome.value.repository == "PackageX"
        host.find_commit_near_date.assert_not_called()

    def test_provenance_repository_name_wins(self, resolver, feed) -> None:
        feed.get_provenance.return_value = Provenance("B1", "Monorepo")
        outcome = resolver.resolve("internal", REF, "PackageX")
        assert outcome.value.repository == "Monorepo"

    def test_idempotent(self, resolver) -> None:
        first = resolver.resolve("internal", REF, "PackageX")
        second = resolver.resolve("internal", REF, "PackageX")
        assert first == second


class TestFallbackToHeuristic:
    @pytest.mark.parametrize("provenance", [None, Provenance(build_id=None, repository_name=None)])
    def test_absent_provenance(self, resolver, feed, host, provenance) -> None:
        feed.get_provenance.return_value = provenance
        outcome = resolver.resolve("internal", REF, "PackageX")
        assert outcome.value.method is ResolutionMethod.PUBLISH_DATE_HEURISTIC
        assert outcome.value.commit_id == "1234567"
        host.get_build.assert_not_called()
        host.find_commit_near_date.assert_called_once_with("PackageX", PUBLISHED)

    def test_build_without_source_commit(self, resolver, host) -> None:
        host.get_build.return_value = BuildRecord("B1", None)
        outcome = resolver.resolve("internal", REF, "PackageX")
        assert outcome.value.method is ResolutionMethod.PUBLISH_DATE_HEURISTIC

    def test_build_expired(self, resolver, host) -> None:
        host.get_build.return_value = None
        outcome = resolver.resolve("internal", REF, "PackageX")
        assert outcome.value.method is ResolutionMethod.PUBLISH_DATE_HEURISTIC

    def test_heuristic_uses_provenance_repository(self, resolver, feed, host) -> None:
        feed.get_provenance.return_value = Provenance(build_id=None, repository_name="Monorepo")
        outcome = resolver.resolve("internal", REF, "PackageX")
        host.find_commit_near_date.assert_called_once_with("Monorepo", PUBLISHED)
        assert outcome.value.repository == "Monorepo"

    def test_no_commit_in_window(self, resolver, feed, host) -> None:
        feed.get_provenance.return_value = None
        host.find_commit_near_date.return_value = None
        outcome = resolver.resolve("internal", REF, "PackageX")
        assert outcome.status is OutcomeStatus.ABSENT
        assert outcome.stage == "commit"

    def test_no_commit_in_window_logged_at_info(self, resolver, feed, host, caplog) -> None:
        caplog.set_level("INFO")
        feed.get_provenance.return_value = None
        host.find_commit_near_date.return_value = None
        resolver.resolve("internal", REF, "PackageX")
        records = [r for r in caplog.records if "找不到" in r.getMessage()]
        assert records and all(r.levelname == "INFO" for r in records)
        assert not any(r.levelname == "WARNING" for r in caplog.records)


class TestSkips:
    def test_package_not_in_feed(self, resolver, feed, host) -> None:
        feed.find_package_id.return_value = None
        outcome = resolver.resolve("internal", REF, "PackageX")
        assert outcome.status is OutcomeStatus.ABSENT
        assert outcome.stage == "package"
        feed.find_version_id.assert_not_called()

    def test_version_not_in_feed(self, resolver, feed, host) -> None:
        feed.find_version_id.return_value = None
        outcome = resolver.resolve("internal", REF, "PackageX")
        assert outcome.status is OutcomeStatus.ABSENT
        assert outcome.stage == "version"
        feed.get_provenance.assert_not_called()
        host.get_build.assert_not_called()

    @pytest.mark.parametrize("method, stage", [
        ("find_package_id", "package"),
        ("find_version_id", "version"),
        ("get_provenance", "provenance"),
    ])
    def test_feed_errors_become_error_outcome(self, resolver, feed, method, stage) -> None:
        getattr(feed, method).side_effect = FetchError("https://x", 500, "boom")
        outcome = resolver.resolve("internal", REF, "PackageX")
        assert outcome.status is OutcomeStatus.ERROR
        assert outcome.stage == stage
        assert "status=500" in outcome.detail

    def test_build_error_does_not_fall_back(self, resolver, host) -> None:
        host.get_build.side_effect = FetchError("https://x", 401, "unauthorized")
        outcome = resolver.resolve("internal", REF, "PackageX")
        assert outcome.status is OutcomeStatus.ERROR
        assert outcome.stage == "build"
        host.find_commit_near_date.assert_not_called()

    def test_invalid_publish_date(self, resolver, feed) -> None:
        feed.get_provenance.return_value = None
        feed.get_publish_date.side_effect = ValidationError("版本缺少 publishDate")
        outcome = resolver.resolve("internal", REF, "PackageX")
        assert outcome.status is OutcomeStatus.ERROR
        assert outcome.stage == "publish_date"

    def test_skip_is_logged_with_feed_and_package(self, resolver, feed, caplog) -> None:
        caplog.set_level("INFO")
        feed.find_version_id.return_value = None
        resolver.resolve("internal", REF, "PackageX")
        assert "[internal] PackageX@1.2.0" in caplog.text
        assert "version" in caplog.text

    def test_skip_log_carries_context(self, resolver, feed, caplog) -> None:
        caplog.set_level("INFO")
        feed.find_version_id.return_value = None
        resolver.resolve("internal", REF, "PackageX")
        record = next(r for r in caplog.records if getattr(r, "stage", None) == "version")
        assert (record.feed, record.package, record.version) == ("internal", "PackageX", "1.2.0")


class TestHeuristicWindow:
    def test_commit_within_window(self, config, make_api, feed) -> None:
        """端到端地走真实的 SourceHostClient，结果提交时间应落在窗口内"""
        feed.get_provenance.return_value = None
        in_window = PUBLISHED + timedelta(minutes=7)
        api, _ = make_api({"/git/repositories/PackageX/commits": {"value": [
            {"commitId": "e" * 40, "author": {"date": "2024-01-01T09:59:00Z"}},
            {"commitId": "f" * 40, "author": {"date": in_window.strftime("%Y-%m-%dT%H:%M:%SZ")}},
        ]}})
        resolver = CommitResolver(feed, SourceHostClient(config, api=api))
        outcome = resolver.resolve("internal", REF, "PackageX")
        assert outcome.value.commit_id == "f" * 40
