"""FeedClient 测试 — 每个查询的找到 / 不存在 / 出错"""

from __future__ import annotations

from datetime import datetime, timezone
from urllib.parse import parse_qs, urlsplit

import pytest

from pkgsync.core.exceptions import FetchError, ValidationError
from pkgsync.core.models import Provenance
from pkgsync.services.feed_client import FeedClient
from pkgsync.utils.net import HttpResponse

PACKAGES = "/Feeds/internal/packages"
VERSIONS = "/Packages/P1/versions"
PROVENANCE = "/Packages/P1/Versions/V1/provenance"
VERSION = "/Packages/P1/versions/V1"


@pytest.fixture()
def client(config, make_api):
    def _make(routes):
        api, transport = make_api(routes)
        return FeedClient(config, api=api), transport
    return _make


class TestUrls:
    def test_org_scoped_feed(self, client) -> None:
        c, t = client({PACKAGES: {"value": []}})
        c.find_package_id("internal", "PackageX")
        parts = urlsplit(t.calls[0])
        assert parts.netloc == "feeds.dev.azure.com"
        assert parts.path == "/contoso/_apis/packaging/Feeds/internal/packages"
        query = parse_qs(parts.query)
        assert query["packageNameQuery"] == ["PackageX"]
        assert query["protocolType"] == ["NuGet"]
        assert query["api-version"] == ["7.1"]

    def test_project_scoped_feed(self, config, make_api) -> None:
        config.feed_project = "platform"
        api, t = make_api({PACKAGES: {"value": []}})
        FeedClient(config, api=api).find_package_id("internal", "PackageX")
        assert urlsplit(t.calls[0]).path.startswith("/contoso/platform/_apis/")


class TestFindPackageId:
    def test_exact_name_match(self, client) -> None:
        c, _ = client({PACKAGES: {"value": [
            {"id": "P0", "name": "PackageX.Extensions"},
            {"id": "P1", "name": "packagex"},
        ]}})
        assert c.find_package_id("internal", "PackageX") == "P1"

    def test_not_found(self, client) -> None:
        c, _ = client({PACKAGES: {"value": [{"id": "P0", "name": "Other"}]}})
        assert c.find_package_id("internal", "PackageX") is None

    def test_feed_missing_is_not_found(self, client) -> None:
        c, _ = client({})
        assert c.find_package_id("internal", "PackageX") is None

    def test_server_error(self, client) -> None:
        c, _ = client({PACKAGES: HttpResponse(503, "busy")})
        with pytest.raises(FetchError) as exc:
            c.find_package_id("internal", "PackageX")
        assert exc.value.status == 503


class TestFindVersionId:
    def test_match_version_or_normalized(self, client) -> None:
        c, _ = client({VERSIONS: {"value": [
            {"id": "V0", "version": "1.1.0"},
            {"id": "V1", "version": "1.2", "normalizedVersion": "1.2.0"},
        ]}})
        assert c.find_version_id("internal", "P1", "1.2.0") == "V1"

    def test_absent(self, client) -> None:
        c, _ = client({VERSIONS: {"value": [{"id": "V0", "version": "1.1.0"}]}})
        assert c.find_version_id("internal", "P1", "2.0.0") is None


class TestGetProvenance:
    def test_build_and_repository(self, client) -> None:
        c, t = client({PROVENANCE: {"provenance": {
            "provenanceSource": "InternalBuild",
            "data": {"Build.BuildId": "B1", "Build.Repository.Name": "PackageX"},
        }}})
        assert c.get_provenance("internal", "P1", "V1") == Provenance("B1", "PackageX")
        assert "api-version=7.1-preview.1" in t.calls[0]

    def test_numeric_build_id(self, client) -> None:
        c, _ = client({PROVENANCE: {"provenance": {"data": {"Build.BuildId": 4711}}}})
        assert c.get_provenance("internal", "P1", "V1") == Provenance("4711", None)

    def test_no_provenance_recorded(self, client) -> None:
        c, _ = client({})
        assert c.get_provenance("internal", "P1", "V1") is None

    def test_empty_data(self, client) -> None:
        c, _ = client({PROVENANCE: {"provenance": {"data": {}}}})
        assert c.get_provenance("internal", "P1", "V1") is None


class TestGetPublishDate:
    def test_parsed_as_utc(self, client) -> None:
        c, _ = client({VERSION: {"id": "V1", "publishDate": "2024-01-01T10:00:00Z"}})
        assert c.get_publish_date("internal", "P1", "V1") == datetime(
            2024, 1, 1, 10, 0, tzinfo=timezone.utc,
        )

    def test_missing_publish_date(self, client) -> None:
        c, _ = client({VERSION: {"id": "V1"}})
        with pytest.raises(ValidationError, match="publishDate"):
            c.get_publish_date("internal", "P1", "V1")
