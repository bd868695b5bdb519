"""包源客户端 — 查询包 ID、版本 ID、来源信息和发布时间

四个只读操作，每个都是一次 GET 透传；查询对象不存在时返回 None，
非 2xx 响应以 FetchError 上抛，由调用方决定继续还是中止。
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any
from urllib.parse import quote, urlencode

from pkgsync.core.config import Config
from pkgsync.core.exceptions import ValidationError
from pkgsync.core.models import Provenance, parse_timestamp
from pkgsync.utils.net import JsonApi, build_auth_header

logger = logging.getLogger(__name__)

API_VERSION = "7.1"
PROVENANCE_API_VERSION = "7.1-preview.1"

# 来源信息中 CI 写入的键
BUILD_ID_KEY = "Build.BuildId"
REPOSITORY_NAME_KEY = "Build.Repository.Name"


class FeedClient:
    """包源查询客户端"""

    def __init__(self, config: Config, api: JsonApi | None = None) -> None:
        self.config = config
        self.api = api or JsonApi(build_auth_header(config.token, config.auth_scheme))

    def _feed_url(self, feed: str, path: str, **query: str) -> str:
        base = self.config.feeds_url.rstrip("/")
        scope = quote(self.config.organization, safe="")
        if self.config.feed_project:
            scope += "/" + quote(self.config.feed_project, safe="")
        query.setdefault("api-version", API_VERSION)
        return (
            f"{base}/{scope}/_apis/packaging/Feeds/{quote(feed, safe='')}/{path}"
            f"?{urlencode(query)}"
        )

    @staticmethod
    def _values(data: Any) -> list[dict[str, Any]]:
        if not isinstance(data, dict):
            return []
        return [v for v in data.get("value") or [] if isinstance(v, dict)]

    def find_package_id(self, feed: str, package_name: str) -> str | None:
        """按包名查询包 ID（名称精确匹配，忽略大小写）"""
        url = self._feed_url(
            feed, "packages",
            packageNameQuery=package_name,
            protocolType=self.config.protocol_type,
        )
        data = self.api.get_json(url, missing_ok=True)
        wanted = package_name.lower()
        for item in self._values(data):
            if str(item.get("name", "")).lower() == wanted and item.get("id"):
                return str(item["id"])
        return None

    def find_version_id(self, feed: str, package_id: str, version: str) -> str | None:
        """在包的版本列表中查找版本 ID"""
        url = self._feed_url(feed, f"Packages/{quote(package_id, safe='')}/versions")
        data = self.api.get_json(url, missing_ok=True)
        wanted = version.lower()
        for item in self._values(data):
            candidates = (item.get("version"), item.get("normalizedVersion"))
            if any(str(c).lower() == wanted for c in candidates if c) and item.get("id"):
                return str(item["id"])
        return None

    def get_provenance(self, feed: str, package_id: str, version_id: str) -> Provenance | None:
        """查询版本的来源信息，未记录时返回 None"""
        url = self._feed_url(
            feed,
            f"Packages/{quote(package_id, safe='')}/Versions/{quote(version_id, safe='')}/provenance",
            **{"api-version": PROVENANCE_API_VERSION},
        )
        data = self.api.get_json(url, missing_ok=True)
        if not isinstance(data, dict):
            return None
        prov_data = (data.get("provenance") or {}).get("data") or {}
        build_id = prov_data.get(BUILD_ID_KEY) or None
        repository = prov_data.get(REPOSITORY_NAME_KEY) or None
        if build_id is None and repository is None:
            return None
        return Provenance(
            build_id=str(build_id) if build_id is not None else None,
            repository_name=str(repository) if repository is not None else None,
        )

    def get_publish_date(self, feed: str, package_id: str, version_id: str) -> datetime:
        """查询版本的发布时间

        Raises:
            FetchError: 请求失败（含 404）
            ValidationError: 响应中没有合法的 publishDate
        """
        url = self._feed_url(
            feed,
            f"Packages/{quote(package_id, safe='')}/versions/{quote(version_id, safe='')}",
        )
        data = self.api.get_json(url)
        raw = data.get("publishDate") if isinstance(data, dict) else None
        if not raw:
            raise ValidationError(f"版本缺少 publishDate: {package_id}/{version_id}")
        return parse_timestamp(raw)
