"""提交解析器 — (feed, 包, 版本) -> 产生该版本的提交

回退链:
  1. package   按包名查包 ID          不存在 -> 跳过该 feed
  2. version   按版本号查版本 ID      不存在 -> 跳过该 feed
  3. provenance 查来源信息            缺失或无构建号 -> 走 5
  4. build     查构建记录的 sourceVersion   构建缺失或无提交 -> 走 5
                                         否则返回 Provenance 结果（权威）
  5. publish_date + commit
               按发布时间在窗口内找最近提交    找不到 -> 本组合解析失败

每个阶段返回 StageOutcome；服务边界错误 (FetchError / ValidationError)
在阶段内被转换为 Error 结果，不会上抛。
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from pkgsync.core.exceptions import FetchError, ValidationError
from pkgsync.core.models import (
    OutcomeStatus,
    PackageReference,
    Provenance,
    ResolutionMethod,
    ResolvedCommit,
    StageOutcome,
    format_timestamp,
)
from pkgsync.services.feed_client import FeedClient
from pkgsync.services.source_host import SourceHostClient

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class _Scope:
    """一次解析的日志范围，文本日志打印为 [feed] name@version"""

    feed: str
    reference: PackageReference

    def __str__(self) -> str:
        return f"[{self.feed}] {self.reference}"

    def extra(self, **fields: Any) -> dict[str, Any]:
        return {
            "feed": self.feed,
            "package": self.reference.name,
            "version": self.reference.version,
            **fields,
        }


def _forward(outcome: StageOutcome) -> StageOutcome[ResolvedCommit]:
    """把中间阶段的 Absent / Error 原样转为最终结果"""
    return StageOutcome(outcome.status, stage=outcome.stage, detail=outcome.detail)


class CommitResolver:
    """按回退链解析包版本对应的提交"""

    def __init__(self, feed_client: FeedClient, host_client: SourceHostClient) -> None:
        self.feed = feed_client
        self.host = host_client

    def resolve(
        self, feed: str, reference: PackageReference, repository: str,
    ) -> StageOutcome[ResolvedCommit]:
        """解析单个 (feed, 包版本) 组合

        Args:
            feed: feed 名称
            reference: 包名 + 版本
            repository: 来源信息缺少代码仓名时使用的目标代码仓
        """
        label = _Scope(feed, reference)

        package_id = self._stage(
            "package", label, lambda: self.feed.find_package_id(feed, reference.name),
        )
        if not package_id.is_found:
            return _forward(package_id)

        version_id = self._stage(
            "version", label,
            lambda: self.feed.find_version_id(feed, package_id.value, reference.version),
        )
        if not version_id.is_found:
            return _forward(version_id)

        provenance = self._stage(
            "provenance", label,
            lambda: self.feed.get_provenance(feed, package_id.value, version_id.value),
        )
        if provenance.status is OutcomeStatus.ERROR:
            return _forward(provenance)
        prov = provenance.value

        if prov is not None and prov.build_id:
            by_build = self._resolve_by_build(label, feed, reference, prov, repository)
            if by_build is not None:
                return by_build
        else:
            logger.info("%s: 无构建来源信息，改用发布时间匹配", label)

        return self._resolve_by_publish_date(
            label, feed, reference, package_id.value, version_id.value,
            (prov.repository_name if prov is not None else None) or repository,
        )

    def _resolve_by_build(
        self, label: _Scope, feed: str, reference: PackageReference,
        prov: Provenance, repository: str,
    ) -> StageOutcome[ResolvedCommit] | None:
        """来源信息路径；返回 None 表示需要回退到发布时间匹配"""
        build = self._stage("build", label, lambda: self.host.get_build(prov.build_id))
        if build.status is OutcomeStatus.ERROR:
            return _forward(build)
        if build.value is None or not build.value.source_commit:
            logger.info("%s: 构建 %s 没有可用的源提交，改用发布时间匹配", label, prov.build_id)
            return None

        resolved = ResolvedCommit(
            commit_id=build.value.source_commit,
            method=ResolutionMethod.PROVENANCE,
            repository=prov.repository_name or repository,
            feed=feed,
            package=reference,
        )
        logger.info(
            "%s: 来源信息命中 build=%s -> %s@%s",
            label, prov.build_id, resolved.repository, resolved.commit_id,
            extra=label.extra(
                stage="build", repository=resolved.repository, commit=resolved.commit_id,
            ),
        )
        return StageOutcome.found(resolved, stage="build")

    def _resolve_by_publish_date(
        self, label: _Scope, feed: str, reference: PackageReference,
        package_id: str, version_id: str, repository: str,
    ) -> StageOutcome[ResolvedCommit]:
        publish_date = self._stage(
            "publish_date", label,
            lambda: self.feed.get_publish_date(feed, package_id, version_id),
        )
        if not publish_date.is_found:
            return _forward(publish_date)

        commit = self._stage(
            "commit", label,
            lambda: self.host.find_commit_near_date(repository, publish_date.value),
        )
        if not commit.is_found:
            if commit.status is OutcomeStatus.ABSENT:
                logger.info(
                    "%s: 发布时间 %s 附近找不到 %s 的提交，跳过该 feed",
                    label, format_timestamp(publish_date.value), repository,
                    extra=label.extra(stage="commit", repository=repository),
                )
            return _forward(commit)

        logger.info(
            "%s: 发布时间匹配 -> %s@%s", label, repository, commit.value,
            extra=label.extra(stage="commit", repository=repository, commit=commit.value),
        )
        return StageOutcome.found(
            ResolvedCommit(
                commit_id=commit.value,
                method=ResolutionMethod.PUBLISH_DATE_HEURISTIC,
                repository=repository,
                feed=feed,
                package=reference,
            ),
            stage="commit",
        )

    @staticmethod
    def _stage(stage: str, label: _Scope, call: Callable[[], T | None]) -> StageOutcome[T]:
        """执行一个阶段: 有值 -> Found，None -> Absent，服务错误 -> Error"""
        try:
            value = call()
        except FetchError as e:
            logger.error(
                "%s: 阶段 %s 请求失败 (status=%d): %s", label, stage, e.status, e.body[:300],
                extra=label.extra(stage=stage),
            )
            return StageOutcome.error(stage, f"status={e.status} {e.body[:300]}".rstrip())
        except ValidationError as e:
            logger.error(
                "%s: 阶段 %s 数据无效: %s", label, stage, e, extra=label.extra(stage=stage),
            )
            return StageOutcome.error(stage, str(e))
        if value is None:
            if stage in ("package", "version"):
                logger.info(
                    "%s: 阶段 %s 未找到，跳过该 feed", label, stage,
                    extra=label.extra(stage=stage),
                )
            return StageOutcome.absent(stage)
        return StageOutcome.found(value, stage=stage)
