"""同步编排器 — 扫描清单 -> 逐 (包, feed) 解析提交 -> 检出代码仓

流程:
  1. 列出托管服务上的全部代码仓
  2. 准备每个代码仓的工作副本 (root/sources/<repo>) 并扫描清单
  3. 对每个内部包依赖 × 每个 feed 调用 CommitResolver
  4. 解析成功则把来源代码仓检出到 root/packages/<包名>/<版本>

单个组合的 Absent / Error 只记录并继续；CheckoutError 不捕获，直接终止运行。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from pkgsync.core.config import Config
from pkgsync.core.exceptions import FetchError, ValidationError
from pkgsync.core.manifest import scan_repository
from pkgsync.core.models import (
    OutcomeStatus,
    PackageReference,
    RepositoryInfo,
    ResolvedCommit,
    StageOutcome,
)
from pkgsync.services.resolver import CommitResolver
from pkgsync.services.source_host import SourceHostClient

logger = logging.getLogger(__name__)

# 报告条目状态
STATUS_CHECKED_OUT = "checked_out"
STATUS_RESOLVED = "resolved"     # dry-run 下只解析不检出
STATUS_SKIPPED = "skipped"
STATUS_ERROR = "error"


@dataclass
class SyncReport:
    """同步运行报告，每个 (feed, 包版本) 组合一条记录"""

    repositories: int = 0
    entries: list[dict[str, Any]] = field(default_factory=list)

    def add(
        self, feed: str, reference: PackageReference | None, status: str, **extra: Any,
    ) -> None:
        entry: dict[str, Any] = {
            "feed": feed,
            "package": reference.name if reference else "",
            "version": reference.version if reference else "",
            "status": status,
        }
        entry.update({k: v for k, v in extra.items() if v not in (None, "")})
        self.entries.append(entry)

    def count(self, status: str) -> int:
        return sum(1 for e in self.entries if e["status"] == status)

    @property
    def success(self) -> bool:
        return self.count(STATUS_ERROR) == 0

    def summary(self) -> dict[str, int]:
        return {
            "repositories": self.repositories,
            "checked_out": self.count(STATUS_CHECKED_OUT),
            "resolved": self.count(STATUS_RESOLVED),
            "skipped": self.count(STATUS_SKIPPED),
            "errors": self.count(STATUS_ERROR),
        }

    def to_dict(self) -> dict[str, Any]:
        return {"summary": self.summary(), "entries": list(self.entries)}


class SyncOrchestrator:
    """顺序执行的同步编排器"""

    def __init__(
        self,
        config: Config,
        host_client: SourceHostClient,
        resolver: CommitResolver,
        *,
        dry_run: bool = False,
    ) -> None:
        self.config = config
        self.host = host_client
        self.resolver = resolver
        self.dry_run = dry_run
        self._repos: dict[str, RepositoryInfo] = {}
        self._seen: set[tuple[str, str, str]] = set()
        self._materialized: set[tuple[str, str]] = set()

    def run(self, references: list[PackageReference] | None = None) -> SyncReport:
        """执行一次同步

        Args:
            references: 显式指定的包依赖；为 None 时扫描全部代码仓的清单

        Raises:
            CheckoutError: git 操作失败，整个运行终止
        """
        report = SyncReport()
        self._seen.clear()
        self._materialized.clear()

        try:
            repos = self.host.list_repositories()
        except (FetchError, ValidationError) as e:
            logger.error("获取代码仓列表失败，无法继续: %s", e)
            report.add("", None, STATUS_ERROR, stage="repositories", detail=str(e))
            return report
        self._repos = {r.name.lower(): r for r in repos}
        report.repositories = len(repos)

        if references is not None:
            self._sync_references(references, report)
        else:
            for repo in repos:
                self._sync_references(self._scan(repo), report)

        logger.info("同步完成: %s", report.summary())
        return report

    def _scan(self, repo: RepositoryInfo) -> list[PackageReference]:
        """准备工作副本并扫描其中的内部包依赖"""
        working_copy = self.config.sources_dir / repo.name
        if self.config.update_sources:
            self.host.clone_or_update(
                repo.clone_url, working_copy, default_branch=repo.default_branch,
            )
        elif not working_copy.exists():
            logger.info("工作副本不存在，跳过扫描: %s", working_copy)
            return []
        return scan_repository(working_copy, self.config.package_prefixes)

    def _sync_references(self, references: list[PackageReference], report: SyncReport) -> None:
        for ref in references:
            for feed in self.config.feeds:
                key = (feed.lower(), ref.name.lower(), ref.version.lower())
                if key in self._seen:
                    continue
                self._seen.add(key)

                outcome = self.resolver.resolve(
                    feed, ref, self.config.target_repository(ref.name),
                )
                self._handle(feed, ref, outcome, report)

    def _handle(
        self, feed: str, ref: PackageReference,
        outcome: StageOutcome[ResolvedCommit], report: SyncReport,
    ) -> None:
        if outcome.status is OutcomeStatus.FOUND:
            self._materialize(outcome.value, report)
        elif outcome.status is OutcomeStatus.ABSENT:
            report.add(feed, ref, STATUS_SKIPPED, stage=outcome.stage, detail=outcome.detail)
        else:
            report.add(feed, ref, STATUS_ERROR, stage=outcome.stage, detail=outcome.detail)

    def _materialize(self, resolved: ResolvedCommit, report: SyncReport) -> None:
        ref = resolved.package
        common = {
            "method": resolved.method.value,
            "repository": resolved.repository,
            "commit": resolved.commit_id,
        }
        repo = self._repos.get(resolved.repository.lower())
        if repo is None:
            logger.warning(
                "[%s] %s: 代码仓 %s 不在项目 %s 中，无法检出",
                resolved.feed, ref, resolved.repository, self.config.project,
            )
            report.add(
                resolved.feed, ref, STATUS_SKIPPED,
                stage="materialize", detail="unknown repository", **common,
            )
            return

        if self.dry_run:
            report.add(resolved.feed, ref, STATUS_RESOLVED, **common)
            return

        path = self._checkout_path(ref)
        key = (str(path), resolved.commit_id)
        if key not in self._materialized:
            self.host.clone_or_update(
                repo.clone_url, path, resolved.commit_id, repo.default_branch,
            )
            self._materialized.add(key)
        report.add(resolved.feed, ref, STATUS_CHECKED_OUT, path=str(path), **common)

    def _checkout_path(self, ref: PackageReference | None) -> Path:
        if ref is None:
            raise ValidationError("解析结果缺少包信息")
        return self.config.packages_dir / ref.name / ref.version
