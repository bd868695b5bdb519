"""代码托管客户端 — 代码仓列表、构建详情、提交历史、clone/checkout

查询部分走 HTTP JSON；clone/checkout 通过 CommandExecutor 执行 git。
任何 git 操作失败都抛 CheckoutError：坏掉的工作副本不能被静默带到后续步骤。
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from datetime import datetime
from pathlib import Path
from typing import Any
from urllib.parse import quote, urlencode

from pkgsync.core.config import Config
from pkgsync.core.exceptions import CheckoutError, ValidationError
from pkgsync.core.models import (
    COMMIT_WINDOW,
    BuildRecord,
    CommitCandidate,
    RepositoryInfo,
    format_timestamp,
    parse_timestamp,
)
from pkgsync.utils.net import JsonApi, build_auth_header, validate_url_scheme
from pkgsync.utils.shell import CommandExecutor, LocalExecutor, run_git

logger = logging.getLogger(__name__)

API_VERSION = "7.1"
MAX_COMMITS = 1000

_COMMIT_RE = re.compile(r"^[0-9a-fA-F]{4,40}$")


def _is_commit_id(value: Any) -> bool:
    return isinstance(value, str) and _COMMIT_RE.match(value) is not None


def _value_items(data: Any, what: str) -> list[dict[str, Any]]:
    """取列表响应的 value 数组，结构不对时抛 ValidationError

    空响应体视为空列表。
    """
    if data is None:
        return []
    if not isinstance(data, dict):
        raise ValidationError(f"{what}响应结构不正确")
    items = data.get("value") or []
    if not isinstance(items, list) or not all(isinstance(i, dict) for i in items):
        raise ValidationError(f"{what}响应结构不正确")
    return items


def select_nearest_commit(
    candidates: Iterable[CommitCandidate], date: datetime,
) -> CommitCandidate | None:
    """在 [date, date + COMMIT_WINDOW] 内选出作者时间离 date 最近的提交

    距离相同时保留先出现的那个（即托管服务返回的顺序）。窗口外的候选直接丢弃。
    """
    best: CommitCandidate | None = None
    best_delta = None
    for c in candidates:
        if not date <= c.author_date <= date + COMMIT_WINDOW:
            continue
        delta = abs(c.author_date - date)
        if best_delta is None or delta < best_delta:
            best, best_delta = c, delta
    return best


class SourceHostClient:
    """代码托管服务客户端"""

    def __init__(
        self,
        config: Config,
        api: JsonApi | None = None,
        executor: CommandExecutor | None = None,
    ) -> None:
        self.config = config
        self._auth_header = build_auth_header(config.token, config.auth_scheme)
        self.api = api or JsonApi(self._auth_header)
        self.executor = executor or LocalExecutor()

    def _api_url(self, path: str, **query: str) -> str:
        base = self.config.host_url.rstrip("/")
        org = quote(self.config.organization, safe="")
        project = quote(self.config.project, safe="")
        query.setdefault("api-version", API_VERSION)
        return f"{base}/{org}/{project}/_apis/{path}?{urlencode(query)}"

    # ------------------------------------------------------------------
    # 查询
    # ------------------------------------------------------------------

    def list_repositories(self) -> list[RepositoryInfo]:
        """列出项目下的全部代码仓（单页）"""
        data = self.api.get_json(self._api_url("git/repositories"))
        repos: list[RepositoryInfo] = []
        for item in _value_items(data, "代码仓列表"):
            name, url = item.get("name"), item.get("remoteUrl")
            if not isinstance(name, str) or not isinstance(url, str) or not name or not url:
                logger.warning("忽略结构不完整的代码仓条目: %r", item)
                continue
            if item.get("isDisabled"):
                continue
            branch = item.get("defaultBranch")
            repos.append(RepositoryInfo(
                name=name, clone_url=url,
                default_branch=branch if isinstance(branch, str) else "",
            ))
        logger.info("项目 %s/%s: %d 个代码仓", self.config.organization, self.config.project, len(repos))
        return repos

    def get_build(self, build_id: str) -> BuildRecord | None:
        """查询构建详情，构建已被清理 (404) 时返回 None"""
        data = self.api.get_json(
            self._api_url(f"build/builds/{quote(str(build_id), safe='')}"),
            missing_ok=True,
        )
        if not isinstance(data, dict):
            return None
        source = data.get("sourceVersion") or None
        if source is not None and not _is_commit_id(source):
            logger.warning("构建 %s 的 sourceVersion 不是提交 ID: %s", build_id, source)
            source = None
        return BuildRecord(id=str(data.get("id", build_id)), source_commit=source)

    def list_commits(
        self, repository: str, since: datetime, until: datetime,
    ) -> list[CommitCandidate]:
        """按作者时间范围查询提交历史，保持托管服务返回的顺序"""
        url = self._api_url(
            f"git/repositories/{quote(repository, safe='')}/commits",
            **{
                "searchCriteria.fromDate": format_timestamp(since),
                "searchCriteria.toDate": format_timestamp(until),
                "searchCriteria.$top": str(MAX_COMMITS),
            },
        )
        data = self.api.get_json(url)
        items = _value_items(data, "提交历史")
        return [c for c in map(self._to_candidate, items) if c]

    @staticmethod
    def _to_candidate(item: dict[str, Any]) -> CommitCandidate | None:
        commit_id = item.get("commitId")
        author = item.get("author")
        author_date = author.get("date") if isinstance(author, dict) else None
        if not _is_commit_id(commit_id) or not author_date:
            return None
        return CommitCandidate(commit_id=commit_id, author_date=parse_timestamp(author_date))

    def find_commit_near_date(self, repository: str, date: datetime) -> str | None:
        """查找发布时间之后窗口内最接近的提交，窗口内无提交时返回 None"""
        candidates = self.list_commits(repository, date, date + COMMIT_WINDOW)
        best = select_nearest_commit(candidates, date)
        if best is None:
            logger.info("  %s 在 %s 之后 %s 内没有提交", repository, format_timestamp(date), COMMIT_WINDOW)
            return None
        logger.info(
            "  %s: %d 个候选，选中 %s (author=%s)",
            repository, len(candidates), best.commit_id, format_timestamp(best.author_date),
        )
        return best.commit_id

    # ------------------------------------------------------------------
    # 本地检出
    # ------------------------------------------------------------------

    def clone_or_update(
        self,
        repo_url: str,
        local_path: str | Path,
        commit_id: str = "",
        default_branch: str = "",
    ) -> Path:
        """克隆或更新工作副本，然后检出指定提交

        已存在: 切回默认分支并 fast-forward pull（未知默认分支时只 fetch）
        不存在: 全新 clone

        Raises:
            CheckoutError: 任一 git 操作失败，或提交 ID 非法
        """
        try:
            validate_url_scheme(repo_url, context="git clone")
        except ValidationError as e:
            raise CheckoutError(str(e)) from e
        if commit_id and not _is_commit_id(commit_id):
            raise CheckoutError(f"非法的提交 ID: {commit_id}")

        path = Path(local_path)
        auth = [f"http.extraheader=Authorization: {self._auth_header}"] if self._auth_header else []
        branch = default_branch.removeprefix("refs/heads/")

        if (path / ".git").exists():
            if branch:
                run_git(self.executor, ["checkout", "--quiet", branch], cwd=path, label="checkout")
                run_git(
                    self.executor, ["pull", "--ff-only", "origin", branch],
                    cwd=path, config=auth, label="pull",
                )
            else:
                run_git(self.executor, ["fetch", "origin"], cwd=path, config=auth, label="fetch")
        else:
            path.parent.mkdir(parents=True, exist_ok=True)
            run_git(self.executor, ["clone", repo_url, str(path)], config=auth, label="clone")

        if commit_id:
            run_git(self.executor, ["checkout", "--quiet", commit_id], cwd=path, label="checkout")
            logger.info("已检出 %s@%s -> %s", repo_url, commit_id, path)
        return path
