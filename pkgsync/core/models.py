"""核心数据模型

包源侧: PackageReference / FeedPackage / PackageVersion / Provenance
托管侧: RepositoryInfo / BuildRecord / CommitCandidate
解析结果: ResolvedCommit + 各阶段统一的 StageOutcome
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Generic, TypeVar

from pkgsync.core.exceptions import ValidationError

# 发布时间之后的提交搜索窗口
COMMIT_WINDOW = timedelta(minutes=15)

T = TypeVar("T")

# =========================================================================
# 时间戳
# =========================================================================

_FRACTION_RE = re.compile(r"\.(\d+)")


def parse_timestamp(value: str) -> datetime:
    """解析服务返回的 ISO-8601 时间为带时区的 UTC datetime

    兼容 "Z" 后缀和 7 位小数秒（.NET 风格）；无时区信息时按 UTC 处理。

    Raises:
        ValidationError: 不是合法时间
    """
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"无效的时间戳: {value!r}")
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    text = _FRACTION_RE.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
    try:
        dt = datetime.fromisoformat(text)
    except ValueError as e:
        raise ValidationError(f"无效的时间戳: {value!r}") from e
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """格式化为服务查询参数使用的 UTC 时间"""
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


# =========================================================================
# 包源实体
# =========================================================================


@dataclass(frozen=True)
class PackageReference:
    """清单中声明的一条包依赖"""

    name: str
    version: str
    source: str = field(default="", compare=False)  # 来源清单路径，仅用于日志

    def __str__(self) -> str:
        return f"{self.name}@{self.version}"


@dataclass(frozen=True)
class FeedPackage:
    id: str
    name: str


@dataclass(frozen=True)
class PackageVersion:
    id: str
    version: str
    publish_date: datetime | None = None


@dataclass(frozen=True)
class Provenance:
    """发布时由 CI 记录的来源信息，两个字段都可能缺失"""

    build_id: str | None = None
    repository_name: str | None = None


# =========================================================================
# 托管侧实体
# =========================================================================


@dataclass(frozen=True)
class RepositoryInfo:
    name: str
    clone_url: str
    default_branch: str = ""   # 如 "refs/heads/main"

    @property
    def branch_name(self) -> str:
        return self.default_branch.removeprefix("refs/heads/")


@dataclass(frozen=True)
class BuildRecord:
    id: str
    source_commit: str | None = None


@dataclass(frozen=True)
class CommitCandidate:
    commit_id: str
    author_date: datetime


# =========================================================================
# 解析结果
# =========================================================================


class ResolutionMethod(str, Enum):
    PROVENANCE = "Provenance"
    PUBLISH_DATE_HEURISTIC = "PublishDateHeuristic"


@dataclass(frozen=True)
class ResolvedCommit:
    """一次解析的结果，仅在本次运行内用于驱动 checkout"""

    commit_id: str
    method: ResolutionMethod
    repository: str
    feed: str = ""
    package: PackageReference | None = None


class OutcomeStatus(str, Enum):
    FOUND = "found"
    ABSENT = "absent"
    ERROR = "error"


@dataclass(frozen=True)
class StageOutcome(Generic[T]):
    """解析阶段的带标签结果: Found(value) | Absent | Error(detail)"""

    status: OutcomeStatus
    value: T | None = None
    stage: str = ""
    detail: str = ""

    @classmethod
    def found(cls, value: T, stage: str = "") -> StageOutcome[T]:
        return cls(OutcomeStatus.FOUND, value=value, stage=stage)

    @classmethod
    def absent(cls, stage: str, detail: str = "") -> StageOutcome[T]:
        return cls(OutcomeStatus.ABSENT, stage=stage, detail=detail)

    @classmethod
    def error(cls, stage: str, detail: str) -> StageOutcome[T]:
        return cls(OutcomeStatus.ERROR, stage=stage, detail=detail)

    @property
    def is_found(self) -> bool:
        return self.status is OutcomeStatus.FOUND
