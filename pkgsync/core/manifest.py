"""清单扫描 — 从工作副本中提取包依赖声明

支持:
  - MSBuild 项目文件 (*.csproj / *.fsproj / *.vbproj / *.props / *.targets):
    <PackageReference Include="X" Version="1.0"/>、<PackageVersion .../>，
    Version 也可写成子元素
  - NuGet packages.config: <package id="X" version="1.0"/>
  - 显式包清单 CSV: 每行 name,version，可带表头

只保留名称匹配前缀白名单的声明（内部包），第三方依赖不参与解析。
"""

from __future__ import annotations

import csv
import logging
import xml.etree.ElementTree as ET  # nosec B405
from collections.abc import Iterable, Iterator
from pathlib import Path

from pkgsync.core.exceptions import ValidationError
from pkgsync.core.models import PackageReference

logger = logging.getLogger(__name__)

PROJECT_SUFFIXES = frozenset((".csproj", ".fsproj", ".vbproj", ".props", ".targets"))
PACKAGES_CONFIG = "packages.config"
SKIP_DIRS = frozenset((".git", "bin", "obj", "node_modules"))

_REFERENCE_TAGS = ("PackageReference", "PackageVersion")


def _local(tag: str) -> str:
    """去掉 MSBuild 旧格式的 XML 命名空间"""
    return tag.rsplit("}", 1)[-1]


def matches_prefix(name: str, prefixes: Iterable[str]) -> bool:
    """前缀白名单匹配（忽略大小写），白名单为空时全部放行"""
    prefixes = [p.lower() for p in prefixes if p]
    if not prefixes:
        return True
    lowered = name.lower()
    return any(lowered.startswith(p) for p in prefixes)


def iter_manifest_files(root: Path) -> Iterator[Path]:
    """按路径顺序遍历工作副本中的清单文件"""
    for path in sorted(root.rglob("*")):
        if not path.is_file():
            continue
        if any(part in SKIP_DIRS for part in path.relative_to(root).parts[:-1]):
            continue
        if path.name.lower() == PACKAGES_CONFIG or path.suffix.lower() in PROJECT_SUFFIXES:
            yield path


def parse_manifest(path: Path) -> list[PackageReference]:
    """解析单个清单文件，XML 损坏时记录告警并返回空列表"""
    try:
        tree = ET.parse(path)  # nosec B314
    except (ET.ParseError, OSError) as e:
        logger.warning("清单解析失败，已跳过: %s (%s)", path, e)
        return []

    refs: list[PackageReference] = []
    is_packages_config = path.name.lower() == PACKAGES_CONFIG
    for elem in tree.getroot().iter():
        tag = _local(elem.tag) if isinstance(elem.tag, str) else ""
        if is_packages_config:
            if tag != "package":
                continue
            name, version = elem.get("id", ""), elem.get("version", "")
        else:
            if tag not in _REFERENCE_TAGS:
                continue
            name = elem.get("Include") or elem.get("Update") or ""
            version = elem.get("Version") or ""
            if not version:
                child = next((c for c in elem if _local(c.tag) == "Version"), None)
                version = (child.text or "").strip() if child is not None else ""
        name, version = name.strip(), version.strip()
        if not name or not version:
            # 中央包管理下 PackageReference 可不带版本，版本由 PackageVersion 声明
            continue
        refs.append(PackageReference(name=name, version=version, source=str(path)))
    return refs


def scan_repository(root: Path, prefixes: Iterable[str] = ()) -> list[PackageReference]:
    """扫描工作副本，返回去重后的、前缀匹配的包依赖（保持首次出现顺序）"""
    prefixes = list(prefixes)
    seen: set[PackageReference] = set()
    result: list[PackageReference] = []
    for manifest in iter_manifest_files(root):
        for ref in parse_manifest(manifest):
            if not matches_prefix(ref.name, prefixes) or ref in seen:
                continue
            seen.add(ref)
            result.append(ref)
    logger.info("扫描 %s: %d 个内部包依赖", root, len(result))
    return result


def load_package_list(path: str | Path, prefixes: Iterable[str] = ()) -> list[PackageReference]:
    """读取 name,version 格式的 CSV 包清单

    Raises:
        ValidationError: 文件不存在或某行缺少版本
    """
    p = Path(path)
    if not p.exists():
        raise ValidationError(f"包清单不存在: {p}")

    prefixes = list(prefixes)
    errors: list[str] = []
    result: list[PackageReference] = []
    with open(p, encoding="utf-8", newline="") as f:
        for lineno, row in enumerate(csv.reader(f), start=1):
            cells = [c.strip() for c in row]
            if not cells or not cells[0] or cells[0].startswith("#"):
                continue
            if lineno == 1 and [c.lower() for c in cells[:2]] == ["name", "version"]:
                continue
            if len(cells) < 2 or not cells[1]:
                errors.append(f"第 {lineno} 行缺少版本: {','.join(cells)}")
                continue
            ref = PackageReference(name=cells[0], version=cells[1], source=str(p))
            if matches_prefix(ref.name, prefixes) and ref not in result:
                result.append(ref)
    if errors:
        raise ValidationError(f"包清单格式错误: {p}", details=errors)
    return result
