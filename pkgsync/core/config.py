"""集中配置管理

配置是一个显式的值对象，由 CLI 入口构造后传入各客户端和解析器，
不存在全局单例。加载顺序: YAML 文件 -> 环境变量 -> 命令行参数。
"""

from __future__ import annotations

import logging
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path

import yaml

from pkgsync.core.exceptions import ConfigError
from pkgsync.utils.yaml_io import load_yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "configs/pkgsync.yml"

_ENV_PREFIX = "PKGSYNC_"
_AUTH_SCHEMES = ("basic", "bearer")
_LIST_FIELDS = ("feeds", "package_prefixes")
_DICT_FIELDS = ("repository_map",)
_BOOL_FIELDS = ("update_sources",)


def _normalize(name: str, value: object) -> object:
    """把 YAML 取值规整为字段类型，None 交回调用方使用默认值

    Raises:
        ConfigError: 类型无法对应
    """
    if name in _LIST_FIELDS:
        if isinstance(value, str):
            return [value]
        if isinstance(value, list) and all(isinstance(v, (str, int, float)) for v in value):
            return [str(v) for v in value]
    elif name in _DICT_FIELDS:
        if isinstance(value, dict):
            return {str(k): str(v) for k, v in value.items()}
    elif name in _BOOL_FIELDS:
        if isinstance(value, bool):
            return value
    elif isinstance(value, (str, int, float)) and not isinstance(value, bool):
        return str(value)
    raise ConfigError(f"配置项 {name} 类型不正确: {type(value).__name__}")


@dataclass
class Config:
    """运行配置"""

    # 组织与项目
    organization: str = ""
    project: str = ""
    token: str = ""
    auth_scheme: str = "basic"

    # 包源
    feeds: list[str] = field(default_factory=list)
    feed_project: str = ""   # 为空表示组织级 feed
    protocol_type: str = "NuGet"

    # 范围
    package_prefixes: list[str] = field(default_factory=list)
    repository_map: dict[str, str] = field(default_factory=dict)  # 包名 -> 代码仓名

    # 本地目录
    root_dir: str = "checkouts"
    update_sources: bool = True

    # 服务地址
    feeds_url: str = "https://feeds.dev.azure.com"
    host_url: str = "https://dev.azure.com"

    # 放不到字段里的配置项（含已废弃的 archive_dir）
    extra: dict = field(default_factory=dict)

    @classmethod
    def from_file(cls, path: str = DEFAULT_CONFIG_FILE) -> Config:
        """从 YAML 文件加载配置，不存在则返回默认

        Raises:
            ConfigError: 文件过大、YAML 格式错误或取值类型不正确
        """
        try:
            data = load_yaml(path)
        except (ValueError, yaml.YAMLError) as e:
            raise ConfigError(f"配置文件无法加载: {path} ({e})") from e
        if not data:
            return cls()
        known = {f for f in cls.__dataclass_fields__ if f != "extra"}
        matched = {
            k: _normalize(k, v) for k, v in data.items() if k in known and v is not None
        }
        extra = {k: v for k, v in data.items() if k not in known}
        if "archive_dir" in extra:
            logger.info("archive_dir 已不再使用，忽略: %s", extra["archive_dir"])
        cfg = cls(**matched)
        cfg.extra = extra
        logger.info("配置已加载: %s", path)
        return cfg

    def apply_env(self, environ: dict[str, str] | None = None) -> Config:
        """用 PKGSYNC_* 环境变量覆盖对应字段（令牌通常只通过环境变量传入）"""
        env = os.environ if environ is None else environ
        for name in ("organization", "project", "token", "auth_scheme", "root_dir"):
            value = env.get(_ENV_PREFIX + name.upper())
            if value:
                setattr(self, name, value)
        feeds = env.get(_ENV_PREFIX + "FEEDS")
        if feeds:
            self.feeds = [f.strip() for f in feeds.split(",") if f.strip()]
        return self

    def validate(self) -> None:
        """校验运行所需的最小配置

        Raises:
            ConfigError: 缺少必填项或取值非法
        """
        missing = [
            name for name in ("organization", "project") if not getattr(self, name)
        ]
        for name in _LIST_FIELDS:
            if not isinstance(getattr(self, name), list):
                raise ConfigError(f"配置项 {name} 必须是列表")
        if not isinstance(self.repository_map, dict):
            raise ConfigError("配置项 repository_map 必须是映射")
        if not self.feeds:
            missing.append("feeds")
        if missing:
            raise ConfigError(f"缺少必填配置: {', '.join(missing)}")
        if self.auth_scheme not in _AUTH_SCHEMES:
            raise ConfigError(
                f"auth_scheme 取值非法: {self.auth_scheme}，可选: {', '.join(_AUTH_SCHEMES)}"
            )

    @property
    def sources_dir(self) -> Path:
        """被扫描的代码仓工作副本根目录"""
        return Path(self.root_dir) / "sources"

    @property
    def packages_dir(self) -> Path:
        """按解析结果检出的代码仓根目录"""
        return Path(self.root_dir) / "packages"

    def target_repository(self, package_name: str) -> str:
        """包名对应的代码仓名，未映射时与包名相同"""
        return self.repository_map.get(package_name, package_name)

    def to_dict(self) -> dict:
        data = asdict(self)
        if data["token"]:
            data["token"] = "***"
        return data
