"""CLI 公共选项与服务装配"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import click

from pkgsync.core.config import DEFAULT_CONFIG_FILE, Config
from pkgsync.core.exceptions import ConfigError
from pkgsync.services.feed_client import FeedClient
from pkgsync.services.resolver import CommitResolver
from pkgsync.services.source_host import SourceHostClient


def config_options(func: Callable[..., Any]) -> Callable[..., Any]:
    """为命令挂上配置相关选项（命令行优先于配置文件和环境变量）"""
    options = [
        click.option("--config", "-c", "config_path", default=DEFAULT_CONFIG_FILE,
                      help="配置文件路径"),
        click.option("--org", default=None, help="组织名"),
        click.option("--project", default=None, help="项目名"),
        click.option("--feed", "feeds", multiple=True, help="feed 名称（可多次指定）"),
        click.option("--root", default=None, help="本地检出根目录"),
        click.option("--prefix", "prefixes", multiple=True,
                     help="内部包名前缀（可多次指定）"),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def load_config(
    config_path: str,
    org: str | None = None,
    project: str | None = None,
    feeds: tuple[str, ...] = (),
    root: str | None = None,
    prefixes: tuple[str, ...] = (),
    *,
    validate: bool = True,
) -> Config:
    """按 文件 -> 环境变量 -> 命令行 的顺序构造配置"""
    try:
        cfg = Config.from_file(config_path).apply_env()
    except ConfigError as e:
        raise click.ClickException(str(e)) from e
    if org:
        cfg.organization = org
    if project:
        cfg.project = project
    if feeds:
        cfg.feeds = list(feeds)
    if root:
        cfg.root_dir = root
    if prefixes:
        cfg.package_prefixes = list(prefixes)
    if validate:
        try:
            cfg.validate()
        except ConfigError as e:
            raise click.ClickException(str(e)) from e
    return cfg


def build_services(cfg: Config) -> tuple[SourceHostClient, CommitResolver]:
    host = SourceHostClient(cfg)
    return host, CommitResolver(FeedClient(cfg), host)
