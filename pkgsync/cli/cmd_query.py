"""CLI — 只读查询命令：resolve / repos / scan"""

from __future__ import annotations

from pathlib import Path

import click

from pkgsync.cli.options import build_services, config_options, load_config
from pkgsync.core.config import DEFAULT_CONFIG_FILE
from pkgsync.core.exceptions import FetchError, ValidationError
from pkgsync.core.manifest import scan_repository
from pkgsync.core.models import PackageReference


def register(group: click.Group) -> None:
    group.add_command(resolve)
    group.add_command(list_repos)
    group.add_command(scan)


@click.command()
@click.argument("name")
@click.argument("version")
@config_options
@click.option("--repo", default=None, help="目标代码仓（默认按包名映射）")
def resolve(
    name: str, version: str, config_path: str, org: str | None, project: str | None,
    feeds: tuple[str, ...], root: str | None, prefixes: tuple[str, ...], repo: str | None,
) -> None:
    """解析单个包版本的来源提交（不检出）"""
    cfg = load_config(config_path, org, project, feeds, root, prefixes)
    _, resolver = build_services(cfg)
    ref = PackageReference(name=name, version=version)
    target = repo or cfg.target_repository(name)

    for feed in cfg.feeds:
        outcome = resolver.resolve(feed, ref, target)
        if outcome.is_found:
            r = outcome.value
            click.echo(f"  {feed:16s} {r.repository}@{r.commit_id}  ({r.method.value})")
        else:
            reason = f" {outcome.detail}" if outcome.detail else ""
            click.echo(f"  {feed:16s} [{outcome.status.value}] stage={outcome.stage}{reason}")


@click.command(name="repos")
@config_options
def list_repos(
    config_path: str, org: str | None, project: str | None,
    feeds: tuple[str, ...], root: str | None, prefixes: tuple[str, ...],
) -> None:
    """列出项目下的代码仓"""
    cfg = load_config(config_path, org, project, feeds, root, prefixes)
    host, _ = build_services(cfg)
    try:
        repos = host.list_repositories()
    except (FetchError, ValidationError) as e:
        raise click.ClickException(str(e)) from e
    if not repos:
        click.echo("没有代码仓。")
        return
    for r in repos:
        branch = r.branch_name or "-"
        click.echo(f"  {r.name:30s} {branch:12s} {r.clone_url}")


@click.command()
@click.argument("path", type=click.Path(exists=True, file_okay=False))
@click.option("--config", "-c", "config_path", default=DEFAULT_CONFIG_FILE, help="配置文件路径")
@click.option("--prefix", "prefixes", multiple=True, help="内部包名前缀（可多次指定）")
def scan(path: str, config_path: str, prefixes: tuple[str, ...]) -> None:
    """离线扫描工作副本中的内部包依赖"""
    cfg = load_config(config_path, prefixes=prefixes, validate=False)
    refs = scan_repository(Path(path), cfg.package_prefixes)
    if not refs:
        click.echo("没有匹配的包依赖。")
        return
    for ref in refs:
        click.echo(f"  {ref.name:40s} {ref.version:16s} {ref.source}")
