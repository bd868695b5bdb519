"""CLI — 同步命令"""

from __future__ import annotations

import logging
import sys

import click

from pkgsync.cli.options import build_services, config_options, load_config
from pkgsync.core.exceptions import CheckoutError, ValidationError
from pkgsync.core.manifest import load_package_list
from pkgsync.services.orchestrator import SyncOrchestrator
from pkgsync.utils.yaml_io import save_yaml

logger = logging.getLogger(__name__)

# git 操作失败时的退出码，区别于参数错误 (1)
EXIT_CHECKOUT_FAILED = 2


def register(group: click.Group) -> None:
    group.add_command(sync)


@click.command()
@config_options
@click.option("--packages", "packages_csv", default=None,
              help="显式包清单 CSV (name,version)，指定后不扫描代码仓")
@click.option("--dry-run", is_flag=True, help="只解析提交，不检出")
@click.option("--no-update-sources", is_flag=True, help="不 clone/pull 被扫描的代码仓")
@click.option("--report", "report_path", default=None, help="运行报告输出路径 (YAML)")
def sync(
    config_path: str, org: str | None, project: str | None,
    feeds: tuple[str, ...], root: str | None, prefixes: tuple[str, ...],
    packages_csv: str | None, dry_run: bool, no_update_sources: bool,
    report_path: str | None,
) -> None:
    """扫描清单，解析每个内部包版本的来源提交并检出"""
    cfg = load_config(config_path, org, project, feeds, root, prefixes)
    if no_update_sources:
        cfg.update_sources = False

    references = None
    if packages_csv:
        try:
            references = load_package_list(packages_csv, cfg.package_prefixes)
        except ValidationError as e:
            for detail in e.details:
                click.echo(f"  {detail}", err=True)
            raise click.ClickException(str(e)) from e

    host, resolver = build_services(cfg)
    orchestrator = SyncOrchestrator(cfg, host, resolver, dry_run=dry_run)
    try:
        report = orchestrator.run(references)
    except CheckoutError as e:
        logger.error("检出失败，运行终止: %s", e)
        click.echo(f"致命错误: {e}", err=True)
        sys.exit(EXIT_CHECKOUT_FAILED)

    for entry in report.entries:
        detail = entry.get("commit") or entry.get("stage", "")
        click.echo(
            f"  [{entry['status']:11s}] {entry['feed']:16s} "
            f"{entry['package']}@{entry['version']}  {detail}"
        )
    summary = report.summary()
    click.echo(
        f"代码仓: {summary['repositories']}  检出: {summary['checked_out']}  "
        f"仅解析: {summary['resolved']}  跳过: {summary['skipped']}  错误: {summary['errors']}"
    )
    if report_path:
        save_yaml(report_path, report.to_dict())
        click.echo(f"报告已保存: {report_path}")
