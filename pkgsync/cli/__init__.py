"""pkgsync 命令行接口

CLI 按领域拆分为子模块，每个模块注册自己的命令到 main group。
"""

import os

import click

from pkgsync import __version__
from pkgsync.utils.logger import setup_logging


@click.group()
@click.version_option(version=__version__)
@click.option("--verbose", "-v", is_flag=True, help="输出 DEBUG 级别日志")
def main(verbose: bool) -> None:
    """pkgsync - 按已发布包版本定位源码提交并检出"""
    level = "DEBUG" if verbose else os.getenv("PKGSYNC_LOG_LEVEL", "INFO")
    setup_logging(level=level, json_output=os.getenv("PKGSYNC_LOG_JSON", "") == "1")


# 注册各领域子命令
from pkgsync.cli.cmd_sync import register as _reg_sync  # noqa: E402
from pkgsync.cli.cmd_query import register as _reg_query  # noqa: E402

_reg_sync(main)
_reg_query(main)
