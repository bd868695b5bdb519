"""Shell 命令执行工具 — 统一子进程调用

通过 CommandExecutor 协议抽象子进程执行，测试时注入假实现，无需 patch subprocess。
"""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from pkgsync.core.exceptions import CheckoutError

logger = logging.getLogger(__name__)


@dataclass
class CommandResult:
    """命令执行结果（与 subprocess 解耦）"""

    returncode: int
    stdout: str
    stderr: str

    @property
    def success(self) -> bool:
        return self.returncode == 0


class CommandExecutor(Protocol):
    """命令执行器协议"""

    def execute(self, args: list[str], *, cwd: str | None = None) -> CommandResult:
        ...


class LocalExecutor:
    """本地子进程执行器（默认实现）"""

    def execute(self, args: list[str], *, cwd: str | None = None) -> CommandResult:
        try:
            r = subprocess.run(
                args, capture_output=True, text=True, cwd=cwd, check=False,
            )
        except OSError as e:
            # git 不在 PATH 或 cwd 不存在
            return CommandResult(returncode=127, stdout="", stderr=str(e))
        return CommandResult(returncode=r.returncode, stdout=r.stdout, stderr=r.stderr)


def run_git(
    executor: CommandExecutor,
    args: list[str],
    *,
    cwd: str | Path | None = None,
    config: list[str] | None = None,
    label: str = "git",
) -> CommandResult:
    """执行 git 子命令，失败抛 CheckoutError

    Args:
        executor: 命令执行器
        args: git 之后的参数，如 ["checkout", "abc123"]
        cwd: 工作目录
        config: 以 -c key=value 形式注入的配置（如认证头），不写入日志
        label: 日志标签
    """
    cmd = ["git"]
    for item in config or []:
        cmd += ["-c", item]
    cmd += args

    logger.info("  %s: git %s (cwd=%s)", label, " ".join(args), cwd or ".")
    r = executor.execute(cmd, cwd=str(cwd) if cwd is not None else None)
    if not r.success:
        raise CheckoutError(f"{label}失败 (rc={r.returncode}): {r.stderr[:500]}")
    return r
