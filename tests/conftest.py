"""测试共享 fixture — 假 HTTP 传输 + 假 git 执行器

  FakeTransport: 按 URL 路径后缀路由到预置 JSON，未命中返回 404，并记录全部请求
  FakeExecutor:  记录 git 命令；clone 时创建 .git 目录；可指定某个子命令失败
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any
from urllib.parse import urlsplit

import pytest

from pkgsync.core.config import Config
from pkgsync.utils.net import HttpResponse, JsonApi
from pkgsync.utils.shell import CommandResult


class FakeTransport:
    def __init__(self, routes: dict[str, Any] | None = None) -> None:
        self.routes = dict(routes or {})
        self.calls: list[str] = []

    def get(self, url: str, *, headers: dict[str, str]) -> HttpResponse:
        self.calls.append(url)
        path = urlsplit(url).path
        for suffix, payload in self.routes.items():
            if path.endswith(suffix):
                if isinstance(payload, HttpResponse):
                    return payload
                return HttpResponse(200, json.dumps(payload))
        return HttpResponse(404, '{"message": "not found"}')

    def called(self, fragment: str) -> bool:
        return any(fragment in urlsplit(u).path for u in self.calls)


def git_subcommand(args: list[str]) -> str:
    """跳过 git 与 -c key=value，取子命令"""
    i = 1
    while i < len(args) and args[i] == "-c":
        i += 2
    return args[i] if i < len(args) else ""


class FakeExecutor:
    def __init__(self, fail_on: str = "") -> None:
        self.fail_on = fail_on
        self.commands: list[tuple[list[str], str | None]] = []

    def execute(self, args: list[str], *, cwd: str | None = None) -> CommandResult:
        self.commands.append((list(args), cwd))
        sub = git_subcommand(args)
        if sub == self.fail_on:
            return CommandResult(128, "", f"fatal: {sub} failed")
        if sub == "clone":
            (Path(args[-1]) / ".git").mkdir(parents=True, exist_ok=True)
        return CommandResult(0, "", "")

    def subcommands(self) -> list[str]:
        return [git_subcommand(args) for args, _ in self.commands]


@pytest.fixture()
def config(tmp_path: Path) -> Config:
    return Config(
        organization="contoso",
        project="platform",
        token="secret-pat",
        feeds=["internal"],
        package_prefixes=["Package"],
        root_dir=str(tmp_path / "checkouts"),
    )


@pytest.fixture()
def make_api():
    """工厂: make_api(routes) -> (JsonApi, FakeTransport)"""
    def _make(routes: dict[str, Any] | None = None) -> tuple[JsonApi, FakeTransport]:
        transport = FakeTransport(routes)
        return JsonApi("Basic test", transport=transport), transport
    return _make


@pytest.fixture()
def fake_executor() -> FakeExecutor:
    return FakeExecutor()


@pytest.fixture()
def executor_factory():
    return FakeExecutor
