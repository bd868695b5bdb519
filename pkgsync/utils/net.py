"""网络工具 — URL 校验、认证头、JSON GET

通过 HttpTransport 协议抽象底层请求，测试时注入假实现，无需真实网络。
不设置显式超时，沿用 urllib 默认行为。
"""

from __future__ import annotations

import base64
import json
import logging
import urllib.error
import urllib.request
from dataclasses import dataclass
from typing import Any, Protocol
from urllib.parse import urlparse

from pkgsync.core.exceptions import FetchError, ValidationError

logger = logging.getLogger(__name__)

_ALLOWED_SCHEMES = frozenset(("http", "https"))


def validate_url_scheme(url: str, *, context: str = "") -> None:
    """校验 URL 仅使用 http/https

    Raises:
        ValidationError: URL scheme 不在白名单内
    """
    parsed = urlparse(url)
    if parsed.scheme not in _ALLOWED_SCHEMES:
        label = f" ({context})" if context else ""
        raise ValidationError(
            f"不允许的 URL 协议 '{parsed.scheme}'{label}，仅支持 http/https: {url}"
        )


def build_auth_header(token: str, scheme: str = "basic") -> str:
    """构造 Authorization 头

    basic: 个人访问令牌 (PAT)，用户名留空 -> "Basic base64(:token)"
    bearer: OAuth / 作业令牌 -> "Bearer token"
    """
    if not token:
        return ""
    if scheme == "bearer":
        return f"Bearer {token}"
    if scheme == "basic":
        raw = base64.b64encode(f":{token}".encode()).decode("ascii")
        return f"Basic {raw}"
    raise ValidationError(f"不支持的认证方式: {scheme}")


@dataclass
class HttpResponse:
    """HTTP 响应（与 urllib 解耦）"""

    status: int
    body: str

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


class HttpTransport(Protocol):
    """HTTP 传输协议 — 只需要 GET"""

    def get(self, url: str, *, headers: dict[str, str]) -> HttpResponse:
        ...


class UrllibTransport:
    """基于 urllib 的默认传输实现

    HTTP 错误码作为普通响应返回，由上层决定 404 是否算"不存在"；
    连接失败转换为 status=0 的 FetchError。
    """

    def get(self, url: str, *, headers: dict[str, str]) -> HttpResponse:
        req = urllib.request.Request(url, headers=headers)
        try:
            with urllib.request.urlopen(req) as resp:  # nosec B310
                return HttpResponse(status=resp.status, body=resp.read().decode("utf-8"))
        except urllib.error.HTTPError as e:
            body = e.read().decode("utf-8", errors="replace") if e.fp else ""
            return HttpResponse(status=e.code, body=body)
        except (urllib.error.URLError, OSError) as e:
            raise FetchError(url, 0, str(e)) from e


class JsonApi:
    """带认证的 JSON GET 客户端"""

    def __init__(self, auth_header: str = "", transport: HttpTransport | None = None) -> None:
        self._auth_header = auth_header
        self._transport = transport or UrllibTransport()

    def get_json(self, url: str, *, missing_ok: bool = False) -> Any:
        """GET 并解析 JSON

        Args:
            url: 完整请求地址
            missing_ok: 为 True 时 404 返回 None 而不是抛错

        Raises:
            FetchError: 非 2xx 响应或传输失败
            ValidationError: 响应体不是合法 JSON
        """
        validate_url_scheme(url, context="api request")
        headers = {"Accept": "application/json"}
        if self._auth_header:
            headers["Authorization"] = self._auth_header

        logger.debug("GET %s", url)
        resp = self._transport.get(url, headers=headers)
        if resp.status == 404 and missing_ok:
            logger.debug("  404: %s", url)
            return None
        if not resp.ok:
            raise FetchError(url, resp.status, resp.body)
        if not resp.body.strip():
            return None
        try:
            return json.loads(resp.body)
        except json.JSONDecodeError as e:
            raise ValidationError(f"响应不是合法 JSON: {url}") from e
