"""统一异常体系

所有业务异常继承 PkgSyncError。
服务边界错误 (FetchError / ValidationError) 由调用方捕获后跳过当前组合；
CheckoutError 为致命错误，一路上抛到 CLI 终止整个运行。
"""

from __future__ import annotations


class PkgSyncError(Exception):
    """基础异常"""

    code: str = "UNKNOWN"

    def __init__(self, message: str) -> None:
        super().__init__(message)


class ConfigError(PkgSyncError):
    """配置缺失或内容无效"""

    code = "CONFIG_ERROR"


class ValidationError(PkgSyncError):
    """输入数据或服务返回内容校验失败"""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, details: list[str] | None = None) -> None:
        super().__init__(message)
        self.details = details or []


class FetchError(PkgSyncError):
    """HTTP 请求返回非 2xx，或传输层失败 (status=0)"""

    code = "FETCH_ERROR"

    def __init__(self, url: str, status: int, body: str = "") -> None:
        super().__init__(f"请求失败 (status={status}): {url} {body[:300]}".rstrip())
        self.url = url
        self.status = status
        self.body = body


class CheckoutError(PkgSyncError):
    """git clone / pull / checkout 失败，工作副本不可信，必须终止运行"""

    code = "CHECKOUT_ERROR"
