"""控制台客户端异常体系。

服务端错误响应统一为 ``{request_id, error: {code, message, details}}``，
按 ``code`` 映射为具体异常；无响应的传输错误与 5xx 单独归类，便于区分
“凭据错误”与“后端不可用”。
"""

from typing import Any

import httpx

NETWORK_UNAVAILABLE_MESSAGE = "无法连接后端服务，请确认服务已启动后重试。"
SERVER_ERROR_MESSAGE = "服务端发生错误，请稍后重试或联系管理员。"


class ConsoleError(Exception):
    """客户端异常基类。"""

    default_message = "请求失败。"

    def __init__(
        self,
        message: str | None = None,
        *,
        code: str | None = None,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
        request_id: str | None = None,
    ):
        self.message = message or self.default_message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        self.request_id = request_id
        super().__init__(self.message)


class InvalidCredentials(ConsoleError):
    default_message = "账号或密码错误。"

    @property
    def require_2fa(self) -> bool:
        return bool(self.details.get("require_2fa"))


class TwoFactorRequired(ConsoleError):
    """需要携带验证码重新提交，属于流程续接而非最终失败。"""

    default_message = "需要二次验证码。"


class AccountPending(ConsoleError):
    default_message = "账号待管理员审批。"


class ReauthRequired(ConsoleError):
    default_message = "该操作需要重新验证密码。"


class ReauthExpired(ReauthRequired):
    default_message = "提权令牌已过期，请重新验证。"


class OperationInProgress(ConsoleError):
    default_message = "同一目标已有维护操作在执行中。"

    @property
    def retry_after(self) -> int | None:
        value = self.details.get("retry_after_seconds")
        return int(value) if value is not None else None

    @property
    def operation_id(self) -> str | None:
        value = self.details.get("operation_id")
        return str(value) if value else None


class MaintenanceDisabled(ConsoleError):
    default_message = "当前部署未开启整机重启能力。"


class NotFound(ConsoleError):
    default_message = "请求资源不存在。"


class RateLimited(ConsoleError):
    default_message = "请求过于频繁。"

    @property
    def retry_after(self) -> int | None:
        value = self.details.get("retry_after_seconds")
        return int(value) if value is not None else None


class PermissionDenied(ConsoleError):
    default_message = "无权限执行该操作。"


class Unauthorized(ConsoleError):
    """会话令牌缺失、无效、过期或已吊销。"""

    default_message = "未登录或登录状态已失效。"


class SessionExpired(ConsoleError):
    """本地会话已清除并已跳转登录页。"""

    default_message = "登录已过期，请重新登录。"

    def __init__(self, redirect_to: str, message: str | None = None):
        super().__init__(message, code="SESSION_EXPIRED", status_code=401)
        self.redirect_to = redirect_to


class NetworkUnavailable(ConsoleError):
    default_message = NETWORK_UNAVAILABLE_MESSAGE


class ServerError(ConsoleError):
    default_message = SERVER_ERROR_MESSAGE


_ERRORS_BY_CODE: dict[str, type[ConsoleError]] = {
    "INVALID_CREDENTIALS": InvalidCredentials,
    "TWO_FACTOR_REQUIRED": TwoFactorRequired,
    "ACCOUNT_PENDING": AccountPending,
    "REAUTH_REQUIRED": ReauthRequired,
    "REAUTH_EXPIRED": ReauthExpired,
    "OPERATION_IN_PROGRESS": OperationInProgress,
    "MAINTENANCE_DISABLED": MaintenanceDisabled,
    "NOT_FOUND": NotFound,
    "RATE_LIMITED": RateLimited,
    "UNAUTHORIZED": Unauthorized,
    "FORBIDDEN": PermissionDenied,
    "CSRF_INVALID": PermissionDenied,
    "TENANT_MISMATCH": PermissionDenied,
}


def error_from_response(response: httpx.Response) -> ConsoleError:
    """把错误响应转换为客户端异常。"""
    try:
        payload = response.json()
    except ValueError:
        payload = None

    error = payload.get("error") if isinstance(payload, dict) else None
    if response.status_code >= 500 or not isinstance(error, dict):
        if response.status_code >= 500:
            return ServerError(status_code=response.status_code)
        return ConsoleError(status_code=response.status_code)

    code = str(error.get("code") or "")
    details = error.get("details") if isinstance(error.get("details"), dict) else {}
    retry_after = response.headers.get("retry-after")
    if retry_after and "retry_after_seconds" not in details:
        try:
            details["retry_after_seconds"] = int(retry_after)
        except ValueError:
            pass

    error_cls = _ERRORS_BY_CODE.get(code, ConsoleError)
    return error_cls(
        error.get("message") or None,
        code=code or None,
        status_code=response.status_code,
        details=details,
        request_id=payload.get("request_id"),
    )
