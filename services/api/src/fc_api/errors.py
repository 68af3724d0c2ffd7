"""业务错误定义。

所有认证、提权与维护相关错误统一构造为 ``HTTPException``，
``detail`` 采用 ``{code, message, details}`` 结构，由异常处理器包装为标准错误响应。
"""

from typing import Any

from fastapi import HTTPException, status


def _error(
    status_code: int,
    code: str,
    message: str,
    *,
    reason: str,
    suggestion: str | None = None,
    headers: dict[str, str] | None = None,
    **extra: Any,
) -> HTTPException:
    details: dict[str, Any] = {"reason": reason}
    if suggestion:
        details["suggestion"] = suggestion
    details.update(extra)
    return HTTPException(
        status_code=status_code,
        detail={"code": code, "message": message, "details": details},
        headers=headers,
    )


def invalid_credentials(*, require_2fa: bool = False) -> HTTPException:
    """账号或口令错误（不区分具体哪一项错误）。"""
    extra: dict[str, Any] = {"require_2fa": True} if require_2fa else {}
    return _error(
        status.HTTP_401_UNAUTHORIZED,
        "INVALID_CREDENTIALS",
        "账号或密码错误。",
        reason="invalid_credentials",
        suggestion="请确认账号与密码后重试，忘记密码请联系管理员。",
        **extra,
    )


def two_factor_required() -> HTTPException:
    """已启用二次验证但未提交验证码：协议续接信号，而非最终失败。"""
    return _error(
        status.HTTP_401_UNAUTHORIZED,
        "TWO_FACTOR_REQUIRED",
        "需要二次验证码。",
        reason="two_factor_required",
        suggestion="请携带 otp 字段重新提交。",
        require_2fa=True,
    )


def account_pending() -> HTTPException:
    return _error(
        status.HTTP_403_FORBIDDEN,
        "ACCOUNT_PENDING",
        "账号待管理员审批。",
        reason="account_pending",
        suggestion="请等待管理员审批后再登录。",
    )


def tenant_hint_required() -> HTTPException:
    return _error(
        status.HTTP_400_BAD_REQUEST,
        "TENANT_HINT_REQUIRED",
        "该账号存在于多个教会，请指定教会。",
        reason="tenant_hint_required",
        suggestion="请在 tenant_hint 中填写教会短标识。",
    )


def token_unauthorized(reason: str) -> HTTPException:
    """会话令牌缺失、无效、过期或已吊销。"""
    return _error(
        status.HTTP_401_UNAUTHORIZED,
        "UNAUTHORIZED",
        "未登录或登录状态已失效。",
        reason=reason,
        suggestion="请重新登录并携带有效访问令牌。",
    )


def forbidden(reason: str = "forbidden") -> HTTPException:
    return _error(
        status.HTTP_403_FORBIDDEN,
        "FORBIDDEN",
        "无权限访问该资源。",
        reason=reason,
        suggestion="请确认当前账号角色与租户上下文是否正确。",
    )


def csrf_invalid() -> HTTPException:
    return _error(
        status.HTTP_403_FORBIDDEN,
        "CSRF_INVALID",
        "防伪令牌缺失或不匹配。",
        reason="csrf_invalid",
        suggestion="请在 X-CSRF-Token 请求头中回传登录时下发的 csrf_token。",
    )


def tenant_mismatch() -> HTTPException:
    return _error(
        status.HTTP_403_FORBIDDEN,
        "TENANT_MISMATCH",
        "请求租户与会话绑定租户不一致。",
        reason="tenant_mismatch",
        suggestion="切换租户需要重新登录。",
    )


def tenant_inactive() -> HTTPException:
    return _error(
        status.HTTP_403_FORBIDDEN,
        "FORBIDDEN",
        "租户已暂停或归档。",
        reason="tenant_inactive",
    )


def not_found(resource: str, message: str) -> HTTPException:
    return _error(
        status.HTTP_404_NOT_FOUND,
        "NOT_FOUND",
        message,
        reason=f"{resource}_not_found",
        suggestion="请确认资源 ID 是否正确。",
    )


def reauth_required() -> HTTPException:
    """缺少或无法识别的提权令牌。"""
    return _error(
        status.HTTP_401_UNAUTHORIZED,
        "REAUTH_REQUIRED",
        "该操作需要重新验证密码。",
        reason="reauth_required",
        suggestion="请先调用 /provider/maintenance/reauth 获取提权令牌，并放入 X-Reauth-Token 请求头。",
    )


def reauth_expired() -> HTTPException:
    return _error(
        status.HTTP_401_UNAUTHORIZED,
        "REAUTH_EXPIRED",
        "提权令牌已过期。",
        reason="reauth_expired",
        suggestion="请重新输入密码（及二次验证码）后重试。",
    )


def maintenance_disabled() -> HTTPException:
    return _error(
        status.HTTP_403_FORBIDDEN,
        "MAINTENANCE_DISABLED",
        "当前部署未开启整机重启能力。",
        reason="maintenance_disabled",
        suggestion="如需开启，请设置 FC_MAINTENANCE_FULL_RESTART_ENABLED=true 并重新部署。",
    )


def operation_in_progress(*, operation_id: str, retry_after_seconds: int) -> HTTPException:
    return _error(
        status.HTTP_409_CONFLICT,
        "OPERATION_IN_PROGRESS",
        "同一目标已有维护操作在执行中。",
        reason="operation_in_progress",
        suggestion=f"请在 {retry_after_seconds} 秒后重试。",
        headers={"Retry-After": str(retry_after_seconds)},
        operation_id=operation_id,
        retry_after_seconds=retry_after_seconds,
    )


def rate_limited(*, retry_after_seconds: int) -> HTTPException:
    return _error(
        status.HTTP_429_TOO_MANY_REQUESTS,
        "RATE_LIMITED",
        "重启操作过于频繁。",
        reason="rate_limited",
        suggestion=f"请在 {retry_after_seconds} 秒后重试。",
        headers={"Retry-After": str(retry_after_seconds)},
        retry_after_seconds=retry_after_seconds,
    )


def reset_token_invalid() -> HTTPException:
    return _error(
        status.HTTP_400_BAD_REQUEST,
        "RESET_TOKEN_INVALID",
        "重置链接无效或已过期。",
        reason="reset_token_invalid",
        suggestion="请重新申请密码重置。",
    )


def bad_request(code: str, message: str, *, reason: str) -> HTTPException:
    return _error(status.HTTP_400_BAD_REQUEST, code, message, reason=reason)
