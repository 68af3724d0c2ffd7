"""异常处理注册：所有错误统一包装为 ``{request_id, error: {code, message, details}}``。"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from fc_api.utils.response import DEFAULT_ERROR_MESSAGE, error_payload

logger = logging.getLogger("fc_api.errors")

# 未经 errors 模块构造的协议异常（路由不存在、方法不允许等）按状态码兜底。
_FALLBACKS: dict[int, tuple[str, str, str]] = {
    status.HTTP_400_BAD_REQUEST: ("BAD_REQUEST", "请求参数不合法。", "请检查请求参数后重试。"),
    status.HTTP_401_UNAUTHORIZED: ("UNAUTHORIZED", "会话不存在或已失效。", "请重新登录后重试。"),
    status.HTTP_403_FORBIDDEN: ("FORBIDDEN", "当前角色无权执行该操作。", "请确认登录账号的角色与绑定租户。"),
    status.HTTP_404_NOT_FOUND: ("NOT_FOUND", "请求资源不存在。", "请确认资源 ID 是否正确。"),
    status.HTTP_405_METHOD_NOT_ALLOWED: ("METHOD_NOT_ALLOWED", "请求方法不被允许。", "请参考接口文档使用正确的方法。"),
    status.HTTP_409_CONFLICT: ("CONFLICT", "请求与当前状态冲突。", "请刷新状态后重试。"),
    status.HTTP_422_UNPROCESSABLE_CONTENT: ("VALIDATION_ERROR", "请求参数校验失败。", "请根据错误字段提示修正请求参数。"),
    status.HTTP_429_TOO_MANY_REQUESTS: ("RATE_LIMITED", "请求过于频繁。", "请按 Retry-After 提示的时间后重试。"),
}
_DEFAULT_FALLBACK = ("HTTP_ERROR", "请求处理失败。", "请稍后重试，若持续失败请联系服务商。")


def _fallback(status_code: int) -> tuple[str, str, str]:
    return _FALLBACKS.get(status_code, _DEFAULT_FALLBACK)


def _parse_http_detail(exc: HTTPException) -> tuple[str, str, dict[str, object]]:
    code, message, suggestion = _fallback(exc.status_code)
    details: dict[str, object] = {"status_code": exc.status_code, "reason": code.lower(), "suggestion": suggestion}

    detail = exc.detail
    if isinstance(detail, dict):
        code = str(detail.get("code") or code)
        message = str(detail.get("message") or message)
        raw_details = detail.get("details")
        if isinstance(raw_details, dict):
            details.update(raw_details)
    elif isinstance(detail, str) and detail.strip().lower() not in {"not found", "method not allowed", "forbidden"}:
        message = detail
    elif detail is not None and not isinstance(detail, str):
        details["detail"] = detail

    retry_after = (exc.headers or {}).get("Retry-After")
    if retry_after and "retry_after_seconds" not in details and retry_after.isdigit():
        details["retry_after_seconds"] = int(retry_after)
    return code, message, details


async def http_exception_handler(request: Request, exc: HTTPException):
    """包装协议异常并保留 Retry-After 等响应头。"""
    code, message, details = _parse_http_detail(exc)
    logger.info(
        "request rejected request_id=%s path=%s status=%s code=%s reason=%s",
        getattr(request.state, "request_id", None),
        request.url.path,
        exc.status_code,
        code,
        details.get("reason"),
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=error_payload(request, code=code, message=message, details=details),
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """统一处理请求参数校验错误。"""
    normalized_errors = [
        {
            "field": ".".join(str(item) for item in err.get("loc", []) if item != "body"),
            "message": err.get("msg"),
            "type": err.get("type"),
        }
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_CONTENT,
        content=error_payload(
            request,
            code="VALIDATION_ERROR",
            message="请求参数校验失败。",
            details={
                "status_code": status.HTTP_422_UNPROCESSABLE_CONTENT,
                "reason": "validation_error",
                "suggestion": _fallback(status.HTTP_422_UNPROCESSABLE_CONTENT)[2],
                "errors": normalized_errors,
            },
        ),
    )


async def unexpected_exception_handler(request: Request, exc: Exception):
    """处理未捕获异常，记录日志但不向调用方泄露内部细节。"""
    logger.exception(
        "unhandled exception request_id=%s path=%s",
        getattr(request.state, "request_id", None),
        request.url.path,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_payload(
            request,
            code="INTERNAL_ERROR",
            message=DEFAULT_ERROR_MESSAGE,
            details={
                "status_code": status.HTTP_500_INTERNAL_SERVER_ERROR,
                "reason": "unexpected_exception",
                "suggestion": "请稍后重试，若持续失败请联系管理员并提供 request_id。",
            },
        ),
    )


def register_exception_handlers(app: FastAPI) -> None:
    """集中注册异常处理器。"""
    app.exception_handler(HTTPException)(http_exception_handler)
    app.exception_handler(RequestValidationError)(validation_exception_handler)
    app.exception_handler(Exception)(unexpected_exception_handler)
