"""响应包裹工具：成功为 ``{request_id, data, meta}``，失败为 ``{request_id, error}``。"""

from datetime import datetime, timezone
from time import perf_counter
from typing import Any

from fastapi import Request

DEFAULT_ERROR_MESSAGE = "服务内部错误，请稍后重试。"

# 受理类接口的默认提示，客户端据此开始轮询。
ACCEPTED_MESSAGE = "已受理，请轮询执行状态。"


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _request_id(request: Request) -> str:
    request_id = getattr(request.state, "request_id", None)
    return request_id if isinstance(request_id, str) and request_id else "-"


def _elapsed_ms(request: Request) -> int | None:
    started_at = getattr(request.state, "request_started_at", None)
    if not isinstance(started_at, float):
        return None
    return int((perf_counter() - started_at) * 1000)


def success(request: Request, data: Any, meta: dict[str, Any] | None = None) -> dict[str, Any]:
    """构造成功响应；``meta`` 中的同名字段覆盖默认值。"""
    final_meta: dict[str, Any] = {
        "method": request.method.upper(),
        "path": request.url.path,
        "timestamp": _utc_now_iso(),
        "process_ms": _elapsed_ms(request),
    }
    if meta:
        final_meta.update(meta)
    return {"request_id": _request_id(request), "data": data, "meta": final_meta}


def accepted(request: Request, data: dict[str, Any], *, status_path: str, poll_interval_seconds: float) -> dict[str, Any]:
    """构造 202 受理响应，``meta`` 中附带状态查询地址与建议轮询间隔。"""
    return success(
        request,
        data,
        meta={
            "message": ACCEPTED_MESSAGE,
            "status_path": status_path,
            "poll_interval_seconds": poll_interval_seconds,
        },
    )


def error_payload(
    request: Request,
    code: str,
    message: str,
    details: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """构造错误响应；``details`` 始终带有请求方法、路径与时间戳。"""
    final_details: dict[str, Any] = {
        "method": request.method.upper(),
        "path": request.url.path,
        "timestamp": _utc_now_iso(),
    }
    if details:
        final_details.update(details)
    return {
        "request_id": _request_id(request),
        "error": {"code": code, "message": message, "details": final_details},
    }
