"""应用中间件注册。"""

import logging
import re
from time import perf_counter
import uuid

from fastapi import FastAPI, Request

logger = logging.getLogger("fc_api.access")

_REQUEST_ID_PATTERN = re.compile(r"^[A-Za-z0-9._-]{8,64}$")


def _resolve_request_id(request: Request) -> str:
    """沿用网关透传的请求 ID，格式不合法时重新生成。"""
    inbound = (request.headers.get("x-request-id") or "").strip()
    if inbound and _REQUEST_ID_PATTERN.match(inbound):
        return inbound
    return str(uuid.uuid4())


async def request_id_middleware(request: Request, call_next):
    """注入请求追踪 ID，并通过响应头返回。"""
    request.state.request_id = _resolve_request_id(request)
    request.state.request_started_at = perf_counter()
    response = await call_next(request)
    response.headers["X-Request-Id"] = request.state.request_id
    elapsed_ms = round((perf_counter() - request.state.request_started_at) * 1000, 2)
    response.headers["X-Process-Time-Ms"] = str(elapsed_ms)
    logger.debug(
        "%s %s -> %s request_id=%s elapsed_ms=%s",
        request.method,
        request.url.path,
        response.status_code,
        request.state.request_id,
        elapsed_ms,
    )
    return response


def register_middlewares(app: FastAPI) -> None:
    """集中注册中间件。"""
    app.middleware("http")(request_id_middleware)
