"""统一响应包裹结构，便于在线接口文档展示与联调。"""

from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field


class BaseSchema(BaseModel):
    """基础结构，开启对象映射能力。"""

    model_config = ConfigDict(from_attributes=True)


class ErrorDetails(BaseModel):
    """错误细节；除固定字段外还可能带有 ``require_2fa``、``operation_id``、``retry_after_seconds`` 等。"""

    model_config = ConfigDict(extra="allow")

    method: str = Field(description="请求方法。")
    path: str = Field(description="请求路径。")
    timestamp: str = Field(description="服务端时间（UTC）。")
    status_code: int | None = Field(default=None, description="HTTP 状态码。")
    reason: str | None = Field(default=None, description="机器可识别的失败原因。")
    suggestion: str | None = Field(default=None, description="处理建议。")


class ErrorPayload(BaseSchema):
    code: str = Field(description="机器可识别错误码，如 REAUTH_REQUIRED、OPERATION_IN_PROGRESS。")
    message: str = Field(description="人类可读错误信息。")
    details: ErrorDetails = Field(description="错误细节。")


class ErrorResponse(BaseSchema):
    """统一错误响应。"""

    request_id: str = Field(description="请求追踪 ID，与响应头 X-Request-Id 一致。")
    error: ErrorPayload = Field(description="错误主体。")


T = TypeVar("T")


class SuccessResponse(BaseSchema, Generic[T]):
    """统一成功响应；受理类接口在 ``meta`` 中给出状态查询地址。"""

    request_id: str = Field(description="请求追踪 ID，与响应头 X-Request-Id 一致。")
    data: T = Field(description="业务返回数据主体。")
    meta: dict[str, Any] = Field(default_factory=dict, description="请求方法、路径、耗时等元信息。")
