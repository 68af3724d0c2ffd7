"""维护操作与提权的请求与结果结构。"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from fc_api.schemas.common import BaseSchema


class ReauthRequest(BaseModel):
    """提权请求：无论会话是否有效，都需重新提交密码。"""

    password: str = Field(min_length=1, max_length=128, description="当前账号密码。")
    otp: str | None = Field(default=None, max_length=12, description="二次验证码（已启用时必填）。")


class ReauthData(BaseSchema):
    reauth_token: str = Field(description="提权令牌，放入 X-Reauth-Token 请求头。")
    expires_in_sec: int = Field(description="有效秒数（不超过 120）。")
    scope: str = Field(description="提权作用域。")


class TenantRestartRequest(BaseModel):
    tenant_id: UUID = Field(description="目标租户 ID。")


class RestartAcceptedData(BaseSchema):
    """重启受理结果（异步执行）。"""

    operation_id: UUID = Field(description="维护操作 ID，用于轮询状态。")
    status: str = Field(description="受理时状态，通常为 pending。")
    message: str = Field(description="提示信息。")


class MaintenanceOperationData(BaseSchema):
    """维护操作状态视图。"""

    operation_id: UUID = Field(description="维护操作 ID。")
    kind: str = Field(description="操作类型（full_restart/tenant_restart）。")
    status: str = Field(description="状态（pending/running/completed/failed）。")
    target_tenant_id: UUID | None = Field(default=None, description="目标租户，整机重启为空。")
    requested_by: UUID = Field(description="发起人用户 ID。")
    requested_at: datetime = Field(description="受理时间。")
    started_at: datetime | None = Field(default=None, description="开始执行时间。")
    completed_at: datetime | None = Field(default=None, description="进入终态时间。")
    error: str | None = Field(default=None, description="失败原因。")


class RestartConfigData(BaseSchema):
    enabled: bool = Field(description="整机重启开关是否开启。")
    app_env: str = Field(description="运行环境。")


class VersionData(BaseSchema):
    version: str = Field(description="当前版本号，未配置时为 dev。")
    build_time: str | None = Field(default=None, description="构建时间。")
    app_env: str = Field(description="运行环境。")
    checked_at: datetime = Field(description="检查时间。")


class ExpectedVersionData(BaseSchema):
    version: str | None = Field(default=None, description="期望运行的版本号，未配置时为空。")


class VersionStatusData(BaseSchema):
    """当前版本与期望版本对比结果。"""

    current: VersionData
    expected: ExpectedVersionData
    update_available: bool = Field(description="期望版本已配置且与当前版本不同。")
    warnings: list[str] = Field(default_factory=list, description="部署配置告警。")


class VersionAckData(BaseSchema):
    ok: bool = Field(description="固定为 true。")
    at: datetime = Field(description="确认时间。")


class DatabaseHealthData(BaseSchema):
    ok: bool = Field(description="数据库是否可用。")
    error: str | None = Field(default=None, description="不可用时的错误信息。")


class SystemHealthData(BaseSchema):
    """进程运行状况。"""

    ok: bool = Field(description="整体是否健康（当前等同于数据库可用）。")
    checked_at: datetime = Field(description="检查时间。")
    app_env: str = Field(description="运行环境。")
    uptime_seconds: int = Field(description="进程已运行秒数。")
    db: DatabaseHealthData
    memory: dict[str, int] = Field(description="进程内存占用。")
