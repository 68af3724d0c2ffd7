"""审计日志结构。"""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import Field

from fc_api.schemas.common import BaseSchema


class AuditLogData(BaseSchema):
    """审计记录视图。"""

    id: UUID = Field(description="记录 ID。")
    tenant_id: UUID | None = Field(default=None, description="所属租户，系统级动作为空。")
    actor_user_id: UUID | None = Field(default=None, description="操作人，系统动作为空。")
    action: str = Field(description="动作标识。")
    entity_type: str = Field(description="实体类型。")
    entity_id: str | None = Field(default=None, description="实体标识。")
    details: dict[str, Any] | None = Field(default=None, description="附加信息。")
    ip: str | None = Field(default=None, description="客户端 IP。")
    user_agent: str | None = Field(default=None, description="客户端 User-Agent。")
    created_at: datetime = Field(description="记录时间。")


class AuditLogPurgeData(BaseSchema):
    deleted: int = Field(description="删除条数。")
