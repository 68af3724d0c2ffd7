"""审计日志模型。"""

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import DateTime, String, Text, func
from sqlalchemy.dialects.postgresql import INET, JSONB
from sqlalchemy.orm import Mapped, mapped_column

from fc_api.models.base import Base, UUIDPrimaryKeyMixin, utc_now


class AuditLog(Base, UUIDPrimaryKeyMixin):
    """关键操作审计日志，只追加；仅允许服务商按租户显式清理。"""

    __tablename__ = "audit_logs"

    # 所属租户 ID，系统级动作（如整机重启）为空。
    tenant_id: Mapped[UUID | None] = mapped_column(index=True)
    # 操作人用户 ID，系统动作为空。
    actor_user_id: Mapped[UUID | None] = mapped_column()
    # 动作标识，例如 provider.tenant.restart.requested。
    action: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    # 实体类型，例如 tenant/system/user。
    entity_type: Mapped[str] = mapped_column(String(64), nullable=False)
    # 实体标识（通常为字符串化 UUID）。
    entity_id: Mapped[str | None] = mapped_column(String(128))
    # 附加信息，例如 operation_id。
    details: Mapped[dict[str, Any] | None] = mapped_column(JSONB)
    # 客户端 IP。
    ip: Mapped[str | None] = mapped_column(INET)
    # 客户端 User-Agent。
    user_agent: Mapped[str | None] = mapped_column(Text)
    # 审计记录创建时间。
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, server_default=func.now(), nullable=False, index=True
    )
