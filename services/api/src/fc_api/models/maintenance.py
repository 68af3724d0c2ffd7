"""维护操作模型。"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from fc_api.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin
from fc_api.models.enums import MaintenanceStatus


class MaintenanceOperation(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """异步维护操作（租户重启/整机重启），主键即 operation_id。"""

    __tablename__ = "maintenance_operations"

    # 操作类型（full_restart/tenant_restart）。
    kind: Mapped[str] = mapped_column(String(32), nullable=False)
    # 目标租户，整机重启为空。
    target_tenant_id: Mapped[UUID | None] = mapped_column(index=True)
    # 状态（pending/running/completed/failed）。
    status: Mapped[str] = mapped_column(String(32), nullable=False, default=MaintenanceStatus.PENDING, index=True)
    # 发起人用户 ID。
    requested_by: Mapped[UUID] = mapped_column(nullable=False)
    # 受理时间。
    requested_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    # 开始执行时间。
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    # 进入终态时间。
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    # 失败原因。
    error: Mapped[str | None] = mapped_column(Text)
    # 串行化占位键："<kind>:<target>"，非终态时写入、终态时清空。
    # 唯一约束保证同一 (kind, target) 同时最多一个未结束操作。
    active_key: Mapped[str | None] = mapped_column(String(96), unique=True)
    # 受理实例标识；启动对账只处理本实例受理的操作。
    instance_id: Mapped[str | None] = mapped_column(String(128), index=True)
