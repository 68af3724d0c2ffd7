"""租户与主体模型。"""

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, Boolean, DateTime, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from fc_api.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin
from fc_api.models.enums import PrincipalStatus, Role, TenantPlan, TenantStatus


class Tenant(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """租户实体（一个教会），系统最高数据隔离边界。"""

    __tablename__ = "tenants"

    # 面向用户展示的教会名称。
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    # 全局唯一短标识，登录时作为 tenant_hint 使用。
    slug: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    # 租户生命周期状态（active/suspended/archived）。
    status: Mapped[str] = mapped_column(String(32), nullable=False, default=TenantStatus.ACTIVE)
    # 订阅套餐（basic/pro/enterprise）。
    plan: Mapped[str] = mapped_column(String(32), nullable=False, default=TenantPlan.BASIC)
    # 租户级配置（功能开关、品牌等），重启租户上下文时重新加载。
    config: Mapped[dict[str, Any] | None] = mapped_column(JSON)
    # 最近一次租户上下文重启时间。
    last_restarted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))


class User(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """主体实体：服务商管理员、租户管理员、职员与会友。"""

    __tablename__ = "users"
    __table_args__ = (UniqueConstraint("tenant_id", "email", name="uk_user_tenant_email"),)

    # 登录邮箱，租户内唯一。
    email: Mapped[str] = mapped_column(String(256), nullable=False, index=True)
    # 展示名。
    display_name: Mapped[str] = mapped_column(String(128), nullable=False)
    # 角色（super_admin/tenant_admin/clerk/pastor/member）。
    role: Mapped[str] = mapped_column(String(32), nullable=False, default=Role.MEMBER)
    # 所属租户，服务商管理员为空。
    tenant_id: Mapped[UUID | None] = mapped_column(index=True)
    # 账号状态（active/pending/disabled），只做软禁用。
    status: Mapped[str] = mapped_column(String(32), nullable=False, default=PrincipalStatus.ACTIVE)
    # 是否已启用二次验证。
    two_factor_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    # 最近一次登录时间。
    last_login_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
