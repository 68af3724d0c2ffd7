"""领域枚举定义。"""

from enum import StrEnum


class TenantStatus(StrEnum):
    """租户（教会）状态。"""

    ACTIVE = "active"  # 正常可用，可登录与访问租户下资源。
    SUSPENDED = "suspended"  # 暂停状态，禁止登录。
    ARCHIVED = "archived"  # 归档状态，仅用于审计与保留。


class TenantPlan(StrEnum):
    """租户订阅套餐，决定默认开放的功能模块。"""

    BASIC = "basic"
    PRO = "pro"
    ENTERPRISE = "enterprise"


class Role(StrEnum):
    """主体角色。"""

    SUPER_ADMIN = "super_admin"  # 服务商管理员，跨租户，不绑定租户。
    TENANT_ADMIN = "tenant_admin"  # 租户管理员。
    CLERK = "clerk"  # 教会文书（职员角色）。
    PASTOR = "pastor"  # 牧师（职员角色）。
    MEMBER = "member"  # 普通会友。


class PrincipalStatus(StrEnum):
    """主体账号状态。"""

    ACTIVE = "active"  # 正常可登录。
    PENDING = "pending"  # 待管理员审批，禁止登录。
    DISABLED = "disabled"  # 软禁用，保留审计关联。


class CredentialStatus(StrEnum):
    """凭据状态。"""

    ACTIVE = "active"
    DISABLED = "disabled"


class MaintenanceKind(StrEnum):
    """维护操作类型。"""

    FULL_RESTART = "full_restart"  # 整机进程重启。
    TENANT_RESTART = "tenant_restart"  # 单租户逻辑上下文重启。


class MaintenanceStatus(StrEnum):
    """维护操作状态，只允许 pending -> running -> completed/failed。"""

    PENDING = "pending"  # 已受理，等待执行。
    RUNNING = "running"  # 执行中。
    COMPLETED = "completed"  # 执行成功（终态）。
    FAILED = "failed"  # 执行失败（终态）。


# 终态集合。
TERMINAL_MAINTENANCE_STATUSES = (MaintenanceStatus.COMPLETED, MaintenanceStatus.FAILED)
