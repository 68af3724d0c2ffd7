"""角色能力判定。

``can_perform`` 是唯一的能力判定入口，路由依赖与 ``/auth/me`` 返回的能力列表都基于它。
"""

from enum import StrEnum

from fc_api.models.enums import Role


class PermissionAction(StrEnum):
    """后端接口鉴权动作定义。"""

    SESSION_READ = "api.session.read"
    TWO_FACTOR_MANAGE = "api.auth.two_factor.manage"

    MAINTENANCE_REAUTH = "api.maintenance.reauth"
    TENANT_RESTART = "api.maintenance.tenant.restart"
    SYSTEM_RESTART = "api.maintenance.system.restart"
    MAINTENANCE_READ = "api.maintenance.read"
    VERSION_ACKNOWLEDGE = "api.maintenance.version.acknowledge"
    TENANT_CONFIG_VERIFY = "api.tenant.config.verify"

    AUDIT_LOG_READ = "api.audit_log.read"
    AUDIT_LOG_PURGE = "api.audit_log.purge"


_PROVIDER_ACTIONS = frozenset(action.value for action in PermissionAction)
_PRIVILEGED_TENANT_ACTIONS = frozenset(
    {
        PermissionAction.SESSION_READ.value,
        PermissionAction.TWO_FACTOR_MANAGE.value,
    }
)
_MEMBER_ACTIONS = frozenset({PermissionAction.SESSION_READ.value})

_ROLE_ACTIONS: dict[str, frozenset[str]] = {
    Role.SUPER_ADMIN.value: _PROVIDER_ACTIONS,
    Role.TENANT_ADMIN.value: _PRIVILEGED_TENANT_ACTIONS,
    Role.CLERK.value: _PRIVILEGED_TENANT_ACTIONS,
    Role.PASTOR.value: _PRIVILEGED_TENANT_ACTIONS,
    Role.MEMBER.value: _MEMBER_ACTIONS,
}


def can_perform(role: str | None, action: str) -> bool:
    """判断角色是否具备指定能力，未知角色一律拒绝。"""
    if not role:
        return False
    return action in _ROLE_ACTIONS.get(role, frozenset())


def list_role_actions(role: str | None) -> list[str]:
    """返回角色具备的能力列表（排序后），供前端做界面控制。"""
    if not role:
        return []
    return sorted(_ROLE_ACTIONS.get(role, frozenset()))
