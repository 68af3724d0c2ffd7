"""请求上下文依赖。

职责:
1. 解析并校验会话令牌（签名、有效期、类型、吊销）。
2. 将令牌主体映射为本地 User，并拒绝已禁用主体。
3. 租户上下文只取自令牌；请求头声明的租户与令牌不一致时拒绝。
4. 按能力、防伪令牌与提权令牌的固定顺序做路由级校验。
"""

from dataclasses import dataclass
from uuid import UUID

from fastapi import Depends, Header, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from fc_api.core.security import AuthenticatedPrincipal, parse_authorization_header
from fc_api.db.session import get_db
from fc_api.errors import csrf_invalid, forbidden, tenant_inactive, tenant_mismatch, token_unauthorized
from fc_api.models.enums import PrincipalStatus
from fc_api.models.tenant import User
from fc_api.services.local_auth import verify_csrf_token
from fc_api.services.maintenance import MaintenanceRuntime
from fc_api.services.permissions import can_perform
from fc_api.services.reauth import verify_reauth_token

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass
class SessionContext:
    """请求会话上下文。

    该对象在路由层作为统一输入，租户绑定与角色在令牌有效期内不可变。
    """

    # 当前请求用户。
    user: User
    # 签发时的角色。
    role: str
    # 绑定租户，服务商会话为空。
    tenant_id: UUID | None
    # 认证主体原始信息（来自令牌）。
    principal: AuthenticatedPrincipal

    @property
    def user_id(self) -> UUID:
        return self.user.id

    @property
    def jti(self) -> str:
        return self.principal.jti


def get_maintenance_runtime(request: Request) -> MaintenanceRuntime:
    """返回挂载在应用上的维护组件。"""
    return request.app.state.maintenance


def get_current_principal(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> AuthenticatedPrincipal:
    """提取并解析当前请求认证主体。"""
    authorization = None
    if credentials is not None and credentials.credentials:
        authorization = f"{credentials.scheme} {credentials.credentials}"
    return parse_authorization_header(authorization)


def _header_tenant_matches(header_value: str, tenant_id: UUID | None) -> bool:
    if tenant_id is None:
        return False
    try:
        return UUID(header_value.strip()) == tenant_id
    except ValueError:
        return False


def get_session_context(
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    x_tenant_id: str | None = Header(default=None, alias="X-Tenant-Id"),
    runtime: MaintenanceRuntime = Depends(get_maintenance_runtime),
    db: Session = Depends(get_db),
) -> SessionContext:
    """完成会话认证与租户绑定校验。"""
    user = db.get(User, principal.user_id)
    if user is None or user.status != PrincipalStatus.ACTIVE:
        raise token_unauthorized("principal_inactive")
    if user.tenant_id != principal.tenant_id or user.role != principal.role:
        # 租户或角色在签发后被变更，旧会话作废，需要重新登录。
        raise token_unauthorized("session_binding_changed")

    if x_tenant_id and x_tenant_id.strip() and not _header_tenant_matches(x_tenant_id, principal.tenant_id):
        raise tenant_mismatch()

    if principal.tenant_id is not None:
        tenant_runtime = runtime.registry.get(db, principal.tenant_id)
        if tenant_runtime is None or not tenant_runtime.is_active:
            raise tenant_inactive()

    return SessionContext(user=user, role=principal.role, tenant_id=principal.tenant_id, principal=principal)


def require_capability(action: str, *, csrf: bool = False, reauth: bool = False):
    """按 会话 -> 角色能力 -> 防伪令牌 -> 提权令牌 的顺序做路由级校验。"""

    def _dep(
        ctx: SessionContext = Depends(get_session_context),
        x_csrf_token: str | None = Header(default=None, alias="X-CSRF-Token"),
        x_reauth_token: str | None = Header(default=None, alias="X-Reauth-Token"),
    ) -> SessionContext:
        if not can_perform(ctx.role, action):
            raise forbidden("role_not_allowed")
        if csrf and not verify_csrf_token(ctx.jti, x_csrf_token):
            raise csrf_invalid()
        if reauth:
            verify_reauth_token(x_reauth_token, user_id=ctx.user_id)
        return ctx

    return _dep
