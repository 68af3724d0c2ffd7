"""登录、登出、密码重置与二次验证的请求与结果结构。"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from fc_api.schemas.common import BaseSchema

_EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class AuthLoginRequest(BaseModel):
    """租户内主体登录请求。"""

    identity: str = Field(min_length=3, max_length=256, description="登录标识（邮箱）。", examples=["alice@example.com"])
    secret: str = Field(min_length=1, max_length=128, description="登录密码。", examples=["StrongPassw0rd!"])
    tenant_hint: str | None = Field(
        default=None,
        max_length=64,
        description="教会短标识；管理员与职员必须提供。",
        examples=["grace-church"],
    )
    otp: str | None = Field(default=None, max_length=12, description="二次验证码（已启用时必填）。")


class ProviderLoginRequest(BaseModel):
    """服务商管理员登录请求。"""

    identity: str = Field(min_length=3, max_length=256, description="登录邮箱。")
    secret: str = Field(min_length=1, max_length=128, description="登录密码。")
    otp: str | None = Field(default=None, max_length=12, description="二次验证码（已启用时必填）。")


class AuthLoginData(BaseSchema):
    """登录结果结构。"""

    access_token: str = Field(description="会话令牌。")
    token_type: str = Field(default="bearer", description="令牌类型。")
    csrf_token: str = Field(description="防伪令牌，变更类请求需放入 X-CSRF-Token 请求头。")
    role: str = Field(description="会话角色。")
    tenant_id: UUID | None = Field(default=None, description="绑定租户，服务商会话为空。")
    expires_at: datetime = Field(description="令牌过期时间（UTC）。")
    expires_in: int = Field(description="距过期剩余秒数。")


class AuthLogoutData(BaseSchema):
    """登出结果结构。"""

    logged_out: bool = Field(description="是否已完成登出。")
    revoked: bool = Field(description="当前 token 是否已加入黑名单。")


class AuthMeData(BaseSchema):
    """`/auth/me` 返回的会话视图。"""

    user_id: UUID = Field(description="用户 ID。")
    email: str = Field(description="登录邮箱。")
    display_name: str = Field(description="展示名。")
    role: str = Field(description="会话角色。")
    tenant_id: UUID | None = Field(default=None, description="绑定租户。")
    two_factor_enabled: bool = Field(description="是否已启用二次验证。")
    expires_at: datetime = Field(description="会话过期时间（UTC）。")
    allowed_actions: list[str] = Field(default_factory=list, description="当前角色可执行的能力列表。")


class TenantResolveData(BaseSchema):
    """租户解析结果。"""

    tenant_id: UUID = Field(description="租户 ID。")
    name: str = Field(description="教会名称。")
    slug: str = Field(description="教会短标识。")


class ProviderForgotPasswordRequest(BaseModel):
    email: str = Field(min_length=5, max_length=256, pattern=_EMAIL_PATTERN, description="服务商管理员邮箱。")


class ProviderForgotPasswordData(BaseSchema):
    status: str = Field(default="ok", description="固定返回 ok，不暴露账号是否存在。")
    reset_url: str | None = Field(default=None, description="重置链接，仅非生产环境返回。")


class ProviderResetPasswordRequest(BaseModel):
    token: str = Field(min_length=16, max_length=256, description="重置令牌。")
    new_password: str = Field(min_length=8, max_length=128, description="新密码。")


class ProviderResetPasswordData(BaseSchema):
    status: str = Field(default="password_reset", description="处理结果。")


class TwoFactorSetupData(BaseSchema):
    """二次验证初始化结果。"""

    secret: str = Field(description="base32 密钥。")
    otpauth_uri: str = Field(description="验证器应用扫码地址。")


class TwoFactorCodeRequest(BaseModel):
    otp: str = Field(min_length=6, max_length=12, description="当前验证码。")


class TwoFactorStatusData(BaseSchema):
    two_factor_enabled: bool = Field(description="二次验证是否启用。")
