"""运维控制台 SDK 配置。"""

from dataclasses import dataclass, field

# 公开接口白名单（相对 API 前缀），请求时绝不携带会话令牌。
PUBLIC_ENDPOINTS = (
    "/auth/tenant-resolve",
    "/auth/public-cell-groups",
    "/landing",
    "/church-info",
)

# 登录与密码重置接口本身也不携带会话令牌。
AUTH_ENTRY_ENDPOINTS = (
    "/auth/login",
    "/auth/provider-login",
    "/auth/provider-forgot-password",
    "/auth/provider-reset-password",
)

# 未登录也可停留的页面，在这些页面上收到 401 不触发跳转。
PUBLIC_LOCATIONS = (
    "/",
    "/login",
    "/provider/login",
    "/provider/reset-password",
    "/landing",
    "/church-info",
)


@dataclass
class ConsoleConfig:
    """控制台客户端配置。"""

    base_url: str = "http://localhost:8000"
    api_prefix: str = "/api"
    timeout_seconds: float = 15.0
    # 维护操作状态轮询间隔。
    poll_interval_seconds: float = 1.0
    # 提权令牌本地截止时间相对服务端有效期的提前量。
    reauth_safety_margin_seconds: float = 5.0
    login_path: str = "/login"
    provider_login_path: str = "/provider/login"
    public_endpoints: tuple[str, ...] = field(default=PUBLIC_ENDPOINTS)
    public_locations: tuple[str, ...] = field(default=PUBLIC_LOCATIONS)

    @property
    def api_base_url(self) -> str:
        return f"{self.base_url.rstrip('/')}{self.api_prefix}"
