"""客户端会话守卫。

请求发出前：公开接口剥离令牌；本地会话已过期则直接清除并跳转登录页，不发起网络请求。
请求返回后：持有令牌且收到令牌失效类 401 时，同样清除并跳转，跳转地址保留当前位置。
"""

import logging
from urllib.parse import quote

from fc_console.config import AUTH_ENTRY_ENDPOINTS, ConsoleConfig
from fc_console.errors import SessionExpired
from fc_console.session import SessionContext

logger = logging.getLogger("fc_console")

# 表示会话令牌本身失效的错误码；登录失败与提权失败不在此列。
TOKEN_INVALID_CODES = frozenset({"UNAUTHORIZED"})


class Navigator:
    """记录当前界面位置与跳转历史，由界面层或命令行外壳驱动。"""

    def __init__(self, location: str = "/"):
        self.location = location
        self.redirects: list[str] = []

    def navigate(self, location: str) -> None:
        self.location = location

    def redirect(self, target: str) -> None:
        self.redirects.append(target)
        self.location = target


def _path_only(location: str) -> str:
    return location.split("?", 1)[0] or "/"


class SessionGuard:
    """出站请求的会话守卫。"""

    def __init__(self, session: SessionContext, navigator: Navigator, config: ConsoleConfig):
        self.session = session
        self.navigator = navigator
        self.config = config

    def is_public_endpoint(self, path: str) -> bool:
        return any(path.startswith(prefix) for prefix in (*self.config.public_endpoints, *AUTH_ENTRY_ENDPOINTS))

    def is_public_location(self) -> bool:
        current = _path_only(self.navigator.location)
        for location in self.config.public_locations:
            if location == "/":
                if current == "/":
                    return True
            elif current == location or current.startswith(f"{location}/"):
                return True
        return False

    def _login_entry(self) -> str:
        state = self.session.state
        if state is not None and state.is_provider:
            return self.config.provider_login_path
        return self.config.login_path

    def expire(self, reason: str) -> SessionExpired:
        """清除本地会话并跳转到对应登录入口，保留当前位置作为 next。"""
        entry = self._login_entry()
        current = self.navigator.location
        target = f"{entry}?next={quote(current, safe='')}"
        self.session.clear()
        if _path_only(current) != entry:
            self.navigator.redirect(target)
        logger.info("auth redirect reason=%s from=%s to=%s", reason, current, target)
        return SessionExpired(redirect_to=target)

    def prepare(self, path: str, headers: dict[str, str] | None = None) -> dict[str, str]:
        """构造出站请求头；会话已过期时抛出 ``SessionExpired`` 且不发起请求。"""
        prepared = {key: value for key, value in (headers or {}).items() if key.lower() != "authorization"}
        if self.is_public_endpoint(path):
            return prepared

        state = self.session.state
        if state is None:
            return prepared
        if self.session.is_expired():
            raise self.expire("session_expired_locally")

        prepared["Authorization"] = f"Bearer {state.token}"
        if state.tenant_id and not any(key.lower() == "x-tenant-id" for key in prepared):
            prepared["X-Tenant-Id"] = state.tenant_id
        return prepared

    def on_unauthorized(self, path: str, code: str | None, *, had_token: bool) -> SessionExpired | None:
        """处理 401：仅在携带令牌、令牌失效且当前不在公开页面时清除会话。"""
        if not had_token or code not in TOKEN_INVALID_CODES:
            return None
        if self.is_public_endpoint(path) or self.is_public_location():
            return None
        return self.expire(f"server_rejected_token:{code}")
