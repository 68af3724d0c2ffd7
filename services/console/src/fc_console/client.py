"""控制台 HTTP 客户端。

所有网络操作都是独立可等待的协程；会话守卫负责请求头与失效跳转。
"""

import logging
import time
from typing import Any, Callable

import httpx

from fc_console.config import ConsoleConfig
from fc_console.errors import NetworkUnavailable, error_from_response
from fc_console.guard import Navigator, SessionGuard
from fc_console.session import SessionContext, SessionState

logger = logging.getLogger("fc_console")


class ConsoleClient:
    """面向控制面接口的异步客户端。"""

    def __init__(
        self,
        config: ConsoleConfig | None = None,
        *,
        session: SessionContext | None = None,
        navigator: Navigator | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config or ConsoleConfig()
        self.clock = clock
        self.session = session or SessionContext(clock=clock)
        self.navigator = navigator or Navigator()
        self.guard = SessionGuard(self.session, self.navigator, self.config)
        self._http = httpx.AsyncClient(
            base_url=self.config.api_base_url,
            timeout=self.config.timeout_seconds,
            transport=transport,
        )

    async def __aenter__(self) -> "ConsoleClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        csrf: bool = False,
    ) -> Any:
        """发送请求并返回响应中的 ``data``；失败时抛出 ``ConsoleError`` 子类。"""
        prepared = self.guard.prepare(path, headers)
        had_token = "Authorization" in prepared
        state = self.session.state
        if csrf and state is not None and state.csrf_token:
            prepared["X-CSRF-Token"] = state.csrf_token

        try:
            response = await self._http.request(method, path, json=json, params=params, headers=prepared)
        except httpx.TransportError as exc:
            logger.warning("api unreachable method=%s path=%s error=%s", method, path, exc)
            raise NetworkUnavailable() from exc

        if response.is_success:
            payload = response.json()
            return payload.get("data") if isinstance(payload, dict) else payload

        error = error_from_response(response)
        logger.warning(
            "api error method=%s path=%s status=%s code=%s request_id=%s",
            method,
            path,
            response.status_code,
            error.code,
            error.request_id,
        )
        if response.status_code == 401:
            expired = self.guard.on_unauthorized(path, error.code, had_token=had_token)
            if expired is not None:
                raise expired from error
        raise error

    async def login(
        self,
        identity: str,
        secret: str,
        *,
        tenant_hint: str | None = None,
        otp: str | None = None,
    ) -> SessionState:
        """教会账号登录；需要验证码时抛出 ``TwoFactorRequired``，调用方带上 otp 重新提交。"""
        body: dict[str, Any] = {"identity": identity, "secret": secret}
        if tenant_hint:
            body["tenant_hint"] = tenant_hint
        if otp:
            body["otp"] = otp
        data = await self.request("POST", "/auth/login", json=body)
        return self.session.establish(data)

    async def provider_login(self, identity: str, secret: str, *, otp: str | None = None) -> SessionState:
        body: dict[str, Any] = {"identity": identity, "secret": secret}
        if otp:
            body["otp"] = otp
        data = await self.request("POST", "/auth/provider-login", json=body)
        return self.session.establish(data)

    async def logout(self) -> None:
        """服务端吊销令牌后清除本地会话；服务端不可达时仍清除本地状态。"""
        try:
            if self.session.state is not None and not self.session.is_expired():
                await self.request("POST", "/auth/logout")
        finally:
            self.session.clear()

    async def me(self) -> dict[str, Any]:
        return await self.request("GET", "/auth/me")

    async def resolve_tenant(self, query: str) -> dict[str, Any]:
        return await self.request("GET", "/auth/tenant-resolve", params={"q": query})

    async def audit_logs(self, tenant_id: str, *, q: str | None = None, limit: int = 50) -> list[dict[str, Any]]:
        params: dict[str, Any] = {"limit": limit}
        if q:
            params["q"] = q
        return await self.request("GET", f"/provider/tenants/{tenant_id}/audit-logs", params=params)

    async def purge_audit_logs(self, tenant_id: str, *, q: str | None = None) -> int:
        params = {"q": q} if q else None
        data = await self.request("DELETE", f"/provider/tenants/{tenant_id}/audit-logs", params=params, csrf=True)
        return int(data["deleted"])

    async def verify_tenant_config(self, tenant_id: str) -> dict[str, Any]:
        """返回租户配置与计算后的功能开关。"""
        return await self.request("GET", f"/provider/tenants/{tenant_id}/config/verify")
