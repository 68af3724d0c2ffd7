"""服务商维护操作：提权令牌缓存与重启流程。"""

import logging
import time
from typing import Any, Awaitable, Callable

from fc_console.client import ConsoleClient
from fc_console.errors import ReauthRequired
from fc_console.polling import OperationPoller

logger = logging.getLogger("fc_console")

# 调用方提供的密码输入回调，返回 (password, otp)。
PromptCallback = Callable[[], Awaitable[tuple[str, str | None]]]


class ReauthCache:
    """仅保存在内存中的提权令牌，本地截止时间比服务端有效期提前 ``margin`` 秒。

    有效期很短时提前量最多取有效期的一半。
    """

    def __init__(self, *, clock: Callable[[], float] = time.time, margin_seconds: float = 5.0):
        self._clock = clock
        self._margin = margin_seconds
        self._token: str | None = None
        self._deadline = 0.0

    def store(self, token: str, expires_in: float) -> None:
        ttl = float(expires_in)
        self._token = token
        self._deadline = self._clock() + ttl - min(self._margin, ttl / 2)

    def valid(self) -> bool:
        return self._token is not None and self._clock() < self._deadline

    def take(self) -> str | None:
        """取出有效令牌并清空缓存，每个令牌只用于一次变更请求。"""
        token = self._token if self.valid() else None
        self.clear()
        return token

    def clear(self) -> None:
        self._token = None
        self._deadline = 0.0


class MaintenanceConsole:
    """服务商维护操作入口。"""

    def __init__(
        self,
        client: ConsoleClient,
        *,
        prompt: PromptCallback | None = None,
        cache: ReauthCache | None = None,
    ):
        self.client = client
        self.prompt = prompt
        self.cache = cache or ReauthCache(
            clock=client.clock,
            margin_seconds=client.config.reauth_safety_margin_seconds,
        )

    async def reauthenticate(self, password: str, otp: str | None = None) -> str:
        body: dict[str, Any] = {"password": password}
        if otp:
            body["otp"] = otp
        data = await self.client.request("POST", "/provider/maintenance/reauth", json=body, csrf=True)
        self.cache.store(data["reauth_token"], data["expires_in_sec"])
        return data["reauth_token"]

    async def _reauth_token(self) -> str:
        token = self.cache.take()
        if token is not None:
            return token
        if self.prompt is None:
            raise ReauthRequired()
        password, otp = await self.prompt()
        await self.reauthenticate(password, otp)
        token = self.cache.take()
        if token is None:
            raise ReauthRequired()
        return token

    async def _mutate(self, path: str, body: dict[str, Any] | None = None) -> dict[str, Any]:
        token = await self._reauth_token()
        try:
            return await self.client.request(
                "POST",
                path,
                json=body,
                headers={"X-Reauth-Token": token},
                csrf=True,
            )
        except ReauthRequired:
            self.cache.clear()
            raise

    async def restart_tenant(self, tenant_id: str) -> dict[str, Any]:
        """受理租户重启，返回 ``{operation_id, status, message}``。"""
        accepted = await self._mutate("/provider/maintenance/restart/tenant", {"tenant_id": str(tenant_id)})
        logger.info("tenant restart accepted tenant_id=%s operation_id=%s", tenant_id, accepted["operation_id"])
        return accepted

    async def restart_full(self) -> dict[str, Any]:
        accepted = await self._mutate("/provider/maintenance/restart/full")
        logger.info("full restart accepted operation_id=%s", accepted["operation_id"])
        return accepted

    async def operation_status(self, operation_id: str) -> dict[str, Any]:
        return await self.client.request("GET", f"/provider/maintenance/restart/status/{operation_id}")

    async def restart_logs(self, *, limit: int = 50) -> list[dict[str, Any]]:
        return await self.client.request("GET", "/provider/maintenance/restart/logs", params={"limit": limit})

    async def restart_config(self) -> dict[str, Any]:
        return await self.client.request("GET", "/provider/maintenance/restart/config")

    async def version(self) -> dict[str, Any]:
        return await self.client.request("GET", "/provider/maintenance/version")

    async def version_status(self) -> dict[str, Any]:
        """返回 ``{current, expected, update_available, warnings}``。"""
        status = await self.client.request("GET", "/provider/maintenance/version/status")
        for warning in status.get("warnings") or []:
            logger.warning("version warning: %s", warning)
        return status

    async def acknowledge_version(self) -> dict[str, Any]:
        return await self.client.request("POST", "/provider/maintenance/version/ack", csrf=True)

    async def version_logs(self, *, limit: int = 50) -> list[dict[str, Any]]:
        return await self.client.request("GET", "/provider/maintenance/version/logs", params={"limit": limit})

    async def system_health(self) -> dict[str, Any]:
        return await self.client.request("GET", "/provider/maintenance/health")

    def watch(
        self,
        operation_id: str,
        *,
        on_update: Callable[[dict[str, Any]], None] | None = None,
    ) -> OperationPoller:
        poller = OperationPoller(
            self.operation_status,
            str(operation_id),
            interval_seconds=self.client.config.poll_interval_seconds,
            on_update=on_update,
        )
        poller.start()
        return poller
