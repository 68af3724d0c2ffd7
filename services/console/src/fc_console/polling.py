"""维护操作状态轮询。"""

import asyncio
import logging
from typing import Any, Awaitable, Callable

from fc_console.errors import NetworkUnavailable, ServerError

logger = logging.getLogger("fc_console")

TERMINAL_STATUSES = frozenset({"completed", "failed"})


class OperationPoller:
    """按固定间隔查询操作状态，直到终态或被取消。

    整机重启期间后端会短暂不可达，此时连接失败与 5xx 只记录日志并继续轮询。
    """

    def __init__(
        self,
        fetch: Callable[[str], Awaitable[dict[str, Any]]],
        operation_id: str,
        *,
        interval_seconds: float = 1.0,
        on_update: Callable[[dict[str, Any]], None] | None = None,
    ):
        self._fetch = fetch
        self.operation_id = operation_id
        self.interval_seconds = interval_seconds
        self.on_update = on_update
        self.last_status: dict[str, Any] | None = None
        self._task: asyncio.Task | None = None

    async def run(self) -> dict[str, Any]:
        while True:
            try:
                current = await self._fetch(self.operation_id)
            except (NetworkUnavailable, ServerError) as exc:
                logger.info("poll retry operation_id=%s reason=%s", self.operation_id, type(exc).__name__)
            else:
                self.last_status = current
                if self.on_update is not None:
                    self.on_update(current)
                if current.get("status") in TERMINAL_STATUSES:
                    return current
            await asyncio.sleep(self.interval_seconds)

    def start(self) -> asyncio.Task:
        if self._task is None:
            self._task = asyncio.create_task(self.run())
        return self._task

    async def wait(self) -> dict[str, Any]:
        return await self.start()

    def cancel(self) -> None:
        """停止轮询；已取消或已结束时无副作用。"""
        if self._task is not None and not self._task.done():
            self._task.cancel()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()
