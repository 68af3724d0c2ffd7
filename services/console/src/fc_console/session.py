"""客户端会话上下文。

会话相关的本地状态（令牌、防伪令牌、角色、租户、过期时间）作为一个整体保存，
只通过 ``establish`` 写入、通过 ``clear`` 整体清除。
"""

from dataclasses import asdict, dataclass
import json
import os
from pathlib import Path
import tempfile
import time
from typing import Any, Callable, Protocol

PROVIDER_ROLE = "super_admin"


@dataclass(frozen=True)
class SessionState:
    """本地缓存的会话快照（非权威，服务端始终会再次校验）。"""

    token: str
    role: str
    # 会话过期时间（Unix 秒）。
    expires_at: float
    csrf_token: str | None = None
    tenant_id: str | None = None

    @property
    def is_provider(self) -> bool:
        return self.role == PROVIDER_ROLE


class SessionStore(Protocol):
    def load(self) -> dict[str, Any] | None: ...

    def save(self, document: dict[str, Any]) -> None: ...

    def clear(self) -> None: ...


class MemorySessionStore:
    """进程内存储，用于测试与一次性脚本。"""

    def __init__(self) -> None:
        self._document: dict[str, Any] | None = None

    def load(self) -> dict[str, Any] | None:
        return dict(self._document) if self._document else None

    def save(self, document: dict[str, Any]) -> None:
        self._document = dict(document)

    def clear(self) -> None:
        self._document = None


class FileSessionStore:
    """单个 JSON 文件存储，写入先落临时文件再原子替换。"""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def load(self) -> dict[str, Any] | None:
        try:
            document = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, ValueError):
            # 损坏的缓存视为未登录。
            return None
        return document if isinstance(document, dict) else None

    def save(self, document: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=".session-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(document, handle)
            os.chmod(tmp_name, 0o600)
            os.replace(tmp_name, self.path)
        except OSError:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)


def _state_from_document(document: dict[str, Any] | None) -> SessionState | None:
    if not document:
        return None
    try:
        return SessionState(
            token=str(document["token"]),
            role=str(document["role"]),
            expires_at=float(document["expires_at"]),
            csrf_token=document.get("csrf_token"),
            tenant_id=document.get("tenant_id"),
        )
    except (KeyError, TypeError, ValueError):
        return None


class SessionContext:
    """类型化的会话上下文，唯一的写入口是 ``establish``，唯一的清除口是 ``clear``。"""

    def __init__(self, store: SessionStore | None = None, *, clock: Callable[[], float] = time.time):
        self._store = store or MemorySessionStore()
        self._clock = clock
        self._state = _state_from_document(self._store.load())

    @property
    def state(self) -> SessionState | None:
        return self._state

    @property
    def is_authenticated(self) -> bool:
        return self._state is not None

    def establish(self, login_data: dict[str, Any]) -> SessionState:
        """根据登录结果建立会话；过期时间按本地时钟加上剩余秒数计算。"""
        tenant_id = login_data.get("tenant_id")
        state = SessionState(
            token=str(login_data["access_token"]),
            role=str(login_data["role"]),
            expires_at=self._clock() + float(login_data["expires_in"]),
            csrf_token=login_data.get("csrf_token"),
            tenant_id=str(tenant_id) if tenant_id else None,
        )
        self._store.save(asdict(state))
        self._state = state
        return state

    def clear(self) -> None:
        self._store.clear()
        self._state = None

    def is_expired(self) -> bool:
        return self._state is not None and self._state.expires_at <= self._clock()
