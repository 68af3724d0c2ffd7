"""租户运行时上下文缓存。

会话守卫通过该缓存读取租户状态与配置；租户重启即淘汰并重新加载对应条目。
"""

from dataclasses import dataclass, field
from datetime import datetime
from threading import Lock
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from fc_api.models.base import utc_now
from fc_api.models.enums import TenantStatus
from fc_api.models.tenant import Tenant


@dataclass(frozen=True)
class TenantRuntime:
    """单个租户的运行时快照。"""

    tenant_id: UUID
    slug: str
    status: str
    config: dict[str, Any] = field(default_factory=dict)
    loaded_at: datetime = field(default_factory=utc_now)
    # 每次重新加载递增，便于观察重启是否生效。
    generation: int = 1

    @property
    def is_active(self) -> bool:
        return self.status == TenantStatus.ACTIVE


class TenantRuntimeRegistry:
    """线程安全的租户运行时缓存。"""

    def __init__(self) -> None:
        self._entries: dict[UUID, TenantRuntime] = {}
        self._generations: dict[UUID, int] = {}
        self._lock = Lock()

    def _load(self, db: Session, tenant_id: UUID) -> TenantRuntime | None:
        tenant = db.get(Tenant, tenant_id, populate_existing=True)
        if tenant is None:
            return None
        with self._lock:
            generation = self._generations.get(tenant_id, 0) + 1
            self._generations[tenant_id] = generation
            runtime = TenantRuntime(
                tenant_id=tenant.id,
                slug=tenant.slug,
                status=tenant.status,
                config=dict(tenant.config or {}),
                generation=generation,
            )
            self._entries[tenant_id] = runtime
        return runtime

    def get(self, db: Session, tenant_id: UUID) -> TenantRuntime | None:
        """读取租户上下文，未缓存时从数据库加载。"""
        with self._lock:
            cached = self._entries.get(tenant_id)
        if cached is not None:
            return cached
        return self._load(db, tenant_id)

    def evict(self, tenant_id: UUID) -> bool:
        with self._lock:
            return self._entries.pop(tenant_id, None) is not None

    def reload(self, db: Session, tenant_id: UUID) -> TenantRuntime | None:
        """淘汰并重新加载租户上下文。"""
        self.evict(tenant_id)
        return self._load(db, tenant_id)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._generations.clear()

    def __contains__(self, tenant_id: object) -> bool:
        with self._lock:
            return tenant_id in self._entries
