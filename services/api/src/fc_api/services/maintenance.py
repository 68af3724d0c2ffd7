"""维护编排：受理重启请求、串行化控制、状态查询与启动对账。

同一 (kind, target) 同时最多只有一个未结束操作，依赖 ``active_key`` 唯一约束
在插入时原子地完成判重，而非先查后写。
"""

from concurrent.futures import Executor
from dataclasses import dataclass
import logging
from typing import Any, Callable
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from fc_api.core.config import get_settings
from fc_api.errors import maintenance_disabled, not_found, operation_in_progress, rate_limited
from fc_api.models.base import utc_now
from fc_api.models.enums import MaintenanceKind, MaintenanceStatus, TERMINAL_MAINTENANCE_STATUSES
from fc_api.models.maintenance import MaintenanceOperation
from fc_api.models.tenant import Tenant
from fc_api.services import rate_limit
from fc_api.services.audit import AuditAction, AuditLogWriter
from fc_api.services.maintenance_runner import MaintenanceRunner, Restarter, record_outcome, transition_operation
from fc_api.services.tenant_runtime import TenantRuntimeRegistry

logger = logging.getLogger("fc_api.maintenance")

INTERRUPTED_ERROR = "interrupted by process restart"


def active_key_for(kind: str, target_tenant_id: UUID | None) -> str:
    """构造串行化占位键，整机重启目标记为 ``*``。"""
    return f"{kind}:{target_tenant_id or '*'}"


class MaintenanceOrchestrator:
    """维护操作受理入口。"""

    def __init__(self, runner: MaintenanceRunner, audit: AuditLogWriter):
        self._runner = runner
        self._audit = audit

    def _check_rate_limit(self, actor_id: UUID, key: str) -> None:
        decision = rate_limit.peek(f"{actor_id}:{key}")
        if not decision.allowed:
            logger.warning("restart rate limited actor=%s key=%s count=%s", actor_id, key, decision.count)
            raise rate_limited(retry_after_seconds=decision.retry_after_seconds)

    def _count_attempt(self, actor_id: UUID, key: str) -> None:
        """只有真正受理的请求计入限额，被串行化拒绝的 409 不计。"""
        rate_limit.hit(f"{actor_id}:{key}")

    def _insert(self, db: Session, *, kind: str, target_tenant_id: UUID | None, actor_id: UUID) -> MaintenanceOperation:
        key = active_key_for(kind, target_tenant_id)
        now = utc_now()
        operation = MaintenanceOperation(
            kind=kind,
            target_tenant_id=target_tenant_id,
            status=MaintenanceStatus.PENDING,
            requested_by=actor_id,
            requested_at=now,
            active_key=key,
            instance_id=get_settings().maintenance_instance_id,
        )
        db.add(operation)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            existing = db.execute(
                select(MaintenanceOperation).where(MaintenanceOperation.active_key == key)
            ).scalar_one_or_none()
            retry_after = get_settings().maintenance_retry_after_seconds
            logger.info("operation in progress key=%s existing=%s", key, existing.id if existing else None)
            raise operation_in_progress(
                operation_id=str(existing.id) if existing else "",
                retry_after_seconds=retry_after,
            )
        db.refresh(operation)
        return operation

    def request_tenant_restart(
        self,
        db: Session,
        *,
        actor_id: UUID,
        tenant_id: UUID,
        meta: dict[str, Any] | None = None,
    ) -> MaintenanceOperation:
        """受理租户重启：校验租户、限流、原子插入、写审计、提交执行。"""
        if db.get(Tenant, tenant_id) is None:
            raise not_found("tenant", "租户不存在。")
        key = active_key_for(MaintenanceKind.TENANT_RESTART, tenant_id)
        self._check_rate_limit(actor_id, key)

        operation = self._insert(db, kind=MaintenanceKind.TENANT_RESTART, target_tenant_id=tenant_id, actor_id=actor_id)
        self._count_attempt(actor_id, key)
        self._audit.append(
            action=AuditAction.TENANT_RESTART_REQUESTED,
            entity_type="tenant",
            tenant_id=tenant_id,
            actor_user_id=actor_id,
            entity_id=str(tenant_id),
            details={"operation_id": str(operation.id)},
            **(meta or {}),
        )
        logger.info("tenant restart accepted operation_id=%s tenant_id=%s actor=%s", operation.id, tenant_id, actor_id)
        self._runner.submit(operation.id)
        return operation

    def request_full_restart(
        self,
        db: Session,
        *,
        actor_id: UUID,
        meta: dict[str, Any] | None = None,
    ) -> MaintenanceOperation:
        """受理整机重启：部署级开关关闭时直接拒绝，不建操作、不写审计。"""
        if not get_settings().maintenance_full_restart_enabled:
            raise maintenance_disabled()
        key = active_key_for(MaintenanceKind.FULL_RESTART, None)
        self._check_rate_limit(actor_id, key)

        operation = self._insert(db, kind=MaintenanceKind.FULL_RESTART, target_tenant_id=None, actor_id=actor_id)
        self._count_attempt(actor_id, key)
        self._audit.append(
            action=AuditAction.SYSTEM_RESTART_REQUESTED,
            entity_type="system",
            actor_user_id=actor_id,
            details={"operation_id": str(operation.id)},
            **(meta or {}),
        )
        logger.warning("full restart accepted operation_id=%s actor=%s", operation.id, actor_id)
        self._runner.submit(operation.id)
        return operation

    def get_operation(self, db: Session, operation_id: UUID) -> MaintenanceOperation:
        """读取操作状态，纯读取、无副作用。"""
        operation = db.get(MaintenanceOperation, operation_id, populate_existing=True)
        if operation is None:
            raise not_found("operation", "维护操作不存在。")
        return operation


def reconcile_interrupted_operations(
    session_factory: Callable[[], Session],
    audit: AuditLogWriter,
    *,
    instance_id: str | None = None,
) -> int:
    """进程启动时对账本实例未结束的操作，返回处理条数。

    处于 running 的整机重启视为已完成（本次启动即其结果）；其他未结束操作标记为失败。
    其他实例受理的操作由其自身负责，不在此处改写；未记录实例的历史操作按本实例处理。
    """
    instance_id = instance_id or get_settings().maintenance_instance_id
    db = session_factory()
    reconciled: list[tuple[MaintenanceOperation, str]] = []
    try:
        operations = (
            db.execute(
                select(MaintenanceOperation)
                .where(MaintenanceOperation.status.not_in(TERMINAL_MAINTENANCE_STATUSES))
                .where(or_(MaintenanceOperation.instance_id == instance_id, MaintenanceOperation.instance_id.is_(None)))
            )
            .scalars()
            .all()
        )
        for operation in operations:
            if operation.kind == MaintenanceKind.FULL_RESTART and operation.status == MaintenanceStatus.RUNNING:
                target, error = MaintenanceStatus.COMPLETED, None
            else:
                target, error = MaintenanceStatus.FAILED, INTERRUPTED_ERROR
            values: dict[str, Any] = {"error": error} if error else {}
            if transition_operation(db, operation.id, expected=operation.status, target=target, **values):
                reconciled.append((operation, target))
        db.commit()
        for operation, _ in reconciled:
            db.refresh(operation)
            db.expunge(operation)
    finally:
        db.close()

    for operation, target in reconciled:
        logger.info("reconciled operation id=%s kind=%s status=%s", operation.id, operation.kind, target)
        record_outcome(audit, operation, status=target, error=None if target == MaintenanceStatus.COMPLETED else INTERRUPTED_ERROR)
    return len(reconciled)


@dataclass
class MaintenanceRuntime:
    """挂载在 ``app.state.maintenance`` 上的维护组件集合。"""

    orchestrator: MaintenanceOrchestrator
    runner: MaintenanceRunner
    audit: AuditLogWriter
    registry: TenantRuntimeRegistry
    session_factory: Callable[[], Session]

    def reconcile(self) -> int:
        return reconcile_interrupted_operations(self.session_factory, self.audit)

    def shutdown(self) -> None:
        self.runner.shutdown(wait=False)


def build_maintenance_runtime(
    session_factory: Callable[[], Session],
    *,
    executor: Executor | None = None,
    restarter: Restarter | None = None,
    registry: TenantRuntimeRegistry | None = None,
) -> MaintenanceRuntime:
    """组装维护组件，测试可注入执行器与重启器。"""
    audit = AuditLogWriter(session_factory)
    registry = registry or TenantRuntimeRegistry()
    runner = MaintenanceRunner(session_factory, audit, registry, executor=executor, restarter=restarter)
    return MaintenanceRuntime(
        orchestrator=MaintenanceOrchestrator(runner, audit),
        runner=runner,
        audit=audit,
        registry=registry,
        session_factory=session_factory,
    )
