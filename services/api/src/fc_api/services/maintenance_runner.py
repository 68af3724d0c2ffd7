"""维护操作执行器。

状态只允许 pending -> running -> completed/failed 单向推进：
每次迁移都是带期望状态的条件更新，终态记录不会再被改写。
"""

from concurrent.futures import Executor, Future, ThreadPoolExecutor
import logging
import os
import signal
import threading
from typing import Any, Callable, Protocol
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.orm import Session

from fc_api.core.config import get_settings
from fc_api.models.base import utc_now
from fc_api.models.enums import MaintenanceKind, MaintenanceStatus
from fc_api.models.maintenance import MaintenanceOperation
from fc_api.models.tenant import Tenant
from fc_api.services.audit import AuditAction, AuditLogWriter
from fc_api.services.tenant_runtime import TenantRuntimeRegistry

logger = logging.getLogger("fc_api.maintenance")


class Restarter(Protocol):
    def schedule(self, delay_seconds: float) -> None: ...


class ProcessRestarter:
    """延迟向当前进程发送 SIGTERM，由进程管理器负责拉起新进程。"""

    def __init__(self, sig: int = signal.SIGTERM):
        self._signal = sig

    def _terminate(self) -> None:
        logger.warning("sending signal=%s to pid=%s for full restart", self._signal, os.getpid())
        os.kill(os.getpid(), self._signal)

    def schedule(self, delay_seconds: float) -> None:
        timer = threading.Timer(max(0.0, delay_seconds), self._terminate)
        timer.daemon = True
        timer.start()


def transition_operation(
    db: Session,
    operation_id: UUID,
    *,
    expected: str,
    target: str,
    **values: Any,
) -> bool:
    """条件迁移状态，返回是否迁移成功；进入终态时释放串行化占位键。"""
    if target in (MaintenanceStatus.COMPLETED, MaintenanceStatus.FAILED):
        values.setdefault("completed_at", utc_now())
        values["active_key"] = None
    result = db.execute(
        update(MaintenanceOperation)
        .where(MaintenanceOperation.id == operation_id)
        .where(MaintenanceOperation.status == expected)
        .values(status=target, **values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def _audit_actions(kind: str) -> tuple[str, str]:
    if kind == MaintenanceKind.FULL_RESTART:
        return AuditAction.SYSTEM_RESTART_COMPLETED, AuditAction.SYSTEM_RESTART_FAILED
    return AuditAction.TENANT_RESTART_COMPLETED, AuditAction.TENANT_RESTART_FAILED


def record_outcome(audit: AuditLogWriter, operation: MaintenanceOperation, *, status: str, error: str | None = None) -> None:
    """写入终态审计，操作人记为发起人。"""
    completed_action, failed_action = _audit_actions(operation.kind)
    details: dict[str, Any] = {"operation_id": str(operation.id), "requested_by": str(operation.requested_by)}
    if error:
        details["error"] = error
    is_tenant = operation.kind == MaintenanceKind.TENANT_RESTART
    audit.append(
        action=completed_action if status == MaintenanceStatus.COMPLETED else failed_action,
        entity_type="tenant" if is_tenant else "system",
        tenant_id=operation.target_tenant_id if is_tenant else None,
        actor_user_id=operation.requested_by,
        entity_id=str(operation.target_tenant_id) if is_tenant else None,
        details=details,
    )


def _log_future_error(future: Future, operation_id: UUID) -> None:
    if future.cancelled():
        logger.warning("operation cancelled id=%s", operation_id)
        return
    exc = future.exception()
    if exc is not None:
        logger.error("operation task raised id=%s", operation_id, exc_info=exc)


class MaintenanceRunner:
    """在线程池中执行维护操作，请求线程只负责提交。"""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        audit: AuditLogWriter,
        registry: TenantRuntimeRegistry,
        *,
        executor: Executor | None = None,
        restarter: Restarter | None = None,
    ):
        settings = get_settings()
        self._session_factory = session_factory
        self._audit = audit
        self._registry = registry
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=max(1, settings.maintenance_worker_threads),
            thread_name_prefix="fc-maintenance",
        )
        self._restarter = restarter or ProcessRestarter()
        self._handlers: dict[str, Callable[[MaintenanceOperation], None]] = {
            MaintenanceKind.TENANT_RESTART.value: self._restart_tenant,
            MaintenanceKind.FULL_RESTART.value: self._restart_process,
        }

    def submit(self, operation_id: UUID) -> Future | None:
        future = self._executor.submit(self.run, operation_id)
        future.add_done_callback(lambda done: _log_future_error(done, operation_id))
        return future

    def shutdown(self, *, wait: bool = False) -> None:
        if self._owns_executor:
            self._executor.shutdown(wait=wait, cancel_futures=True)

    def _load(self, operation_id: UUID) -> MaintenanceOperation | None:
        db = self._session_factory()
        try:
            operation = db.get(MaintenanceOperation, operation_id)
            if operation is not None:
                db.expunge(operation)
            return operation
        finally:
            db.close()

    def _transition(self, operation_id: UUID, *, expected: str, target: str, **values: Any) -> bool:
        db = self._session_factory()
        try:
            changed = transition_operation(db, operation_id, expected=expected, target=target, **values)
            db.commit()
            return changed
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def run(self, operation_id: UUID) -> str | None:
        """执行单个操作，返回执行后的状态；未能抢占（已被执行或已终结）时返回 None。

        任何未预期错误都会把仍处于 pending 或 running 的操作推进到 failed 并释放占位键。
        """
        try:
            return self._run(operation_id)
        except Exception as exc:
            err = str(exc)[:2000] or exc.__class__.__name__
            logger.exception("operation crashed id=%s error=%s", operation_id, err)
            self._fail_unfinished(operation_id, err)
            return MaintenanceStatus.FAILED

    def _fail_unfinished(self, operation_id: UUID, err: str) -> None:
        try:
            for expected in (MaintenanceStatus.PENDING, MaintenanceStatus.RUNNING):
                if self._transition(operation_id, expected=expected, target=MaintenanceStatus.FAILED, error=err):
                    operation = self._load(operation_id)
                    if operation is not None:
                        record_outcome(self._audit, operation, status=MaintenanceStatus.FAILED, error=err)
                    return
        except Exception:
            logger.exception("unable to mark operation failed id=%s", operation_id)

    def _run(self, operation_id: UUID) -> str | None:
        if not self._transition(
            operation_id,
            expected=MaintenanceStatus.PENDING,
            target=MaintenanceStatus.RUNNING,
            started_at=utc_now(),
        ):
            logger.info("skip operation id=%s: not pending", operation_id)
            return None

        operation = self._load(operation_id)
        if operation is None:
            return None
        logger.info("running operation id=%s kind=%s target=%s", operation.id, operation.kind, operation.target_tenant_id)

        try:
            self._handlers[operation.kind](operation)
        except Exception as exc:
            err = str(exc)[:2000] or exc.__class__.__name__
            logger.exception("operation failed id=%s error=%s", operation.id, err)
            if self._transition(operation.id, expected=MaintenanceStatus.RUNNING, target=MaintenanceStatus.FAILED, error=err):
                record_outcome(self._audit, operation, status=MaintenanceStatus.FAILED, error=err)
            return MaintenanceStatus.FAILED

        if operation.kind == MaintenanceKind.FULL_RESTART:
            # 整机重启保持 running，由下一次进程启动时的对账推进到终态。
            return MaintenanceStatus.RUNNING

        if self._transition(operation.id, expected=MaintenanceStatus.RUNNING, target=MaintenanceStatus.COMPLETED):
            record_outcome(self._audit, operation, status=MaintenanceStatus.COMPLETED)
        logger.info("completed operation id=%s", operation.id)
        return MaintenanceStatus.COMPLETED

    def _restart_tenant(self, operation: MaintenanceOperation) -> None:
        db = self._session_factory()
        try:
            tenant = db.get(Tenant, operation.target_tenant_id)
            if tenant is None:
                raise LookupError(f"tenant {operation.target_tenant_id} not found")
            tenant.last_restarted_at = utc_now()
            db.commit()
            self._registry.reload(db, tenant.id)
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def _restart_process(self, operation: MaintenanceOperation) -> None:
        delay = get_settings().maintenance_full_restart_delay_seconds
        logger.warning("full restart scheduled operation_id=%s delay=%.2fs", operation.id, delay)
        self._restarter.schedule(delay)
