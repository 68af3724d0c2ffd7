"""审计服务。

审计写入使用独立会话与事务：写入失败只记录错误日志，不回滚、不阻断触发它的操作。
"""

from enum import StrEnum
import ipaddress
import logging
from typing import Any, Callable
from uuid import UUID

from fastapi import Request
from sqlalchemy import delete, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from fc_api.models.audit import AuditLog

logger = logging.getLogger("fc_api.audit")

AUDIT_QUERY_MAX_LIMIT = 200


class AuditAction(StrEnum):
    """审计动作标识。"""

    TENANT_RESTART_REQUESTED = "provider.tenant.restart.requested"
    TENANT_RESTART_COMPLETED = "provider.tenant.restart.completed"
    TENANT_RESTART_FAILED = "provider.tenant.restart.failed"
    SYSTEM_RESTART_REQUESTED = "provider.system.restart.requested"
    SYSTEM_RESTART_COMPLETED = "provider.system.restart.completed"
    SYSTEM_RESTART_FAILED = "provider.system.restart.failed"
    AUDIT_LOG_CLEARED = "provider.tenant.audit_log.cleared"
    TENANT_CONFIG_VERIFIED = "provider.tenant.config.verified"
    VERSION_CHECKED = "provider.system.version.checked"
    VERSION_STATUS_CHECKED = "provider.system.version.status_checked"
    VERSION_ACKNOWLEDGED = "provider.system.version.acknowledged"
    HEALTH_CHECKED = "provider.system.health.checked"


RESTART_ACTIONS = tuple(action.value for action in AuditAction if ".restart." in action.value)
VERSION_ACTIONS = tuple(action.value for action in AuditAction if action.value.startswith("provider.system.version."))


def _client_ip(request: Request) -> str | None:
    """从代理头或连接信息中提取客户端 IP，非法地址返回 None。"""
    # 优先读取反向代理透传头，兼容网关/负载均衡场景。
    forwarded = request.headers.get("x-forwarded-for")
    candidate = forwarded.split(",")[0].strip() if forwarded else (request.client.host if request.client else None)
    if not candidate:
        return None
    try:
        return str(ipaddress.ip_address(candidate))
    except ValueError:
        return None


def request_meta(request: Request) -> dict[str, str | None]:
    """提取审计所需的请求来源信息。"""
    return {"ip": _client_ip(request), "user_agent": request.headers.get("user-agent")}


class AuditLogWriter:
    """只追加的审计日志写入器。"""

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    def append(
        self,
        *,
        action: str,
        entity_type: str,
        tenant_id: UUID | None = None,
        actor_user_id: UUID | None = None,
        entity_id: str | None = None,
        details: dict[str, Any] | None = None,
        ip: str | None = None,
        user_agent: str | None = None,
    ) -> bool:
        """写入一条审计记录，返回是否成功；失败不抛出。"""
        db = self._session_factory()
        try:
            db.add(
                AuditLog(
                    tenant_id=tenant_id,
                    actor_user_id=actor_user_id,
                    action=action,
                    entity_type=entity_type,
                    entity_id=entity_id,
                    details=details,
                    ip=ip,
                    user_agent=user_agent,
                )
            )
            db.commit()
            return True
        except SQLAlchemyError:
            db.rollback()
            logger.exception("audit write failed action=%s tenant_id=%s", action, tenant_id)
            return False
        finally:
            db.close()


def _clamp_limit(limit: int) -> int:
    return max(1, min(int(limit), AUDIT_QUERY_MAX_LIMIT))


def _action_filter(q: str | None):
    if not q or not q.strip():
        return None
    pattern = f"%{q.strip().lower()}%"
    return or_(func.lower(AuditLog.action).like(pattern), func.lower(AuditLog.entity_type).like(pattern))


def query_audit_logs(db: Session, *, tenant_id: UUID, q: str | None = None, limit: int = 50) -> list[AuditLog]:
    """按租户查询审计记录，最新在前。"""
    stmt = select(AuditLog).where(AuditLog.tenant_id == tenant_id)
    condition = _action_filter(q)
    if condition is not None:
        stmt = stmt.where(condition)
    stmt = stmt.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).limit(_clamp_limit(limit))
    return list(db.execute(stmt).scalars().all())


def purge_audit_logs(db: Session, *, tenant_id: UUID, q: str | None = None) -> int:
    """删除租户审计记录（可按动作过滤），返回删除条数；调用方负责提交。"""
    stmt = delete(AuditLog).where(AuditLog.tenant_id == tenant_id)
    condition = _action_filter(q)
    if condition is not None:
        stmt = stmt.where(condition)
    result = db.execute(stmt.execution_options(synchronize_session=False))
    return int(result.rowcount or 0)


def _list_by_actions(db: Session, actions: tuple[str, ...], limit: int) -> list[AuditLog]:
    stmt = (
        select(AuditLog)
        .where(AuditLog.action.in_(actions))
        .order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
        .limit(_clamp_limit(limit))
    )
    return list(db.execute(stmt).scalars().all())


def list_restart_logs(db: Session, *, limit: int = 50) -> list[AuditLog]:
    """查询重启相关审计记录（跨租户），最新在前。"""
    return _list_by_actions(db, RESTART_ACTIONS, limit)


def list_version_logs(db: Session, *, limit: int = 50) -> list[AuditLog]:
    """查询版本检查与确认的审计记录，最新在前。"""
    return _list_by_actions(db, VERSION_ACTIONS, limit)
