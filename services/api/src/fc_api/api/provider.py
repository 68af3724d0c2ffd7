"""服务商租户接口：审计日志查询与清理、配置校验。"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from fc_api.db.session import get_db
from fc_api.dependencies import SessionContext, get_maintenance_runtime, require_capability
from fc_api.errors import not_found
from fc_api.models.base import utc_now
from fc_api.models.tenant import Tenant
from fc_api.schemas.audit import AuditLogData, AuditLogPurgeData
from fc_api.schemas.common import ErrorResponse, SuccessResponse
from fc_api.schemas.tenant import TenantConfigVerifyData
from fc_api.services.audit import AUDIT_QUERY_MAX_LIMIT, AuditAction, purge_audit_logs, query_audit_logs, request_meta
from fc_api.services.maintenance import MaintenanceRuntime
from fc_api.services.permissions import PermissionAction
from fc_api.services.tenant_features import compute_tenant_features, normalize_plan
from fc_api.utils.response import success

router = APIRouter(prefix="/provider/tenants", tags=["provider"])
logger = logging.getLogger("fc_api.audit")


def _get_tenant_or_404(db: Session, tenant_id: UUID) -> Tenant:
    tenant = db.get(Tenant, tenant_id)
    if tenant is None:
        raise not_found("tenant", "租户不存在。")
    return tenant


@router.get(
    "/{tenant_id}/audit-logs",
    summary="查询租户审计日志",
    description="按动作关键字（不区分大小写）过滤，最新在前。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[list[AuditLogData]],
    responses={401: {"model": ErrorResponse}, 403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
def list_tenant_audit_logs(
    tenant_id: UUID,
    request: Request,
    q: str | None = Query(default=None, max_length=128, description="动作关键字。"),
    limit: int = Query(default=50, description=f"返回条数上限，超出范围时截断到 1..{AUDIT_QUERY_MAX_LIMIT}。"),
    _ctx: SessionContext = Depends(require_capability(PermissionAction.AUDIT_LOG_READ)),
    db: Session = Depends(get_db),
):
    _get_tenant_or_404(db, tenant_id)
    logs = query_audit_logs(db, tenant_id=tenant_id, q=q, limit=limit)
    return success(request, [AuditLogData.model_validate(item).model_dump() for item in logs])


@router.delete(
    "/{tenant_id}/audit-logs",
    summary="清理租户审计日志",
    description="删除匹配的审计记录，并追加一条清理记录。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[AuditLogPurgeData],
    responses={401: {"model": ErrorResponse}, 403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
def purge_tenant_audit_logs(
    tenant_id: UUID,
    request: Request,
    q: str | None = Query(default=None, max_length=128, description="动作关键字，为空时清理全部。"),
    ctx: SessionContext = Depends(require_capability(PermissionAction.AUDIT_LOG_PURGE, csrf=True)),
    runtime: MaintenanceRuntime = Depends(get_maintenance_runtime),
    db: Session = Depends(get_db),
):
    _get_tenant_or_404(db, tenant_id)
    deleted = purge_audit_logs(db, tenant_id=tenant_id, q=q)
    db.commit()
    logger.info("audit logs purged tenant_id=%s deleted=%s actor=%s", tenant_id, deleted, ctx.user_id)
    runtime.audit.append(
        action=AuditAction.AUDIT_LOG_CLEARED,
        entity_type="tenant",
        tenant_id=tenant_id,
        actor_user_id=ctx.user_id,
        entity_id=str(tenant_id),
        details={"deleted": deleted, "q": q},
        **request_meta(request),
    )
    return success(request, {"deleted": deleted})


@router.get(
    "/{tenant_id}/config/verify",
    summary="校验租户配置",
    description="返回租户当前配置与套餐默认值叠加覆盖项后的功能开关，并写入一条校验审计记录。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[TenantConfigVerifyData],
    responses={401: {"model": ErrorResponse}, 403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
def verify_tenant_config(
    tenant_id: UUID,
    request: Request,
    ctx: SessionContext = Depends(require_capability(PermissionAction.TENANT_CONFIG_VERIFY)),
    runtime: MaintenanceRuntime = Depends(get_maintenance_runtime),
    db: Session = Depends(get_db),
):
    tenant = _get_tenant_or_404(db, tenant_id)
    config = dict(tenant.config or {})
    plan = normalize_plan(tenant.plan)
    features = compute_tenant_features(plan, config)
    runtime.audit.append(
        action=AuditAction.TENANT_CONFIG_VERIFIED,
        entity_type="tenant",
        tenant_id=tenant_id,
        actor_user_id=ctx.user_id,
        entity_id=str(tenant_id),
        details={"plan": plan, "enabled_features": sorted(key for key, on in features.items() if on)},
        **request_meta(request),
    )
    return success(
        request,
        {
            "tenant_id": tenant_id,
            "plan": plan,
            "config": config,
            "computed_features": features,
            "verified_at": utc_now(),
        },
    )
