"""服务商维护接口：提权、租户/整机重启、状态轮询、重启日志，以及版本与运行状况检查。

重启请求立即返回 202 与 operation_id，实际执行在后台线程完成，客户端通过状态接口轮询。
"""

from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.encoders import jsonable_encoder
from sqlalchemy.orm import Session

from fc_api.core.config import get_settings
from fc_api.db.session import get_db
from fc_api.dependencies import SessionContext, get_maintenance_runtime, require_capability
from fc_api.models.base import utc_now
from fc_api.models.maintenance import MaintenanceOperation
from fc_api.schemas.audit import AuditLogData
from fc_api.schemas.common import ErrorResponse, SuccessResponse
from fc_api.schemas.maintenance import (
    MaintenanceOperationData,
    ReauthData,
    ReauthRequest,
    RestartAcceptedData,
    RestartConfigData,
    SystemHealthData,
    TenantRestartRequest,
    VersionAckData,
    VersionData,
    VersionStatusData,
)
from fc_api.services.audit import (
    AUDIT_QUERY_MAX_LIMIT,
    AuditAction,
    list_restart_logs,
    list_version_logs,
    request_meta,
)
from fc_api.services.credentials import verify_secret_and_otp
from fc_api.services.maintenance import MaintenanceRuntime
from fc_api.services.permissions import PermissionAction
from fc_api.services.reauth import MAINTENANCE_SCOPE, issue_reauth_token
from fc_api.services.system_info import process_health, version_info, version_status
from fc_api.utils.response import accepted, success

router = APIRouter(prefix="/provider/maintenance", tags=["maintenance"])

_RESTART_ERRORS = {
    401: {"model": ErrorResponse},
    403: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
    429: {"model": ErrorResponse},
}


def _operation_view(operation: MaintenanceOperation) -> dict:
    return {
        "operation_id": operation.id,
        "kind": operation.kind,
        "status": operation.status,
        "target_tenant_id": operation.target_tenant_id,
        "requested_by": operation.requested_by,
        "requested_at": operation.requested_at,
        "started_at": operation.started_at,
        "completed_at": operation.completed_at,
        "error": operation.error,
    }


def _accepted(request: Request, operation: MaintenanceOperation, message: str) -> dict:
    settings = get_settings()
    return accepted(
        request,
        {"operation_id": operation.id, "status": operation.status, "message": message},
        status_path=f"{settings.api_prefix}{router.prefix}/restart/status/{operation.id}",
        poll_interval_seconds=settings.maintenance_poll_interval_seconds,
    )


@router.post(
    "/reauth",
    summary="提权（重新验证密码）",
    description="无论会话是否有效都重新校验密码与二次验证码，签发最长 120 秒的提权令牌。失败不会注销会话。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[ReauthData],
    responses={401: {"model": ErrorResponse}, 403: {"model": ErrorResponse}},
)
def reauth(
    payload: ReauthRequest,
    request: Request,
    ctx: SessionContext = Depends(require_capability(PermissionAction.MAINTENANCE_REAUTH, csrf=True)),
    db: Session = Depends(get_db),
):
    verify_secret_and_otp(db, ctx.user, payload.password, payload.otp)
    token, expires_in = issue_reauth_token(ctx.user_id, scope=MAINTENANCE_SCOPE)
    return success(request, {"reauth_token": token, "expires_in_sec": expires_in, "scope": MAINTENANCE_SCOPE})


@router.post(
    "/restart/tenant",
    summary="重启租户上下文",
    description="需要 X-CSRF-Token 与 X-Reauth-Token；同一租户已有未结束的重启时返回 409。",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=SuccessResponse[RestartAcceptedData],
    responses=_RESTART_ERRORS,
)
def restart_tenant(
    payload: TenantRestartRequest,
    request: Request,
    ctx: SessionContext = Depends(require_capability(PermissionAction.TENANT_RESTART, csrf=True, reauth=True)),
    runtime: MaintenanceRuntime = Depends(get_maintenance_runtime),
    db: Session = Depends(get_db),
):
    operation = runtime.orchestrator.request_tenant_restart(
        db,
        actor_id=ctx.user_id,
        tenant_id=payload.tenant_id,
        meta=request_meta(request),
    )
    return _accepted(request, operation, "租户重启已受理。")


@router.post(
    "/restart/full",
    summary="整机重启",
    description="需部署级开关 FC_MAINTENANCE_FULL_RESTART_ENABLED=true；重启期间服务短暂不可达，客户端应继续轮询。",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=SuccessResponse[RestartAcceptedData],
    responses=_RESTART_ERRORS,
)
def restart_full(
    request: Request,
    ctx: SessionContext = Depends(require_capability(PermissionAction.SYSTEM_RESTART, csrf=True, reauth=True)),
    runtime: MaintenanceRuntime = Depends(get_maintenance_runtime),
    db: Session = Depends(get_db),
):
    operation = runtime.orchestrator.request_full_restart(db, actor_id=ctx.user_id, meta=request_meta(request))
    return _accepted(request, operation, "整机重启已受理。")


@router.get(
    "/restart/status/{operation_id}",
    summary="查询维护操作状态",
    description="纯读取，可重复调用；终态结果不会再变化。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[MaintenanceOperationData],
    responses={401: {"model": ErrorResponse}, 403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
def restart_status(
    operation_id: UUID,
    request: Request,
    _ctx: SessionContext = Depends(require_capability(PermissionAction.MAINTENANCE_READ)),
    runtime: MaintenanceRuntime = Depends(get_maintenance_runtime),
    db: Session = Depends(get_db),
):
    operation = runtime.orchestrator.get_operation(db, operation_id)
    return success(request, _operation_view(operation))


@router.get(
    "/restart/logs",
    summary="查询重启审计日志",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[list[AuditLogData]],
    responses={401: {"model": ErrorResponse}, 403: {"model": ErrorResponse}},
)
def restart_logs(
    request: Request,
    limit: int = Query(default=50, description=f"返回条数上限，超出范围时截断到 1..{AUDIT_QUERY_MAX_LIMIT}。"),
    _ctx: SessionContext = Depends(require_capability(PermissionAction.MAINTENANCE_READ)),
    db: Session = Depends(get_db),
):
    logs = list_restart_logs(db, limit=limit)
    return success(request, [AuditLogData.model_validate(item).model_dump() for item in logs])


@router.get(
    "/restart/config",
    summary="查询重启配置",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[RestartConfigData],
    responses={401: {"model": ErrorResponse}, 403: {"model": ErrorResponse}},
)
def restart_config(
    request: Request,
    _ctx: SessionContext = Depends(require_capability(PermissionAction.MAINTENANCE_READ)),
):
    settings = get_settings()
    return success(request, {"enabled": settings.maintenance_full_restart_enabled, "app_env": settings.app_env})


def _audit_system(runtime: MaintenanceRuntime, request: Request, ctx: SessionContext, action: str, details: dict) -> None:
    runtime.audit.append(
        action=action,
        entity_type="system",
        actor_user_id=ctx.user_id,
        details=jsonable_encoder(details),
        **request_meta(request),
    )


@router.get(
    "/version",
    summary="查询当前部署版本",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[VersionData],
    responses={401: {"model": ErrorResponse}, 403: {"model": ErrorResponse}},
)
def version(
    request: Request,
    ctx: SessionContext = Depends(require_capability(PermissionAction.MAINTENANCE_READ)),
    runtime: MaintenanceRuntime = Depends(get_maintenance_runtime),
):
    info = version_info(get_settings())
    _audit_system(runtime, request, ctx, AuditAction.VERSION_CHECKED, info)
    return success(request, info)


@router.get(
    "/version/status",
    summary="对比当前版本与期望版本",
    description="期望版本由 FC_APP_EXPECTED_VERSION 配置；生产环境缺少版本号或构建时间时给出告警。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[VersionStatusData],
    responses={401: {"model": ErrorResponse}, 403: {"model": ErrorResponse}},
)
def version_check(
    request: Request,
    ctx: SessionContext = Depends(require_capability(PermissionAction.MAINTENANCE_READ)),
    runtime: MaintenanceRuntime = Depends(get_maintenance_runtime),
):
    result = version_status(get_settings())
    _audit_system(
        runtime,
        request,
        ctx,
        AuditAction.VERSION_STATUS_CHECKED,
        {
            "version": result["current"]["version"],
            "expected_version": result["expected"]["version"],
            "update_available": result["update_available"],
            "warnings": result["warnings"],
        },
    )
    return success(request, result)


@router.post(
    "/version/ack",
    summary="确认已知晓当前版本状态",
    description="仅写入一条确认审计记录，需要 X-CSRF-Token。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[VersionAckData],
    responses={401: {"model": ErrorResponse}, 403: {"model": ErrorResponse}},
)
def version_ack(
    request: Request,
    ctx: SessionContext = Depends(require_capability(PermissionAction.VERSION_ACKNOWLEDGE, csrf=True)),
    runtime: MaintenanceRuntime = Depends(get_maintenance_runtime),
):
    now = utc_now()
    _audit_system(
        runtime,
        request,
        ctx,
        AuditAction.VERSION_ACKNOWLEDGED,
        {"version": get_settings().current_version, "at": now},
    )
    return success(request, {"ok": True, "at": now})


@router.get(
    "/health",
    summary="查询进程运行状况",
    description="报告数据库连通性、进程运行时长与内存占用；数据库不可用时 ok 为 false。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[SystemHealthData],
    responses={401: {"model": ErrorResponse}, 403: {"model": ErrorResponse}},
)
def system_health(
    request: Request,
    ctx: SessionContext = Depends(require_capability(PermissionAction.MAINTENANCE_READ)),
    runtime: MaintenanceRuntime = Depends(get_maintenance_runtime),
    db: Session = Depends(get_db),
):
    result = process_health(db, get_settings())
    _audit_system(
        runtime,
        request,
        ctx,
        AuditAction.HEALTH_CHECKED,
        {"ok": result["ok"], "db_ok": result["db"]["ok"], "uptime_seconds": result["uptime_seconds"]},
    )
    return success(request, result)


@router.get(
    "/version/logs",
    summary="查询版本检查审计日志",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[list[AuditLogData]],
    responses={401: {"model": ErrorResponse}, 403: {"model": ErrorResponse}},
)
def version_logs(
    request: Request,
    limit: int = Query(default=50, description=f"返回条数上限，超出范围时截断到 1..{AUDIT_QUERY_MAX_LIMIT}。"),
    _ctx: SessionContext = Depends(require_capability(PermissionAction.MAINTENANCE_READ)),
    db: Session = Depends(get_db),
):
    logs = list_version_logs(db, limit=limit)
    return success(request, [AuditLogData.model_validate(item).model_dump() for item in logs])
