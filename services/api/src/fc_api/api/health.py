"""健康检查接口。"""

from fastapi import APIRouter, Depends, Request, status
from redis.exceptions import RedisError
from sqlalchemy import func, select, text
from sqlalchemy.orm import Session

from fc_api.core.security import get_redis
from fc_api.db.session import get_db
from fc_api.models.maintenance import MaintenanceOperation
from fc_api.schemas.common import ErrorResponse, SuccessResponse
from fc_api.schemas.health import LivenessData, ReadinessData
from fc_api.utils.response import success

router = APIRouter(prefix="/health", tags=["health"])


def _redis_status() -> str:
    client = get_redis()
    if client is None:
        return "disabled"
    try:
        client.ping()
    except RedisError:
        return "unavailable"
    return "ok"


@router.get(
    "/live",
    summary="存活探针",
    description="仅表示进程存活；整机重启期间该探针短暂不可达。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[LivenessData],
    responses={500: {"model": ErrorResponse}},
)
def live(request: Request):
    return success(request, {"status": "ok"})


@router.get(
    "/ready",
    summary="就绪探针",
    description="校验数据库连通性，并报告 Redis 状态与未结束的维护操作数量。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[ReadinessData],
    responses={500: {"model": ErrorResponse}},
)
def ready(request: Request, db: Session = Depends(get_db)):
    db.execute(text("select 1"))
    active = db.execute(
        select(func.count()).select_from(MaintenanceOperation).where(MaintenanceOperation.active_key.is_not(None))
    ).scalar_one()
    return success(
        request,
        {"status": "ready", "database": "ok", "redis": _redis_status(), "active_operations": active},
    )
