"""部署版本与进程运行状况。"""

from datetime import datetime
import logging
import resource
import time
from typing import Any

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from fc_api.core.config import Settings
from fc_api.models.base import utc_now

logger = logging.getLogger("fc_api.maintenance")

# 以模块加载时刻近似进程启动时刻。
PROCESS_STARTED_AT = time.monotonic()


def version_info(settings: Settings, now: datetime | None = None) -> dict[str, Any]:
    return {
        "version": settings.current_version,
        "build_time": settings.app_build_time,
        "app_env": settings.app_env,
        "checked_at": now or utc_now(),
    }


def version_status(settings: Settings, now: datetime | None = None) -> dict[str, Any]:
    """对比当前版本与期望版本，并给出部署配置告警。"""
    current = version_info(settings, now)
    expected = settings.app_expected_version
    update_available = bool(expected) and expected != current["version"]

    warnings: list[str] = []
    if settings.is_production and current["version"] == "dev":
        warnings.append("生产环境未配置版本号（FC_APP_VERSION 或 FC_APP_BUILD_SHA）。")
    if settings.is_production and not settings.app_build_time:
        warnings.append("生产环境未配置构建时间（FC_APP_BUILD_TIME）。")
    if update_available:
        warnings.append(f"存在待升级版本：期望 {expected}，当前 {current['version']}。")
    return {
        "current": current,
        "expected": {"version": expected},
        "update_available": update_available,
        "warnings": warnings,
    }


def _memory_usage() -> dict[str, int]:
    usage = resource.getrusage(resource.RUSAGE_SELF)
    # Linux 下 ru_maxrss 单位为 KB。
    return {"max_rss_kb": int(usage.ru_maxrss)}


def process_health(db: Session, settings: Settings, now: datetime | None = None) -> dict[str, Any]:
    """进程运行状况；数据库不可用时 ``ok`` 为 false 而不是抛错。"""
    db_ok, db_error = True, None
    try:
        db.execute(text("select 1"))
    except SQLAlchemyError as exc:
        db.rollback()
        db_ok, db_error = False, str(exc)[:500] or exc.__class__.__name__
        logger.warning("health check database failure error=%s", db_error)
    return {
        "ok": db_ok,
        "checked_at": now or utc_now(),
        "app_env": settings.app_env,
        "uptime_seconds": int(time.monotonic() - PROCESS_STARTED_AT),
        "db": {"ok": db_ok, "error": db_error},
        "memory": _memory_usage(),
    }
