"""FastAPI 应用入口点。"""

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI

from fc_api.api.router import api_router
from fc_api.core.config import get_settings
from fc_api.db.session import SessionLocal
from fc_api.exceptions import register_exception_handlers
from fc_api.middlewares import register_middlewares
from fc_api.services.maintenance import build_maintenance_runtime

logger = logging.getLogger("fc_api")
settings = get_settings()


def _setup_logging() -> None:
    """初始化日志格式。"""
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """启动时对账中断的维护操作，退出时停止维护执行器。"""
    runtime = app.state.maintenance
    reconciled = runtime.reconcile()
    logger.info("service started env=%s reconciled_operations=%s", settings.app_env, reconciled)
    try:
        yield
    finally:
        app.state.maintenance.shutdown()
        logger.info("service stopped")


def create_app() -> FastAPI:
    """创建并配置 FastAPI 应用实例。"""
    _setup_logging()
    app = FastAPI(
        title=settings.app_name,
        version="1.0.0",
        debug=settings.app_debug,
        lifespan=lifespan,
        description=(
            "多租户教会管理平台控制面接口。\n\n"
            "所有业务接口统一返回：`{request_id, data, meta}`。\n"
            "通过会话令牌进行认证，租户上下文只取自令牌中的 `tenant_id`。\n"
            "服务商维护操作需先提权获取 `X-Reauth-Token`，并异步轮询执行状态。"
        ),
        openapi_tags=[
            {"name": "health", "description": "服务存活与就绪探针。"},
            {"name": "auth", "description": "登录、登出、会话视图、密码重置与二次验证。"},
            {"name": "maintenance", "description": "服务商提权、租户/整机重启与状态轮询。"},
            {"name": "provider", "description": "服务商租户审计日志查询与清理。"},
        ],
    )
    app.state.maintenance = build_maintenance_runtime(SessionLocal)

    register_middlewares(app)
    register_exception_handlers(app)
    app.include_router(api_router, prefix=settings.api_prefix)
    return app


app = create_app()
