"""数据库会话管理。"""

from collections.abc import Generator
from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from fc_api.core.config import get_settings

settings = get_settings()


def _engine_options(database_url: str) -> dict[str, Any]:
    options: dict[str, Any] = {"future": True, "pool_pre_ping": True}
    if database_url.startswith("sqlite"):
        # 维护任务在线程池中执行，SQLite 连接需允许跨线程使用。
        options["connect_args"] = {"check_same_thread": False}
    return options


# 全局数据库引擎。
engine = create_engine(settings.database_url, **_engine_options(settings.database_url))
# 统一会话工厂：路由层通过 get_db 获取短生命周期会话，后台执行器与审计写入器直接持有工厂。
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, class_=Session)


def get_db() -> Generator[Session, None, None]:
    """为每个请求提供独立数据库会话。"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
