"""数据库基础模型导出。

生产环境结构由迁移脚本维护；``create_schema`` 仅供本地开发与测试建表。
"""

from sqlalchemy.engine import Engine

from fc_api.models.base import Base


def create_schema(bind: Engine) -> None:
    """按 ORM 定义创建全部数据表。"""
    import fc_api.models  # noqa: F401  注册全部模型到 Base.metadata

    Base.metadata.create_all(bind=bind)


__all__ = ["Base", "create_schema"]
