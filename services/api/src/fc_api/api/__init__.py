"""路由模块导出集合。"""

from . import auth, health, maintenance, provider

__all__ = [
    "auth",
    "health",
    "maintenance",
    "provider",
]
