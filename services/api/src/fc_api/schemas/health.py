"""健康检查返回结构。"""

from pydantic import Field

from fc_api.schemas.common import BaseSchema


class LivenessData(BaseSchema):
    status: str = Field(description="固定为 ok。")


class ReadinessData(BaseSchema):
    """就绪探针结果；Redis 不可用时服务仍可就绪（黑名单与限流回退到进程内缓存）。"""

    status: str = Field(description="固定为 ready。")
    database: str = Field(description="数据库连通性：ok。")
    redis: str = Field(description="Redis 状态：ok、disabled 或 unavailable。")
    active_operations: int = Field(description="尚未结束的维护操作数量。")
