"""租户相关返回结构。"""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import Field

from fc_api.schemas.common import BaseSchema


class TenantConfigVerifyData(BaseSchema):
    """租户配置校验结果。"""

    tenant_id: UUID = Field(description="租户 ID。")
    plan: str = Field(description="生效的订阅套餐。")
    config: dict[str, Any] = Field(description="租户当前配置。")
    computed_features: dict[str, bool] = Field(description="套餐默认值叠加配置覆盖后的功能开关。")
    verified_at: datetime = Field(description="校验时间。")
