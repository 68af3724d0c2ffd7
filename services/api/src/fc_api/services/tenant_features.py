"""租户功能模块计算：套餐默认值叠加租户配置中的 ``features`` 覆盖项。"""

from typing import Any

from fc_api.models.enums import TenantPlan

FEATURE_KEYS = (
    "core",
    "members",
    "departments",
    "events",
    "programs",
    "attendance",
    "finance",
    "announcements",
    "sermons",
    "reports",
    "minutes",
    "councils",
    "committees",
    "sms",
    "suggestions",
    "qr",
    "ai",
    "dynamic_pages",
)

_BASIC_FEATURES = frozenset(
    {
        "core",
        "members",
        "departments",
        "events",
        "programs",
        "attendance",
        "finance",
        "announcements",
        "sermons",
        "suggestions",
    }
)
_PRO_FEATURES = _BASIC_FEATURES | {"reports", "minutes", "councils", "committees", "sms", "qr", "dynamic_pages"}
_ENTERPRISE_FEATURES = _PRO_FEATURES | {"ai"}

_PLAN_FEATURES: dict[str, frozenset[str]] = {
    TenantPlan.BASIC.value: _BASIC_FEATURES,
    TenantPlan.PRO.value: _PRO_FEATURES,
    TenantPlan.ENTERPRISE.value: _ENTERPRISE_FEATURES,
}


def normalize_plan(plan: str | None) -> str:
    """未知或缺失的套餐按 basic 处理。"""
    value = (plan or "").strip().lower()
    return value if value in _PLAN_FEATURES else TenantPlan.BASIC.value


def default_features(plan: str | None) -> dict[str, bool]:
    enabled = _PLAN_FEATURES[normalize_plan(plan)]
    return {key: key in enabled for key in FEATURE_KEYS}


def compute_tenant_features(plan: str | None, config: dict[str, Any] | None) -> dict[str, bool]:
    """计算租户最终生效的功能开关，覆盖项按真值转换为布尔。"""
    features = default_features(plan)
    overrides = config.get("features") if isinstance(config, dict) else None
    if not isinstance(overrides, dict):
        return features
    for key, value in overrides.items():
        features[str(key)] = bool(value)
    return features
