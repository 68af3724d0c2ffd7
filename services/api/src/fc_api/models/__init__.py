"""ORM 模型导出集合。"""

from fc_api.models.auth import UserCredential
from fc_api.models.audit import AuditLog
from fc_api.models.maintenance import MaintenanceOperation
from fc_api.models.tenant import Tenant, User

__all__ = [
    "AuditLog",
    "MaintenanceOperation",
    "Tenant",
    "User",
    "UserCredential",
]
