"""服务层能力导出集合。"""

from fc_api.services.audit import AuditAction, AuditLogWriter, list_restart_logs, purge_audit_logs, query_audit_logs
from fc_api.services.credentials import normalize_email
from fc_api.services.maintenance import (
    MaintenanceOrchestrator,
    MaintenanceRuntime,
    build_maintenance_runtime,
    reconcile_interrupted_operations,
)
from fc_api.services.maintenance_runner import MaintenanceRunner, ProcessRestarter
from fc_api.services.permissions import PermissionAction, can_perform, list_role_actions
from fc_api.services.tenant_runtime import TenantRuntime, TenantRuntimeRegistry

__all__ = [
    "AuditAction",
    "AuditLogWriter",
    "query_audit_logs",
    "purge_audit_logs",
    "list_restart_logs",
    "normalize_email",
    "MaintenanceOrchestrator",
    "MaintenanceRuntime",
    "MaintenanceRunner",
    "ProcessRestarter",
    "build_maintenance_runtime",
    "reconcile_interrupted_operations",
    "PermissionAction",
    "can_perform",
    "list_role_actions",
    "TenantRuntime",
    "TenantRuntimeRegistry",
]
