"""教会管理平台运维控制台 SDK。"""

from fc_console.client import ConsoleClient
from fc_console.config import ConsoleConfig
from fc_console.errors import (
    AccountPending,
    ConsoleError,
    InvalidCredentials,
    MaintenanceDisabled,
    NetworkUnavailable,
    NotFound,
    OperationInProgress,
    PermissionDenied,
    RateLimited,
    ReauthExpired,
    ReauthRequired,
    ServerError,
    SessionExpired,
    TwoFactorRequired,
    Unauthorized,
)
from fc_console.guard import Navigator, SessionGuard
from fc_console.polling import OperationPoller
from fc_console.reauth import MaintenanceConsole, ReauthCache
from fc_console.session import FileSessionStore, MemorySessionStore, SessionContext, SessionState

__all__ = [
    "AccountPending",
    "ConsoleClient",
    "ConsoleConfig",
    "ConsoleError",
    "FileSessionStore",
    "InvalidCredentials",
    "MaintenanceConsole",
    "MaintenanceDisabled",
    "MemorySessionStore",
    "Navigator",
    "NetworkUnavailable",
    "NotFound",
    "OperationInProgress",
    "OperationPoller",
    "PermissionDenied",
    "RateLimited",
    "ReauthCache",
    "ReauthExpired",
    "ReauthRequired",
    "ServerError",
    "SessionContext",
    "SessionExpired",
    "SessionGuard",
    "SessionState",
    "TwoFactorRequired",
    "Unauthorized",
]
