import pytest

from fc_api.core.config import get_settings
from fc_api.models.enums import Role
from fc_api.services import rate_limit
from fc_api.services.permissions import PermissionAction, can_perform, list_role_actions


@pytest.mark.parametrize(
    "action",
    [
        PermissionAction.MAINTENANCE_REAUTH,
        PermissionAction.TENANT_RESTART,
        PermissionAction.SYSTEM_RESTART,
        PermissionAction.AUDIT_LOG_PURGE,
    ],
)
def test_only_provider_can_run_maintenance(action):
    assert can_perform(Role.SUPER_ADMIN, action)
    for role in (Role.TENANT_ADMIN, Role.CLERK, Role.PASTOR, Role.MEMBER):
        assert not can_perform(role, action), role


def test_two_factor_is_limited_to_privileged_roles():
    for role in (Role.SUPER_ADMIN, Role.TENANT_ADMIN, Role.CLERK, Role.PASTOR):
        assert can_perform(role, PermissionAction.TWO_FACTOR_MANAGE)
    assert not can_perform(Role.MEMBER, PermissionAction.TWO_FACTOR_MANAGE)


def test_unknown_or_missing_role_has_no_actions():
    assert not can_perform(None, PermissionAction.SESSION_READ)
    assert not can_perform("deacon", PermissionAction.SESSION_READ)
    assert list_role_actions(None) == []
    assert list_role_actions(Role.MEMBER) == [PermissionAction.SESSION_READ.value]


def test_local_rate_limit_window(api_env, monkeypatch):
    monkeypatch.setenv("FC_MAINTENANCE_RATE_LIMIT_MAX_ATTEMPTS", "2")
    monkeypatch.setenv("FC_MAINTENANCE_RATE_LIMIT_WINDOW_SECONDS", "60")
    get_settings.cache_clear()

    decisions = [rate_limit.hit("actor-1:tenant_restart:x") for _ in range(3)]
    assert [d.allowed for d in decisions] == [True, True, False]
    assert decisions[-1].count == 3
    assert 1 <= decisions[-1].retry_after_seconds <= 60
    assert rate_limit.hit("actor-2:tenant_restart:x").allowed

    rate_limit.reset_local_windows()
    assert rate_limit.hit("actor-1:tenant_restart:x").allowed


def test_rate_limit_peek_does_not_count(api_env, monkeypatch):
    monkeypatch.setenv("FC_MAINTENANCE_RATE_LIMIT_MAX_ATTEMPTS", "1")
    get_settings.cache_clear()

    for _ in range(3):
        decision = rate_limit.peek("actor-1:tenant_restart:x")
        assert decision.allowed and decision.count == 0

    rate_limit.hit("actor-1:tenant_restart:x")
    blocked = rate_limit.peek("actor-1:tenant_restart:x")
    assert not blocked.allowed
    assert blocked.count == 1
    assert blocked.retry_after_seconds >= 1
