"""控制台 SDK 对接真实接口应用的端到端流程。"""

import asyncio
from collections.abc import Generator
from dataclasses import dataclass
import time

import httpx
import pytest
from sqlalchemy import func, select
from sqlalchemy.orm import sessionmaker

from api_testkit import (
    PASSWORD,
    DeferredExecutor,
    RecordingRestarter,
    build_sqlite_session_factory,
    reset_runtime_auth_state,
    seed_provider,
    seed_tenant,
    seed_user,
)
from fc_api.core.config import get_settings
from fc_api.db.session import get_db
from fc_api.main import app
from fc_api.models.audit import AuditLog
from fc_api.models.enums import Role, TenantPlan
from fc_api.models.maintenance import MaintenanceOperation
from fc_api.services.maintenance import build_maintenance_runtime
from fc_api.services.totp import generate_totp
from fc_console import (
    ConsoleClient,
    ConsoleConfig,
    MaintenanceConsole,
    MaintenanceDisabled,
    Navigator,
    ReauthRequired,
    SessionExpired,
    TwoFactorRequired,
)

TOTP_SECRET = "JBSWY3DPEHPK3PXPJBSWY3DPEHPK3PXP"


class CountingTransport(httpx.ASGITransport):
    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.calls = 0

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        self.calls += 1
        return await super().handle_async_request(request)


@dataclass
class Stack:
    session_factory: sessionmaker
    executor: DeferredExecutor
    transport: CountingTransport

    def client(self, *, location: str = "/", clock=time.time) -> ConsoleClient:
        return ConsoleClient(
            ConsoleConfig(base_url="http://testserver", poll_interval_seconds=0.01),
            navigator=Navigator(location),
            transport=self.transport,
            clock=clock,
        )


@pytest.fixture
def stack(monkeypatch: pytest.MonkeyPatch) -> Generator[Stack, None, None]:
    monkeypatch.setenv("FC_AUTH_JWT_SECRET", "console-e2e-secret-key-at-least-32-bytes")
    monkeypatch.setenv("FC_AUTH_PASSWORD_HASH_ITERATIONS", "1000")
    monkeypatch.delenv("FC_REDIS_URL", raising=False)
    monkeypatch.delenv("FC_MAINTENANCE_FULL_RESTART_ENABLED", raising=False)
    get_settings.cache_clear()
    reset_runtime_auth_state()

    session_factory = build_sqlite_session_factory()
    executor = DeferredExecutor()
    original_runtime = app.state.maintenance

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.state.maintenance = build_maintenance_runtime(
        session_factory,
        executor=executor,
        restarter=RecordingRestarter(),
    )
    try:
        yield Stack(session_factory=session_factory, executor=executor, transport=CountingTransport(app=app))
    finally:
        app.dependency_overrides.clear()
        app.state.maintenance = original_runtime
        reset_runtime_auth_state()
        get_settings.cache_clear()


def test_login_then_authenticated_request(stack: Stack):
    with stack.session_factory() as db:
        tenant = seed_tenant(db, slug="grace")
        tenant_id = str(tenant.id)
        seed_user(db, email="pastor@grace.org", role=Role.PASTOR, tenant_id=tenant.id)

    async def scenario():
        async with stack.client(location="/login") as client:
            state = await client.login("pastor@grace.org", PASSWORD, tenant_hint="grace")
            return state, await client.me()

    state, me = asyncio.run(scenario())
    assert state.role == Role.PASTOR
    assert state.tenant_id == tenant_id
    assert me["email"] == "pastor@grace.org"
    assert me["tenant_id"] == tenant_id


def test_two_factor_login_requires_resubmission(stack: Stack):
    with stack.session_factory() as db:
        tenant = seed_tenant(db, slug="grace")
        seed_user(db, email="admin@grace.org", role=Role.TENANT_ADMIN, tenant_id=tenant.id, totp_secret=TOTP_SECRET)

    async def scenario():
        async with stack.client(location="/login") as client:
            with pytest.raises(TwoFactorRequired):
                await client.login("admin@grace.org", PASSWORD, tenant_hint="grace")
            assert client.session.state is None
            otp = generate_totp(TOTP_SECRET, time.time())
            return await client.login("admin@grace.org", PASSWORD, tenant_hint="grace", otp=otp)

    state = asyncio.run(scenario())
    assert state.role == Role.TENANT_ADMIN


def test_tenant_restart_is_polled_to_completion_and_audited(stack: Stack):
    with stack.session_factory() as db:
        tenant = seed_tenant(db, slug="tenant-7")
        tenant_id = str(tenant.id)
        seed_provider(db)

    async def scenario():
        async with stack.client(location="/provider/login") as client:
            await client.provider_login("ops@example.com", PASSWORD)
            provider_id = (await client.me())["user_id"]

            console = MaintenanceConsole(client)
            await console.reauthenticate(PASSWORD)
            accepted = await console.restart_tenant(tenant_id)

            seen: list[str] = []

            def on_update(status: dict) -> None:
                seen.append(status["status"])
                stack.executor.run_all()

            final = await console.watch(accepted["operation_id"], on_update=on_update).wait()
            requested = await client.audit_logs(tenant_id, q="restart.requested")
            with pytest.raises(ReauthRequired):
                await console.restart_tenant(tenant_id)
            return provider_id, final, seen, requested

    provider_id, final, seen, requested = asyncio.run(scenario())
    assert final["status"] == "completed"
    assert seen[0] == "pending" and seen[-1] == "completed"
    assert len(requested) == 1
    assert requested[0]["actor_user_id"] == provider_id
    assert requested[0]["tenant_id"] == tenant_id


def test_expired_session_never_reaches_the_server(stack: Stack):
    with stack.session_factory() as db:
        tenant = seed_tenant(db, slug="grace")
        seed_user(db, email="member@grace.org", role=Role.MEMBER, tenant_id=tenant.id)
    clock = {"now": time.time()}

    async def scenario():
        async with stack.client(location="/login", clock=lambda: clock["now"]) as client:
            state = await client.login("member@grace.org", PASSWORD)
            client.navigator.navigate("/prayer-requests")
            clock["now"] = state.expires_at + 1
            calls_before = stack.transport.calls
            with pytest.raises(SessionExpired):
                await client.me()
            return client, calls_before

    client, calls_before = asyncio.run(scenario())
    assert stack.transport.calls == calls_before
    assert client.session.state is None
    assert client.navigator.location == "/login?next=%2Fprayer-requests"


def test_full_restart_blocked_by_switch_leaves_no_trace(stack: Stack):
    with stack.session_factory() as db:
        seed_provider(db)

    async def scenario():
        async with stack.client(location="/provider/maintenance") as client:
            await client.provider_login("ops@example.com", PASSWORD)
            console = MaintenanceConsole(client)
            await console.reauthenticate(PASSWORD)
            with pytest.raises(MaintenanceDisabled):
                await console.restart_full()

    asyncio.run(scenario())
    with stack.session_factory() as db:
        assert db.execute(select(func.count()).select_from(MaintenanceOperation)).scalar_one() == 0
        assert db.execute(select(func.count()).select_from(AuditLog)).scalar_one() == 0


def test_version_health_and_config_checks_are_audited(stack: Stack):
    with stack.session_factory() as db:
        tenant = seed_tenant(db, slug="grace", plan=TenantPlan.ENTERPRISE)
        tenant_id = str(tenant.id)
        seed_provider(db)

    async def scenario():
        async with stack.client(location="/provider/maintenance") as client:
            await client.provider_login("ops@example.com", PASSWORD)
            console = MaintenanceConsole(client)
            version = await console.version()
            status = await console.version_status()
            ack = await console.acknowledge_version()
            health = await console.system_health()
            verified = await client.verify_tenant_config(tenant_id)
            logs = await console.version_logs()
            return version, status, ack, health, verified, logs

    version, status, ack, health, verified, logs = asyncio.run(scenario())
    assert version["version"] == status["current"]["version"]
    assert ack["ok"] is True
    assert health["db"]["ok"] is True
    assert verified["plan"] == "enterprise"
    assert all(verified["computed_features"].values())
    assert [entry["action"] for entry in logs] == [
        "provider.system.version.acknowledged",
        "provider.system.version.status_checked",
        "provider.system.version.checked",
    ]
