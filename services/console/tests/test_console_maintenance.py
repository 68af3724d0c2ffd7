import asyncio
import json
from pathlib import Path

import httpx
import pytest

from fc_console import (
    ConsoleClient,
    ConsoleConfig,
    FileSessionStore,
    MaintenanceConsole,
    Navigator,
    NetworkUnavailable,
    OperationPoller,
    ReauthCache,
    ReauthExpired,
    ReauthRequired,
    SessionContext,
)

NOW = 1_700_000_000.0


class FakeClock:
    def __init__(self, now: float = NOW):
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_reauth_cache_deadline_has_safety_margin():
    clock = FakeClock()
    cache = ReauthCache(clock=clock, margin_seconds=5)
    cache.store("token-1", 120)

    clock.now = NOW + 114
    assert cache.valid()
    clock.now = NOW + 115
    assert not cache.valid()
    assert cache.take() is None


def test_reauth_cache_token_is_single_use():
    cache = ReauthCache(clock=FakeClock(), margin_seconds=5)
    cache.store("token-1", 120)
    assert cache.take() == "token-1"
    assert cache.take() is None
    assert not cache.valid()


def test_reauth_cache_margin_is_capped_for_short_ttl():
    clock = FakeClock()
    cache = ReauthCache(clock=clock, margin_seconds=5)
    cache.store("token-1", 3)

    clock.now = NOW + 1
    assert cache.valid()
    clock.now = NOW + 1.5
    assert not cache.valid()


class MaintenanceBackend:
    """模拟维护接口：记录提权令牌使用情况与轮询次数。"""

    def __init__(self, *, statuses: list[str] | None = None, reject_with: str | None = None, reauth_ttl: int = 120):
        self.requests: list[httpx.Request] = []
        self.statuses = list(statuses or ["pending", "running", "completed"])
        self.reject_with = reject_with
        self.issued = 0
        self.reauth_ttl = reauth_ttl

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path.endswith("/maintenance/reauth"):
            self.issued += 1
            return _ok({"reauth_token": f"reauth-{self.issued}", "expires_in_sec": self.reauth_ttl, "scope": "maintenance"})
        if path.endswith("/restart/tenant") or path.endswith("/restart/full"):
            if self.reject_with:
                return httpx.Response(
                    401,
                    json={"request_id": "r", "error": {"code": self.reject_with, "message": "x", "details": {}}},
                )
            return httpx.Response(202, json={"request_id": "r", "data": {"operation_id": "op-1", "status": "pending", "message": "ok"}})
        if "/restart/status/" in path:
            status = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
            return _ok({"operation_id": "op-1", "status": status})
        return _ok({})


def _ok(data) -> httpx.Response:
    return httpx.Response(200, json={"request_id": "r", "data": data, "meta": {}})


def _provider_client(backend, clock=None) -> ConsoleClient:
    client = ConsoleClient(
        ConsoleConfig(base_url="http://api.test", poll_interval_seconds=0.001),
        navigator=Navigator("/provider/maintenance"),
        transport=httpx.MockTransport(backend),
        clock=clock or FakeClock(),
    )
    client.session.establish(
        {"access_token": "session", "csrf_token": "csrf", "role": "super_admin", "tenant_id": None, "expires_in": 3600}
    )
    return client


def test_short_lived_reauth_token_is_still_sent():
    backend = MaintenanceBackend(reauth_ttl=3)

    async def prompt():
        return "secret", None

    async def scenario():
        async with _provider_client(backend) as client:
            await MaintenanceConsole(client, prompt=prompt).restart_tenant("tenant-7")

    asyncio.run(scenario())
    restart_call = backend.requests[-1]
    assert restart_call.url.path.endswith("/restart/tenant")
    assert restart_call.headers["X-Reauth-Token"] == "reauth-1"


def test_lapsed_reauth_token_is_never_sent_empty():
    backend = MaintenanceBackend(reauth_ttl=0)

    async def prompt():
        return "secret", None

    async def scenario():
        async with _provider_client(backend) as client:
            with pytest.raises(ReauthRequired):
                await MaintenanceConsole(client, prompt=prompt).restart_tenant("tenant-7")

    asyncio.run(scenario())
    assert [request.url.path.rsplit("/", 1)[-1] for request in backend.requests] == ["reauth"]


def test_restart_sends_reauth_and_csrf_then_consumes_token():
    backend = MaintenanceBackend()

    async def scenario():
        async with _provider_client(backend) as client:
            console = MaintenanceConsole(client)
            await console.reauthenticate("secret", "123456")
            accepted = await console.restart_tenant("tenant-7")
            with pytest.raises(ReauthRequired):
                await console.restart_tenant("tenant-7")
            return accepted

    accepted = asyncio.run(scenario())
    assert accepted["operation_id"] == "op-1"
    reauth_call, restart_call = backend.requests
    assert json.loads(reauth_call.content) == {"password": "secret", "otp": "123456"}
    assert reauth_call.headers["X-CSRF-Token"] == "csrf"
    assert restart_call.headers["X-Reauth-Token"] == "reauth-1"
    assert restart_call.headers["X-CSRF-Token"] == "csrf"
    assert restart_call.headers["Authorization"] == "Bearer session"
    assert json.loads(restart_call.content) == {"tenant_id": "tenant-7"}


def test_prompt_is_used_when_no_valid_token_is_cached():
    backend = MaintenanceBackend()
    prompts: list[str] = []

    async def prompt():
        prompts.append("asked")
        return "secret", None

    async def scenario():
        async with _provider_client(backend) as client:
            console = MaintenanceConsole(client, prompt=prompt)
            await console.restart_full()
            await console.restart_full()

    asyncio.run(scenario())
    assert prompts == ["asked", "asked"]
    restart_tokens = [r.headers["X-Reauth-Token"] for r in backend.requests if r.url.path.endswith("/restart/full")]
    assert restart_tokens == ["reauth-1", "reauth-2"]


def test_server_rejection_of_reauth_keeps_session_and_clears_cache():
    backend = MaintenanceBackend(reject_with="REAUTH_EXPIRED")

    async def scenario():
        async with _provider_client(backend) as client:
            console = MaintenanceConsole(client)
            await console.reauthenticate("secret")
            with pytest.raises(ReauthExpired):
                await console.restart_tenant("tenant-7")
            return client, console

    client, console = asyncio.run(scenario())
    assert not console.cache.valid()
    assert client.session.state is not None
    assert client.navigator.redirects == []


def test_poller_stops_at_terminal_status():
    backend = MaintenanceBackend(statuses=["pending", "running", "completed"])
    seen: list[str] = []

    async def scenario():
        async with _provider_client(backend) as client:
            console = MaintenanceConsole(client)
            poller = console.watch("op-1", on_update=lambda status: seen.append(status["status"]))
            return await poller.wait()

    final = asyncio.run(scenario())
    assert final["status"] == "completed"
    assert seen == ["pending", "running", "completed"]


def test_poller_tolerates_backend_restart():
    calls = {"n": 0}

    async def fetch(operation_id: str) -> dict:
        calls["n"] += 1
        if calls["n"] < 3:
            raise NetworkUnavailable()
        return {"operation_id": operation_id, "status": "failed", "error": "boom"}

    async def scenario():
        poller = OperationPoller(fetch, "op-1", interval_seconds=0.001)
        return await poller.wait()

    assert asyncio.run(scenario())["status"] == "failed"
    assert calls["n"] == 3


def test_poller_cancel_only_tears_down_subscription():
    calls = {"n": 0}

    async def fetch(operation_id: str) -> dict:
        calls["n"] += 1
        return {"operation_id": operation_id, "status": "running"}

    async def scenario():
        poller = OperationPoller(fetch, "op-1", interval_seconds=0.001)
        task = poller.start()
        while calls["n"] < 2:
            await asyncio.sleep(0.001)
        poller.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        poller.cancel()
        return poller

    poller = asyncio.run(scenario())
    assert not poller.running
    assert poller.last_status == {"operation_id": "op-1", "status": "running"}


def test_file_session_store_persists_private_session(tmp_path: Path):
    path = tmp_path / "console" / "session.json"
    store = FileSessionStore(path)
    context = SessionContext(store, clock=FakeClock())
    context.establish({"access_token": "tok", "role": "pastor", "tenant_id": "t-1", "expires_in": 120, "csrf_token": "c"})

    assert path.stat().st_mode & 0o777 == 0o600
    assert json.loads(path.read_text(encoding="utf-8"))["expires_at"] == NOW + 120
    assert SessionContext(FileSessionStore(path)).state == context.state

    context.clear()
    assert not path.exists()


def test_corrupted_session_file_means_logged_out(tmp_path: Path):
    path = tmp_path / "session.json"
    path.write_text("{not json", encoding="utf-8")
    assert SessionContext(FileSessionStore(path)).state is None
