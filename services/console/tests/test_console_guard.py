import asyncio
import json

import httpx
import pytest

from fc_console import (
    ConsoleClient,
    ConsoleConfig,
    InvalidCredentials,
    MemorySessionStore,
    Navigator,
    NetworkUnavailable,
    OperationInProgress,
    ServerError,
    SessionContext,
    SessionExpired,
    Unauthorized,
)

NOW = 1_700_000_000.0


class Recorder:
    """记录发出的请求，并按路径返回预设响应。"""

    def __init__(self, routes: dict[str, httpx.Response] | None = None):
        self.routes = routes or {}
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        for suffix, response in self.routes.items():
            if request.url.path.endswith(suffix):
                return response
        return httpx.Response(200, json={"request_id": "r-1", "data": {"ok": True}, "meta": {}})


def _error_response(status_code: int, code: str, *, headers: dict[str, str] | None = None, **details) -> httpx.Response:
    body = {"request_id": "req-err-0001", "error": {"code": code, "message": code.lower(), "details": details}}
    return httpx.Response(status_code, json=body, headers=headers)


def _client(recorder, *, location: str = "/dashboard", clock=lambda: NOW) -> ConsoleClient:
    return ConsoleClient(
        ConsoleConfig(base_url="http://api.test"),
        navigator=Navigator(location),
        transport=httpx.MockTransport(recorder),
        clock=clock,
    )


def _establish(client: ConsoleClient, *, role: str = "tenant_admin", expires_in: float = 600, tenant_id: str | None = "t-1"):
    return client.session.establish(
        {
            "access_token": "session-token",
            "csrf_token": "csrf-1",
            "role": role,
            "tenant_id": tenant_id,
            "expires_in": expires_in,
        }
    )


def test_guard_attaches_bearer_and_tenant_header():
    recorder = Recorder()

    async def scenario():
        async with _client(recorder) as client:
            _establish(client)
            await client.me()
            await client.purge_audit_logs("t-9")

    asyncio.run(scenario())
    first, second = recorder.requests
    assert first.url.path == "/api/auth/me"
    assert first.headers["Authorization"] == "Bearer session-token"
    assert first.headers["X-Tenant-Id"] == "t-1"
    assert "X-CSRF-Token" not in first.headers
    assert second.headers["X-CSRF-Token"] == "csrf-1"


def test_public_endpoints_never_carry_the_session_token():
    recorder = Recorder()

    async def scenario():
        async with _client(recorder) as client:
            _establish(client)
            await client.resolve_tenant("grace")
            await client.request("GET", "/auth/public-cell-groups", headers={"Authorization": "Bearer leaked"})

    asyncio.run(scenario())
    for request in recorder.requests:
        assert "Authorization" not in request.headers


def test_expired_session_redirects_without_network_call():
    recorder = Recorder()
    clock = {"now": NOW}

    async def scenario():
        async with _client(recorder, location="/members?page=2", clock=lambda: clock["now"]) as client:
            _establish(client, expires_in=60)
            clock["now"] = NOW + 61
            with pytest.raises(SessionExpired) as exc:
                await client.me()
            return client, exc.value

    client, error = asyncio.run(scenario())
    assert recorder.requests == []
    assert error.redirect_to == "/login?next=%2Fmembers%3Fpage%3D2"
    assert client.navigator.location == "/login?next=%2Fmembers%3Fpage%3D2"
    assert client.session.state is None


def test_expired_provider_session_goes_to_provider_login():
    recorder = Recorder()
    clock = {"now": NOW}

    async def scenario():
        async with _client(recorder, location="/provider/tenants", clock=lambda: clock["now"]) as client:
            _establish(client, role="super_admin", tenant_id=None)
            clock["now"] = NOW + 3600
            with pytest.raises(SessionExpired):
                await client.me()
            return client

    client = asyncio.run(scenario())
    assert client.navigator.redirects == ["/provider/login?next=%2Fprovider%2Ftenants"]


def test_server_side_401_clears_session_and_redirects():
    recorder = Recorder({"/auth/me": _error_response(401, "UNAUTHORIZED", reason="token_revoked")})

    async def scenario():
        async with _client(recorder, location="/giving") as client:
            _establish(client)
            with pytest.raises(SessionExpired) as exc:
                await client.me()
            assert isinstance(exc.value.__cause__, Unauthorized)
            return client

    client = asyncio.run(scenario())
    assert client.session.state is None
    assert client.navigator.redirects == ["/login?next=%2Fgiving"]


def test_401_on_public_location_does_not_redirect():
    recorder = Recorder({"/auth/me": _error_response(401, "UNAUTHORIZED", reason="token_expired")})

    async def scenario():
        async with _client(recorder, location="/church-info") as client:
            _establish(client)
            with pytest.raises(Unauthorized):
                await client.me()
            return client

    client = asyncio.run(scenario())
    assert client.navigator.redirects == []


def test_failed_login_is_not_treated_as_session_expiry():
    recorder = Recorder({"/auth/login": _error_response(401, "INVALID_CREDENTIALS", reason="invalid_credentials")})

    async def scenario():
        async with _client(recorder, location="/login") as client:
            with pytest.raises(InvalidCredentials):
                await client.login("alice@example.com", "bad", tenant_hint="grace")
            return client

    client = asyncio.run(scenario())
    assert client.navigator.redirects == []
    assert recorder.requests[0].headers.get("Authorization") is None
    assert json.loads(recorder.requests[0].content) == {
        "identity": "alice@example.com",
        "secret": "bad",
        "tenant_hint": "grace",
    }


def test_backend_down_and_server_error_are_distinct():
    def unreachable(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async def scenario():
        async with _client(unreachable) as client:
            _establish(client)
            with pytest.raises(NetworkUnavailable) as down:
                await client.me()
        async with _client(Recorder({"/auth/me": httpx.Response(502, text="bad gateway")})) as client:
            _establish(client)
            with pytest.raises(ServerError) as broken:
                await client.me()
        return down.value, broken.value

    down, broken = asyncio.run(scenario())
    assert down.message != broken.message
    assert broken.status_code == 502


def test_conflict_exposes_retry_after_hint():
    recorder = Recorder(
        {
            "/restart/tenant": _error_response(
                409,
                "OPERATION_IN_PROGRESS",
                headers={"Retry-After": "7"},
                operation_id="op-1",
            )
        }
    )

    async def scenario():
        async with _client(recorder, location="/provider/maintenance") as client:
            _establish(client, role="super_admin", tenant_id=None)
            with pytest.raises(OperationInProgress) as exc:
                await client.request("POST", "/provider/maintenance/restart/tenant", json={"tenant_id": "t"})
            return exc.value

    error = asyncio.run(scenario())
    assert error.retry_after == 7
    assert error.operation_id == "op-1"
    assert error.request_id == "req-err-0001"


def test_logout_clears_local_state_even_when_offline():
    def unreachable(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async def scenario():
        async with _client(unreachable) as client:
            _establish(client)
            with pytest.raises(NetworkUnavailable):
                await client.logout()
            return client

    assert asyncio.run(scenario()).session.state is None


def test_session_context_restores_from_store():
    store = MemorySessionStore()
    first = SessionContext(store, clock=lambda: NOW)
    first.establish({"access_token": "tok", "role": "member", "tenant_id": "t-1", "expires_in": 30})
    restored = SessionContext(store, clock=lambda: NOW + 10)
    assert restored.state == first.state
    assert not restored.is_expired()
    restored.clear()
    assert SessionContext(store).state is None
