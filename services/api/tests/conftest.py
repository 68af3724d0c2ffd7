from collections.abc import Generator
from dataclasses import dataclass

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session, sessionmaker

from api_testkit import DeferredExecutor, RecordingRestarter, build_sqlite_session_factory, reset_runtime_auth_state
from fc_api.core.config import get_settings
from fc_api.db.session import get_db
from fc_api.main import app
from fc_api.services.maintenance import MaintenanceRuntime, build_maintenance_runtime


@dataclass
class ApiHarness:
    """测试期间共享的应用、会话工厂与维护组件。"""

    client: TestClient
    session_factory: sessionmaker
    runtime: MaintenanceRuntime
    executor: DeferredExecutor
    restarter: RecordingRestarter

    def db(self) -> Session:
        return self.session_factory()


@pytest.fixture
def sqlite_session_factory() -> sessionmaker:
    return build_sqlite_session_factory()


@pytest.fixture
def api_env(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    monkeypatch.setenv("FC_AUTH_JWT_SECRET", "http-test-secret-key-at-least-32-bytes")
    monkeypatch.setenv("FC_AUTH_JWT_ALGORITHMS", "HS256")
    monkeypatch.setenv("FC_AUTH_PASSWORD_HASH_ITERATIONS", "1000")
    monkeypatch.setenv("FC_MAINTENANCE_RATE_LIMIT_MAX_ATTEMPTS", "50")
    monkeypatch.delenv("FC_REDIS_URL", raising=False)
    get_settings.cache_clear()
    reset_runtime_auth_state()
    yield
    reset_runtime_auth_state()
    get_settings.cache_clear()


@pytest.fixture
def harness(api_env, sqlite_session_factory) -> Generator[ApiHarness, None, None]:
    executor = DeferredExecutor()
    restarter = RecordingRestarter()
    runtime = build_maintenance_runtime(sqlite_session_factory, executor=executor, restarter=restarter)
    original_runtime = app.state.maintenance

    def override_get_db() -> Generator[Session, None, None]:
        db = sqlite_session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.state.maintenance = runtime
    try:
        with TestClient(app) as client:
            yield ApiHarness(
                client=client,
                session_factory=sqlite_session_factory,
                runtime=runtime,
                executor=executor,
                restarter=restarter,
            )
    finally:
        app.dependency_overrides.clear()
        app.state.maintenance = original_runtime
