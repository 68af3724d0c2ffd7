from datetime import datetime, timedelta, timezone
import time
from uuid import UUID, uuid4

import jwt
import pytest
from fastapi import HTTPException

from api_testkit import PASSWORD, auth_headers, provider_login, reauth_token, seed_provider, seed_tenant
from fc_api.core.config import get_settings
from fc_api.services.reauth import MAINTENANCE_SCOPE, issue_reauth_token, verify_reauth_token
from fc_api.services.totp import generate_totp, generate_totp_secret


def _crafted_reauth(user_id: UUID, *, exp_offset: int, scope: str = MAINTENANCE_SCOPE, typ: str = "reauth") -> str:
    settings = get_settings()
    now = int(datetime.now(timezone.utc).timestamp())
    return jwt.encode(
        {"sub": str(user_id), "scope": scope, "typ": typ, "iat": now - 120, "exp": now + exp_offset},
        settings.reauth_secret,
        algorithm="HS256",
    )


def _provider_session(harness, **kwargs) -> tuple[dict, UUID, UUID]:
    with harness.db() as db:
        provider = seed_provider(db, **kwargs)
        tenant = seed_tenant(db, slug="grace")
        provider_id, tenant_id = provider.id, tenant.id
    return provider_login(harness.client), provider_id, tenant_id


def test_reauth_issues_short_lived_scoped_token(harness):
    session, provider_id, _ = _provider_session(harness)

    resp = harness.client.post(
        "/api/provider/maintenance/reauth",
        json={"password": PASSWORD},
        headers=auth_headers(session, csrf=True),
    )
    assert resp.status_code == 200, resp.text
    data = resp.json()["data"]
    assert data["scope"] == MAINTENANCE_SCOPE
    assert 0 < data["expires_in_sec"] <= 120

    claims = verify_reauth_token(data["reauth_token"], user_id=provider_id)
    assert claims["typ"] == "reauth"
    assert claims["exp"] - claims["iat"] == data["expires_in_sec"]


def test_reauth_requires_csrf_token(harness):
    session, _, _ = _provider_session(harness)
    resp = harness.client.post(
        "/api/provider/maintenance/reauth",
        json={"password": PASSWORD},
        headers=auth_headers(session),
    )
    assert resp.status_code == 403
    assert resp.json()["error"]["code"] == "CSRF_INVALID"


def test_failed_reauth_keeps_session_alive(harness):
    session, _, _ = _provider_session(harness)
    resp = harness.client.post(
        "/api/provider/maintenance/reauth",
        json={"password": "definitely-wrong"},
        headers=auth_headers(session, csrf=True),
    )
    assert resp.status_code == 401
    assert resp.json()["error"]["code"] == "INVALID_CREDENTIALS"

    me = harness.client.get("/api/auth/me", headers=auth_headers(session))
    assert me.status_code == 200


def test_reauth_demands_otp_when_two_factor_enabled(harness):
    secret = generate_totp_secret()
    with harness.db() as db:
        seed_provider(db, totp_secret=secret)
    session = provider_login(harness.client, otp=generate_totp(secret, time.time()))

    resp = harness.client.post(
        "/api/provider/maintenance/reauth",
        json={"password": PASSWORD},
        headers=auth_headers(session, csrf=True),
    )
    assert resp.status_code == 401
    assert resp.json()["error"]["code"] == "TWO_FACTOR_REQUIRED"

    assert reauth_token(harness.client, session, otp=generate_totp(secret, time.time()))


def test_restart_without_reauth_token_requires_reauth(harness):
    session, _, tenant_id = _provider_session(harness)
    resp = harness.client.post(
        "/api/provider/maintenance/restart/tenant",
        json={"tenant_id": str(tenant_id)},
        headers=auth_headers(session, csrf=True),
    )
    assert resp.status_code == 401
    assert resp.json()["error"]["code"] == "REAUTH_REQUIRED"
    assert not harness.executor.pending


def test_expired_reauth_token_is_distinguished(harness):
    session, provider_id, tenant_id = _provider_session(harness)
    expired = _crafted_reauth(provider_id, exp_offset=-1)

    resp = harness.client.post(
        "/api/provider/maintenance/restart/tenant",
        json={"tenant_id": str(tenant_id)},
        headers=auth_headers(session, csrf=True, reauth=expired),
    )
    assert resp.status_code == 401
    assert resp.json()["error"]["code"] == "REAUTH_EXPIRED"

    me = harness.client.get("/api/auth/me", headers=auth_headers(session))
    assert me.status_code == 200


def test_reauth_token_bound_to_subject_and_scope(harness):
    session, provider_id, tenant_id = _provider_session(harness)
    candidates = [
        _crafted_reauth(uuid4(), exp_offset=60),
        _crafted_reauth(provider_id, exp_offset=60, scope="billing"),
        _crafted_reauth(provider_id, exp_offset=60, typ="access"),
        session["access_token"],
    ]
    for candidate in candidates:
        resp = harness.client.post(
            "/api/provider/maintenance/restart/tenant",
            json={"tenant_id": str(tenant_id)},
            headers=auth_headers(session, csrf=True, reauth=candidate),
        )
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "REAUTH_REQUIRED"


def test_csrf_is_checked_before_reauth(harness):
    session, _, tenant_id = _provider_session(harness)
    token = reauth_token(harness.client, session)
    resp = harness.client.post(
        "/api/provider/maintenance/restart/tenant",
        json={"tenant_id": str(tenant_id)},
        headers=auth_headers(session, reauth=token),
    )
    assert resp.status_code == 403
    assert resp.json()["error"]["code"] == "CSRF_INVALID"


def test_verify_reauth_token_has_no_leeway(api_env):
    user_id = uuid4()
    just_expired = _crafted_reauth(user_id, exp_offset=-1)
    with pytest.raises(HTTPException) as exc:
        verify_reauth_token(just_expired, user_id=user_id)
    assert exc.value.detail["code"] == "REAUTH_EXPIRED"

    token, ttl = issue_reauth_token(user_id)
    assert ttl == get_settings().auth_reauth_token_ttl_seconds
    assert verify_reauth_token(token, user_id=user_id)["sub"] == str(user_id)

    with pytest.raises(HTTPException) as exc:
        verify_reauth_token(None, user_id=user_id)
    assert exc.value.detail["code"] == "REAUTH_REQUIRED"


def test_reauth_ttl_above_two_minutes_is_rejected(monkeypatch, api_env):
    monkeypatch.setenv("FC_AUTH_REAUTH_TOKEN_TTL_SECONDS", "600")
    get_settings.cache_clear()
    with pytest.raises(ValueError):
        get_settings()
