from datetime import datetime, timedelta, timezone
import time
from urllib.parse import parse_qs, urlparse

from sqlalchemy import select

from api_testkit import PASSWORD, auth_headers, login, provider_login, seed_provider, seed_tenant, seed_user
from fc_api.core.config import get_settings
from fc_api.models.auth import UserCredential
from fc_api.models.enums import Role
from fc_api.services.totp import build_otpauth_uri, generate_totp, verify_totp

# RFC 6238 附录 B 的 SHA1 测试密钥 "12345678901234567890"。
RFC_SECRET = "GEZDGNBVGY3TQOJQGEZDGNBVGY3TQOJQ"


def test_totp_matches_reference_vectors():
    assert generate_totp(RFC_SECRET, 59) == "287082"
    assert generate_totp(RFC_SECRET, 1111111109) == "081804"
    assert generate_totp(RFC_SECRET, 1234567890) == "005924"


def test_totp_accepts_one_step_of_drift_only():
    now = 1234567890
    assert verify_totp(RFC_SECRET, generate_totp(RFC_SECRET, now - 30), now=now)
    assert verify_totp(RFC_SECRET, generate_totp(RFC_SECRET, now + 30), now=now)
    assert not verify_totp(RFC_SECRET, generate_totp(RFC_SECRET, now - 90), now=now)
    assert not verify_totp(RFC_SECRET, "12345", now=now)
    assert not verify_totp(None, "123456", now=now)
    assert generate_totp("not base32!", now) == ""


def test_otpauth_uri_contains_issuer_and_secret():
    uri = build_otpauth_uri(secret=RFC_SECRET, account="ops@example.com", issuer="FaithConnect")
    parsed = urlparse(uri)
    assert parsed.scheme == "otpauth"
    query = parse_qs(parsed.query)
    assert query["secret"] == [RFC_SECRET]
    assert query["issuer"] == ["FaithConnect"]


def test_two_factor_enrolment_round_trip(harness):
    with harness.db() as db:
        tenant = seed_tenant(db, slug="grace")
        seed_user(db, email="admin@grace.org", role=Role.TENANT_ADMIN, tenant_id=tenant.id)
    session = login(harness.client, identity="admin@grace.org", tenant_hint="grace")

    setup = harness.client.post("/api/auth/2fa/setup", headers=auth_headers(session, csrf=True))
    assert setup.status_code == 200, setup.text
    secret = setup.json()["data"]["secret"]
    assert secret in setup.json()["data"]["otpauth_uri"]

    # 未确认前登录不要求验证码。
    login(harness.client, identity="admin@grace.org", tenant_hint="grace")

    verify = harness.client.post(
        "/api/auth/2fa/verify",
        json={"otp": generate_totp(secret, time.time())},
        headers=auth_headers(session, csrf=True),
    )
    assert verify.status_code == 200
    assert verify.json()["data"] == {"two_factor_enabled": True}

    again = harness.client.post("/api/auth/2fa/setup", headers=auth_headers(session, csrf=True))
    assert again.json()["error"]["code"] == "TWO_FACTOR_ALREADY_ENABLED"

    no_otp = harness.client.post(
        "/api/auth/login",
        json={"identity": "admin@grace.org", "secret": PASSWORD, "tenant_hint": "grace"},
    )
    assert no_otp.json()["error"]["code"] == "TWO_FACTOR_REQUIRED"

    disable = harness.client.post(
        "/api/auth/2fa/disable",
        json={"otp": generate_totp(secret, time.time())},
        headers=auth_headers(session, csrf=True),
    )
    assert disable.status_code == 200
    login(harness.client, identity="admin@grace.org", tenant_hint="grace")


def test_members_cannot_manage_two_factor(harness):
    with harness.db() as db:
        tenant = seed_tenant(db, slug="grace")
        seed_user(db, email="member@grace.org", role=Role.MEMBER, tenant_id=tenant.id)
    session = login(harness.client, identity="member@grace.org")

    resp = harness.client.post("/api/auth/2fa/setup", headers=auth_headers(session, csrf=True))
    assert resp.status_code == 403


def test_provider_password_reset_flow(harness):
    with harness.db() as db:
        seed_provider(db)

    unknown = harness.client.post("/api/auth/provider-forgot-password", json={"email": "nobody@example.com"})
    assert unknown.status_code == 200
    assert unknown.json()["data"]["status"] == "ok"
    assert unknown.json()["data"].get("reset_url") is None

    resp = harness.client.post("/api/auth/provider-forgot-password", json={"email": "OPS@example.com"})
    assert resp.status_code == 200
    reset_url = resp.json()["data"]["reset_url"]
    assert reset_url.startswith(f"{get_settings().frontend_base_url}/provider/reset-password?token=")
    token = parse_qs(urlparse(reset_url).query)["token"][0]

    with harness.db() as db:
        credential = db.execute(select(UserCredential)).scalar_one()
        assert credential.reset_token_hash and credential.reset_token_hash != token

    reset = harness.client.post(
        "/api/auth/provider-reset-password",
        json={"token": token, "new_password": "BrandNewPassw0rd"},
    )
    assert reset.status_code == 200, reset.text

    reused = harness.client.post(
        "/api/auth/provider-reset-password",
        json={"token": token, "new_password": "AnotherPassw0rd"},
    )
    assert reused.status_code == 400

    old = harness.client.post("/api/auth/provider-login", json={"identity": "ops@example.com", "secret": PASSWORD})
    assert old.status_code == 401
    new = harness.client.post(
        "/api/auth/provider-login",
        json={"identity": "ops@example.com", "secret": "BrandNewPassw0rd"},
    )
    assert new.status_code == 200


def test_expired_reset_token_is_rejected_and_cleared(harness):
    with harness.db() as db:
        seed_provider(db)
    resp = harness.client.post("/api/auth/provider-forgot-password", json={"email": "ops@example.com"})
    token = parse_qs(urlparse(resp.json()["data"]["reset_url"]).query)["token"][0]

    with harness.db() as db:
        credential = db.execute(select(UserCredential)).scalar_one()
        credential.reset_token_expires_at = datetime.now(timezone.utc) - timedelta(seconds=1)
        db.commit()

    expired = harness.client.post(
        "/api/auth/provider-reset-password",
        json={"token": token, "new_password": "BrandNewPassw0rd"},
    )
    assert expired.status_code == 400
    with harness.db() as db:
        assert db.execute(select(UserCredential)).scalar_one().reset_token_hash is None
    assert provider_login(harness.client)["access_token"]


def test_reset_url_is_hidden_in_production(harness, monkeypatch):
    monkeypatch.setenv("FC_APP_ENV", "production")
    get_settings.cache_clear()
    with harness.db() as db:
        seed_provider(db)

    resp = harness.client.post("/api/auth/provider-forgot-password", json={"email": "ops@example.com"})
    assert resp.status_code == 200
    assert resp.json()["data"].get("reset_url") is None
