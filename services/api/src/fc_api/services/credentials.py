"""凭据存储服务：主体查找、口令与二次验证校验、密码重置与二次验证启停。

登录失败统一返回 ``INVALID_CREDENTIALS``，不向调用方透露是账号不存在、
口令错误、账号禁用还是租户停用。
"""

from datetime import datetime, timedelta, timezone
import hashlib
import logging
import secrets

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from fc_api.core.config import get_settings
from fc_api.errors import (
    account_pending,
    bad_request,
    invalid_credentials,
    not_found,
    reset_token_invalid,
    tenant_hint_required,
    two_factor_required,
)
from fc_api.models.auth import UserCredential
from fc_api.models.base import ensure_utc
from fc_api.models.enums import CredentialStatus, PrincipalStatus, Role, TenantStatus
from fc_api.models.tenant import Tenant, User
from fc_api.services.local_auth import hash_password, verify_password
from fc_api.services.totp import generate_totp_secret, verify_totp

logger = logging.getLogger("fc_api.credentials")


def normalize_email(email: str) -> str:
    """统一邮箱格式，避免大小写差异导致重复账号。"""
    return email.strip().lower()


def _active_credential(db: Session, user: User) -> UserCredential | None:
    return (
        db.execute(
            select(UserCredential)
            .where(UserCredential.user_id == user.id)
            .where(UserCredential.status == CredentialStatus.ACTIVE)
        )
        .scalar_one_or_none()
    )


def find_tenant_by_slug(db: Session, slug: str) -> Tenant | None:
    return db.execute(select(Tenant).where(Tenant.slug == slug.strip().lower())).scalar_one_or_none()


def resolve_tenant(db: Session, query: str) -> Tenant:
    """按短标识或名称解析租户（公开接口使用）。"""
    normalized = query.strip()
    if not normalized:
        raise bad_request("TENANT_QUERY_REQUIRED", "请输入教会标识或名称。", reason="empty_query")
    tenant = (
        db.execute(
            select(Tenant)
            .where(or_(Tenant.slug == normalized.lower(), func.lower(Tenant.name) == normalized.lower()))
            .order_by(Tenant.created_at.asc())
        )
        .scalars()
        .first()
    )
    if tenant is None:
        raise not_found("tenant", "未找到对应教会。")
    if tenant.status != TenantStatus.ACTIVE:
        raise bad_request("TENANT_INACTIVE", "该教会当前不可用。", reason="tenant_inactive")
    return tenant


def _locate_tenant_principal(db: Session, email: str, tenant_hint: str | None) -> tuple[User | None, Tenant | None]:
    if tenant_hint and tenant_hint.strip():
        tenant = find_tenant_by_slug(db, tenant_hint)
        if tenant is None:
            raise not_found("tenant", "未找到对应教会。")
        user = (
            db.execute(
                select(User)
                .where(User.tenant_id == tenant.id)
                .where(User.email == email)
                .where(User.role != Role.SUPER_ADMIN)
            )
            .scalar_one_or_none()
        )
        return user, tenant

    # 未指定租户时，只允许唯一的会友身份直接登录；职员与管理员必须指定租户。
    members = (
        db.execute(
            select(User)
            .where(User.email == email)
            .where(User.tenant_id.is_not(None))
            .where(User.role == Role.MEMBER)
        )
        .scalars()
        .all()
    )
    if len(members) > 1:
        raise tenant_hint_required()
    if not members:
        return None, None
    user = members[0]
    return user, db.get(Tenant, user.tenant_id)


def verify_secret_and_otp(db: Session, user: User, secret: str, otp: str | None) -> UserCredential:
    """校验口令与（已启用时的）二次验证码，返回有效凭据。

    登录与提权共用同一套校验，提权时不依赖会话是否仍然有效。
    """
    credential = _active_credential(db, user)
    if credential is None or not verify_password(secret, credential.password_hash):
        raise invalid_credentials()
    if user.status == PrincipalStatus.PENDING:
        raise account_pending()
    if user.two_factor_enabled:
        if not otp or not otp.strip():
            raise two_factor_required()
        if not verify_totp(credential.totp_secret, otp):
            raise invalid_credentials(require_2fa=True)
    return credential


def authenticate_tenant_principal(
    db: Session,
    *,
    identity: str,
    secret: str,
    tenant_hint: str | None,
    otp: str | None,
) -> User:
    """校验租户内主体（管理员、职员、会友）的登录凭据。"""
    user, tenant = _locate_tenant_principal(db, normalize_email(identity), tenant_hint)
    if user is None or user.status == PrincipalStatus.DISABLED:
        raise invalid_credentials()
    if tenant is None or tenant.status != TenantStatus.ACTIVE:
        raise invalid_credentials()
    verify_secret_and_otp(db, user, secret, otp)
    return user


def find_provider_principal(db: Session, email: str) -> User | None:
    return (
        db.execute(
            select(User)
            .where(User.tenant_id.is_(None))
            .where(User.role == Role.SUPER_ADMIN)
            .where(User.email == normalize_email(email))
        )
        .scalar_one_or_none()
    )


def authenticate_provider_principal(db: Session, *, identity: str, secret: str, otp: str | None) -> User:
    """校验服务商管理员登录凭据（不绑定租户）。"""
    user = find_provider_principal(db, identity)
    if user is None or user.status == PrincipalStatus.DISABLED:
        raise invalid_credentials()
    verify_secret_and_otp(db, user, secret, otp)
    return user


def _hash_reset_token(raw_token: str) -> str:
    return hashlib.sha256(raw_token.encode("utf-8")).hexdigest()


def request_provider_password_reset(db: Session, email: str) -> str | None:
    """为服务商管理员生成重置令牌，返回原始令牌；账号不存在时返回 None。

    数据库只保存令牌摘要，调用方不应根据返回值区分账号是否存在。
    """
    user = find_provider_principal(db, email)
    if user is None or user.status == PrincipalStatus.DISABLED:
        return None
    credential = _active_credential(db, user)
    if credential is None:
        return None

    settings = get_settings()
    raw_token = secrets.token_hex(32)
    credential.reset_token_hash = _hash_reset_token(raw_token)
    credential.reset_token_expires_at = datetime.now(timezone.utc) + timedelta(
        seconds=settings.auth_password_reset_ttl_seconds
    )
    db.flush()
    return raw_token


def reset_provider_password(db: Session, *, token: str, new_password: str) -> User:
    """使用重置令牌修改服务商管理员口令，令牌一次性有效。"""
    token_hash = _hash_reset_token(token.strip())
    credential = (
        db.execute(select(UserCredential).where(UserCredential.reset_token_hash == token_hash))
        .scalar_one_or_none()
    )
    now = datetime.now(timezone.utc)
    if credential is None:
        raise reset_token_invalid()
    expires_at = ensure_utc(credential.reset_token_expires_at)
    if expires_at is None or expires_at <= now:
        credential.reset_token_hash = None
        credential.reset_token_expires_at = None
        db.commit()
        raise reset_token_invalid()

    user = db.get(User, credential.user_id)
    if user is None or user.role != Role.SUPER_ADMIN:
        raise reset_token_invalid()

    credential.password_hash = hash_password(new_password)
    credential.password_updated_at = now
    credential.reset_token_hash = None
    credential.reset_token_expires_at = None
    db.flush()
    logger.info("provider password reset user_id=%s", user.id)
    return user


def begin_two_factor_setup(db: Session, user: User) -> str:
    """生成并暂存新的二次验证密钥，校验通过前不生效。"""
    credential = _active_credential(db, user)
    if credential is None:
        raise invalid_credentials()
    if user.two_factor_enabled:
        raise bad_request("TWO_FACTOR_ALREADY_ENABLED", "二次验证已启用。", reason="two_factor_already_enabled")
    credential.totp_secret = generate_totp_secret()
    db.flush()
    return credential.totp_secret


def confirm_two_factor(db: Session, user: User, otp: str) -> None:
    """校验首个验证码并启用二次验证。"""
    credential = _active_credential(db, user)
    if credential is None or not credential.totp_secret:
        raise bad_request("TWO_FACTOR_NOT_SETUP", "请先初始化二次验证。", reason="two_factor_not_setup")
    if not verify_totp(credential.totp_secret, otp):
        raise invalid_credentials(require_2fa=True)
    user.two_factor_enabled = True
    db.flush()


def disable_two_factor(db: Session, user: User, otp: str) -> None:
    """校验当前验证码后关闭二次验证并清除密钥。"""
    credential = _active_credential(db, user)
    if credential is None or not user.two_factor_enabled:
        raise bad_request("TWO_FACTOR_NOT_ENABLED", "二次验证未启用。", reason="two_factor_not_enabled")
    if not verify_totp(credential.totp_secret, otp):
        raise invalid_credentials(require_2fa=True)
    user.two_factor_enabled = False
    credential.totp_secret = None
    db.flush()
