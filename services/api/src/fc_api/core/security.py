"""会话令牌解析、校验与吊销工具。"""
from dataclasses import dataclass
from datetime import datetime, timezone
import re
from threading import Lock
from typing import Any
from uuid import UUID

import jwt
from jwt import ExpiredSignatureError, InvalidTokenError
from redis import Redis
from redis.exceptions import RedisError

from fc_api.core.config import get_settings
from fc_api.errors import token_unauthorized

ACCESS_TOKEN_TYPE = "access"

_LOCAL_BLACKLIST: dict[str, int] = {}
_LOCAL_LOCK = Lock()
_redis_client: Redis | None = None


@dataclass
class AuthenticatedPrincipal:
    """会话令牌中携带的认证主体。"""

    # 主体用户 ID（sub）。
    user_id: UUID
    # 签发时的角色。
    role: str
    # 绑定租户，服务商会话为空；令牌有效期内不可变。
    tenant_id: UUID | None
    # 令牌唯一标识，用于登出吊销与防伪令牌派生。
    jti: str
    # 过期时间戳（秒）。
    exp: int
    # 认证提供方。
    provider: str
    email: str | None
    display_name: str | None
    # 原始声明集。
    claims: dict[str, Any]


def _decode_jwt(token: str) -> dict[str, Any]:
    """按配置解码并校验会话令牌，失败时区分过期与无效。"""
    settings = get_settings()
    options = {"verify_signature": True, "verify_aud": bool(settings.auth_jwt_audience), "require": ["exp", "sub"]}
    try:
        return jwt.decode(
            token,
            key=settings.auth_jwt_secret,
            algorithms=settings.auth_algorithms,
            issuer=settings.auth_jwt_issuer,
            audience=settings.auth_jwt_audience,
            leeway=settings.auth_jwt_leeway_seconds,
            options=options,
        )
    except ExpiredSignatureError as exc:
        raise token_unauthorized("token_expired") from exc
    except InvalidTokenError as exc:
        raise token_unauthorized("token_invalid") from exc


def _cleanup_local(now_ts: int) -> None:
    expired_keys = [key for key, expires_at in _LOCAL_BLACKLIST.items() if expires_at <= now_ts]
    for key in expired_keys:
        _LOCAL_BLACKLIST.pop(key, None)


def get_redis() -> Redis | None:
    """返回共享 Redis 客户端，未配置时返回 None。"""
    global _redis_client
    settings = get_settings()
    if not settings.redis_url:
        return None
    if _redis_client is None:
        _redis_client = Redis.from_url(settings.redis_url, decode_responses=True)
    return _redis_client


def reset_local_state() -> None:
    """清空进程内黑名单与 Redis 客户端缓存（测试与配置变更后使用）。"""
    global _redis_client
    with _LOCAL_LOCK:
        _LOCAL_BLACKLIST.clear()
    _redis_client = None


def _key_for_jti(jti: str) -> str:
    settings = get_settings()
    return f"{settings.auth_token_blacklist_prefix}{jti}"


def revoke_token_jti(jti: str, exp_ts: int) -> None:
    """将 token jti 拉黑到令牌过期时间。"""
    now_ts = int(datetime.now(timezone.utc).timestamp())
    ttl = max(1, exp_ts - now_ts)
    redis_client = get_redis()
    if redis_client is not None:
        try:
            redis_client.setex(_key_for_jti(jti), ttl, "1")
            return
        except RedisError:
            # Redis 不可用时回退到本地缓存。
            pass

    with _LOCAL_LOCK:
        _cleanup_local(now_ts)
        _LOCAL_BLACKLIST[jti] = exp_ts


def is_token_jti_revoked(jti: str) -> bool:
    """判断 token jti 是否已被拉黑。"""
    redis_client = get_redis()
    if redis_client is not None:
        try:
            return bool(redis_client.exists(_key_for_jti(jti)))
        except RedisError:
            pass

    now_ts = int(datetime.now(timezone.utc).timestamp())
    with _LOCAL_LOCK:
        _cleanup_local(now_ts)
        expires_at = _LOCAL_BLACKLIST.get(jti)
        return expires_at is not None and expires_at > now_ts


def _is_placeholder_token(token: str) -> bool:
    return ("{{" in token and "}}" in token) or ("${" in token and "}" in token)


def extract_bearer_token(authorization: str | None) -> str:
    """从 Authorization 头中提取 Bearer token，兼容重复头被逗号拼接的场景。"""
    if not authorization:
        raise token_unauthorized("missing_token")
    tokens = re.findall(r"Bearer\s+([^,\s]+)", authorization, flags=re.IGNORECASE)
    for candidate in reversed(tokens):
        token = candidate.strip()
        if token and not _is_placeholder_token(token):
            return token
    raise token_unauthorized("missing_token")


def _parse_uuid(value: Any) -> UUID | None:
    if not isinstance(value, str) or not value:
        return None
    try:
        return UUID(value)
    except ValueError:
        return None


def parse_access_token(token: str) -> AuthenticatedPrincipal:
    """校验会话令牌并返回认证主体。

    依次校验签名与有效期、令牌类型、吊销状态与必要声明。
    """
    claims = _decode_jwt(token)
    if claims.get("typ") != ACCESS_TOKEN_TYPE:
        raise token_unauthorized("token_invalid")

    jti = claims.get("jti")
    if not isinstance(jti, str) or not jti:
        raise token_unauthorized("token_invalid")
    if is_token_jti_revoked(jti):
        raise token_unauthorized("token_revoked")

    user_id = _parse_uuid(claims.get("sub"))
    role = claims.get("role")
    if user_id is None or not isinstance(role, str) or not role:
        raise token_unauthorized("token_invalid")

    raw_tenant = claims.get("tenant_id")
    tenant_id = _parse_uuid(raw_tenant)
    if raw_tenant is not None and tenant_id is None:
        raise token_unauthorized("token_invalid")

    email = claims.get("email")
    display_name = claims.get("name")
    provider = claims.get("provider")
    return AuthenticatedPrincipal(
        user_id=user_id,
        role=role,
        tenant_id=tenant_id,
        jti=jti,
        exp=int(claims["exp"]),
        provider=str(provider if isinstance(provider, str) and provider else (claims.get("iss") or "jwt")),
        email=email if isinstance(email, str) else None,
        display_name=display_name if isinstance(display_name, str) else None,
        claims=claims,
    )


def parse_authorization_header(authorization: str | None) -> AuthenticatedPrincipal:
    """解析认证头并返回认证主体。"""
    return parse_access_token(extract_bearer_token(authorization))
