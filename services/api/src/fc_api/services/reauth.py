"""提权令牌签发与校验。

提权令牌与会话令牌使用不同密钥与类型，服务端不存储；
有效期以秒计且上限为两分钟，校验时不留时钟容错。
"""

from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import UUID, uuid4

import jwt
from jwt import ExpiredSignatureError, InvalidTokenError

from fc_api.core.config import get_settings
from fc_api.errors import reauth_expired, reauth_required

REAUTH_TOKEN_TYPE = "reauth"
MAINTENANCE_SCOPE = "maintenance"


def issue_reauth_token(user_id: UUID, *, scope: str = MAINTENANCE_SCOPE) -> tuple[str, int]:
    """签发提权令牌，返回 ``(token, expires_in_sec)``。"""
    settings = get_settings()
    ttl = settings.auth_reauth_token_ttl_seconds
    now = datetime.now(timezone.utc)
    claims: dict[str, Any] = {
        "sub": str(user_id),
        "scope": scope,
        "typ": REAUTH_TOKEN_TYPE,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(seconds=ttl)).timestamp()),
        "jti": str(uuid4()),
    }
    token = jwt.encode(claims, settings.reauth_secret, algorithm=settings.auth_algorithms[0])
    return token, ttl


def verify_reauth_token(token: str | None, *, user_id: UUID, scope: str = MAINTENANCE_SCOPE) -> dict[str, Any]:
    """校验提权令牌。

    缺失、签名错误、主体或作用域不符均视为需要提权；仅过期单独区分。
    """
    if not token or not token.strip():
        raise reauth_required()
    settings = get_settings()
    try:
        claims = jwt.decode(
            token.strip(),
            key=settings.reauth_secret,
            algorithms=settings.auth_algorithms,
            leeway=0,
            options={"require": ["exp", "sub", "scope", "typ"]},
        )
    except ExpiredSignatureError as exc:
        raise reauth_expired() from exc
    except InvalidTokenError as exc:
        raise reauth_required() from exc

    if claims.get("typ") != REAUTH_TOKEN_TYPE:
        raise reauth_required()
    if claims.get("sub") != str(user_id) or claims.get("scope") != scope:
        raise reauth_required()
    return claims
