"""认证接口：登录、登出、会话视图、密码重置与二次验证。"""

from datetime import datetime, timezone
import logging

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from fc_api.core.config import get_settings
from fc_api.core.security import AuthenticatedPrincipal, revoke_token_jti
from fc_api.db.session import get_db
from fc_api.dependencies import SessionContext, get_current_principal, get_session_context, require_capability
from fc_api.models.tenant import User
from fc_api.schemas.auth import (
    AuthLoginData,
    AuthLoginRequest,
    AuthLogoutData,
    AuthMeData,
    ProviderForgotPasswordData,
    ProviderForgotPasswordRequest,
    ProviderLoginRequest,
    ProviderResetPasswordData,
    ProviderResetPasswordRequest,
    TenantResolveData,
    TwoFactorCodeRequest,
    TwoFactorSetupData,
    TwoFactorStatusData,
)
from fc_api.schemas.common import ErrorResponse, SuccessResponse
from fc_api.services.credentials import (
    authenticate_provider_principal,
    authenticate_tenant_principal,
    begin_two_factor_setup,
    confirm_two_factor,
    disable_two_factor,
    request_provider_password_reset,
    reset_provider_password,
    resolve_tenant,
)
from fc_api.services.local_auth import csrf_token_for, issue_access_token
from fc_api.services.permissions import PermissionAction, list_role_actions
from fc_api.services.totp import build_otpauth_uri
from fc_api.utils.response import success

router = APIRouter(prefix="/auth", tags=["auth"])
logger = logging.getLogger("fc_api.auth")

_LOGIN_ERRORS = {
    400: {"model": ErrorResponse},
    401: {"model": ErrorResponse},
    403: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    422: {"model": ErrorResponse},
}


def _issue_session(request: Request, db: Session, user: User) -> dict:
    """签发会话并返回登录结果，不在服务端保存会话记录。"""
    token, jti, exp_ts, expires_at = issue_access_token(user)
    user.last_login_at = datetime.now(timezone.utc)
    db.commit()
    logger.info("session issued user_id=%s role=%s tenant_id=%s", user.id, user.role, user.tenant_id)
    return success(
        request,
        {
            "access_token": token,
            "token_type": "bearer",
            "csrf_token": csrf_token_for(jti),
            "role": user.role,
            "tenant_id": user.tenant_id,
            "expires_at": expires_at,
            "expires_in": max(0, exp_ts - int(datetime.now(timezone.utc).timestamp())),
        },
    )


@router.post(
    "/login",
    summary="教会账号登录",
    description=(
        "管理员与职员需提供 tenant_hint；会友仅在邮箱唯一对应一个教会时可省略。"
        "已启用二次验证且未提交 otp 时返回 TWO_FACTOR_REQUIRED。"
    ),
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[AuthLoginData],
    responses=_LOGIN_ERRORS,
)
def login(payload: AuthLoginRequest, request: Request, db: Session = Depends(get_db)):
    """校验凭据并签发绑定租户的会话令牌。"""
    user = authenticate_tenant_principal(
        db,
        identity=payload.identity,
        secret=payload.secret,
        tenant_hint=payload.tenant_hint,
        otp=payload.otp,
    )
    return _issue_session(request, db, user)


@router.post(
    "/provider-login",
    summary="服务商管理员登录",
    description="签发不绑定租户的服务商会话。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[AuthLoginData],
    responses=_LOGIN_ERRORS,
)
def provider_login(payload: ProviderLoginRequest, request: Request, db: Session = Depends(get_db)):
    user = authenticate_provider_principal(db, identity=payload.identity, secret=payload.secret, otp=payload.otp)
    return _issue_session(request, db, user)


@router.post(
    "/provider-forgot-password",
    summary="服务商管理员申请重置密码",
    description="无论账号是否存在都返回 ok；非生产环境在响应中附带重置链接。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[ProviderForgotPasswordData],
    responses={422: {"model": ErrorResponse}},
)
def provider_forgot_password(
    payload: ProviderForgotPasswordRequest,
    request: Request,
    db: Session = Depends(get_db),
):
    settings = get_settings()
    raw_token = request_provider_password_reset(db, payload.email)
    db.commit()
    data: dict[str, object] = {"status": "ok"}
    if raw_token:
        reset_url = f"{settings.frontend_base_url.rstrip('/')}/provider/reset-password?token={raw_token}"
        if settings.is_production:
            logger.info("provider password reset requested")
        else:
            logger.info("provider password reset url=%s", reset_url)
            data["reset_url"] = reset_url
    return success(request, data)


@router.post(
    "/provider-reset-password",
    summary="服务商管理员重置密码",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[ProviderResetPasswordData],
    responses={400: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
def provider_reset_password(
    payload: ProviderResetPasswordRequest,
    request: Request,
    db: Session = Depends(get_db),
):
    reset_provider_password(db, token=payload.token, new_password=payload.new_password)
    db.commit()
    return success(request, {"status": "password_reset"})


@router.post(
    "/logout",
    summary="登出",
    description="将当前会话令牌加入黑名单（优先 Redis），已登出的 token 立即失效。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[AuthLogoutData],
    responses={401: {"model": ErrorResponse}},
)
def logout(request: Request, principal: AuthenticatedPrincipal = Depends(get_current_principal)):
    """登出并拉黑当前会话令牌。"""
    revoke_token_jti(principal.jti, principal.exp)
    return success(request, {"logged_out": True, "revoked": True})


@router.get(
    "/me",
    summary="获取当前会话",
    description="返回会话主体、角色、绑定租户与可执行能力。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[AuthMeData],
    responses={401: {"model": ErrorResponse}, 403: {"model": ErrorResponse}},
)
def me(request: Request, ctx: SessionContext = Depends(get_session_context)):
    user = ctx.user
    return success(
        request,
        {
            "user_id": user.id,
            "email": user.email,
            "display_name": user.display_name,
            "role": ctx.role,
            "tenant_id": ctx.tenant_id,
            "two_factor_enabled": user.two_factor_enabled,
            "expires_at": datetime.fromtimestamp(ctx.principal.exp, tz=timezone.utc),
            "allowed_actions": list_role_actions(ctx.role),
        },
    )


@router.get(
    "/tenant-resolve",
    summary="解析教会",
    description="公开接口：按短标识或名称解析教会，供登录页确定 tenant_hint。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[TenantResolveData],
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
def tenant_resolve(
    request: Request,
    q: str = Query(min_length=1, max_length=128, description="教会短标识或名称。"),
    db: Session = Depends(get_db),
):
    tenant = resolve_tenant(db, q)
    return success(request, {"tenant_id": tenant.id, "name": tenant.name, "slug": tenant.slug})


@router.post(
    "/2fa/setup",
    summary="初始化二次验证",
    description="为特权角色生成 TOTP 密钥，需调用 verify 后才生效。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[TwoFactorSetupData],
    responses={400: {"model": ErrorResponse}, 401: {"model": ErrorResponse}, 403: {"model": ErrorResponse}},
)
def two_factor_setup(
    request: Request,
    ctx: SessionContext = Depends(require_capability(PermissionAction.TWO_FACTOR_MANAGE, csrf=True)),
    db: Session = Depends(get_db),
):
    user = ctx.user
    secret = begin_two_factor_setup(db, user)
    db.commit()
    uri = build_otpauth_uri(secret=secret, account=user.email, issuer=get_settings().auth_totp_issuer)
    return success(request, {"secret": secret, "otpauth_uri": uri})


@router.post(
    "/2fa/verify",
    summary="启用二次验证",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[TwoFactorStatusData],
    responses={400: {"model": ErrorResponse}, 401: {"model": ErrorResponse}, 403: {"model": ErrorResponse}},
)
def two_factor_verify(
    payload: TwoFactorCodeRequest,
    request: Request,
    ctx: SessionContext = Depends(require_capability(PermissionAction.TWO_FACTOR_MANAGE, csrf=True)),
    db: Session = Depends(get_db),
):
    user = ctx.user
    confirm_two_factor(db, user, payload.otp)
    db.commit()
    return success(request, {"two_factor_enabled": True})


@router.post(
    "/2fa/disable",
    summary="关闭二次验证",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[TwoFactorStatusData],
    responses={400: {"model": ErrorResponse}, 401: {"model": ErrorResponse}, 403: {"model": ErrorResponse}},
)
def two_factor_disable(
    payload: TwoFactorCodeRequest,
    request: Request,
    ctx: SessionContext = Depends(require_capability(PermissionAction.TWO_FACTOR_MANAGE, csrf=True)),
    db: Session = Depends(get_db),
):
    user = ctx.user
    disable_two_factor(db, user, payload.otp)
    db.commit()
    return success(request, {"two_factor_enabled": False})
