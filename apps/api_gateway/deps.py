"""
FastAPI Depends.

Сюда выносим:
- проверку авторизации (Bearer JWT / X-API-Key) с аудит-логом
- проверку роли
- доступ к контейнеру сервисов
- маппинг AppError -> HTTP статус
"""

from __future__ import annotations

from collections.abc import Callable

from fastapi import Depends, Header, HTTPException, Request, status

from meeting_minutes_agent.common.errors import AppError, ErrCode, UnauthorizedError
from meeting_minutes_agent.common.logging import get_project_logger
from meeting_minutes_agent.common.security import AuthContext, require_auth
from meeting_minutes_agent.domain.enums import UserRole
from meeting_minutes_agent.services.container import ServiceContainer

log = get_project_logger()

MANAGE_ROLES = (UserRole.admin.value, UserRole.secretary.value)

_STATUS_BY_CODE = {
    ErrCode.VALIDATION: status.HTTP_400_BAD_REQUEST,
    ErrCode.BAD_INPUT: status.HTTP_400_BAD_REQUEST,
    ErrCode.UNAUTHORIZED: status.HTTP_401_UNAUTHORIZED,
    ErrCode.FORBIDDEN: status.HTTP_403_FORBIDDEN,
    ErrCode.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrCode.SESSION_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrCode.CONFLICT: status.HTTP_409_CONFLICT,
    ErrCode.INVALID_STATE: status.HTTP_409_CONFLICT,
    ErrCode.ALREADY_ACTIVE: status.HTTP_409_CONFLICT,
    ErrCode.STT_PROVIDER_ERROR: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrCode.LLM_PROVIDER_ERROR: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrCode.DELIVERY_PROVIDER_ERROR: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrCode.REDIS_ERROR: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrCode.DB_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def http_status_for(err: AppError) -> int:
    return _STATUS_BY_CODE.get(err.code, status.HTTP_500_INTERNAL_SERVER_ERROR)


def error_detail(err: AppError) -> dict:
    return {
        "code": err.code,
        "message": err.message,
        "retryable": bool(err.retryable),
        "details": err.details or {},
    }


def _request_meta(request: Request | None) -> tuple[str, str, str | None]:
    if request is None:
        return "unknown", "UNKNOWN", None
    endpoint = request.url.path
    method = request.method
    client_ip = request.client.host if request.client else None
    return endpoint, method, client_ip


def _audit_allow(*, request: Request | None, ctx: AuthContext) -> None:
    endpoint, method, client_ip = _request_meta(request)
    log.info(
        "security_audit_allow",
        extra={
            "payload": {
                "endpoint": endpoint,
                "method": method,
                "subject": ctx.subject,
                "role": ctx.role,
                "auth_type": ctx.auth_type,
                "client_ip": client_ip,
            }
        },
    )


def _audit_deny(
    *,
    request: Request | None,
    status_code: int,
    reason: str,
    error_code: str,
    ctx: AuthContext | None = None,
) -> None:
    endpoint, method, client_ip = _request_meta(request)
    log.warning(
        "security_audit_deny",
        extra={
            "payload": {
                "endpoint": endpoint,
                "method": method,
                "status_code": status_code,
                "reason": reason,
                "error_code": error_code,
                "auth_type": ctx.auth_type if ctx else "unknown",
                "subject": ctx.subject if ctx else "unknown",
                "client_ip": client_ip,
            }
        },
    )


def auth_dep(
    request: Request,
    authorization: str | None = Header(default=None, alias="Authorization"),
    x_api_key: str | None = Header(default=None, alias="X-API-Key"),
) -> AuthContext:
    """
    Проверка авторизации для HTTP.
    """
    try:
        ctx = require_auth(authorization=authorization, x_api_key=x_api_key)
    except UnauthorizedError as e:
        _audit_deny(
            request=request,
            status_code=status.HTTP_401_UNAUTHORIZED,
            reason=e.message,
            error_code=e.code,
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=error_detail(e),
            headers={"WWW-Authenticate": "Bearer"},
        ) from e
    _audit_allow(request=request, ctx=ctx)
    return ctx


def require_roles(*roles: str) -> Callable[..., AuthContext]:
    allowed = set(roles)

    def _dep(request: Request, ctx: AuthContext = Depends(auth_dep)) -> AuthContext:
        if ctx.role in allowed:
            return ctx
        _audit_deny(
            request=request,
            status_code=status.HTTP_403_FORBIDDEN,
            reason="role_not_allowed",
            error_code=ErrCode.FORBIDDEN,
            ctx=ctx,
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "code": ErrCode.FORBIDDEN,
                "message": "Недостаточно прав",
                "retryable": False,
                "details": {"role": ctx.role, "allowed": sorted(allowed)},
            },
        )

    return _dep


manage_dep = require_roles(*MANAGE_ROLES)


def get_services(request: Request) -> ServiceContainer:
    return request.app.state.services
