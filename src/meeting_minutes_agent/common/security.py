"""
Утилиты безопасности и авторизации.

Поддерживаемые режимы (AUTH_MODE):
- api_key - проверка X-API-Key; ключ несёт роль и id пользователя
- jwt     - Bearer JWT (PyJWT, shared secret); sub = id пользователя
- none    - без авторизации (ТОЛЬКО dev)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import jwt

from meeting_minutes_agent.domain.enums import UserRole

from .config import get_settings
from .errors import UnauthorizedError


@dataclass(frozen=True)
class AuthContext:
    user_id: int
    role: str
    auth_type: str
    claims: dict[str, Any] | None = None

    @property
    def subject(self) -> str:
        return f"user:{self.user_id}"


@dataclass(frozen=True)
class ApiKeyEntry:
    key: str
    role: str
    user_id: int


def _valid_role(raw: str) -> str:
    role = (raw or "").strip().lower()
    if role not in {r.value for r in UserRole}:
        raise UnauthorizedError("Неизвестная роль", {"role": role})
    return role


def parse_api_keys(raw: str) -> dict[str, ApiKeyEntry]:
    """
    API_KEYS="key1:admin:1,key2:secretary:2". Некорректные записи пропускаются.
    """
    out: dict[str, ApiKeyEntry] = {}
    for item in (raw or "").split(","):
        parts = [p.strip() for p in item.split(":")]
        if len(parts) != 3 or not parts[0]:
            continue
        key, role, user_id = parts
        if role.lower() not in {r.value for r in UserRole} or not user_id.isdigit():
            continue
        out[key] = ApiKeyEntry(key=key, role=role.lower(), user_id=int(user_id))
    return out


def _jwt_algorithms(raw: str) -> list[str]:
    algos = [a.strip() for a in (raw or "").split(",") if a.strip()]
    return algos or ["HS256"]


def _extract_bearer(authorization: str | None) -> str | None:
    if not authorization:
        return None
    prefix = "bearer "
    if authorization.lower().startswith(prefix):
        return authorization[len(prefix) :].strip()
    return None


def _is_prod_env(app_env: str | None) -> bool:
    env = (app_env or "").strip().lower()
    return env in {"prod", "production"}


def _verify_jwt(token: str) -> dict[str, Any]:
    s = get_settings()
    secret = (s.jwt_shared_secret or "").strip()
    if not secret:
        raise UnauthorizedError("JWT не настроен: укажи JWT_SHARED_SECRET")

    audience = s.jwt_audience
    kwargs: dict[str, Any] = {
        "algorithms": _jwt_algorithms(s.jwt_algorithms),
        "options": {"verify_aud": bool(audience), "require": ["sub"]},
        "leeway": int(s.jwt_clock_skew_sec or 0),
    }
    if audience:
        kwargs["audience"] = audience

    try:
        return jwt.decode(token, secret, **kwargs)
    except jwt.PyJWTError as e:
        raise UnauthorizedError("JWT не прошёл проверку", {"err": str(e)}) from e


def _context_from_claims(claims: dict[str, Any]) -> AuthContext:
    s = get_settings()
    sub = str(claims.get("sub") or "").strip()
    if not sub.isdigit():
        raise UnauthorizedError("JWT sub должен быть id пользователя")
    role = _valid_role(str(claims.get(s.jwt_role_claim) or ""))
    return AuthContext(user_id=int(sub), role=role, auth_type="jwt", claims=claims)


def require_auth(*, authorization: str | None, x_api_key: str | None) -> AuthContext:
    """
    Универсальная проверка авторизации:
    - AUTH_MODE=none: без проверки (dev), роль/пользователь из AUTH_NONE_*
    - AUTH_MODE=api_key: только X-API-Key
    - AUTH_MODE=jwt: Bearer JWT
    """
    settings = get_settings()
    mode = (settings.auth_mode or "api_key").lower().strip()

    if mode == "none":
        if _is_prod_env(settings.app_env):
            raise UnauthorizedError("AUTH_MODE=none запрещён в APP_ENV=prod")
        return AuthContext(
            user_id=int(settings.auth_none_user_id),
            role=_valid_role(settings.auth_none_role),
            auth_type="none",
        )

    if mode == "api_key":
        entry = parse_api_keys(settings.api_keys).get((x_api_key or "").strip())
        if entry is None:
            raise UnauthorizedError("Неверный API ключ")
        return AuthContext(user_id=entry.user_id, role=entry.role, auth_type="api_key")

    if mode != "jwt":
        raise UnauthorizedError("Неизвестный режим авторизации")

    token = _extract_bearer(authorization)
    if not token:
        raise UnauthorizedError("Нужен Bearer токен")
    return _context_from_claims(_verify_jwt(token))
