from __future__ import annotations

from datetime import UTC, datetime, timedelta

import jwt
import pytest

from meeting_minutes_agent.common.config import get_settings
from meeting_minutes_agent.common.errors import UnauthorizedError
from meeting_minutes_agent.common.security import parse_api_keys, require_auth


@pytest.fixture()
def auth_settings():
    s = get_settings()
    keys = [
        "app_env",
        "auth_mode",
        "api_keys",
        "jwt_shared_secret",
        "jwt_audience",
        "jwt_role_claim",
        "auth_none_role",
        "auth_none_user_id",
    ]
    snapshot = {k: getattr(s, k) for k in keys}
    try:
        yield s
    finally:
        for k, v in snapshot.items():
            setattr(s, k, v)


def _token(*, secret: str, sub: str = "5", role: str = "secretary", **extra) -> str:
    now = datetime.now(UTC)
    payload = {
        "sub": sub,
        "role": role,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=5)).timestamp()),
        **extra,
    }
    return str(jwt.encode(payload, secret, algorithm="HS256"))


def test_auth_none_mode_uses_configured_identity(auth_settings) -> None:
    auth_settings.app_env = "dev"
    auth_settings.auth_mode = "none"
    auth_settings.auth_none_role = "secretary"
    auth_settings.auth_none_user_id = 3
    ctx = require_auth(authorization=None, x_api_key=None)
    assert ctx.auth_type == "none"
    assert ctx.role == "secretary"
    assert ctx.user_id == 3


def test_auth_none_mode_rejected_in_prod(auth_settings) -> None:
    auth_settings.app_env = "prod"
    auth_settings.auth_mode = "none"
    with pytest.raises(UnauthorizedError):
        require_auth(authorization=None, x_api_key=None)


def test_parse_api_keys_skips_malformed_entries() -> None:
    keys = parse_api_keys("k1:admin:1, bad, k2:wizard:2, k3:official:x, k4:Secretary:4")
    assert set(keys) == {"k1", "k4"}
    assert keys["k4"].role == "secretary"
    assert keys["k4"].user_id == 4


def test_api_key_mode(auth_settings) -> None:
    auth_settings.auth_mode = "api_key"
    auth_settings.api_keys = "k1:admin:1,k2:official:9"
    with pytest.raises(UnauthorizedError):
        require_auth(authorization=None, x_api_key="bad")
    ctx = require_auth(authorization=None, x_api_key="k2")
    assert (ctx.auth_type, ctx.role, ctx.user_id) == ("api_key", "official", 9)


def test_jwt_mode_accepts_valid_token(auth_settings) -> None:
    auth_settings.auth_mode = "jwt"
    auth_settings.jwt_shared_secret = "test-secret"
    auth_settings.jwt_audience = None
    auth_settings.jwt_role_claim = "role"
    token = _token(secret="test-secret")
    ctx = require_auth(authorization=f"Bearer {token}", x_api_key=None)
    assert (ctx.auth_type, ctx.role, ctx.user_id) == ("jwt", "secretary", 5)


def test_jwt_mode_rejects_wrong_secret_and_bad_claims(auth_settings) -> None:
    auth_settings.auth_mode = "jwt"
    auth_settings.jwt_shared_secret = "test-secret"
    auth_settings.jwt_audience = None
    with pytest.raises(UnauthorizedError):
        require_auth(authorization=f"Bearer {_token(secret='other')}", x_api_key=None)
    with pytest.raises(UnauthorizedError):
        require_auth(authorization=f"Bearer {_token(secret='test-secret', sub='abc')}", x_api_key=None)
    with pytest.raises(UnauthorizedError):
        require_auth(authorization=f"Bearer {_token(secret='test-secret', role='x')}", x_api_key=None)
    with pytest.raises(UnauthorizedError):
        require_auth(authorization=None, x_api_key=None)
