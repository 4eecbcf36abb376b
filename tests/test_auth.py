"""Tests for bearer-token authentication."""

import time

import pytest
from jose import jwt

from src.errors import InvalidCredential
from src.web.auth import LOCAL_USER, bearer_token, resolve_user, verify_token

SECRET = "test-secret"


def _token(secret: str = SECRET, **claims) -> str:
    claims.setdefault("sub", "user-123")
    claims.setdefault("aud", "authenticated")
    claims.setdefault("exp", int(time.time()) + 3600)
    return jwt.encode(claims, secret, algorithm="HS256")


@pytest.fixture
def auth_on(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("src.config.settings.auth_jwt_secret", SECRET)
    monkeypatch.setattr("src.config.settings.auth_jwt_audience", "authenticated")


def test_bearer_token_parsing() -> None:
    assert bearer_token("Bearer abc") == "abc"
    assert bearer_token("bearer  abc ") == "abc"
    assert bearer_token("Basic abc") is None
    assert bearer_token("Bearer ") is None
    assert bearer_token(None) is None


def test_verify_token_returns_subject() -> None:
    assert verify_token(_token(), SECRET, "authenticated") == "user-123"


def test_verify_token_without_audience_check() -> None:
    assert verify_token(_token(aud="other"), SECRET) == "user-123"


def test_verify_token_wrong_secret() -> None:
    with pytest.raises(InvalidCredential):
        verify_token(_token(secret="nope"), SECRET, "authenticated")


def test_verify_token_expired() -> None:
    with pytest.raises(InvalidCredential):
        verify_token(_token(exp=int(time.time()) - 60), SECRET, "authenticated")


def test_verify_token_wrong_audience() -> None:
    with pytest.raises(InvalidCredential):
        verify_token(_token(aud="someone-else"), SECRET, "authenticated")


def test_verify_token_requires_subject() -> None:
    token = jwt.encode({"aud": "authenticated"}, SECRET, algorithm="HS256")
    with pytest.raises(InvalidCredential, match="no subject"):
        verify_token(token, SECRET, "authenticated")


def test_dev_mode_is_local_user() -> None:
    assert resolve_user(None) == LOCAL_USER
    assert resolve_user("Bearer garbage") == LOCAL_USER


def test_auth_mode_resolves_token(auth_on) -> None:
    assert resolve_user(f"Bearer {_token()}") == "user-123"
    assert resolve_user(None) is None


def test_auth_mode_rejects_bad_token(auth_on) -> None:
    with pytest.raises(InvalidCredential):
        resolve_user("Bearer garbage")
