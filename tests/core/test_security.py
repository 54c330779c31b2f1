from __future__ import annotations

from datetime import timedelta

import pytest
from jose import jwt
from pydantic import ValidationError

from app.core.security import AuthenticationError, create_access_token, verify_access_token
from app.core.settings import get_settings
from app.main import create_app


def test_token_round_trip_yields_subject() -> None:
    token = create_access_token(subject="user-123")
    assert verify_access_token(token).user_id == "user-123"


def test_expired_token_is_rejected() -> None:
    token = create_access_token(subject="user-123", expires_delta=timedelta(seconds=-5))
    with pytest.raises(AuthenticationError):
        verify_access_token(token)


def test_token_signed_with_other_secret_is_rejected() -> None:
    settings = get_settings()
    forged = jwt.encode({"sub": "user-123"}, "another-secret", algorithm=settings.auth_algorithm)
    with pytest.raises(AuthenticationError):
        verify_access_token(forged)


@pytest.mark.parametrize("claims", [{}, {"sub": ""}, {"sub": "   "}])
def test_token_without_subject_is_rejected(claims) -> None:
    settings = get_settings()
    token = jwt.encode(claims, settings.auth_secret_key, algorithm=settings.auth_algorithm)
    with pytest.raises(AuthenticationError):
        verify_access_token(token)


@pytest.mark.parametrize("secret", [None, "", "short"])
def test_app_refuses_to_build_without_a_real_auth_secret(
    monkeypatch: pytest.MonkeyPatch, secret: str | None
) -> None:
    monkeypatch.delenv("AUTH_SECRET_KEY", raising=False)
    monkeypatch.delenv("JWT_SECRET", raising=False)
    if secret is not None:
        monkeypatch.setenv("AUTH_SECRET_KEY", secret)
    get_settings.cache_clear()

    with pytest.raises(ValidationError):
        create_app()
