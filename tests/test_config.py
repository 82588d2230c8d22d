"""Tests for core/config.py -- SECRET_KEY policy and environment loading."""

import pytest
from pydantic import ValidationError

from core.config import Settings

GOOD_KEY = "k" * 32


def test_missing_key_in_production_refuses_to_start(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("SECRET_KEY", raising=False)
    with pytest.raises(ValidationError, match="SECRET_KEY is required"):
        Settings(debug=False, secret_key="", _env_file=None)


def test_missing_key_in_debug_is_generated() -> None:
    settings = Settings(debug=True, secret_key="", _env_file=None)
    assert len(settings.secret_key) == 64


def test_short_key_is_rejected() -> None:
    with pytest.raises(ValidationError, match="at least 32 characters"):
        Settings(secret_key="too-short", _env_file=None)


def test_bcrypt_rounds_must_be_in_range() -> None:
    with pytest.raises(ValidationError, match="BCRYPT_ROUNDS"):
        Settings(secret_key=GOOD_KEY, bcrypt_rounds=3, _env_file=None)


def test_defaults() -> None:
    settings = Settings(secret_key=GOOD_KEY, _env_file=None)
    assert settings.bcrypt_rounds == 10
    assert settings.min_password_length == 6
    assert settings.token_expire_seconds == 30 * 24 * 60 * 60
    assert settings.rate_limit_enabled is True


def test_values_come_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SECRET_KEY", GOOD_KEY)
    monkeypatch.setenv("MIN_PASSWORD_LENGTH", "8")
    monkeypatch.setenv("ALLOWED_HOSTS", '["auth.example.com"]')
    settings = Settings(_env_file=None)
    assert settings.secret_key == GOOD_KEY
    assert settings.min_password_length == 8
    assert settings.allowed_hosts == ["auth.example.com"]
