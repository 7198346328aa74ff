"""
tests/test_config.py -- Unit tests for Settings (pydantic-settings).

Covers:
  - DEBUG=true without SECRET_KEY auto-generates a usable key
  - production mode refuses to start without SECRET_KEY
  - short keys are rejected in both modes
  - token lifetimes and bcrypt rounds come from the environment
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from core.config import Settings


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    for name in ("SECRET_KEY", "DEBUG", "ACCESS_TOKEN_EXPIRE_MINUTES", "REFRESH_TOKEN_EXPIRE_DAYS", "BCRYPT_ROUNDS"):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def test_debug_generates_secret_key(clean_env: pytest.MonkeyPatch) -> None:
    """DEBUG mode without SECRET_KEY generates a key long enough to sign with."""
    clean_env.setenv("DEBUG", "true")
    settings = Settings(_env_file=None)
    assert len(settings.secret_key) >= 32


def test_production_requires_secret_key(clean_env: pytest.MonkeyPatch) -> None:
    """Outside DEBUG a missing SECRET_KEY stops startup."""
    clean_env.setenv("DEBUG", "false")
    with pytest.raises(ValidationError, match="SECRET_KEY is required"):
        Settings(_env_file=None)


def test_short_secret_key_rejected(clean_env: pytest.MonkeyPatch) -> None:
    clean_env.setenv("SECRET_KEY", "too-short")
    with pytest.raises(ValidationError, match="at least 32"):
        Settings(_env_file=None)


def test_explicit_secret_key_kept(clean_env: pytest.MonkeyPatch) -> None:
    key = "k" * 40
    clean_env.setenv("SECRET_KEY", key)
    assert Settings(_env_file=None).secret_key == key


def test_token_lifetimes_from_env(clean_env: pytest.MonkeyPatch) -> None:
    """Token lifetimes come from the environment, in minutes and days."""
    clean_env.setenv("DEBUG", "true")
    clean_env.setenv("ACCESS_TOKEN_EXPIRE_MINUTES", "5")
    clean_env.setenv("REFRESH_TOKEN_EXPIRE_DAYS", "1")
    settings = Settings(_env_file=None)
    assert settings.access_token_expire_seconds == 300
    assert settings.refresh_token_expire_seconds == 86400


def test_defaults(clean_env: pytest.MonkeyPatch) -> None:
    """15-minute access, 14-day refresh, cost 12, SQLite by default."""
    clean_env.setenv("DEBUG", "true")
    settings = Settings(_env_file=None)
    assert settings.access_token_expire_minutes == 15
    assert settings.refresh_token_expire_days == 14
    assert settings.bcrypt_rounds == 12
    assert settings.database_url.startswith("sqlite:///")


@pytest.mark.parametrize("rounds", ["3", "32"])
def test_bcrypt_rounds_bounded(clean_env: pytest.MonkeyPatch, rounds: str) -> None:
    """bcrypt cost outside 4..31 is rejected."""
    clean_env.setenv("DEBUG", "true")
    clean_env.setenv("BCRYPT_ROUNDS", rounds)
    with pytest.raises(ValidationError):
        Settings(_env_file=None)
