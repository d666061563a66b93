"""Tests for startup environment validation."""

import pytest

from marketplace.core.env_validation import validate_environment

PRODUCTION_ENV = {
    "DATABASE_URL": "postgresql+asyncpg://marketplace:secret@db/marketplace",
    "FIREBASE_PROJECT_ID": "marketplace-prod",
    "ALLOWED_ORIGINS": "https://marketplace.example.com",
    "TPAY_CLIENT_ID": "client",
    "TPAY_SECRET": "secret",
    "TPAY_API_KEY": "api-key",
    "DEBUG": "false",
}


@pytest.fixture
def production_env(monkeypatch, tmp_path):
    # Keep a developer's .env out of the picture
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("GOOGLE_APPLICATION_CREDENTIALS", raising=False)
    for key, value in PRODUCTION_ENV.items():
        monkeypatch.setenv(key, value)
    return monkeypatch


def test_valid_environment_passes(production_env):
    settings = validate_environment()
    assert settings.firebase_project_id == "marketplace-prod"


@pytest.mark.parametrize(
    "key,value",
    [
        ("ALLOWED_ORIGINS", "*"),
        ("DATABASE_URL", "sqlite+aiosqlite:///marketplace.db"),
        ("HOLD_WINDOW_MINUTES", "0"),
        ("GOOGLE_APPLICATION_CREDENTIALS", "/nonexistent/service-account.json"),
        ("PAYMENT_PROVIDER", "cash"),
    ],
)
def test_invalid_setting_exits(production_env, key, value):
    production_env.setenv(key, value)
    with pytest.raises(SystemExit) as exc_info:
        validate_environment()
    assert exc_info.value.code == 1


def test_missing_tpay_credentials_exits(production_env):
    production_env.delenv("TPAY_API_KEY")
    with pytest.raises(SystemExit):
        validate_environment()


def test_missing_required_variable_exits(production_env):
    production_env.delenv("FIREBASE_PROJECT_ID")
    with pytest.raises(SystemExit):
        validate_environment()
