import pytest

from chatsync.config import SettingsError, load_settings

ENV_VARS = ("DATABASE_URL", "PORT", "HOST", "DB_POOL_SIZE", "DB_POOL_TIMEOUT", "DB_ECHO",
            "LOG_LEVEL", "CORS_ORIGINS", "EXPOSE_ERROR_DETAILS", "MAX_BODY_BYTES")


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_missing_database_url_is_an_error():
    with pytest.raises(SettingsError, match="DATABASE_URL"):
        load_settings()


def test_defaults(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "postgresql://localhost/chat")
    settings = load_settings()
    assert settings.port == 3000
    assert settings.pool_size == 10
    assert settings.pool_timeout == 5
    assert settings.cors_origins == ["*"]
    assert settings.expose_error_details is False


def test_overrides(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "sqlite:///chat.db")
    monkeypatch.setenv("PORT", "8080")
    monkeypatch.setenv("CORS_ORIGINS", "https://a.example, https://b.example")
    monkeypatch.setenv("EXPOSE_ERROR_DETAILS", "yes")
    monkeypatch.setenv("LOG_LEVEL", "debug")
    settings = load_settings()
    assert settings.port == 8080
    assert settings.cors_origins == ["https://a.example", "https://b.example"]
    assert settings.expose_error_details is True
    assert settings.log_level == "DEBUG"


@pytest.mark.parametrize("name,value", [
    ("PORT", "eighty"), ("DB_POOL_SIZE", "0"), ("DB_ECHO", "maybe"), ("LOG_LEVEL", "LOUD"),
])
def test_malformed_values(monkeypatch, name, value):
    monkeypatch.setenv("DATABASE_URL", "sqlite:///chat.db")
    monkeypatch.setenv(name, value)
    with pytest.raises(SettingsError):
        load_settings()


def test_body_limit_override(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "sqlite:///chat.db")
    assert load_settings().max_body_bytes == 10 * 1024 * 1024
    monkeypatch.setenv("MAX_BODY_BYTES", "2048")
    assert load_settings().max_body_bytes == 2048
