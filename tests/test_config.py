"""Tests for environment-driven settings."""

from multimodal_chat.config import Settings


def test_settings_parse_environment(monkeypatch):
    monkeypatch.setenv("GEMINI_API_KEY", "gemini-key")
    monkeypatch.setenv("REQUEST_TIMEOUT", "12.5")
    monkeypatch.setenv("JWT_SECRET", "env-secret")
    monkeypatch.setenv("JWT_EXPIRE_MINUTES", "15")
    monkeypatch.setenv("RESPONSE_FORMAT", "legacy")
    monkeypatch.setenv("RESPONSE_LOGO_LABEL", "true")
    monkeypatch.setenv("CORS_ORIGINS", "http://a.example, http://b.example")

    settings = Settings(_env_file=None)

    assert settings.google_api_key == "gemini-key"
    assert settings.request_timeout == 12.5
    assert settings.jwt_secret == "env-secret"
    assert settings.jwt_expire_minutes == 15
    assert settings.response_format == "legacy"
    assert settings.response_logo_label is True
    assert settings.cors_origins == ["http://a.example", "http://b.example"]


def test_google_api_key_takes_precedence(monkeypatch):
    monkeypatch.setenv("GOOGLE_API_KEY", "google-key")
    monkeypatch.setenv("GEMINI_API_KEY", "gemini-key")
    assert Settings(_env_file=None).google_api_key == "google-key"


def test_missing_jwt_secret_is_generated(monkeypatch):
    monkeypatch.delenv("JWT_SECRET", raising=False)
    first = Settings(_env_file=None)
    second = Settings(_env_file=None)
    assert first.jwt_secret
    assert first.jwt_secret != second.jwt_secret
