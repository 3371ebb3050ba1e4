"""Tests for application configuration."""
import pytest

from core.config import Settings


class TestCorsOriginsParsing:
    """Tests for CORS origins parsing from environment variables."""

    def test_parse_multiple_origins_comma_separated(self) -> None:
        """Comma-separated origins are split and stripped."""
        settings = Settings(
            _env_file=None,
            cors_origins="  http://localhost:8000 , https://bookmarks.example.com  ",
        )
        assert settings.cors_origins == [
            "http://localhost:8000",
            "https://bookmarks.example.com",
        ]

    def test_parse_origins_list_passthrough(self) -> None:
        """List of origins is passed through unchanged."""
        origins = ["http://localhost:8000", "https://bookmarks.example.com"]
        settings = Settings(_env_file=None, cors_origins=origins)
        assert settings.cors_origins == origins

    def test_parse_empty_entries_dropped(self) -> None:
        """Empty string and trailing commas leave no blank origins."""
        assert Settings(_env_file=None, cors_origins="").cors_origins == []
        assert Settings(_env_file=None, cors_origins="http://a.test,").cors_origins == [
            "http://a.test",
        ]

    def test_parse_from_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """CORS_ORIGINS in the environment is not decoded as JSON."""
        monkeypatch.setenv("CORS_ORIGINS", "http://a.test,http://b.test")
        assert Settings(_env_file=None).cors_origins == ["http://a.test", "http://b.test"]


class TestSettingsDefaults:
    """Tests for defaults and derived settings."""

    def test_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Local SQLite, Redis on, dev mode off."""
        for name in ("DATABASE_URL", "REDIS_ENABLED", "DEV_MODE", "SESSION_COOKIE_NAME"):
            monkeypatch.delenv(name, raising=False)
        settings = Settings(_env_file=None)
        assert settings.database_url.startswith("sqlite+aiosqlite://")
        assert settings.redis_enabled is True
        assert settings.dev_mode is False
        assert settings.session_cookie_name == "bookmarks_session"

    def test_view_session_limits(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Idle expiry and the session cap default on and read from the environment."""
        assert Settings(_env_file=None).session_idle_timeout == 3600.0
        monkeypatch.setenv("SESSION_IDLE_TIMEOUT", "120")
        monkeypatch.setenv("MAX_VIEW_SESSIONS", "50")
        settings = Settings(_env_file=None)
        assert settings.session_idle_timeout == 120.0
        assert settings.max_view_sessions == 50

    def test_oauth_configured_requires_both_credentials(self) -> None:
        """OAuth is usable only with both client id and secret."""
        assert not Settings(_env_file=None, google_client_id="id").oauth_configured
        assert Settings(
            _env_file=None, google_client_id="id", google_client_secret="secret",
        ).oauth_configured

    def test_boolean_from_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Flags parse from the usual string forms."""
        monkeypatch.setenv("DEV_MODE", "true")
        monkeypatch.setenv("REDIS_ENABLED", "0")
        settings = Settings(_env_file=None)
        assert settings.dev_mode is True
        assert settings.redis_enabled is False
