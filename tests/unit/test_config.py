"""Tests for domain-specific configuration."""

from datetime import timedelta

import pytest
from pydantic import SecretStr, ValidationError

from app.core.config import Settings
from app.core.settings import AppConfig, ChatConfig, DatabaseConfig, PushConfig


def _settings(**overrides: object) -> Settings:
    values: dict[str, object] = {
        "jwt_secret_key": "k" * 32,
        "database_url": "mysql+aiomysql://u:p@localhost/chat",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)  # type: ignore[arg-type]


class TestAppConfig:
    """AppConfig frozen immutability and property tests."""

    def test_frozen_immutability(self) -> None:
        config = AppConfig(name="test", version="1", env="development", debug=True)
        with pytest.raises(ValidationError):
            config.name = "changed"  # type: ignore[misc]

    def test_is_development(self) -> None:
        config = AppConfig(name="app", version="1", env="development", debug=True)
        assert config.is_development is True
        assert config.is_production is False

    def test_is_production(self) -> None:
        config = AppConfig(name="app", version="1", env="production", debug=False)
        assert config.is_production is True
        assert config.is_development is False


class TestChatConfig:
    """ChatConfig derived windows."""

    def test_windows_as_timedelta(self) -> None:
        config = ChatConfig(
            message_rate_limit="10/minute",
            max_text_length=500,
            pending_room_ttl_hours=24,
            cleanup_interval_hours=6,
            soft_delete_grace_days=3,
            notification_preview_length=100,
        )
        assert config.pending_room_ttl == timedelta(hours=24)
        assert config.soft_delete_grace == timedelta(days=3)


class TestDatabaseConfig:
    """DatabaseConfig URL handling."""

    def test_mysql_gets_charset(self) -> None:
        config = DatabaseConfig(url=SecretStr("mysql+aiomysql://u:p@h/db"))
        assert config.async_url == "mysql+aiomysql://u:p@h/db?charset=utf8mb4"
        assert config.is_sqlite is False

    def test_existing_query_is_kept(self) -> None:
        config = DatabaseConfig(url=SecretStr("mysql+aiomysql://u:p@h/db?ssl=true"))
        assert config.async_url.endswith("?ssl=true")

    def test_sqlite_unchanged(self) -> None:
        config = DatabaseConfig(url=SecretStr("sqlite+aiosqlite:///:memory:"))
        assert config.async_url == "sqlite+aiosqlite:///:memory:"
        assert config.is_sqlite is True


class TestSettings:
    """Flat settings grouped into domain configs."""

    def test_chat_defaults(self) -> None:
        settings = _settings()
        assert settings.chat.message_rate_limit == "10/minute"
        assert settings.chat.max_text_length == 500
        assert settings.chat.pending_room_ttl_hours == 24
        assert settings.chat.cleanup_interval_hours == 6
        assert settings.chat.notification_preview_length == 100

    def test_domain_configs_are_cached(self) -> None:
        settings = _settings()
        assert settings.chat is settings.chat
        assert settings.push is settings.push

    def test_auth_config(self) -> None:
        settings = _settings(jwt_algorithm="HS512")
        assert settings.auth.algorithm == "HS512"
        assert settings.auth.secret_key.get_secret_value() == "k" * 32
        assert settings.auth.create_room_rate_limit == "10/15minute"
        assert settings.auth.room_request_rate_limit == "60/minute"

    def test_push_token_is_secret(self) -> None:
        settings = _settings(expo_access_token="expo-secret")
        push: PushConfig = settings.push
        assert "expo-secret" not in repr(push)
        assert push.expo_access_token.get_secret_value() == "expo-secret"

    def test_invalid_port_rejected(self) -> None:
        with pytest.raises(ValidationError):
            _settings(port=70000)

    def test_invalid_env_rejected(self) -> None:
        with pytest.raises(ValidationError):
            _settings(app_env="qa")

    def test_text_length_bounds(self) -> None:
        with pytest.raises(ValidationError):
            _settings(chat_max_text_length=0)

    def test_server_heartbeat(self) -> None:
        settings = _settings(ws_ping_interval_seconds=5)
        assert settings.server.ws_ping_interval_seconds == 5
        assert settings.is_development is True
