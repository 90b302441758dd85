"""Application configuration using Pydantic Settings V2."""

from functools import cached_property
from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from app.core.settings import (
    AppConfig,
    AuthConfig,
    ChatConfig,
    DatabaseConfig,
    PushConfig,
    RedisConfig,
    ServerConfig,
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Flat fields are loaded directly from environment variables.
    Domain properties provide grouped access (e.g. settings.chat.max_text_length).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # App
    app_name: str = Field(
        default="listing-chat",
        description="Application name",
    )
    app_env: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Application environment",
    )
    app_version: str = Field(
        default="0.1.0",
        description="Application version",
    )
    debug: bool = Field(
        default=True,
        description="Debug mode",
    )

    # Server
    host: str = Field(
        default="0.0.0.0",
        description="Server host",
    )
    port: int = Field(
        default=8080,
        ge=1,
        le=65535,
        description="Server port",
    )
    ws_ping_interval_seconds: float = Field(
        default=20.0,
        gt=0,
        description="WebSocket heartbeat interval",
    )
    ws_ping_timeout_seconds: float = Field(
        default=20.0,
        gt=0,
        description="WebSocket heartbeat timeout before disconnect",
    )

    # JWT Auth
    jwt_secret_key: SecretStr = Field(
        description="JWT secret key shared with the identity service",
    )
    jwt_algorithm: str = Field(
        default="HS256",
        description="JWT signing algorithm",
    )
    create_room_rate_limit: str = Field(
        default="10/15minute",
        description="Chat room creation rate limit per client",
    )
    room_request_rate_limit: str = Field(
        default="60/minute",
        description="Rate limit per client across the chat room routes",
    )

    # Database
    database_url: SecretStr = Field(
        description="Async database URL (mysql+aiomysql://...)",
    )

    # Redis
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL",
    )
    token_revocation_prefix: str = Field(
        default="token_blacklist:",
        description="Redis key prefix of revoked token ids",
    )

    # Chat
    chat_message_rate_limit: str = Field(
        default="10/minute",
        description="Per-user chat message rate limit",
    )
    chat_max_text_length: int = Field(
        default=500,
        ge=1,
        le=4000,
        description="Maximum free-text message length after trimming",
    )
    chat_pending_room_ttl_hours: int = Field(
        default=24,
        ge=1,
        description="Hours before an unused pending room is swept",
    )
    chat_cleanup_interval_hours: int = Field(
        default=6,
        ge=1,
        description="Suggested interval for the external cleanup schedule",
    )
    chat_soft_delete_grace_days: int = Field(
        default=3,
        ge=0,
        description="Days a soft-deleted room is kept before purge",
    )
    chat_notification_preview_length: int = Field(
        default=100,
        ge=10,
        le=500,
        description="Maximum push notification body length",
    )

    # Push
    push_enabled: bool = Field(
        default=True,
        description="Send push notifications to offline participants",
    )
    expo_push_url: str = Field(
        default="https://exp.host/--/api/v2/push/send",
        description="Expo push API endpoint",
    )
    expo_access_token: SecretStr = Field(
        default=SecretStr(""),
        description="Optional Expo access token",
    )
    push_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Push API request timeout",
    )

    # --- Domain properties ---

    @cached_property
    def app(self) -> AppConfig:
        """Application environment configuration."""
        return AppConfig(
            name=self.app_name,
            version=self.app_version,
            env=self.app_env,
            debug=self.debug,
        )

    @cached_property
    def server(self) -> ServerConfig:
        """Server configuration."""
        return ServerConfig(
            host=self.host,
            port=self.port,
            ws_ping_interval_seconds=self.ws_ping_interval_seconds,
            ws_ping_timeout_seconds=self.ws_ping_timeout_seconds,
        )

    @cached_property
    def auth(self) -> AuthConfig:
        """JWT authentication configuration."""
        return AuthConfig(
            secret_key=self.jwt_secret_key,
            algorithm=self.jwt_algorithm,
            create_room_rate_limit=self.create_room_rate_limit,
            room_request_rate_limit=self.room_request_rate_limit,
        )

    @cached_property
    def database(self) -> DatabaseConfig:
        """Database connection configuration."""
        return DatabaseConfig(url=self.database_url)

    @cached_property
    def redis(self) -> RedisConfig:
        """Redis connection configuration."""
        return RedisConfig(
            url=self.redis_url,
            revocation_prefix=self.token_revocation_prefix,
        )

    @cached_property
    def chat(self) -> ChatConfig:
        """Chat limits and retention configuration."""
        return ChatConfig(
            message_rate_limit=self.chat_message_rate_limit,
            max_text_length=self.chat_max_text_length,
            pending_room_ttl_hours=self.chat_pending_room_ttl_hours,
            cleanup_interval_hours=self.chat_cleanup_interval_hours,
            soft_delete_grace_days=self.chat_soft_delete_grace_days,
            notification_preview_length=self.chat_notification_preview_length,
        )

    @cached_property
    def push(self) -> PushConfig:
        """Push notification provider configuration."""
        return PushConfig(
            enabled=self.push_enabled,
            expo_push_url=self.expo_push_url,
            expo_access_token=self.expo_access_token,
            timeout_seconds=self.push_timeout_seconds,
        )

    # --- Convenience properties (delegate to domain configs) ---

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.app.is_development


# Global settings instance
settings = Settings()
