"""Domain-specific configuration models."""

from app.core.settings.app_config import AppConfig
from app.core.settings.auth_config import AuthConfig
from app.core.settings.chat_config import ChatConfig
from app.core.settings.database_config import DatabaseConfig
from app.core.settings.push_config import PushConfig
from app.core.settings.redis_config import RedisConfig
from app.core.settings.server_config import ServerConfig

__all__ = [
    "AppConfig",
    "AuthConfig",
    "ChatConfig",
    "DatabaseConfig",
    "PushConfig",
    "RedisConfig",
    "ServerConfig",
]
