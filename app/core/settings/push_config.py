"""Push notification provider configuration."""

from pydantic import BaseModel, SecretStr


class PushConfig(BaseModel, frozen=True):
    """Expo push API settings."""

    enabled: bool
    expo_push_url: str
    expo_access_token: SecretStr
    timeout_seconds: float
