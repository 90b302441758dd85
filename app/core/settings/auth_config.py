"""JWT authentication configuration."""

from pydantic import BaseModel, SecretStr


class AuthConfig(BaseModel, frozen=True):
    """JWT verification settings.

    Tokens are issued by the identity service; this service only verifies
    them and consults the shared revocation list.
    """

    secret_key: SecretStr
    algorithm: str
    create_room_rate_limit: str
    room_request_rate_limit: str
