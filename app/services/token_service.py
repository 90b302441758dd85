"""JWT access token verification and revocation lookups."""

import jwt
import redis.asyncio as redis

from app.core.config import settings
from app.core.exceptions import (
    InvalidTokenError,
    TokenBlacklistedError,
    TokenExpiredError,
)
from app.schemas.auth_schema import TokenPayload


class TokenService:
    """Verify bearer tokens issued by the identity service."""

    def __init__(self, redis_client: redis.Redis | None) -> None:  # type: ignore[type-arg]
        self._redis = redis_client
        self._secret = settings.auth.secret_key.get_secret_value()
        self._algorithm = settings.auth.algorithm
        self._prefix = settings.redis.revocation_prefix

    def decode_token(self, token: str) -> TokenPayload:
        """Decode and validate a JWT token."""
        try:
            payload = jwt.decode(token, self._secret, algorithms=[self._algorithm])
        except jwt.ExpiredSignatureError as e:
            raise TokenExpiredError from e
        except jwt.InvalidTokenError as e:
            raise InvalidTokenError from e

        # Chat identities are numeric user ids
        if not str(payload.get("sub", "")).isdigit():
            raise InvalidTokenError

        try:
            return TokenPayload(
                sub=str(payload["sub"]),
                email=payload.get("email", ""),
                role=payload.get("role", "user"),
                type=payload["type"],
                jti=payload.get("jti", ""),
                exp=payload["exp"],
            )
        except KeyError as e:
            raise InvalidTokenError from e

    async def is_blacklisted(self, jti: str) -> bool:
        """Check if a token id is on the shared revocation list."""
        if self._redis is None or not jti:
            return False
        result = await self._redis.get(f"{self._prefix}{jti}")
        return result is not None

    async def authenticate(self, token: str) -> TokenPayload:
        """Resolve a bearer credential to a verified access-token payload."""
        payload = self.decode_token(token)
        if payload.type != "access":
            raise InvalidTokenError
        if await self.is_blacklisted(payload.jti):
            raise TokenBlacklistedError
        return payload
