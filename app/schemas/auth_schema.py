"""Authentication schemas."""

from pydantic import BaseModel, ConfigDict


class TokenPayload(BaseModel):
    """Decoded JWT payload."""

    model_config = ConfigDict(frozen=True)

    sub: str
    email: str
    role: str
    type: str
    jti: str
    exp: int

    @property
    def user_id(self) -> int:
        """Numeric user id carried in the subject claim."""
        return int(self.sub)
