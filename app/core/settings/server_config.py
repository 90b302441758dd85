"""Server configuration."""

from pydantic import BaseModel


class ServerConfig(BaseModel, frozen=True):
    """Server and WebSocket transport settings."""

    host: str
    port: int
    ws_ping_interval_seconds: float
    ws_ping_timeout_seconds: float
