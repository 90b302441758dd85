"""Expo push API client."""

import re

import httpx
import structlog

from app.core.settings import PushConfig
from app.schemas.notification_schema import PushMessage, PushTicket

logger = structlog.get_logger()

EXPO_CHUNK_SIZE = 100
_EXPO_TOKEN_RE = re.compile(r"^(ExponentPushToken|ExpoPushToken)\[.+\]$")


def is_expo_push_token(token: str | None) -> bool:
    """Check the token looks like an Expo device token."""
    return bool(token) and _EXPO_TOKEN_RE.match(token) is not None  # type: ignore[arg-type]


class PushService:
    """Sends push messages in chunks and returns per-message tickets.

    Transport failures are logged and reported as error tickets; they are
    never raised to the caller.
    """

    def __init__(
        self, config: PushConfig, client: httpx.AsyncClient | None = None
    ) -> None:
        self._config = config
        self._client = client or httpx.AsyncClient(timeout=config.timeout_seconds)

    def _headers(self) -> dict[str, str]:
        headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
        }
        token = self._config.expo_access_token.get_secret_value()
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    async def send(self, messages: list[PushMessage]) -> list[PushTicket]:
        """Deliver messages. Messages with malformed tokens are skipped."""
        if not self._config.enabled:
            return []

        valid = [m for m in messages if is_expo_push_token(m.to)]
        skipped = len(messages) - len(valid)
        if skipped:
            logger.warning("Skipping invalid push tokens", count=skipped)

        tickets: list[PushTicket] = []
        for start in range(0, len(valid), EXPO_CHUNK_SIZE):
            chunk = valid[start : start + EXPO_CHUNK_SIZE]
            tickets.extend(await self._send_chunk(chunk))

        logger.info("Push notifications sent", sent=len(valid), tickets=len(tickets))
        return tickets

    async def _send_chunk(self, chunk: list[PushMessage]) -> list[PushTicket]:
        payload = [m.model_dump(by_alias=True, exclude_none=True) for m in chunk]
        try:
            response = await self._client.post(
                self._config.expo_push_url, json=payload, headers=self._headers()
            )
            response.raise_for_status()
            data = response.json().get("data", [])
        except (httpx.HTTPError, ValueError) as exc:
            logger.exception("Push chunk delivery failed", size=len(chunk))
            return [PushTicket(status="error", message=str(exc)) for _ in chunk]

        tickets = [PushTicket.model_validate(item) for item in data]
        for ticket in tickets:
            if ticket.status == "error":
                logger.warning(
                    "Push ticket error", message=ticket.message, details=ticket.details
                )
        return tickets

    async def aclose(self) -> None:
        await self._client.aclose()
