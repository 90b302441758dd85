"""Room cleanup: abandoned pending rooms, soft-delete purges, listing expiry.

Runs only when invoked. Scheduling belongs to an external trigger
(cron via ``scripts/run_cleanup.py`` or the admin endpoint).
"""

from datetime import UTC, datetime

import structlog

from app.core.settings import ChatConfig
from app.repositories.chat_room_repo import ChatRoomRepository
from app.schemas.chat_room_schema import (
    CleanupReport,
    CleanupStatsResponse,
    ExpireListingResponse,
)
from app.services.message_store import MessageStore

logger = structlog.get_logger()


class CleanupService:
    """Deletes rooms that no longer need to exist, cascading to their logs."""

    def __init__(
        self,
        room_repo: ChatRoomRepository,
        message_store: MessageStore,
        config: ChatConfig,
    ) -> None:
        self._room_repo = room_repo
        self._message_store = message_store
        self._config = config

    async def _purge(self, room_ids: list[str]) -> tuple[int, int]:
        if not room_ids:
            return 0, 0
        messages = await self._message_store.purge_rooms(room_ids)
        rooms = await self._room_repo.delete_rooms(room_ids)
        return rooms, messages

    async def sweep_pending_rooms(self, now: datetime | None = None) -> tuple[int, int]:
        """Delete message-less pending rooms older than the pending TTL."""
        now = now or datetime.now(UTC)
        room_ids = await self._room_repo.find_stale_pending_room_ids(
            now - self._config.pending_room_ttl
        )
        rooms, messages = await self._purge(room_ids)
        if rooms:
            logger.info("Swept pending chat rooms", rooms=rooms, messages=messages)
        return rooms, messages

    async def purge_soft_deleted_rooms(
        self, now: datetime | None = None
    ) -> tuple[int, int]:
        """Permanently delete soft-deleted rooms past their grace window."""
        now = now or datetime.now(UTC)
        room_ids = await self._room_repo.find_purgeable_room_ids(now)
        rooms, messages = await self._purge(room_ids)
        if rooms:
            logger.info("Purged soft-deleted chat rooms", rooms=rooms, messages=messages)
        return rooms, messages

    async def run(self, now: datetime | None = None) -> CleanupReport:
        """Run every cleanup path once."""
        now = now or datetime.now(UTC)
        swept, swept_messages = await self.sweep_pending_rooms(now)
        purged, purged_messages = await self.purge_soft_deleted_rooms(now)
        return CleanupReport(
            swept_pending_rooms=swept,
            purged_rooms=purged,
            purged_messages=swept_messages + purged_messages,
            ran_at=now,
        )

    async def expire_rooms_for_listing(
        self, listing_id: int, now: datetime | None = None
    ) -> tuple[ExpireListingResponse, list[str]]:
        """Expire every live room of a deleted listing and schedule its purge."""
        now = now or datetime.now(UTC)
        room_ids = await self._room_repo.find_ids_by_listing(listing_id)
        if room_ids:
            await self._room_repo.expire_rooms(
                room_ids,
                deleted_at=now,
                delete_expires_at=now + self._config.soft_delete_grace,
            )
            logger.info(
                "Expired chat rooms for listing",
                listing_id=listing_id,
                rooms=len(room_ids),
            )
        return (
            ExpireListingResponse(listing_id=listing_id, expired_rooms=len(room_ids)),
            room_ids,
        )

    async def cleanup_stats(self, now: datetime | None = None) -> CleanupStatsResponse:
        """Rooms currently eligible for each cleanup path."""
        now = now or datetime.now(UTC)
        stale = await self._room_repo.find_stale_pending_room_ids(
            now - self._config.pending_room_ttl
        )
        purgeable = await self._room_repo.find_purgeable_room_ids(now)
        return CleanupStatsResponse(
            stale_pending_rooms=len(stale),
            purgeable_rooms=len(purgeable),
            checked_at=now,
        )
