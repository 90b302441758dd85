"""Run chat room cleanup once. Meant to be scheduled externally (cron).

Usage:
    python -m scripts.run_cleanup
    python -m scripts.run_cleanup --dry-run
    python -m scripts.run_cleanup --expire-listing 42
"""

import argparse
import asyncio

import structlog

from app.core.config import settings
from app.core.database import async_session_factory, engine, session_scope
from app.repositories.chat_log_repo import ChatLogRepository
from app.repositories.chat_room_repo import ChatRoomRepository
from app.services.cleanup_service import CleanupService
from app.services.message_store import MessageStore

logger = structlog.get_logger()


async def run_cleanup(dry_run: bool, expire_listing: int | None) -> None:
    """Execute one cleanup pass in its own transaction."""
    async with session_scope(async_session_factory) as session:
        service = CleanupService(
            room_repo=ChatRoomRepository(session),
            message_store=MessageStore(ChatLogRepository(session)),
            config=settings.chat,
        )
        if dry_run:
            stats = await service.cleanup_stats()
            print(
                f"Would sweep {stats.stale_pending_rooms} pending rooms "
                f"and purge {stats.purgeable_rooms} soft-deleted rooms."
            )
        else:
            if expire_listing is not None:
                expired, _ = await service.expire_rooms_for_listing(expire_listing)
                print(
                    f"Expired {expired.expired_rooms} rooms "
                    f"for listing {expired.listing_id}."
                )
            report = await service.run()
            logger.info("Cleanup finished", **report.model_dump(mode="json"))
            print(
                f"Swept {report.swept_pending_rooms} pending rooms, "
                f"purged {report.purged_rooms} rooms "
                f"and {report.purged_messages} messages."
            )

    await engine.dispose()


def main() -> None:
    parser = argparse.ArgumentParser(description="Clean up abandoned chat rooms")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Report eligible rooms without deleting anything",
    )
    parser.add_argument(
        "--expire-listing",
        type=int,
        default=None,
        help="Expire the rooms of a deleted listing before cleaning up",
    )
    args = parser.parse_args()

    asyncio.run(run_cleanup(args.dry_run, args.expire_listing))


if __name__ == "__main__":
    main()
