"""Chat room repository for room lifecycle queries."""

from datetime import datetime

from sqlalchemy import and_, delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.chat_room import ChatRoom, make_open_key


def _participant_filter(user_id: int):  # type: ignore[no-untyped-def]
    return or_(ChatRoom.owner_id == user_id, ChatRoom.inquirer_id == user_id)


def _visible_filter():  # type: ignore[no-untyped-def]
    return and_(ChatRoom.status != "cancelled", ChatRoom.is_deleted.is_(False))


class ChatRoomRepository:
    """Encapsulates chat room database queries."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def find_by_id(self, room_id: str) -> ChatRoom | None:
        """Find a room by its id."""
        return await self._session.get(ChatRoom, room_id)

    async def find_open_room(
        self, listing_id: int, owner_id: int, inquirer_id: int
    ) -> ChatRoom | None:
        """Find the non-cancelled room for a (listing, owner, inquirer) triple."""
        result = await self._session.execute(
            select(ChatRoom).where(
                ChatRoom.open_key == make_open_key(listing_id, owner_id, inquirer_id)
            )
        )
        return result.scalar_one_or_none()

    async def find_open_room_for_inquirer(
        self, listing_id: int, inquirer_id: int
    ) -> ChatRoom | None:
        """Find the caller's visible room for a listing, if any."""
        result = await self._session.execute(
            select(ChatRoom)
            .where(
                ChatRoom.listing_id == listing_id,
                ChatRoom.inquirer_id == inquirer_id,
                _visible_filter(),
            )
            .order_by(ChatRoom.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def create_room(
        self,
        listing_id: int,
        owner_id: int,
        inquirer_id: int,
        name: str,
    ) -> ChatRoom:
        """Insert a pending room. Raises IntegrityError if the triple is taken."""
        room = ChatRoom(
            listing_id=listing_id,
            owner_id=owner_id,
            inquirer_id=inquirer_id,
            name=name,
            status="pending",
            open_key=make_open_key(listing_id, owner_id, inquirer_id),
            has_messages=False,
            read_by=[],
        )
        self._session.add(room)
        await self._session.flush()
        await self._session.refresh(room)
        return room

    async def find_rooms_by_user(
        self,
        user_id: int,
        limit: int,
        cursor_updated_at: datetime | None = None,
        cursor_id: str | None = None,
    ) -> list[ChatRoom]:
        """Fetch visible rooms with keyset pagination (updated_at DESC, id DESC).

        Returns ``limit`` rows. The caller should request ``limit + 1`` to
        detect whether a next page exists.
        """
        stmt = select(ChatRoom).where(_participant_filter(user_id), _visible_filter())

        if cursor_updated_at is not None and cursor_id is not None:
            stmt = stmt.where(
                or_(
                    ChatRoom.updated_at < cursor_updated_at,
                    and_(
                        ChatRoom.updated_at == cursor_updated_at,
                        ChatRoom.id < cursor_id,
                    ),
                )
            )

        stmt = stmt.order_by(ChatRoom.updated_at.desc(), ChatRoom.id.desc()).limit(
            limit
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def find_all_rooms_by_user(self, user_id: int) -> list[ChatRoom]:
        """Every visible room of a user that has at least one message."""
        result = await self._session.execute(
            select(ChatRoom).where(
                _participant_filter(user_id),
                _visible_filter(),
                ChatRoom.has_messages.is_(True),
            )
        )
        return list(result.scalars().all())

    async def count_by_status(self, user_id: int) -> dict[str, int]:
        """Count a user's non-cancelled rooms grouped by status."""
        result = await self._session.execute(
            select(ChatRoom.status, func.count(ChatRoom.id))
            .where(_participant_filter(user_id), ChatRoom.status != "cancelled")
            .group_by(ChatRoom.status)
        )
        return {status: int(count) for status, count in result.all()}

    async def count_active_since(self, user_id: int, since: datetime) -> int:
        """Count active rooms with activity after ``since``."""
        result = await self._session.execute(
            select(func.count(ChatRoom.id)).where(
                _participant_filter(user_id),
                ChatRoom.status == "active",
                ChatRoom.updated_at >= since,
            )
        )
        return int(result.scalar_one())

    async def find_stale_pending_room_ids(self, created_before: datetime) -> list[str]:
        """Pending rooms without messages created before the cutoff."""
        result = await self._session.execute(
            select(ChatRoom.id).where(
                ChatRoom.status == "pending",
                ChatRoom.has_messages.is_(False),
                ChatRoom.created_at < created_before,
            )
        )
        return list(result.scalars().all())

    async def find_purgeable_room_ids(self, now: datetime) -> list[str]:
        """Soft-deleted rooms whose grace window has elapsed."""
        result = await self._session.execute(
            select(ChatRoom.id).where(
                ChatRoom.is_deleted.is_(True),
                ChatRoom.delete_expires_at <= now,
            )
        )
        return list(result.scalars().all())

    async def find_ids_by_listing(self, listing_id: int) -> list[str]:
        """Ids of every room attached to a listing that is not yet soft-deleted."""
        result = await self._session.execute(
            select(ChatRoom.id).where(
                ChatRoom.listing_id == listing_id,
                ChatRoom.is_deleted.is_(False),
            )
        )
        return list(result.scalars().all())

    async def expire_rooms(
        self, room_ids: list[str], deleted_at: datetime, delete_expires_at: datetime
    ) -> None:
        """Mark rooms expired and soft-deleted until ``delete_expires_at``."""
        await self._session.execute(
            update(ChatRoom)
            .where(ChatRoom.id.in_(room_ids))
            .values(
                status="expired",
                is_deleted=True,
                deleted_at=deleted_at,
                delete_expires_at=delete_expires_at,
            )
            .execution_options(synchronize_session="fetch")
        )

    async def delete_rooms(self, room_ids: list[str]) -> int:
        """Hard-delete rooms by id."""
        result = await self._session.execute(
            delete(ChatRoom)
            .where(ChatRoom.id.in_(room_ids))
            .execution_options(synchronize_session="fetch")
        )
        return int(result.rowcount or 0)
