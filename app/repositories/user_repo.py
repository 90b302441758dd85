"""User repository for database operations."""

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.user import User


class UserRepository:
    """Encapsulates user-related database queries."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def find_by_id(self, user_id: int) -> User | None:
        """Find a user by primary key."""
        result = await self._session.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    async def find_by_ids(self, user_ids: list[int]) -> dict[int, User]:
        """Load several users keyed by id; unknown ids are omitted."""
        if not user_ids:
            return {}
        result = await self._session.execute(select(User).where(User.id.in_(user_ids)))
        return {user.id: user for user in result.scalars().all()}

    async def set_push_token(self, user_id: int, push_token: str | None) -> None:
        """Store or clear the user's Expo push token."""
        await self._session.execute(
            update(User).where(User.id == user_id).values(expo_push_token=push_token)
        )

    async def update_notification_settings(
        self, user_id: int, values: dict[str, bool]
    ) -> None:
        """Apply a partial notification-preference update."""
        if not values:
            return
        await self._session.execute(
            update(User).where(User.id == user_id).values(**values)
        )
