"""Per-user moving-window limiter for chat messages sent over WebSocket.

slowapi guards HTTP routes by request; WebSocket frames never pass through
its middleware, so message sends are counted here on the same ``limits``
strategy family slowapi is built on.
"""

from limits import RateLimitItem, parse
from limits.aio.storage import MemoryStorage
from limits.aio.strategies import MovingWindowRateLimiter

_NAMESPACE = "chat-message"


class MessageRateLimiter:
    """Allow at most ``item.amount`` sends per user in any moving window.

    Expired entries are dropped by the memory storage itself.
    """

    def __init__(
        self, item: RateLimitItem, storage: MemoryStorage | None = None
    ) -> None:
        if item.amount < 1:
            raise ValueError("limit must be at least 1")
        self.item = item
        self._storage = storage or MemoryStorage()
        self._strategy = MovingWindowRateLimiter(self._storage)

    @classmethod
    def from_limit_string(cls, value: str) -> "MessageRateLimiter":
        """Build from a rate string such as ``10/minute``."""
        return cls(parse(value))

    @property
    def limit(self) -> int:
        return self.item.amount

    @property
    def window_seconds(self) -> int:
        return self.item.get_expiry()

    def _key(self, user_id: int) -> str:
        return self.item.key_for(_NAMESPACE, str(user_id))

    async def check(self, user_id: int) -> bool:
        """Take a slot for the user if one is free. Denials take none."""
        return await self._strategy.hit(self.item, _NAMESPACE, str(user_id))

    async def remaining(self, user_id: int) -> int:
        stats = await self._strategy.get_window_stats(
            self.item, _NAMESPACE, str(user_id)
        )
        return stats.remaining

    async def reset(self, user_id: int) -> None:
        await self._storage.clear(self._key(user_id))
