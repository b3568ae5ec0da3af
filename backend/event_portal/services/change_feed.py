"""
Change feed: row-level insert/update/delete notifications for live views.

Route handlers publish after their writes have committed; subscribers (the
SSE endpoints) receive the notifications matching their table and, when
given, row id. This is a read-side convenience only: a missed or dropped
notification never affects seat accounting, and clients can always re-read
the row.

Each subscriber owns a bounded queue. A slow subscriber loses its oldest
notifications instead of slowing down publishers.
"""

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Literal, Optional

from pydantic import BaseModel, Field

from event_portal.core.config import get_settings
from event_portal.core.logging import get_logger
from event_portal.core.metrics import change_feed_dropped

logger = get_logger(__name__)

ChangeType = Literal["INSERT", "UPDATE", "DELETE"]


class ChangeNotification(BaseModel):
    table: str
    type: ChangeType
    row_id: str
    new: Optional[dict[str, Any]] = None
    committed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class Subscription:
    def __init__(self, table: str, row_id: Optional[str], maxsize: int):
        self.table = table
        self.row_id = row_id
        self._queue: asyncio.Queue[ChangeNotification] = asyncio.Queue(maxsize=maxsize)

    def matches(self, change: ChangeNotification) -> bool:
        return change.table == self.table and (self.row_id is None or change.row_id == self.row_id)

    def offer(self, change: ChangeNotification) -> None:
        if self._queue.full():
            self._queue.get_nowait()
            change_feed_dropped.inc()
            logger.warning("change_feed_overflow", table=self.table, row_id=self.row_id)
        self._queue.put_nowait(change)

    async def get(self) -> ChangeNotification:
        return await self._queue.get()

    def pending(self) -> int:
        return self._queue.qsize()


class ChangeFeed:
    def __init__(self, queue_size: int = 100):
        self._queue_size = queue_size
        self._subscriptions: set[Subscription] = set()

    @asynccontextmanager
    async def subscribe(self, table: str, row_id: Optional[str] = None) -> AsyncIterator[Subscription]:
        subscription = Subscription(table, row_id, self._queue_size)
        self._subscriptions.add(subscription)
        logger.debug("change_feed_subscribed", table=table, row_id=row_id, subscribers=len(self._subscriptions))
        try:
            yield subscription
        finally:
            self._subscriptions.discard(subscription)
            logger.debug("change_feed_unsubscribed", table=table, row_id=row_id)

    def publish(self, change: ChangeNotification) -> int:
        """Fan out to matching subscribers; returns how many received it."""
        delivered = 0
        for subscription in list(self._subscriptions):
            if subscription.matches(change):
                subscription.offer(change)
                delivered += 1
        return delivered

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)


_feed: Optional[ChangeFeed] = None


def get_change_feed() -> ChangeFeed:
    """Process-wide feed singleton."""
    global _feed
    if _feed is None:
        _feed = ChangeFeed(queue_size=get_settings().CHANGE_FEED_QUEUE_SIZE)
    return _feed
