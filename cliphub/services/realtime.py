"""Row-level change notifications for clip observers.

Observers hold an explicit :class:`Subscription`; nothing listens globally.
Events only say *that* a clip changed. The safe reaction to any event is to
re-list the owner's clips.
"""

from __future__ import annotations

import asyncio
import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from cliphub.core.db import utcnow
from cliphub.core.logging import get_logger


class ChangeType(str, enum.Enum):
    insert = "insert"
    update = "update"
    delete = "delete"


@dataclass(frozen=True, slots=True)
class ChangeEvent:
    type: ChangeType
    clip_id: str
    owner_id: str
    status: str | None = None
    committed_at: datetime = field(default_factory=utcnow)

    def to_payload(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "table": "clips",
            "clip_id": self.clip_id,
            "status": self.status,
            "committed_at": self.committed_at.isoformat(),
        }


_CLOSED = object()


class Subscription:
    """A live stream of change events for one owner.

    Iterate with ``async for``; the stream ends once :meth:`close` is called.
    Each subscription belongs to the event loop it was created on, and
    events published from other threads are handed over thread-safely.
    """

    def __init__(self, feed: "ChangeFeed", owner_id: str, *, max_pending: int) -> None:
        self.owner_id = owner_id
        self._feed = feed
        self._loop = asyncio.get_running_loop()
        self._queue: asyncio.Queue[Any] = asyncio.Queue(maxsize=max_pending + 1)
        self._max_pending = max_pending
        self._closed = False
        self.dropped = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def _offer(self, item: Any) -> None:
        if item is not _CLOSED:
            if self._closed:
                return
            if self._queue.qsize() >= self._max_pending:
                self._queue.get_nowait()
                self.dropped += 1
        self._queue.put_nowait(item)

    def deliver(self, event: ChangeEvent) -> None:
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is self._loop:
            self._offer(event)
        else:
            self._loop.call_soon_threadsafe(self._offer, event)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._feed._discard(self)
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is self._loop:
            self._drain()
        elif not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self._drain)

    def _drain(self) -> None:
        while not self._queue.empty():
            self._queue.get_nowait()
        self._offer(_CLOSED)

    async def next_event(self) -> ChangeEvent | None:
        """Wait for the next event; ``None`` once the subscription is closed."""
        if self._closed and self._queue.empty():
            return None
        item = await self._queue.get()
        if item is _CLOSED:
            return None
        return item

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> ChangeEvent:
        event = await self.next_event()
        if event is None:
            raise StopAsyncIteration
        return event

    async def __aenter__(self) -> "Subscription":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.close()


class ChangeFeed:
    """In-process fan-out of committed clip changes to subscribers."""

    def __init__(self, *, max_pending: int = 100) -> None:
        self.max_pending = max_pending
        self._subscriptions: set[Subscription] = set()
        self.logger = get_logger(component="change_feed")

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def subscribe(self, owner_id: str) -> Subscription:
        subscription = Subscription(self, owner_id, max_pending=self.max_pending)
        self._subscriptions.add(subscription)
        self.logger.debug("subscription_opened", owner_id=owner_id, subscribers=self.subscriber_count)
        return subscription

    def publish(self, event: ChangeEvent) -> None:
        for subscription in list(self._subscriptions):
            if subscription.owner_id == event.owner_id:
                subscription.deliver(event)

    def _discard(self, subscription: Subscription) -> None:
        self._subscriptions.discard(subscription)
        self.logger.debug(
            "subscription_released",
            owner_id=subscription.owner_id,
            subscribers=self.subscriber_count,
            dropped=subscription.dropped,
        )

    def close(self) -> None:
        for subscription in list(self._subscriptions):
            subscription.close()


__all__ = ["ChangeType", "ChangeEvent", "Subscription", "ChangeFeed"]
