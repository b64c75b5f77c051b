"""
Application-facing streams produced by a [RelayPool][nostrpool.core.pool.RelayPool].

Two kinds of consumer exist:

* a [Subscription][nostrpool.core.subscription.Subscription] receives the
  validated, de-duplicated events of one ``REQ`` plus its end-of-stored-events
  markers;
* a [NotificationListener][nostrpool.core.subscription.NotificationListener]
  observes every frame in either direction and every relay status change.

Both are async iterators over a bounded buffer. When a consumer falls behind,
the oldest buffered item is discarded so the pool's dispatcher never waits.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Generic, TypeVar

from .logger import Logger


if TYPE_CHECKING:
    from nostrpool.models.constants import RelayState
    from nostrpool.models.event import Event
    from nostrpool.models.filter import Filter
    from nostrpool.models.message import ClientMessage, RelayMessage


T = TypeVar("T")

_logger = Logger("subscription")


# ---------------------------------------------------------------------------
# Subscription items
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ReceivedEvent:
    """A validated event matching the subscription, first seen on ``relay_url``."""

    subscription_id: str
    relay_url: str
    event: Event


@dataclass(frozen=True, slots=True)
class EndOfStoredEvents:
    """``relay_url`` finished sending stored events. Emitted once per relay."""

    subscription_id: str
    relay_url: str


@dataclass(frozen=True, slots=True)
class AllEndOfStoredEvents:
    """Every relay present at subscribe time has sent EOSE (or left the pool)."""

    subscription_id: str


@dataclass(frozen=True, slots=True)
class SubscriptionClosed:
    """``relay_url`` closed the subscription on its side (``CLOSED`` frame)."""

    subscription_id: str
    relay_url: str
    message: str


SubscriptionItem = ReceivedEvent | EndOfStoredEvents | AllEndOfStoredEvents | SubscriptionClosed


# ---------------------------------------------------------------------------
# Notification items
# ---------------------------------------------------------------------------


class Direction(StrEnum):
    """Which way a frame travelled."""

    INBOUND = "inbound"
    OUTBOUND = "outbound"


@dataclass(frozen=True, slots=True)
class MessageNotification:
    """A frame received from or written to ``relay_url``."""

    relay_url: str
    direction: Direction
    message: RelayMessage | ClientMessage


@dataclass(frozen=True, slots=True)
class RelayStatusNotification:
    """The session for ``relay_url`` changed state."""

    relay_url: str
    state: RelayState
    error: str | None = None


Notification = MessageNotification | RelayStatusNotification


# ---------------------------------------------------------------------------
# Bounded channel
# ---------------------------------------------------------------------------


class _Channel(Generic[T]):
    """Single-consumer async buffer that drops its oldest item when full."""

    def __init__(self, maxsize: int, name: str) -> None:
        self._queue: asyncio.Queue[T | None] = asyncio.Queue(maxsize=maxsize + 1)
        self._maxsize = maxsize
        self._name = name
        self._closed = False
        self.dropped = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def push(self, item: T) -> None:
        if self._closed:
            return
        if self._queue.qsize() >= self._maxsize:
            self._queue.get_nowait()
            self.dropped += 1
            _logger.warning("consumer_lagging", channel=self._name, dropped=self.dropped)
        self._queue.put_nowait(item)

    def close(self) -> None:
        """End iteration after the buffered items are consumed."""
        if self._closed:
            return
        self._closed = True
        # The extra slot reserved in __init__ guarantees room for the sentinel.
        self._queue.put_nowait(None)

    async def get(self) -> T | None:
        """Return the next item; None at the sentinel and on every call after it."""
        if self._closed and self._queue.empty():
            return None
        return await self._queue.get()


# ---------------------------------------------------------------------------
# Consumers
# ---------------------------------------------------------------------------


class Subscription:
    """Handle returned by [RelayPool.subscribe()][nostrpool.core.pool.RelayPool.subscribe].

    Iterate it to receive
    [SubscriptionItem][nostrpool.core.subscription.SubscriptionItem] values;
    iteration stops after [close()][nostrpool.core.subscription.Subscription.close]
    once the buffer is drained.

    Examples:
        ```python
        async with pool.subscribe([Filter(kinds={1})]) as sub:
            async for item in sub:
                match item:
                    case ReceivedEvent(event=event):
                        print(event.content)
                    case AllEndOfStoredEvents():
                        print("caught up")
        ```
    """

    def __init__(
        self,
        subscription_id: str,
        filters: tuple[Filter, ...],
        maxsize: int,
        on_close: Callable[[str], object],
    ) -> None:
        self._id = subscription_id
        self._filters = filters
        self._channel: _Channel[SubscriptionItem] = _Channel(maxsize, subscription_id)
        self._on_close = on_close

    def __repr__(self) -> str:
        return f"Subscription(id={self._id!r}, filters={len(self._filters)})"

    @property
    def id(self) -> str:
        return self._id

    @property
    def filters(self) -> tuple[Filter, ...]:
        return self._filters

    @property
    def closed(self) -> bool:
        return self._channel.closed

    @property
    def dropped(self) -> int:
        """Items discarded because the consumer fell behind."""
        return self._channel.dropped

    def close(self) -> None:
        """Unsubscribe from every relay and end iteration. Idempotent."""
        self._on_close(self._id)

    def _push(self, item: SubscriptionItem) -> None:
        self._channel.push(item)

    def _finish(self) -> None:
        self._channel.close()

    async def next(self, timeout: float | None = None) -> SubscriptionItem | None:  # noqa: ASYNC109
        """Return the next item, or None once closed.

        Raises:
            TimeoutError: If nothing arrives within ``timeout`` seconds.
        """
        async with asyncio.timeout(timeout):
            return await self._channel.get()

    def __aiter__(self) -> AsyncIterator[SubscriptionItem]:
        return self

    async def __anext__(self) -> SubscriptionItem:
        item = await self._channel.get()
        if item is None:
            raise StopAsyncIteration
        return item

    async def events(self) -> AsyncIterator[Event]:
        """Iterate over received events only, skipping EOSE and CLOSED markers."""
        async for item in self:
            if isinstance(item, ReceivedEvent):
                yield item.event

    async def __aenter__(self) -> Subscription:
        return self

    async def __aexit__(self, *_: object) -> None:
        self.close()


class NotificationListener:
    """Handle returned by [RelayPool.notifications()][nostrpool.core.pool.RelayPool.notifications]."""

    def __init__(self, maxsize: int, on_close: Callable[[NotificationListener], object]) -> None:
        self._channel: _Channel[Notification] = _Channel(maxsize, "notifications")
        self._on_close = on_close

    @property
    def closed(self) -> bool:
        return self._channel.closed

    @property
    def dropped(self) -> int:
        return self._channel.dropped

    def close(self) -> None:
        """Stop receiving notifications. Idempotent."""
        self._on_close(self)
        self._channel.close()

    def _push(self, item: Notification) -> None:
        self._channel.push(item)

    async def next(self, timeout: float | None = None) -> Notification | None:  # noqa: ASYNC109
        """Return the next notification, or None once closed.

        Raises:
            TimeoutError: If nothing arrives within ``timeout`` seconds.
        """
        async with asyncio.timeout(timeout):
            return await self._channel.get()

    def __aiter__(self) -> AsyncIterator[Notification]:
        return self

    async def __anext__(self) -> Notification:
        item = await self._channel.get()
        if item is None:
            raise StopAsyncIteration
        return item

    async def __aenter__(self) -> NotificationListener:
        return self

    async def __aexit__(self, *_: object) -> None:
        self.close()
