"""
One long-lived, self-healing connection to a single relay.

A [RelaySession][nostrpool.core.session.RelaySession] owns exactly one
transport at a time, one ordered outbound queue and one inbound stream. It
runs as a single asyncio task that loops through an explicit state machine:

```text
DISCONNECTED --connect--> CONNECTING --ok--> CONNECTED
      ^                        |                 |
      |                     failure        closed / error
      +------ backoff sleep ---+-----------------+

any state --terminate()--> TERMINATED (final)
```

Every ``EVENT``, ``REQ`` and ``CLOSE`` frame goes through the one outbound
queue, so frames to a relay are written in submission order whatever the
connection state. On every successful connect the session first replays a
``REQ`` for each mirrored subscription that has no ``REQ`` still queued (its
earlier ``REQ`` went out on a previous connection, ahead of everything
still queued), then drains the queue. ``AUTH`` answers to an old
connection's challenge, and ``CLOSE`` frames for subscriptions the new
connection never opened, are discarded.

Everything the session observes is reported to its owner through a single
``asyncio.Queue`` (the *inbox*): parsed relay messages, state changes, frames
written and frames dropped as malformed. The session never calls back into
the pool.

See Also:
    [RelayPool][nostrpool.core.pool.RelayPool]: Owns sessions and consumes
        their inbox items.
    [BackoffState][nostrpool.core.session.BackoffState]: Plain-data reconnect
        bookkeeping.
"""

from __future__ import annotations

import asyncio
import contextlib
import itertools
import random
import time
from collections import deque
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Final

from pydantic import BaseModel, Field, ValidationInfo, field_validator

from nostrpool.exceptions import ProtocolError, TransportError
from nostrpool.models.constants import RelayState
from nostrpool.models.message import (
    ClientAuthMessage,
    ClientCloseMessage,
    ClientEventMessage,
    ClientMessage,
    ClientReqMessage,
    RelayMessage,
    parse_relay_message,
)

from .logger import Logger


if TYPE_CHECKING:
    from nostrpool.models.event import Event
    from nostrpool.models.filter import Filter
    from nostrpool.models.relay import RelayUrl
    from nostrpool.utils.transport import Connection, Connector


_MAX_BACKOFF_EXPONENT: Final[int] = 32
_session_ids = itertools.count(1)


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class RetryConfig(BaseModel):
    """Reconnect backoff policy.

    Note:
        Exponential backoff (the default) doubles the delay each attempt:
        ``initial_delay * 2^attempt``, capped at ``max_delay``. Linear
        backoff grows as ``initial_delay * (attempt + 1)``. The result is
        then reduced by a random fraction of up to ``jitter``.
    """

    initial_delay: float = Field(default=1.0, gt=0.0, description="First reconnect delay")
    max_delay: float = Field(default=60.0, gt=0.0, description="Maximum reconnect delay")
    exponential_backoff: bool = Field(default=True, description="Use exponential backoff")
    jitter: float = Field(default=0.2, ge=0.0, le=1.0, description="Max fraction removed at random")

    @field_validator("max_delay")
    @classmethod
    def validate_max_delay(cls, v: float, info: ValidationInfo) -> float:
        """Ensure max_delay >= initial_delay."""
        initial_delay = info.data.get("initial_delay", 1.0)
        if v < initial_delay:
            raise ValueError(f"max_delay ({v}) must be >= initial_delay ({initial_delay})")
        return v


class SessionConfig(BaseModel):
    """Per-relay session settings.

    Attributes:
        connect_timeout: Seconds allowed for the connection handshake.
        max_queue_size: Outbound frames held while disconnected; the oldest
            is dropped when full.
        stability_threshold: Seconds a connection must stay up before the
            backoff resets to ``initial_delay``.
        retry: Backoff policy.
    """

    connect_timeout: float = Field(default=10.0, gt=0.0, description="Handshake timeout")
    max_queue_size: int = Field(default=1000, ge=1, description="Outbound queue bound")
    stability_threshold: float = Field(
        default=30.0, ge=0.0, description="Uptime before backoff resets"
    )
    retry: RetryConfig = Field(default_factory=RetryConfig)


# ---------------------------------------------------------------------------
# Backoff
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class BackoffState:
    """Reconnect bookkeeping for one session.

    Attributes:
        attempt: Consecutive failed or unstable connections so far.
        connected_at: Monotonic time the current connection opened, if any.
    """

    attempt: int = 0
    connected_at: float | None = None

    def on_connected(self, now: float) -> None:
        self.connected_at = now

    def on_disconnected(self, now: float, stability_threshold: float) -> None:
        """Reset the attempt counter if the connection that just ended was stable."""
        if self.connected_at is not None and now - self.connected_at >= stability_threshold:
            self.attempt = 0
        self.connected_at = None

    def next_delay(self, retry: RetryConfig, rng: Callable[[], float] = random.random) -> float:
        """Return the sleep before the next attempt and count the attempt."""
        exponent = min(self.attempt, _MAX_BACKOFF_EXPONENT)
        if retry.exponential_backoff:
            delay = retry.initial_delay * (2**exponent)
        else:
            delay = retry.initial_delay * (exponent + 1)
        delay = min(delay, retry.max_delay)
        self.attempt += 1
        return float(delay * (1.0 - retry.jitter * rng()))


# ---------------------------------------------------------------------------
# Inbox items
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class SessionMessage:
    """A parsed relay message."""

    relay_url: str
    message: RelayMessage
    session_id: int = field(default=0, compare=False)


@dataclass(frozen=True, slots=True)
class SessionStateChange:
    """The session moved to ``state``. ``error`` explains a disconnect."""

    relay_url: str
    state: RelayState
    error: str | None = None
    session_id: int = field(default=0, compare=False)


@dataclass(frozen=True, slots=True)
class SessionFrameSent:
    """A client frame was written to the transport."""

    relay_url: str
    message: ClientMessage
    session_id: int = field(default=0, compare=False)


@dataclass(frozen=True, slots=True)
class SessionFrameDropped:
    """An inbound frame failed to parse and was discarded."""

    relay_url: str
    error: str
    session_id: int = field(default=0, compare=False)


SessionItem = SessionMessage | SessionStateChange | SessionFrameSent | SessionFrameDropped


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------


class RelaySession:
    """Reconnecting connection to one relay.

    All public methods are synchronous and safe to call in any state; they
    only mutate local bookkeeping and wake the session task.

    Examples:
        ```python
        inbox: asyncio.Queue[SessionItem] = asyncio.Queue()
        session = RelaySession(RelayUrl("wss://nos.lol"), connector, inbox)
        session.start()
        session.subscribe("feed", [Filter(kinds={1})])
        item = await inbox.get()
        session.terminate()
        await session.wait_closed()
        ```
    """

    def __init__(
        self,
        relay: RelayUrl,
        connector: Connector,
        inbox: asyncio.Queue[SessionItem],
        config: SessionConfig | None = None,
        *,
        logger: Logger | None = None,
        rng: Callable[[], float] = random.random,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._relay = relay
        self._connector = connector
        self._inbox = inbox
        self._config = config or SessionConfig()
        self._logger = (logger or Logger("session")).bind(relay=relay.url)
        self._rng = rng
        self._clock = clock
        self._session_id = next(_session_ids)

        self._state = RelayState.DISCONNECTED
        self._backoff = BackoffState()
        self._subscriptions: dict[str, tuple[Filter, ...]] = {}
        self._outbox: deque[ClientMessage] = deque(maxlen=self._config.max_queue_size)
        self._wakeup = asyncio.Event()
        self._task: asyncio.Task[None] | None = None

    def __repr__(self) -> str:
        return f"RelaySession(url={self.url!r}, state={self._state.value})"

    # -------------------------------------------------------------------------
    # Introspection
    # -------------------------------------------------------------------------

    @property
    def url(self) -> str:
        return self._relay.url

    @property
    def session_id(self) -> int:
        """Process-unique id stamped on every inbox item this session emits."""
        return self._session_id

    @property
    def relay(self) -> RelayUrl:
        return self._relay

    @property
    def state(self) -> RelayState:
        return self._state

    @property
    def backoff(self) -> BackoffState:
        """A copy of the current backoff bookkeeping."""
        return BackoffState(self._backoff.attempt, self._backoff.connected_at)

    @property
    def subscriptions(self) -> Mapping[str, tuple[Filter, ...]]:
        """Read-only view of the mirrored subscriptions."""
        return MappingProxyType(self._subscriptions)

    @property
    def queued(self) -> int:
        """Number of outbound frames waiting to be written."""
        return len(self._outbox)

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def start(self) -> None:
        """Spawn the session task. Must be called with a running event loop.

        Idempotent; does nothing after ``terminate()``.
        """
        if self._task is not None or self._state == RelayState.TERMINATED:
            return
        self._task = asyncio.get_running_loop().create_task(
            self._run(), name=f"relay-session:{self.url}"
        )

    def terminate(self) -> None:
        """Move to TERMINATED, cancelling any handshake, read or backoff sleep.

        The transport is released by the task as it unwinds; await
        [wait_closed()][nostrpool.core.session.RelaySession.wait_closed] to
        be sure it is gone.
        """
        if self._state == RelayState.TERMINATED:
            return
        self._set_state(RelayState.TERMINATED)
        self._outbox.clear()
        if self._task is not None:
            self._task.cancel()

    async def wait_closed(self) -> None:
        """Wait for the session task to finish after ``terminate()``."""
        if self._task is None:
            return
        with contextlib.suppress(asyncio.CancelledError):
            await self._task

    async def close(self) -> None:
        """Terminate and wait for the transport to be released."""
        self.terminate()
        await self.wait_closed()

    # -------------------------------------------------------------------------
    # Outbound API
    # -------------------------------------------------------------------------

    def send_event(self, event: Event) -> None:
        """Queue an ``EVENT`` frame. Held across disconnects until written."""
        self.send(ClientEventMessage(event))

    def send(self, message: ClientMessage) -> None:
        """Queue any client frame for writing in submission order.

        ``REQ`` and ``CLOSE`` frames sent this way bypass the subscription
        mirror; prefer [subscribe()][nostrpool.core.session.RelaySession.subscribe].
        """
        if self._state == RelayState.TERMINATED:
            self._logger.debug("send_after_terminate", frame=type(message).__name__)
            return
        if len(self._outbox) == self._outbox.maxlen:
            dropped = self._outbox[0]
            self._logger.warning(
                "outbound_queue_full",
                dropped=type(dropped).__name__,
                size=len(self._outbox),
            )
        self._outbox.append(message)
        self._wakeup.set()

    def subscribe(self, subscription_id: str, filters: Iterable[Filter]) -> None:
        """Mirror a subscription and queue its ``REQ``.

        The mirror also re-issues the ``REQ`` on every later reconnect.
        """
        filters = tuple(filters)
        self._subscriptions[subscription_id] = filters
        self.send(ClientReqMessage(subscription_id, filters))

    def unsubscribe(self, subscription_id: str) -> None:
        """Drop a mirrored subscription and queue its ``CLOSE``. Idempotent."""
        if self._subscriptions.pop(subscription_id, None) is None:
            return
        self.send(ClientCloseMessage(subscription_id))

    # -------------------------------------------------------------------------
    # State machine
    # -------------------------------------------------------------------------

    def _set_state(self, state: RelayState, error: str | None = None) -> None:
        if state == self._state and error is None:
            return
        self._state = state
        self._logger.debug("state_changed", state=state.value, error=error or "")
        self._inbox.put_nowait(SessionStateChange(self.url, state, error, self._session_id))

    async def _run(self) -> None:
        retry = self._config.retry
        while True:
            self._set_state(RelayState.CONNECTING)
            error: str
            try:
                connection = await self._connector.connect(
                    self._relay, self._config.connect_timeout
                )
            except asyncio.CancelledError:
                raise
            except (TransportError, OSError, TimeoutError) as e:
                error = str(e) or type(e).__name__
                self._logger.info("connect_failed", error=error, attempt=self._backoff.attempt)
            except Exception as e:  # Intentionally broad: connector bugs must not kill the session
                error = f"{type(e).__name__}: {e}"
                self._logger.error("connect_error", error=error)
            else:
                error = await self._serve(connection)

            self._backoff.on_disconnected(self._clock(), self._config.stability_threshold)
            delay = self._backoff.next_delay(retry, self._rng)
            self._set_state(RelayState.DISCONNECTED, error)
            self._logger.info(
                "reconnect_scheduled", delay=round(delay, 3), attempt=self._backoff.attempt
            )
            await asyncio.sleep(delay)

    async def _serve(self, connection: Connection) -> str:
        """Run one connected period. Returns the reason it ended."""
        self._backoff.on_connected(self._clock())
        self._set_state(RelayState.CONNECTED)
        self._logger.info("relay_connected", subscriptions=len(self._subscriptions))

        replay = self._prepare_outbox()

        reader = asyncio.create_task(self._read_loop(connection))
        writer = asyncio.create_task(self._write_loop(connection, replay))
        try:
            done, _ = await asyncio.wait({reader, writer}, return_when=asyncio.FIRST_COMPLETED)
            return self._disconnect_reason(done)
        finally:
            try:
                for task in (reader, writer):
                    task.cancel()
                await asyncio.gather(reader, writer, return_exceptions=True)
            finally:
                await connection.close()

    def _disconnect_reason(self, done: set[asyncio.Task[str]]) -> str:
        for task in done:
            exc = task.exception()
            if exc is None:
                return task.result()
            if isinstance(exc, TransportError):
                return str(exc) or type(exc).__name__
            self._logger.error("session_error", error=f"{type(exc).__name__}: {exc}")
            return f"{type(exc).__name__}: {exc}"
        return "connection closed"

    def _prepare_outbox(self) -> list[ClientMessage]:
        """Trim the outbox for a fresh connection and return the REQs to replay first.

        A mirrored subscription with a ``REQ`` still queued is opened by that
        frame in its submission slot; every other one is replayed ahead of
        the queue.
        """
        queued = {m.subscription_id for m in self._outbox if isinstance(m, ClientReqMessage)}
        replay: list[ClientMessage] = [
            ClientReqMessage(sid, filters)
            for sid, filters in self._subscriptions.items()
            if sid not in queued
        ]
        opened = {m.subscription_id for m in replay if isinstance(m, ClientReqMessage)}
        kept: list[ClientMessage] = []
        for message in self._outbox:
            if isinstance(message, ClientAuthMessage):
                continue
            if isinstance(message, ClientReqMessage):
                opened.add(message.subscription_id)
            elif isinstance(message, ClientCloseMessage):
                if message.subscription_id not in opened:
                    continue
                opened.discard(message.subscription_id)
            kept.append(message)
        if len(kept) != len(self._outbox):
            self._logger.debug("stale_frames_discarded", count=len(self._outbox) - len(kept))
            self._outbox.clear()
            self._outbox.extend(kept)
        return replay

    async def _read_loop(self, connection: Connection) -> str:
        while True:
            text = await connection.recv()
            if text is None:
                return "connection closed by relay"
            try:
                message = parse_relay_message(text)
            except ProtocolError as e:
                self._logger.warning("frame_malformed", error=str(e), frame=text[:200])
                self._inbox.put_nowait(SessionFrameDropped(self.url, str(e), self._session_id))
                continue
            self._inbox.put_nowait(SessionMessage(self.url, message, self._session_id))

    async def _write_loop(self, connection: Connection, replay: list[ClientMessage]) -> str:
        for message in replay:
            await self._transmit(connection, message)

        while True:
            while self._outbox:
                message = self._outbox.popleft()
                try:
                    await self._transmit(connection, message)
                except (TransportError, asyncio.CancelledError):
                    self._outbox.appendleft(message)
                    raise
            self._wakeup.clear()
            await self._wakeup.wait()

    async def _transmit(self, connection: Connection, message: ClientMessage) -> None:
        await connection.send(message.to_json())
        self._inbox.put_nowait(SessionFrameSent(self.url, message, self._session_id))
