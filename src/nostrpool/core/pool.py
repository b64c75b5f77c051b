"""
Multi-relay pool: one registry of relay sessions and one dispatcher.

The pool owns every [RelaySession][nostrpool.core.session.RelaySession] it
creates. Sessions report into a single inbox queue; a single dispatcher task
consumes it and is the only code that touches the recently-seen set, the
per-subscription end-of-stored-events bookkeeping and the notification
listeners. All caller-facing methods except the ``async`` ones are
synchronous and only enqueue.

Inbound routing for an ``EVENT`` frame:

1. unknown subscription id: dropped;
2. ``(subscription_id, event_id)`` already seen: dropped before validation;
3. id or signature invalid: logged and dropped;
4. no filter of the subscription matches: dropped;
5. otherwise remembered and delivered as a
   [ReceivedEvent][nostrpool.core.subscription.ReceivedEvent].

Example:
    pool = RelayPool.from_yaml("config/pool.yaml")

    async with pool:
        await pool.wait_until_connected(timeout=10)
        async with pool.subscribe([Filter(kinds={1}, limit=20)]) as sub:
            async for event in sub.events():
                print(event.content)
"""

from __future__ import annotations

import asyncio
import secrets
from collections import OrderedDict
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path  # noqa: TC003
from types import MappingProxyType
from typing import Any

from pydantic import BaseModel, Field, field_validator

from nostrpool.exceptions import (
    DuplicateSubscriptionError,
    EventValidationError,
    InvalidEventError,
    InvalidRelayUrlError,
    PoolError,
    PublishingError,
    UnknownRelayError,
    UnknownSubscriptionError,
)
from nostrpool.models.constants import RelayState
from nostrpool.models.event import Event, UnsignedEvent  # noqa: TC001
from nostrpool.models.filter import Filter, matches_any
from nostrpool.models.keys import Keys  # noqa: TC001
from nostrpool.models.message import (
    ClientAuthMessage,
    RelayAuthMessage,
    RelayClosedMessage,
    RelayEoseMessage,
    RelayEventMessage,
    RelayMessage,
    RelayNoticeMessage,
    RelayOkMessage,
    validate_subscription_id,
)
from nostrpool.models.relay import RelayUrl
from nostrpool.nips.event_builders import build_auth_event
from nostrpool.utils.keys import KeysConfig
from nostrpool.utils.transport import Connector, TransportConfig, WebSocketConnector

from .logger import Logger
from .metrics import POOL_COUNTER, POOL_GAUGE, RELAY_STATE, MetricsConfig, MetricsServer
from .session import (
    RelaySession,
    SessionConfig,
    SessionFrameDropped,
    SessionFrameSent,
    SessionItem,
    SessionMessage,
    SessionStateChange,
)
from .subscription import (
    AllEndOfStoredEvents,
    Direction,
    EndOfStoredEvents,
    MessageNotification,
    Notification,
    NotificationListener,
    ReceivedEvent,
    RelayStatusNotification,
    Subscription,
    SubscriptionClosed,
)
from .yaml import load_yaml


_SUBSCRIPTION_ID_BYTES = 8


# ---------------------------------------------------------------------------
# Configuration Models
# ---------------------------------------------------------------------------


class RelayPoolConfig(BaseModel):
    """Aggregate configuration for a relay pool.

    See Also:
        [SessionConfig][nostrpool.core.session.SessionConfig]: Per-relay
            timeouts, queue bound and reconnect backoff.
        [TransportConfig][nostrpool.utils.transport.TransportConfig]: TLS
            fallback and SOCKS5 proxy for overlay relays.
        [KeysConfig][nostrpool.utils.keys.KeysConfig]: Optional signing key
            used to answer NIP-42 challenges.
        [MetricsConfig][nostrpool.core.metrics.MetricsConfig]: Prometheus
            recording and endpoint.
    """

    name: str = Field(default="default", min_length=1, description="Pool name used in metrics")
    relays: list[str] = Field(default_factory=list, description="Relay URLs added on creation")
    session: SessionConfig = Field(default_factory=SessionConfig)
    transport: TransportConfig = Field(default_factory=TransportConfig)
    seen_cache_size: int = Field(
        default=10_000, ge=1, description="Recently-seen (subscription, event) pairs kept"
    )
    subscription_queue_size: int = Field(
        default=1000, ge=1, description="Buffered items per subscription"
    )
    notification_queue_size: int = Field(
        default=1000, ge=1, description="Buffered items per notification listener"
    )
    auto_authenticate: bool = Field(default=True, description="Answer NIP-42 AUTH challenges")
    keys: KeysConfig | None = Field(default=None, description="Signing key source")
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)

    @field_validator("relays")
    @classmethod
    def validate_relays(cls, v: list[str]) -> list[str]:
        """Normalize every URL and drop duplicates, keeping the first occurrence."""
        normalized: dict[str, None] = {}
        for raw in v:
            normalized[RelayUrl(raw).url] = None
        return list(normalized)


# ---------------------------------------------------------------------------
# Results and bookkeeping
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class PublishResult:
    """Per-relay outcome of [publish_and_wait()][nostrpool.core.pool.RelayPool.publish_and_wait].

    Attributes:
        event_id: Id of the published event.
        ok: ``relay_url -> (accepted, message)`` for every relay that answered.
        pending: Relays that had not answered when the wait ended.
    """

    event_id: str
    ok: Mapping[str, tuple[bool, str]]
    pending: frozenset[str]

    @property
    def accepted(self) -> list[str]:
        return [url for url, (accepted, _) in self.ok.items() if accepted]

    @property
    def rejected(self) -> list[str]:
        return [url for url, (accepted, _) in self.ok.items() if not accepted]


@dataclass(slots=True)
class _OkWaiter:
    expected: set[str]
    future: asyncio.Future[None]
    results: dict[str, tuple[bool, str]] = field(default_factory=dict)

    def record(self, relay_url: str, accepted: bool, message: str) -> None:
        if relay_url not in self.expected or relay_url in self.results:
            return
        self.results[relay_url] = (accepted, message)
        self.check()

    def forget(self, relay_url: str) -> None:
        self.expected.discard(relay_url)
        self.check()

    def check(self) -> None:
        if not self.future.done() and self.expected <= self.results.keys():
            self.future.set_result(None)


@dataclass(slots=True)
class _SubscriptionState:
    handle: Subscription
    filters: tuple[Filter, ...]
    eose_pending: set[str]
    eose_seen: set[str] = field(default_factory=set)
    all_eose_sent: bool = False


# ---------------------------------------------------------------------------
# RelayPool Class
# ---------------------------------------------------------------------------


class RelayPool:
    """Set of relay sessions with de-duplicated, validated subscriptions.

    Supports two construction patterns: direct instantiation with a
    [RelayPoolConfig][nostrpool.core.pool.RelayPoolConfig] object, or the
    factory methods [from_yaml()][nostrpool.core.pool.RelayPool.from_yaml] /
    [from_dict()][nostrpool.core.pool.RelayPool.from_dict].

    Relays, subscriptions and notification listeners may be added before
    [start()][nostrpool.core.pool.RelayPool.start]; sessions begin
    connecting once the pool starts. After
    [close()][nostrpool.core.pool.RelayPool.close] the pool cannot be
    restarted.

    Examples:
        ```python
        pool = RelayPool(RelayPoolConfig(relays=["wss://nos.lol"]), keys=Keys.generate())

        async with pool:
            note = pool.sign_and_publish(build_text_note("hello"))
            result = await pool.publish_and_wait(note, timeout=5)
            print(result.accepted)
        ```

    See Also:
        [RelaySession][nostrpool.core.session.RelaySession]: One relay
            connection with its own reconnect loop.
        [Subscription][nostrpool.core.subscription.Subscription]: Handle
            returned by [subscribe()][nostrpool.core.pool.RelayPool.subscribe].
    """

    def __init__(
        self,
        config: RelayPoolConfig | None = None,
        *,
        keys: Keys | None = None,
        connector: Connector | None = None,
    ) -> None:
        """Initialize the pool with optional configuration.

        Args:
            config: Pool configuration. Relays listed in it are added
                immediately but not connected.
            keys: Signing keys. Overrides ``config.keys`` when given.
            connector: Transport factory. Defaults to a
                [WebSocketConnector][nostrpool.utils.transport.WebSocketConnector]
                built from ``config.transport``.
        """
        self._config = config or RelayPoolConfig()
        if keys is None and self._config.keys is not None:
            keys = self._config.keys.keys
        self._keys = keys
        self._connector: Connector = connector or WebSocketConnector(self._config.transport)
        self._logger = Logger("pool").bind(pool=self._config.name)
        self._session_logger = Logger("session").bind(pool=self._config.name)

        self._inbox: asyncio.Queue[SessionItem] = asyncio.Queue()
        self._sessions: dict[str, RelaySession] = {}
        self._subscriptions: dict[str, _SubscriptionState] = {}
        self._seen: OrderedDict[tuple[str, str], None] = OrderedDict()
        self._listeners: list[NotificationListener] = []
        self._ok_waiters: dict[str, list[_OkWaiter]] = {}
        self._connected_waiters: list[asyncio.Future[None]] = []
        self._closing: set[asyncio.Task[None]] = set()

        self._dispatcher: asyncio.Task[None] | None = None
        self._metrics_server = MetricsServer(self._config.metrics)
        self._is_running = False
        self._is_closed = False

        for url in self._config.relays:
            self.add_relay(url)

    @classmethod
    def from_yaml(
        cls, config_path: str | Path, *, keys: Keys | None = None, connector: Connector | None = None
    ) -> RelayPool:
        """Create a RelayPool from a YAML configuration file.

        Raises:
            FileNotFoundError: If the configuration file does not exist.
            ConfigurationError: If the file is not a YAML mapping, or the
                configured key variable is missing.
            pydantic.ValidationError: If a setting is out of range.
        """
        return cls.from_dict(load_yaml(config_path), keys=keys, connector=connector)

    @classmethod
    def from_dict(
        cls,
        config_dict: dict[str, Any],
        *,
        keys: Keys | None = None,
        connector: Connector | None = None,
    ) -> RelayPool:
        """Create a RelayPool from a dictionary matching ``RelayPoolConfig`` field names."""
        config = RelayPoolConfig(**config_dict)
        return cls(config, keys=keys, connector=connector)

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def config(self) -> RelayPoolConfig:
        """The pool configuration (read-only)."""
        return self._config

    @property
    def keys(self) -> Keys | None:
        return self._keys

    @property
    def is_running(self) -> bool:
        return self._is_running

    @property
    def relays(self) -> list[str]:
        """Normalized URLs of every relay in the pool, in insertion order."""
        return list(self._sessions)

    @property
    def subscriptions(self) -> Mapping[str, tuple[Filter, ...]]:
        return MappingProxyType({sid: s.filters for sid, s in self._subscriptions.items()})

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start(self) -> None:
        """Start the dispatcher, the metrics endpoint and every session.

        Raises:
            PoolError: If the pool was already closed.
            OSError: If metrics are enabled and the port cannot be bound.
        """
        if self._is_closed:
            raise PoolError("pool is closed")
        if self._is_running:
            return

        await self._metrics_server.start()
        self._is_running = True
        self._dispatcher = asyncio.create_task(
            self._dispatch_loop(), name=f"relay-pool:{self._config.name}"
        )
        for session in self._sessions.values():
            session.start()

        self._logger.info("pool_started", relays=len(self._sessions))

    async def close(self) -> None:
        """Terminate every session, end all streams and stop the dispatcher.

        Items already reported by the sessions are still dispatched before
        the subscriptions and listeners are closed. Idempotent.
        """
        if self._is_closed:
            return
        self._is_closed = True
        self._is_running = False

        sessions = list(self._sessions.values())
        for session in sessions:
            session.terminate()
        await asyncio.gather(
            *(s.wait_closed() for s in sessions), *self._closing, return_exceptions=True
        )

        if self._dispatcher is not None:
            self._dispatcher.cancel()
            await asyncio.gather(self._dispatcher, return_exceptions=True)
            self._dispatcher = None
        while not self._inbox.empty():
            self._handle_guarded(self._inbox.get_nowait())

        for state in self._subscriptions.values():
            state.handle._finish()
        self._subscriptions.clear()
        for listener in list(self._listeners):
            listener.close()
        for waiters in self._ok_waiters.values():
            for waiter in waiters:
                if not waiter.future.done():
                    waiter.future.set_result(None)
        for future in self._connected_waiters:
            future.cancel()
        self._connected_waiters.clear()
        self._sessions.clear()
        self._seen.clear()

        await self._metrics_server.stop()
        self._logger.info("pool_closed", relays=len(sessions))

    # -------------------------------------------------------------------------
    # Relay registry
    # -------------------------------------------------------------------------

    def add_relay(self, url: str | RelayUrl) -> bool:
        """Add a relay and mirror every open subscription onto it.

        Returns:
            True if the relay was added, False if it was already present.

        Raises:
            InvalidRelayUrlError: If ``url`` is not a valid relay URL.
            PoolError: If the pool is closed.
        """
        relay = self._parse_url(url)
        if self._is_closed:
            raise PoolError("pool is closed")
        if relay.url in self._sessions:
            return False

        session = RelaySession(
            relay, self._connector, self._inbox, self._config.session, logger=self._session_logger
        )
        for sid, state in self._subscriptions.items():
            session.subscribe(sid, state.filters)
        self._sessions[relay.url] = session
        if self._is_running:
            session.start()

        self._logger.info("relay_added", relay=relay.url, network=relay.network.value)
        self._update_gauges()
        return True

    def remove_relay(self, url: str | RelayUrl) -> bool:
        """Terminate and forget a relay's session.

        The relay no longer holds back aggregate end-of-stored-events
        notifications or pending [publish_and_wait()][nostrpool.core.pool.RelayPool.publish_and_wait]
        calls.

        Returns:
            True if the relay was removed, False if it was not present.

        Raises:
            InvalidRelayUrlError: If ``url`` is not a valid relay URL.
        """
        relay = self._parse_url(url)
        session = self._sessions.pop(relay.url, None)
        if session is None:
            return False

        session.terminate()
        if session.is_running:
            task = asyncio.get_running_loop().create_task(session.wait_closed())
            self._closing.add(task)
            task.add_done_callback(self._closing.discard)

        for sid, state in list(self._subscriptions.items()):
            state.eose_pending.discard(relay.url)
            state.eose_seen.discard(relay.url)
            self._check_all_eose(sid, state)
        for waiters in self._ok_waiters.values():
            for waiter in waiters:
                waiter.forget(relay.url)

        self._logger.info("relay_removed", relay=relay.url)
        self._update_gauges()
        return True

    def session(self, url: str | RelayUrl) -> RelaySession:
        """Return the session for ``url``.

        Raises:
            InvalidRelayUrlError: If ``url`` is not a valid relay URL.
            UnknownRelayError: If the relay is not in the pool.
        """
        relay = self._parse_url(url)
        try:
            return self._sessions[relay.url]
        except KeyError:
            raise UnknownRelayError(relay.url) from None

    def relay_state(self, url: str | RelayUrl) -> RelayState:
        return self.session(url).state

    def relay_states(self) -> dict[str, RelayState]:
        """Current state of every relay, keyed by normalized URL."""
        return {url: session.state for url, session in self._sessions.items()}

    async def wait_until_connected(self, timeout: float | None = None) -> None:  # noqa: ASYNC109
        """Return once at least one relay is CONNECTED.

        Raises:
            TimeoutError: If no relay connects within ``timeout`` seconds.
        """
        if any(s.state == RelayState.CONNECTED for s in self._sessions.values()):
            return
        future: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._connected_waiters.append(future)
        try:
            async with asyncio.timeout(timeout):
                await future
        finally:
            if future in self._connected_waiters:
                self._connected_waiters.remove(future)

    @staticmethod
    def _parse_url(url: str | RelayUrl) -> RelayUrl:
        if isinstance(url, RelayUrl):
            return url
        try:
            return RelayUrl(url)
        except (TypeError, ValueError) as e:
            raise InvalidRelayUrlError(f"invalid relay url {url!r}: {e}") from e

    # -------------------------------------------------------------------------
    # Publishing
    # -------------------------------------------------------------------------

    def publish(self, event: Event) -> str:
        """Validate ``event`` and queue it on every session.

        Does not wait for ``OK``; relay verdicts appear on the
        [notifications()][nostrpool.core.pool.RelayPool.notifications] stream.

        Returns:
            The event id.

        Raises:
            InvalidEventError: If the id or signature does not verify.
                Nothing is sent.
        """
        try:
            event.validate()
        except EventValidationError as e:
            raise InvalidEventError(f"refusing to publish event {event.id}: {e}") from e

        for session in self._sessions.values():
            session.send_event(event)
        self._logger.debug("event_published", event_id=event.id, relays=len(self._sessions))
        self.inc_counter("events_published")
        return event.id

    async def publish_and_wait(self, event: Event, timeout: float = 10.0) -> PublishResult:  # noqa: ASYNC109
        """Publish ``event`` and collect ``OK`` answers.

        Waits until every relay in the pool at call time has answered, or
        ``timeout`` seconds pass. Relays removed meanwhile are not waited for.

        Raises:
            InvalidEventError: If the event fails local validation.
        """
        self.publish(event)

        # OK frames are only dispatched once this coroutine yields, so
        # registering after publish() cannot miss an answer.
        waiter = _OkWaiter(set(self._sessions), asyncio.get_running_loop().create_future())
        self._ok_waiters.setdefault(event.id, []).append(waiter)
        try:
            waiter.check()
            try:
                async with asyncio.timeout(timeout):
                    await waiter.future
            except TimeoutError:
                self._logger.info(
                    "publish_timeout",
                    event_id=event.id,
                    answered=len(waiter.results),
                    expected=len(waiter.expected),
                )
        finally:
            waiters = self._ok_waiters.get(event.id, [])
            if waiter in waiters:
                waiters.remove(waiter)
            if not waiters:
                self._ok_waiters.pop(event.id, None)

        return PublishResult(
            event_id=event.id,
            ok=MappingProxyType(dict(waiter.results)),
            pending=frozenset(waiter.expected - waiter.results.keys()),
        )

    def sign_and_publish(self, template: UnsignedEvent) -> Event:
        """Sign ``template`` with the pool's keys and publish it.

        Raises:
            PublishingError: If the pool has no signing keys.
        """
        if self._keys is None:
            raise PublishingError("pool has no signing keys")
        event = template.sign(self._keys)
        self.publish(event)
        return event

    # -------------------------------------------------------------------------
    # Subscriptions
    # -------------------------------------------------------------------------

    def subscribe(
        self, filters: Iterable[Filter], *, subscription_id: str | None = None
    ) -> Subscription:
        """Open a subscription on every current and future relay.

        Args:
            filters: At least one filter. Events matching any are delivered.
            subscription_id: Caller-chosen id. A random one is allocated
                when omitted.

        Raises:
            ValueError: If ``filters`` is empty or ``subscription_id`` is
                not a valid id.
            TypeError: If an item of ``filters`` is not a Filter.
            DuplicateSubscriptionError: If ``subscription_id`` is in use.
        """
        filters = tuple(filters)
        if not filters:
            raise ValueError("at least one filter is required")
        for item in filters:
            if not isinstance(item, Filter):
                raise TypeError(f"expected Filter, got {type(item).__name__}")

        if subscription_id is None:
            subscription_id = self._new_subscription_id()
        else:
            validate_subscription_id(subscription_id)
            if subscription_id in self._subscriptions:
                raise DuplicateSubscriptionError(f"subscription {subscription_id!r} already open")

        handle = Subscription(
            subscription_id, filters, self._config.subscription_queue_size, self.unsubscribe
        )
        state = _SubscriptionState(handle, filters, eose_pending=set(self._sessions))
        self._subscriptions[subscription_id] = state
        for session in self._sessions.values():
            session.subscribe(subscription_id, filters)

        self._logger.debug("subscription_opened", sid=subscription_id, relays=len(self._sessions))
        self._check_all_eose(subscription_id, state)
        self._update_gauges()
        return handle

    def unsubscribe(self, subscription_id: str) -> bool:
        """Close a subscription on every relay and end its stream.

        Returns:
            True if it was open, False otherwise (repeat calls are no-ops).
        """
        state = self._subscriptions.pop(subscription_id, None)
        if state is None:
            return False

        for session in self._sessions.values():
            session.unsubscribe(subscription_id)
        state.handle._finish()
        for key in [k for k in self._seen if k[0] == subscription_id]:
            del self._seen[key]

        self._logger.debug("subscription_closed", sid=subscription_id)
        self._update_gauges()
        return True

    def subscription(self, subscription_id: str) -> Subscription:
        """Return the handle of an open subscription.

        Raises:
            UnknownSubscriptionError: If no such subscription is open.
        """
        try:
            return self._subscriptions[subscription_id].handle
        except KeyError:
            raise UnknownSubscriptionError(subscription_id) from None

    async def fetch_events(
        self,
        filters: Iterable[Filter],
        timeout: float = 10.0,  # noqa: ASYNC109
    ) -> list[Event]:
        """Collect stored events until every relay sends EOSE or ``timeout`` expires.

        The temporary subscription is always closed before returning.
        """
        events: list[Event] = []
        subscription = self.subscribe(filters)
        try:
            async with asyncio.timeout(timeout):
                async for item in subscription:
                    if isinstance(item, ReceivedEvent):
                        events.append(item.event)
                    elif isinstance(item, AllEndOfStoredEvents):
                        break
        except TimeoutError:
            self._logger.debug("fetch_timeout", sid=subscription.id, events=len(events))
        finally:
            subscription.close()
        return events

    def _new_subscription_id(self) -> str:
        while True:
            candidate = secrets.token_hex(_SUBSCRIPTION_ID_BYTES)
            if candidate not in self._subscriptions:
                return candidate

    # -------------------------------------------------------------------------
    # Notifications
    # -------------------------------------------------------------------------

    def notifications(self) -> NotificationListener:
        """Return a new listener for every frame and relay status change."""
        listener = NotificationListener(self._config.notification_queue_size, self._drop_listener)
        self._listeners.append(listener)
        return listener

    def _drop_listener(self, listener: NotificationListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self, notification: Notification) -> None:
        for listener in self._listeners:
            listener._push(notification)

    # -------------------------------------------------------------------------
    # Dispatcher
    # -------------------------------------------------------------------------

    async def _dispatch_loop(self) -> None:
        while True:
            item = await self._inbox.get()
            self._handle_guarded(item)

    def _handle_guarded(self, item: SessionItem) -> None:
        try:
            self._handle(item)
        except Exception as e:  # Intentionally broad: one bad item must not stop routing
            self._logger.error(
                "dispatch_error",
                item=type(item).__name__,
                relay=item.relay_url,
                error=f"{type(e).__name__}: {e}",
            )

    def _handle(self, item: SessionItem) -> None:
        match item:
            case SessionMessage(relay_url=url, message=message):
                self._notify(MessageNotification(url, Direction.INBOUND, message))
                if self._is_current(item):
                    self._route(url, message)
            case SessionFrameSent(relay_url=url, message=message):
                self._notify(MessageNotification(url, Direction.OUTBOUND, message))
            case SessionStateChange():
                self._on_state_change(item)
            case SessionFrameDropped():
                self.inc_counter("frames_malformed")

    def _is_current(self, item: SessionItem) -> bool:
        """True if ``item`` came from the session now registered for its relay."""
        session = self._sessions.get(item.relay_url)
        return session is not None and session.session_id == item.session_id

    def _route(self, url: str, message: RelayMessage) -> None:
        match message:
            case RelayEventMessage():
                self._on_event(url, message)
            case RelayEoseMessage(subscription_id=sid):
                self._on_eose(url, sid)
            case RelayOkMessage(event_id=event_id, accepted=accepted, message=text):
                self._on_ok(url, event_id, accepted, text)
            case RelayClosedMessage(subscription_id=sid, message=text):
                self._on_closed(url, sid, text)
            case RelayAuthMessage(challenge=challenge):
                self._on_auth(url, challenge)
            case RelayNoticeMessage(message=text):
                self._logger.info("relay_notice", relay=url, message=text)

    def _on_event(self, url: str, message: RelayEventMessage) -> None:
        sid, event = message.subscription_id, message.event
        state = self._subscriptions.get(sid)
        if state is None:
            self._logger.debug("event_unknown_subscription", relay=url, sid=sid)
            return

        key = (sid, event.id)
        if key in self._seen:
            self.inc_counter("events_duplicate")
            return

        try:
            event.validate()
        except EventValidationError as e:
            self._logger.warning("event_invalid", relay=url, event_id=event.id, error=str(e))
            self.inc_counter("events_invalid")
            return

        if not matches_any(event, state.filters):
            self._logger.debug("event_unmatched", relay=url, sid=sid, event_id=event.id)
            self.inc_counter("events_unmatched")
            return

        self._seen[key] = None
        while len(self._seen) > self._config.seen_cache_size:
            self._seen.popitem(last=False)

        state.handle._push(ReceivedEvent(sid, url, event))
        self.inc_counter("events_delivered")

    def _on_eose(self, url: str, sid: str) -> None:
        state = self._subscriptions.get(sid)
        if state is None or url in state.eose_seen:
            return
        state.eose_seen.add(url)
        state.handle._push(EndOfStoredEvents(sid, url))
        state.eose_pending.discard(url)
        self._check_all_eose(sid, state)

    def _check_all_eose(self, sid: str, state: _SubscriptionState) -> None:
        if state.all_eose_sent or state.eose_pending:
            return
        state.all_eose_sent = True
        state.handle._push(AllEndOfStoredEvents(sid))

    def _on_ok(self, url: str, event_id: str, accepted: bool, text: str) -> None:
        if accepted:
            self._logger.debug("event_accepted", relay=url, event_id=event_id)
        else:
            self._logger.info("event_rejected", relay=url, event_id=event_id, message=text)
        for waiter in self._ok_waiters.get(event_id, ()):
            waiter.record(url, accepted, text)

    def _on_closed(self, url: str, sid: str, text: str) -> None:
        state = self._subscriptions.get(sid)
        if state is None:
            return
        self._logger.info("subscription_closed_by_relay", relay=url, sid=sid, message=text)
        state.handle._push(SubscriptionClosed(sid, url, text))
        state.eose_pending.discard(url)
        self._check_all_eose(sid, state)

    def _on_auth(self, url: str, challenge: str) -> None:
        if not self._config.auto_authenticate or self._keys is None:
            self._logger.debug("auth_challenge_ignored", relay=url)
            return
        auth = build_auth_event(url, challenge).sign(self._keys)
        self._sessions[url].send(ClientAuthMessage(auth))
        self._logger.info("auth_sent", relay=url, event_id=auth.id)

    def _on_state_change(self, item: SessionStateChange) -> None:
        url, state = item.relay_url, item.state
        self._notify(RelayStatusNotification(url, state, item.error))
        if url in self._sessions and not self._is_current(item):
            return
        if self._config.metrics.enabled:
            for candidate in RelayState:
                RELAY_STATE.labels(pool=self._config.name, relay=url, state=candidate.value).set(
                    1 if candidate == state else 0
                )
        if state == RelayState.CONNECTED:
            for future in self._connected_waiters:
                if not future.done():
                    future.set_result(None)
            self._connected_waiters.clear()
        self._update_gauges()

    # -------------------------------------------------------------------------
    # Metrics
    # -------------------------------------------------------------------------

    def inc_counter(self, name: str, value: float = 1.0) -> None:
        """Increment ``nostrpool_counter{pool, name}``. No-op if metrics are disabled."""
        if self._config.metrics.enabled:
            POOL_COUNTER.labels(pool=self._config.name, name=name).inc(value)

    def set_gauge(self, name: str, value: float) -> None:
        """Set ``nostrpool_gauge{pool, name}``. No-op if metrics are disabled."""
        if self._config.metrics.enabled:
            POOL_GAUGE.labels(pool=self._config.name, name=name).set(value)

    def _update_gauges(self) -> None:
        connected = sum(1 for s in self._sessions.values() if s.state == RelayState.CONNECTED)
        self.set_gauge("relays", len(self._sessions))
        self.set_gauge("relays_connected", connected)
        self.set_gauge("subscriptions", len(self._subscriptions))

    # -------------------------------------------------------------------------
    # Context Manager
    # -------------------------------------------------------------------------

    async def __aenter__(self) -> RelayPool:
        """Start the pool on context entry."""
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any | None,
    ) -> None:
        """Close the pool on context exit."""
        await self.close()

    def __repr__(self) -> str:
        return (
            f"RelayPool(name={self._config.name}, relays={len(self._sessions)}, "
            f"subscriptions={len(self._subscriptions)}, running={self._is_running})"
        )
