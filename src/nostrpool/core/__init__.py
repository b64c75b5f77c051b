"""Core layer: relay sessions, the relay pool and their ambient services.

Sits at the top of the diamond DAG -- depends on ``nostrpool.models``,
``nostrpool.nips`` and ``nostrpool.utils``; nothing inside the package
depends on it.

Attributes:
    RelayPool: Registry of relay sessions with one dispatcher that
        de-duplicates, validates and routes inbound events.
        See [RelayPool][nostrpool.core.pool.RelayPool].
    RelaySession: Self-healing connection to one relay with an explicit
        reconnect state machine and plain-data
        [BackoffState][nostrpool.core.session.BackoffState].
    Subscription: Async-iterable handle of one pool subscription.
    Logger: Structured logger supporting key=value and JSON output modes.
        See [Logger][nostrpool.core.logger.Logger].
    MetricsServer: Prometheus ``/metrics`` HTTP endpoint.
        See [MetricsServer][nostrpool.core.metrics.MetricsServer].
    YAML: Safe YAML loading with ``yaml.safe_load()``.
        See [load_yaml()][nostrpool.core.yaml.load_yaml].

Examples:
    ```python
    from nostrpool.core import RelayPool

    async with RelayPool.from_yaml("config/pool.yaml") as pool:
        events = await pool.fetch_events([Filter(kinds={0}, limit=10)])
    ```
"""

from .logger import Logger, StructuredFormatter, format_kv_pairs, setup_logging
from .metrics import POOL_COUNTER, POOL_GAUGE, RELAY_STATE, MetricsConfig, MetricsServer
from .pool import PublishResult, RelayPool, RelayPoolConfig
from .session import (
    BackoffState,
    RelaySession,
    RetryConfig,
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
    SubscriptionItem,
)
from .yaml import load_yaml


__all__ = [
    "POOL_COUNTER",
    "POOL_GAUGE",
    "RELAY_STATE",
    "AllEndOfStoredEvents",
    "BackoffState",
    "Direction",
    "EndOfStoredEvents",
    "Logger",
    "MessageNotification",
    "MetricsConfig",
    "MetricsServer",
    "Notification",
    "NotificationListener",
    "PublishResult",
    "ReceivedEvent",
    "RelayPool",
    "RelayPoolConfig",
    "RelaySession",
    "RelayStatusNotification",
    "RetryConfig",
    "SessionConfig",
    "SessionFrameDropped",
    "SessionFrameSent",
    "SessionItem",
    "SessionMessage",
    "SessionStateChange",
    "StructuredFormatter",
    "Subscription",
    "SubscriptionClosed",
    "SubscriptionItem",
    "format_kv_pairs",
    "load_yaml",
    "setup_logging",
]
