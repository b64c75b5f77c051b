"""nostrpool exception hierarchy.

Provides typed exceptions for every error category so callers can tell
caller mistakes (raised synchronously, no side effects) apart from untrusted
network input (logged and dropped inside the pool) and transport failures
(which drive the reconnect loop). ``CancelledError`` is never wrapped.

Exception hierarchy:

```text
NostrPoolError (base -- never raised directly)
├── ConfigurationError         -- config validation, missing env vars, bad YAML
├── KeyMaterialError           -- secret/public key parsing
│   ├── InvalidSecretKeyError
│   └── InvalidPublicKeyError
├── EventValidationError       -- event rejected (also a ValueError)
│   ├── MalformedEventError    -- field has the wrong shape
│   ├── EventIdMismatchError   -- id is not the canonical digest
│   └── InvalidSignatureError  -- sig does not verify
├── ProtocolError              -- malformed wire frame
├── TransportError             -- relay unreachable, socket failures
│   ├── RelayTimeoutError      -- connection or response timed out
│   └── RelaySSLError          -- certificate issues
├── PoolError                  -- misuse of the relay pool API
│   ├── InvalidRelayUrlError
│   ├── UnknownRelayError
│   ├── UnknownSubscriptionError
│   └── DuplicateSubscriptionError
└── PublishingError            -- event broadcast failures
    └── InvalidEventError      -- refused locally before broadcast
```

See Also:
    [RelaySession][nostrpool.core.session.RelaySession]: Maps
        [TransportError][nostrpool.exceptions.TransportError] to backoff.
    [RelayPool][nostrpool.core.pool.RelayPool]: Raises
        [PoolError][nostrpool.exceptions.PoolError] subclasses synchronously.
"""

from __future__ import annotations


class NostrPoolError(Exception):
    """Base exception for all nostrpool errors.

    Never raised directly -- always use a specific subclass.
    """


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class ConfigurationError(NostrPoolError):
    """Invalid or missing configuration (YAML, env vars).

    See Also:
        [load_yaml()][nostrpool.core.yaml.load_yaml]: YAML loading function
            that may trigger configuration errors.
    """


# ---------------------------------------------------------------------------
# Key material
# ---------------------------------------------------------------------------


class KeyMaterialError(NostrPoolError, ValueError):
    """Base for malformed or out-of-range key material."""


class InvalidSecretKeyError(KeyMaterialError):
    """Secret key is not a 32-byte scalar in ``[1, n-1]`` or failed to decode."""


class InvalidPublicKeyError(KeyMaterialError):
    """Public key is not a valid 32-byte x-only point."""


# ---------------------------------------------------------------------------
# Event validation
# ---------------------------------------------------------------------------


class EventValidationError(NostrPoolError, ValueError):
    """Base for events that must not be trusted.

    Subclasses ``ValueError`` so that code validating plain data can catch
    it without importing this module.
    """


class MalformedEventError(EventValidationError):
    """A field has the wrong type, length or encoding."""


class EventIdMismatchError(EventValidationError):
    """The ``id`` field is not the digest of the canonical serialization."""


class InvalidSignatureError(EventValidationError):
    """The ``sig`` field does not verify against ``id`` and ``pubkey``."""


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


class ProtocolError(NostrPoolError):
    """Wire frame is not valid JSON, not an array, or has an unknown shape.

    See Also:
        [parse_relay_message()][nostrpool.models.message.parse_relay_message]:
            The parser that raises this error.
    """


# ---------------------------------------------------------------------------
# Transport
# ---------------------------------------------------------------------------


class TransportError(NostrPoolError):
    """Base for all relay/network connectivity errors.

    Transient: the session backs off and reconnects.
    """


class RelayTimeoutError(TransportError):
    """Connection or response timed out."""


class RelaySSLError(TransportError):
    """TLS/SSL certificate or handshake failure."""


# ---------------------------------------------------------------------------
# Pool
# ---------------------------------------------------------------------------


class PoolError(NostrPoolError):
    """Caller misused the relay pool API. Raised before any side effect."""


class InvalidRelayUrlError(PoolError, ValueError):
    """Relay URL failed validation."""


class UnknownRelayError(PoolError, KeyError):
    """No session exists for the given relay URL."""


class UnknownSubscriptionError(PoolError, KeyError):
    """No subscription exists for the given id."""


class DuplicateSubscriptionError(PoolError, ValueError):
    """A caller-chosen subscription id is already in use."""


# ---------------------------------------------------------------------------
# Publishing
# ---------------------------------------------------------------------------


class PublishingError(NostrPoolError):
    """Failed to broadcast a Nostr event to relays."""


class InvalidEventError(PublishingError, ValueError):
    """An event failed local validation and was not broadcast.

    The underlying
    [EventValidationError][nostrpool.exceptions.EventValidationError] is
    chained as ``__cause__``.
    """
