"""Shared constants for the models layer.

Defines enumerations and other constants that are used across multiple
model modules. Placing them here avoids circular dependencies between
the models, core and utils layers.

See Also:
    [nostrpool.models.relay][]: Uses [NetworkType][nostrpool.models.constants.NetworkType]
        to classify relay URLs during construction.
    [nostrpool.core.session][]: Uses [RelayState][nostrpool.models.constants.RelayState]
        for the reconnect state machine.
"""

from __future__ import annotations

from enum import IntEnum, StrEnum
from typing import Final


class NetworkType(StrEnum):
    """Network type enum for relay classification.

    Each relay URL is classified into exactly one network type during
    [RelayUrl][nostrpool.models.relay.RelayUrl] construction. Overlay
    networks are always reached over ``ws://`` through a SOCKS5 proxy.

    Attributes:
        CLEARNET: Public internet relay.
        TOR: Tor hidden service identified by a ``.onion`` hostname.
        I2P: I2P eepsite identified by a ``.i2p`` hostname.
        LOKI: Lokinet service identified by a ``.loki`` hostname.
        LOCAL: Loopback, private or reserved address (development relays).
        UNKNOWN: Hostname that could not be classified (rejected during validation).
    """

    CLEARNET = "clearnet"
    TOR = "tor"
    I2P = "i2p"
    LOKI = "loki"
    LOCAL = "local"
    UNKNOWN = "unknown"


OVERLAY_NETWORKS: frozenset[NetworkType] = frozenset(
    {NetworkType.TOR, NetworkType.I2P, NetworkType.LOKI}
)


class RelayState(StrEnum):
    """Lifecycle state of a [RelaySession][nostrpool.core.session.RelaySession].

    Attributes:
        DISCONNECTED: Initial state, and the state while backing off.
        CONNECTING: Handshake in progress.
        CONNECTED: Transport open; frames flow in both directions.
        TERMINATED: Final state after ``terminate()``. No further transitions.
    """

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    TERMINATED = "terminated"


class EventKind(IntEnum):
    """Well-known Nostr event kinds produced by the builders.

    Attributes:
        SET_METADATA: Kind 0 -- user profile metadata (NIP-01).
        TEXT_NOTE: Kind 1 -- short text note (NIP-01).
        RECOMMEND_RELAY: Kind 2 -- legacy relay recommendation (NIP-01, deprecated).
        CONTACTS: Kind 3 -- contact list with relay hints (NIP-02).
        ENCRYPTED_DIRECT_MESSAGE: Kind 4 -- NIP-04 direct message (opaque here).
        EVENT_DELETION: Kind 5 -- deletion request (NIP-09).
        REACTION: Kind 7 -- reaction to another event (NIP-25).
        CLIENT_AUTHENTICATION: Kind 22242 -- ephemeral AUTH response (NIP-42).

    See Also:
        [nostrpool.nips.event_builders][]: Builders that set these kinds.
    """

    SET_METADATA = 0
    TEXT_NOTE = 1
    RECOMMEND_RELAY = 2
    CONTACTS = 3
    ENCRYPTED_DIRECT_MESSAGE = 4
    EVENT_DELETION = 5
    REACTION = 7
    CLIENT_AUTHENTICATION = 22_242


SUBSCRIPTION_ID_MAX_LENGTH: Final[int] = 64
