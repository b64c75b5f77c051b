"""Pure frozen dataclasses with zero I/O for keys, events, filters and wire messages.

The models layer is the foundation of the diamond DAG. It depends only on the
standard library, the crypto/encoding libraries (``coincurve``, ``bech32``,
``rfc3986``) and [nostrpool.exceptions][]. Every model uses
``@dataclass(frozen=True, slots=True)`` and validates in ``__post_init__``
so invalid instances never escape the constructor.

Attributes:
    Keys: secp256k1 keypair with deterministic BIP-340 signing.
    Event: Signed, content-addressed event with
        [validate()][nostrpool.models.event.Event.validate].
    UnsignedEvent: Event template signed into an
        [Event][nostrpool.models.event.Event].
    Filter: Subscription filter with client-side
        [matches()][nostrpool.models.filter.Filter.matches].
    RelayUrl: Normalized ``ws``/``wss`` URL with
        [NetworkType][nostrpool.models.constants.NetworkType] detection.
    ClientMessage / RelayMessage: Closed unions of wire frames, parsed by
        [parse_relay_message()][nostrpool.models.message.parse_relay_message].

See Also:
    [nostrpool.core][]: Sessions and the pool that move these models over
        the network.
"""

from .constants import EventKind, NetworkType, RelayState
from .event import Event, Tag, Tags, UnsignedEvent, compute_id, serialize_for_id
from .filter import Filter, matches, matches_any
from .keys import (
    Keys,
    decode_bech32,
    encode_bech32,
    event_id_to_bech32,
    parse_public_key,
    public_key_to_bech32,
    verify_signature,
)
from .message import (
    ClientAuthMessage,
    ClientCloseMessage,
    ClientEventMessage,
    ClientMessage,
    ClientReqMessage,
    RelayAuthMessage,
    RelayClosedMessage,
    RelayEoseMessage,
    RelayEventMessage,
    RelayMessage,
    RelayNoticeMessage,
    RelayOkMessage,
    parse_client_message,
    parse_relay_message,
)
from .relay import RelayUrl


__all__ = [
    "ClientAuthMessage",
    "ClientCloseMessage",
    "ClientEventMessage",
    "ClientMessage",
    "ClientReqMessage",
    "Event",
    "EventKind",
    "Filter",
    "Keys",
    "NetworkType",
    "RelayAuthMessage",
    "RelayClosedMessage",
    "RelayEoseMessage",
    "RelayEventMessage",
    "RelayMessage",
    "RelayNoticeMessage",
    "RelayOkMessage",
    "RelayState",
    "RelayUrl",
    "Tag",
    "Tags",
    "UnsignedEvent",
    "compute_id",
    "decode_bech32",
    "encode_bech32",
    "event_id_to_bech32",
    "matches",
    "matches_any",
    "parse_client_message",
    "parse_public_key",
    "parse_relay_message",
    "public_key_to_bech32",
    "serialize_for_id",
    "verify_signature",
]
