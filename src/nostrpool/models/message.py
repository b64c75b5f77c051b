"""
Client and relay wire messages.

Each direction is a closed set of frozen dataclasses. Frames are JSON
arrays whose first element names the variant; arity and element types are
checked strictly, and anything unexpected raises
[ProtocolError][nostrpool.exceptions.ProtocolError]. Callers on the receive
path log and drop the frame; one bad frame never affects its neighbours.

Client to relay:

```text
["EVENT", <event>]
["REQ", <sub-id>, <filter>, ...]
["CLOSE", <sub-id>]
["AUTH", <event>]
```

Relay to client:

```text
["EVENT", <sub-id>, <event>]
["OK", <event-id>, <accepted>, <message>]
["EOSE", <sub-id>]
["NOTICE", <message>]
["AUTH", <challenge>]
["CLOSED", <sub-id>, <message>]
```

Examples:
    ```python
    ClientReqMessage("sub1", (Filter(kinds={1}),)).to_json()
    # '["REQ","sub1",{"kinds":[1]}]'

    match parse_relay_message(frame):
        case RelayEventMessage(subscription_id=sid, event=event):
            ...
        case RelayEoseMessage(subscription_id=sid):
            ...
    ```
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Final

from nostrpool.exceptions import MalformedEventError, ProtocolError

from ._validation import is_lower_hex
from .constants import SUBSCRIPTION_ID_MAX_LENGTH
from .event import Event
from .filter import Filter


EVENT: Final[str] = "EVENT"
REQ: Final[str] = "REQ"
CLOSE: Final[str] = "CLOSE"
AUTH: Final[str] = "AUTH"
OK: Final[str] = "OK"
EOSE: Final[str] = "EOSE"
NOTICE: Final[str] = "NOTICE"
CLOSED: Final[str] = "CLOSED"


def _dumps(frame: list[Any]) -> str:
    return json.dumps(frame, ensure_ascii=False, separators=(",", ":"))


def validate_subscription_id(value: Any) -> str:
    """Return ``value`` if it is a usable subscription id.

    Raises:
        ValueError: If it is not a non-empty string of at most 64 characters.
    """
    if not isinstance(value, str) or not value:
        raise ValueError(f"subscription id must be a non-empty string, got {value!r}")
    if len(value) > SUBSCRIPTION_ID_MAX_LENGTH:
        raise ValueError(f"subscription id longer than {SUBSCRIPTION_ID_MAX_LENGTH} chars")
    return value


# ---------------------------------------------------------------------------
# Client -> relay
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ClientEventMessage:
    """Publish ``event``."""

    event: Event

    def to_list(self) -> list[Any]:
        return [EVENT, self.event.to_dict()]

    def to_json(self) -> str:
        return _dumps(self.to_list())


@dataclass(frozen=True, slots=True)
class ClientReqMessage:
    """Open (or replace) subscription ``subscription_id`` with ``filters``."""

    subscription_id: str
    filters: tuple[Filter, ...]

    def __post_init__(self) -> None:
        validate_subscription_id(self.subscription_id)
        object.__setattr__(self, "filters", tuple(self.filters))

    def to_list(self) -> list[Any]:
        return [REQ, self.subscription_id, *(f.to_dict() for f in self.filters)]

    def to_json(self) -> str:
        return _dumps(self.to_list())


@dataclass(frozen=True, slots=True)
class ClientCloseMessage:
    """Close subscription ``subscription_id``."""

    subscription_id: str

    def __post_init__(self) -> None:
        validate_subscription_id(self.subscription_id)

    def to_list(self) -> list[Any]:
        return [CLOSE, self.subscription_id]

    def to_json(self) -> str:
        return _dumps(self.to_list())


@dataclass(frozen=True, slots=True)
class ClientAuthMessage:
    """Answer a NIP-42 challenge with a signed kind-22242 ``event``."""

    event: Event

    def to_list(self) -> list[Any]:
        return [AUTH, self.event.to_dict()]

    def to_json(self) -> str:
        return _dumps(self.to_list())


ClientMessage = ClientEventMessage | ClientReqMessage | ClientCloseMessage | ClientAuthMessage


# ---------------------------------------------------------------------------
# Relay -> client
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class RelayEventMessage:
    """Event delivered for ``subscription_id``. Not yet validated."""

    subscription_id: str
    event: Event

    def to_list(self) -> list[Any]:
        return [EVENT, self.subscription_id, self.event.to_dict()]

    def to_json(self) -> str:
        return _dumps(self.to_list())


@dataclass(frozen=True, slots=True)
class RelayOkMessage:
    """Relay's verdict on a published event."""

    event_id: str
    accepted: bool
    message: str

    def to_list(self) -> list[Any]:
        return [OK, self.event_id, self.accepted, self.message]

    def to_json(self) -> str:
        return _dumps(self.to_list())


@dataclass(frozen=True, slots=True)
class RelayEoseMessage:
    """End of stored events for ``subscription_id``."""

    subscription_id: str

    def to_list(self) -> list[Any]:
        return [EOSE, self.subscription_id]

    def to_json(self) -> str:
        return _dumps(self.to_list())


@dataclass(frozen=True, slots=True)
class RelayNoticeMessage:
    """Human-readable message from the relay."""

    message: str

    def to_list(self) -> list[Any]:
        return [NOTICE, self.message]

    def to_json(self) -> str:
        return _dumps(self.to_list())


@dataclass(frozen=True, slots=True)
class RelayAuthMessage:
    """NIP-42 authentication challenge."""

    challenge: str

    def to_list(self) -> list[Any]:
        return [AUTH, self.challenge]

    def to_json(self) -> str:
        return _dumps(self.to_list())


@dataclass(frozen=True, slots=True)
class RelayClosedMessage:
    """Relay refused or ended subscription ``subscription_id``."""

    subscription_id: str
    message: str

    def to_list(self) -> list[Any]:
        return [CLOSED, self.subscription_id, self.message]

    def to_json(self) -> str:
        return _dumps(self.to_list())


RelayMessage = (
    RelayEventMessage
    | RelayOkMessage
    | RelayEoseMessage
    | RelayNoticeMessage
    | RelayAuthMessage
    | RelayClosedMessage
)


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def _load_frame(text: str | bytes) -> list[Any]:
    try:
        frame = json.loads(text)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ProtocolError(f"frame is not valid JSON: {e}") from e
    if not isinstance(frame, list) or not frame:
        raise ProtocolError("frame must be a non-empty JSON array")
    if not isinstance(frame[0], str):
        raise ProtocolError(f"frame tag must be a string, got {frame[0]!r}")
    return frame


def _expect_arity(frame: list[Any], arity: int) -> None:
    if len(frame) != arity:
        raise ProtocolError(f"{frame[0]} frame must have {arity} elements, got {len(frame)}")


def _expect_str(value: Any, what: str) -> str:
    if not isinstance(value, str):
        raise ProtocolError(f"{what} must be a string, got {type(value).__name__}")
    return value


def _subscription_id(value: Any) -> str:
    try:
        return validate_subscription_id(value)
    except ValueError as e:
        raise ProtocolError(str(e)) from e


def _event(value: Any) -> Event:
    try:
        return Event.from_dict(value)
    except MalformedEventError as e:
        raise ProtocolError(f"malformed event: {e}") from e


def parse_relay_message(text: str | bytes) -> RelayMessage:
    """Parse one relay-to-client frame.

    Raises:
        ProtocolError: If the frame is not valid JSON, is not an array,
            has an unknown tag, the wrong arity, or a wrongly typed element.
    """
    frame = _load_frame(text)
    tag = frame[0]

    if tag == EVENT:
        _expect_arity(frame, 3)
        return RelayEventMessage(_subscription_id(frame[1]), _event(frame[2]))
    if tag == OK:
        _expect_arity(frame, 4)
        if not is_lower_hex(frame[1], 64):
            raise ProtocolError(f"OK event id must be 64 hex chars, got {frame[1]!r}")
        if not isinstance(frame[2], bool):
            raise ProtocolError("OK status must be a boolean")
        return RelayOkMessage(frame[1], frame[2], _expect_str(frame[3], "OK message"))
    if tag == EOSE:
        _expect_arity(frame, 2)
        return RelayEoseMessage(_subscription_id(frame[1]))
    if tag == NOTICE:
        _expect_arity(frame, 2)
        return RelayNoticeMessage(_expect_str(frame[1], "NOTICE message"))
    if tag == AUTH:
        _expect_arity(frame, 2)
        return RelayAuthMessage(_expect_str(frame[1], "AUTH challenge"))
    if tag == CLOSED:
        _expect_arity(frame, 3)
        return RelayClosedMessage(_subscription_id(frame[1]), _expect_str(frame[2], "CLOSED message"))

    raise ProtocolError(f"unknown relay message tag: {tag!r}")


def parse_client_message(text: str | bytes) -> ClientMessage:
    """Parse one client-to-relay frame.

    Used by test relays and tooling that inspect what a client sent.

    Raises:
        ProtocolError: On any malformed frame, including invalid filters.
    """
    frame = _load_frame(text)
    tag = frame[0]

    if tag == EVENT:
        _expect_arity(frame, 2)
        return ClientEventMessage(_event(frame[1]))
    if tag == REQ:
        if len(frame) < 2:  # noqa: PLR2004
            raise ProtocolError("REQ frame must carry a subscription id")
        subscription_id = _subscription_id(frame[1])
        try:
            filters = tuple(Filter.from_dict(f) for f in frame[2:])
        except ValueError as e:
            raise ProtocolError(f"malformed filter: {e}") from e
        return ClientReqMessage(subscription_id, filters)
    if tag == CLOSE:
        _expect_arity(frame, 2)
        return ClientCloseMessage(_subscription_id(frame[1]))
    if tag == AUTH:
        _expect_arity(frame, 2)
        return ClientAuthMessage(_event(frame[1]))

    raise ProtocolError(f"unknown client message tag: {tag!r}")
