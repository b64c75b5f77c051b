"""
Signed, content-addressed Nostr events.

An event id is the SHA-256 of the canonical JSON encoding of
``[0, pubkey, created_at, kind, tags, content]``: a positional array with no
insignificant whitespace, UTF-8 output without ``\\u`` escaping of non-ASCII
characters, and the standard short escapes for quote, backslash and control
characters. The forward slash is written verbatim.

Events are built unsigned ([UnsignedEvent][nostrpool.models.event.UnsignedEvent]),
signed into an immutable [Event][nostrpool.models.event.Event], and every event
received from a relay must pass [Event.validate()][nostrpool.models.event.Event.validate]
before it is trusted.

See Also:
    [nostrpool.models.keys][]: Schnorr signing and verification.
    [nostrpool.nips.event_builders][]: Helpers that produce
        [UnsignedEvent][nostrpool.models.event.UnsignedEvent] instances.
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from time import time
from typing import TYPE_CHECKING, Any

from nostrpool.exceptions import (
    EventIdMismatchError,
    InvalidSignatureError,
    MalformedEventError,
)

from ._validation import validate_hex, validate_int, validate_str
from .keys import verify_signature


if TYPE_CHECKING:
    from .keys import Keys


Tag = tuple[str, ...]
Tags = tuple[Tag, ...]

_ID_HEX_LENGTH = 64
_PUBKEY_HEX_LENGTH = 64
_SIG_HEX_LENGTH = 128
_EVENT_FIELDS = ("id", "pubkey", "created_at", "kind", "tags", "content", "sig")


# ---------------------------------------------------------------------------
# Canonical serialization
# ---------------------------------------------------------------------------


def normalize_tags(tags: Any) -> Tags:
    """Convert any sequence of string sequences into a tuple of tuples.

    Raises:
        MalformedEventError: If ``tags`` is not a list/tuple of lists/tuples
            of strings.
    """
    if not isinstance(tags, list | tuple):
        raise MalformedEventError(f"tags must be an array, got {type(tags).__name__}")
    result: list[Tag] = []
    for tag in tags:
        if not isinstance(tag, list | tuple):
            raise MalformedEventError(f"tag must be an array, got {type(tag).__name__}")
        if not all(isinstance(value, str) for value in tag):
            raise MalformedEventError(f"tag values must be strings: {tag!r}")
        result.append(tuple(tag))
    return tuple(result)


def serialize_for_id(
    pubkey: str,
    created_at: int,
    kind: int,
    tags: Iterable[Sequence[str]],
    content: str,
) -> bytes:
    """Return the canonical UTF-8 bytes hashed to produce an event id.

    Raises:
        MalformedEventError: If the text cannot be encoded as UTF-8
            (for example, a lone surrogate in ``content``).
    """
    payload = [0, pubkey, created_at, kind, [list(tag) for tag in tags], content]
    text = json.dumps(payload, ensure_ascii=False, separators=(",", ":"))
    try:
        return text.encode("utf-8")
    except UnicodeEncodeError as e:
        raise MalformedEventError(f"event is not encodable as UTF-8: {e.reason}") from e


def compute_id(
    pubkey: str,
    created_at: int,
    kind: int,
    tags: Iterable[Sequence[str]],
    content: str,
) -> str:
    """Return the event id (lowercase hex SHA-256) of the canonical serialization."""
    return hashlib.sha256(serialize_for_id(pubkey, created_at, kind, tags, content)).hexdigest()


# ---------------------------------------------------------------------------
# Unsigned events
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class UnsignedEvent:
    """Event template before the author is known.

    ``created_at`` defaults to the current Unix time. ``tags`` accepts any
    sequence of string sequences and is stored as a tuple of tuples.

    Examples:
        ```python
        event = UnsignedEvent(kind=1, content="hello").sign(keys)
        event.validate()
        ```
    """

    kind: int
    content: str
    tags: Tags = ()
    created_at: int = field(default_factory=lambda: int(time()))

    def __post_init__(self) -> None:
        try:
            validate_int(self.kind, "kind")
            validate_int(self.created_at, "created_at")
            validate_str(self.content, "content")
        except (TypeError, ValueError) as e:
            raise MalformedEventError(str(e)) from e
        object.__setattr__(self, "kind", int(self.kind))
        object.__setattr__(self, "tags", normalize_tags(self.tags))

    def compute_id(self, pubkey: str) -> str:
        """Return the id this template would have when authored by ``pubkey``."""
        return compute_id(pubkey, self.created_at, self.kind, self.tags, self.content)

    def sign(self, keys: Keys) -> Event:
        """Set the author to ``keys``, compute the id and sign it."""
        pubkey = keys.public_key()
        event_id = self.compute_id(pubkey)
        sig = keys.sign(bytes.fromhex(event_id))
        return Event(
            id=event_id,
            pubkey=pubkey,
            created_at=self.created_at,
            kind=self.kind,
            tags=self.tags,
            content=self.content,
            sig=sig.hex(),
        )


# ---------------------------------------------------------------------------
# Signed events
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Event:
    """Immutable signed Nostr event.

    Construction checks the *shape* of every field (hex lengths, integer
    ranges, tag structure) and raises
    [MalformedEventError][nostrpool.exceptions.MalformedEventError] on
    failure. It does **not** check the id or signature: call
    [validate()][nostrpool.models.event.Event.validate] for that.

    Attributes:
        id: 64 lowercase hex chars, SHA-256 of the canonical serialization.
        pubkey: 64 lowercase hex chars, x-only author key.
        created_at: Unix seconds.
        kind: Non-negative integer kind.
        tags: Tuple of string tuples; element 0 of each tag is its name.
        content: Arbitrary text.
        sig: 128 lowercase hex chars, BIP-340 signature over ``id``.
    """

    id: str
    pubkey: str
    created_at: int
    kind: int
    tags: Tags
    content: str
    sig: str

    def __post_init__(self) -> None:
        try:
            validate_hex(self.id, "id", _ID_HEX_LENGTH)
            validate_hex(self.pubkey, "pubkey", _PUBKEY_HEX_LENGTH)
            validate_hex(self.sig, "sig", _SIG_HEX_LENGTH)
            validate_int(self.created_at, "created_at")
            validate_int(self.kind, "kind")
            validate_str(self.content, "content")
        except (TypeError, ValueError) as e:
            raise MalformedEventError(str(e)) from e
        object.__setattr__(self, "kind", int(self.kind))
        object.__setattr__(self, "tags", normalize_tags(self.tags))

    # -------------------------------------------------------------------------
    # Integrity
    # -------------------------------------------------------------------------

    def compute_id(self) -> str:
        """Recompute the id from the event's fields."""
        return compute_id(self.pubkey, self.created_at, self.kind, self.tags, self.content)

    def validate(self) -> None:
        """Check the id and then the signature.

        Raises:
            EventIdMismatchError: If ``id`` is not the canonical digest.
            InvalidSignatureError: If ``sig`` does not verify.
            MalformedEventError: If the content cannot be serialized.
        """
        expected = self.compute_id()
        if expected != self.id:
            raise EventIdMismatchError(f"id {self.id} does not match computed {expected}")
        if not verify_signature(self.pubkey, bytes.fromhex(self.id), self.sig):
            raise InvalidSignatureError(f"signature does not verify for event {self.id}")

    def is_valid(self) -> bool:
        """Return True if [validate()][nostrpool.models.event.Event.validate] passes."""
        try:
            self.validate()
        except (MalformedEventError, EventIdMismatchError, InvalidSignatureError):
            return False
        return True

    # -------------------------------------------------------------------------
    # Tag helpers
    # -------------------------------------------------------------------------

    def tag_values(self, name: str) -> list[str]:
        """Return the second element of every tag named ``name``."""
        return [tag[1] for tag in self.tags if len(tag) >= 2 and tag[0] == name]  # noqa: PLR2004

    # -------------------------------------------------------------------------
    # Conversion
    # -------------------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        """Return the wire object (tags as lists)."""
        return {
            "id": self.id,
            "pubkey": self.pubkey,
            "created_at": self.created_at,
            "kind": self.kind,
            "tags": [list(tag) for tag in self.tags],
            "content": self.content,
            "sig": self.sig,
        }

    def to_json(self) -> str:
        """Return the wire object as compact JSON text."""
        return json.dumps(self.to_dict(), ensure_ascii=False, separators=(",", ":"))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Event:
        """Build an event from a decoded wire object.

        Unknown keys are ignored.

        Raises:
            MalformedEventError: If a field is missing or has the wrong shape.
        """
        if not isinstance(data, Mapping):
            raise MalformedEventError(f"event must be an object, got {type(data).__name__}")
        missing = [name for name in _EVENT_FIELDS if name not in data]
        if missing:
            raise MalformedEventError(f"event is missing fields: {', '.join(missing)}")
        return cls(**{name: data[name] for name in _EVENT_FIELDS})

    @classmethod
    def from_json(cls, text: str) -> Event:
        """Parse an event from JSON text.

        Raises:
            MalformedEventError: If the text is not valid JSON or the
                object is malformed.
        """
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise MalformedEventError(f"invalid event JSON: {e}") from e
        return cls.from_dict(data)
