"""
Subscription filters and client-side matching.

A [Filter][nostrpool.models.filter.Filter] is a conjunction of optional
constraints; values inside a single constraint are alternatives. An absent
constraint (``None``) matches anything, while a present but empty set
matches nothing. ``limit`` is advice for the relay's initial query and is
never applied client-side.

Examples:
    ```python
    f = Filter(kinds={1}, authors={pubkey}, tags={"t": {"nostr"}}, since=1_700_000_000)
    f.matches(event)
    f.to_dict()    # {"authors": [...], "kinds": [1], "#t": ["nostr"], "since": 1700000000}
    matches_any(event, [f, Filter(kinds={0})])
    ```
"""

from __future__ import annotations

import string
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from ._validation import validate_hex, validate_int, validate_str


if TYPE_CHECKING:
    from .event import Event


_HEX_LENGTH = 64
_TAG_LETTERS = frozenset(string.ascii_letters)
_SCALAR_KEYS = ("since", "until", "limit")


def _freeze_hex(values: Iterable[str] | None, name: str) -> frozenset[str] | None:
    if values is None:
        return None
    if isinstance(values, str):
        raise TypeError(f"{name} must be a collection of strings, not a single string")
    frozen = frozenset(v.lower() if isinstance(v, str) else v for v in values)
    for value in frozen:
        validate_hex(value, name, _HEX_LENGTH)
    return frozen


def _freeze_kinds(values: Iterable[int] | None) -> frozenset[int] | None:
    if values is None:
        return None
    frozen = frozenset(values)
    for value in frozen:
        validate_int(value, "kinds")
    return frozen


def _freeze_tags(tags: Mapping[str, Iterable[str]]) -> Mapping[str, frozenset[str]]:
    frozen: dict[str, frozenset[str]] = {}
    for letter, values in tags.items():
        if not isinstance(letter, str) or len(letter) != 1 or letter not in _TAG_LETTERS:
            raise ValueError(f"tag filter key must be a single letter, got {letter!r}")
        if isinstance(values, str):
            raise TypeError(f"tag filter '#{letter}' must be a collection of strings")
        allowed = frozenset(values)
        for value in allowed:
            validate_str(value, f"#{letter}")
        frozen[letter] = allowed
    return MappingProxyType(frozen)


@dataclass(frozen=True, slots=True)
class Filter:
    """Immutable event filter.

    All collection arguments accept any iterable and are stored as
    ``frozenset``. Hex values are lowercased.

    Attributes:
        ids: Allowed event ids.
        authors: Allowed author public keys.
        kinds: Allowed kinds.
        tags: Single tag letter to allowed second elements of that tag.
        since: Inclusive lower bound on ``created_at``.
        until: Inclusive upper bound on ``created_at``.
        limit: Maximum number of stored events the relay should return.

    Raises:
        ValueError: If hex values are malformed, ``since > until``,
            ``limit`` is negative, or a tag key is not a single letter.
        TypeError: If a field has the wrong type.
    """

    ids: frozenset[str] | None = None
    authors: frozenset[str] | None = None
    kinds: frozenset[int] | None = None
    tags: Mapping[str, frozenset[str]] = field(default_factory=dict, hash=False)
    since: int | None = None
    until: int | None = None
    limit: int | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "ids", _freeze_hex(self.ids, "ids"))
        object.__setattr__(self, "authors", _freeze_hex(self.authors, "authors"))
        object.__setattr__(self, "kinds", _freeze_kinds(self.kinds))
        object.__setattr__(self, "tags", _freeze_tags(self.tags))

        for name in _SCALAR_KEYS:
            value = getattr(self, name)
            if value is not None:
                validate_int(value, name)

        if self.since is not None and self.until is not None and self.since > self.until:
            raise ValueError(f"since ({self.since}) must be <= until ({self.until})")

    def is_empty(self) -> bool:
        """Return True if the filter has no constraints and matches every event."""
        return (
            self.ids is None
            and self.authors is None
            and self.kinds is None
            and not self.tags
            and self.since is None
            and self.until is None
        )

    def matches(self, event: Event) -> bool:
        """Return True iff every present constraint holds for ``event``."""
        if self.ids is not None and event.id not in self.ids:
            return False
        if self.authors is not None and event.pubkey not in self.authors:
            return False
        if self.kinds is not None and event.kind not in self.kinds:
            return False
        if self.since is not None and event.created_at < self.since:
            return False
        if self.until is not None and event.created_at > self.until:
            return False
        for letter, allowed in self.tags.items():
            if not any(
                len(tag) >= 2 and tag[0] == letter and tag[1] in allowed  # noqa: PLR2004
                for tag in event.tags
            ):
                return False
        return True

    def to_dict(self) -> dict[str, Any]:
        """Return the wire object with deterministic key and value order."""
        result: dict[str, Any] = {}
        if self.ids is not None:
            result["ids"] = sorted(self.ids)
        if self.authors is not None:
            result["authors"] = sorted(self.authors)
        if self.kinds is not None:
            result["kinds"] = sorted(self.kinds)
        for letter in sorted(self.tags):
            result[f"#{letter}"] = sorted(self.tags[letter])
        for name in _SCALAR_KEYS:
            value = getattr(self, name)
            if value is not None:
                result[name] = value
        return result

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Filter:
        """Build a filter from a decoded wire object.

        Unknown keys other than ``#<letter>`` are ignored.

        Raises:
            ValueError: If the object or any field is malformed.
        """
        if not isinstance(data, Mapping):
            raise ValueError(f"filter must be an object, got {type(data).__name__}")

        tags: dict[str, list[str]] = {}
        for key, value in data.items():
            if isinstance(key, str) and key.startswith("#"):
                if not isinstance(value, list):
                    raise ValueError(f"filter '{key}' must be an array")
                tags[key[1:]] = value

        for name in ("ids", "authors", "kinds"):
            if name in data and not isinstance(data[name], list):
                raise ValueError(f"filter '{name}' must be an array")

        try:
            return cls(
                ids=data.get("ids"),
                authors=data.get("authors"),
                kinds=data.get("kinds"),
                tags=tags,
                since=data.get("since"),
                until=data.get("until"),
                limit=data.get("limit"),
            )
        except TypeError as e:
            raise ValueError(str(e)) from e


def matches(event: Event, event_filter: Filter) -> bool:
    """Return True iff ``event`` satisfies ``event_filter``."""
    return event_filter.matches(event)


def matches_any(event: Event, filters: Iterable[Filter]) -> bool:
    """Return True iff ``event`` satisfies at least one of ``filters``."""
    return any(f.matches(event) for f in filters)
