"""
Kind 0 profile metadata (NIP-01, NIP-05, NIP-57 fields).

The content of a kind-0 event is a JSON object describing the author.
[ProfileMetadata][nostrpool.nips.profile.ProfileMetadata] parses it
leniently (unknown keys and wrongly typed values are dropped, since the
content comes from arbitrary clients) and serializes it without ``None``
fields.

See Also:
    [build_profile_event()][nostrpool.nips.event_builders.build_profile_event]:
        Wraps a profile into an unsigned kind-0 event.
"""

from __future__ import annotations

import json
from typing import Any, Self

from pydantic import BaseModel, ConfigDict

from nostrpool.models.constants import EventKind
from nostrpool.models.event import Event


class ProfileMetadata(BaseModel):
    """Frozen user profile carried in kind-0 content.

    Attributes:
        name: Short handle.
        display_name: Longer display name.
        about: Free-form biography.
        website: Personal URL.
        picture: Avatar image URL.
        banner: Banner image URL.
        nip05: Internet identifier (``user@domain``).
        lud06: LNURL pay request.
        lud16: Lightning address.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    name: str | None = None
    display_name: str | None = None
    about: str | None = None
    website: str | None = None
    picture: str | None = None
    banner: str | None = None
    nip05: str | None = None
    lud06: str | None = None
    lud16: str | None = None

    @classmethod
    def parse(cls, data: Any) -> dict[str, Any]:
        """Keep only known fields whose values are strings."""
        if not isinstance(data, dict):
            return {}
        return {
            name: data[name]
            for name in cls.model_fields
            if isinstance(data.get(name), str)
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        """Create an instance from untrusted data, dropping invalid values."""
        return cls.model_validate(cls.parse(data))

    @classmethod
    def from_json(cls, text: str) -> Self:
        """Parse kind-0 content.

        Raises:
            ValueError: If ``text`` is not a JSON object.
        """
        data = json.loads(text)
        if not isinstance(data, dict):
            raise ValueError("profile metadata must be a JSON object")
        return cls.from_dict(data)

    @classmethod
    def from_event(cls, event: Event) -> Self:
        """Parse the content of a kind-0 event.

        Raises:
            ValueError: If the event is not kind 0 or its content is not
                a JSON object.
        """
        if event.kind != EventKind.SET_METADATA:
            raise ValueError(f"expected kind {EventKind.SET_METADATA}, got {event.kind}")
        return cls.from_json(event.content)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a dictionary, excluding fields with ``None`` values."""
        return self.model_dump(exclude_none=True)

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False, separators=(",", ":"))
