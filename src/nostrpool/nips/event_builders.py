"""Nostr event builders for the common NIP-defined kinds.

Standalone functions that return an
[UnsignedEvent][nostrpool.models.event.UnsignedEvent]; call ``.sign(keys)``
to produce a publishable [Event][nostrpool.models.event.Event].

See Also:
    [ProfileMetadata][nostrpool.nips.profile.ProfileMetadata]: Kind 0 content model.
    [RelayPool][nostrpool.core.pool.RelayPool]: Uses
        [build_auth_event()][nostrpool.nips.event_builders.build_auth_event]
        to answer NIP-42 challenges.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING

from nostrpool.models._validation import validate_hex
from nostrpool.models.constants import EventKind
from nostrpool.models.event import UnsignedEvent
from nostrpool.models.keys import parse_public_key
from nostrpool.models.relay import RelayUrl

from .profile import ProfileMetadata


if TYPE_CHECKING:
    from nostrpool.models.event import Event


# =============================================================================
# Types
# =============================================================================


@dataclass(frozen=True, slots=True)
class Contact:
    """One entry of a NIP-02 contact list.

    ``public_key`` accepts hex or ``npub1...`` and is stored as hex.
    """

    public_key: str
    relay_url: str | None = None
    alias: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "public_key", parse_public_key(self.public_key))

    def to_tag(self) -> list[str]:
        """Return the ``["p", <pubkey>, <relay>, <alias>]`` tag."""
        return ["p", self.public_key, self.relay_url or "", self.alias or ""]


# =============================================================================
# Kind 0, 1, 2 (NIP-01)
# =============================================================================


def build_text_note(content: str, tags: Sequence[Sequence[str]] = ()) -> UnsignedEvent:
    """Build a Kind 1 short text note."""
    return UnsignedEvent(kind=EventKind.TEXT_NOTE, content=content, tags=tuple(tags))


def build_profile_event(  # noqa: PLR0913
    profile: ProfileMetadata | None = None,
    *,
    name: str | None = None,
    display_name: str | None = None,
    about: str | None = None,
    picture: str | None = None,
    nip05: str | None = None,
    website: str | None = None,
    banner: str | None = None,
    lud06: str | None = None,
    lud16: str | None = None,
) -> UnsignedEvent:
    """Build a Kind 0 profile metadata event.

    Either pass a ready [ProfileMetadata][nostrpool.nips.profile.ProfileMetadata]
    or individual keyword fields; empty fields are omitted from the content.
    """
    if profile is None:
        fields = {
            "name": name,
            "display_name": display_name,
            "about": about,
            "picture": picture,
            "nip05": nip05,
            "website": website,
            "banner": banner,
            "lud06": lud06,
            "lud16": lud16,
        }
        profile = ProfileMetadata(**{k: v for k, v in fields.items() if v})
    return UnsignedEvent(kind=EventKind.SET_METADATA, content=profile.to_json())


def build_recommend_relay(url: str) -> UnsignedEvent:
    """Build a Kind 2 relay recommendation.

    Raises:
        ValueError: If ``url`` is not a valid relay URL.
    """
    return UnsignedEvent(kind=EventKind.RECOMMEND_RELAY, content=RelayUrl(url).url)


# =============================================================================
# Kind 3 (NIP-02)
# =============================================================================


def build_contact_list(contacts: Iterable[Contact]) -> UnsignedEvent:
    """Build a Kind 3 contact list with one ``p`` tag per contact."""
    return UnsignedEvent(
        kind=EventKind.CONTACTS,
        content="",
        tags=tuple(tuple(contact.to_tag()) for contact in contacts),
    )


# =============================================================================
# Kind 5 (NIP-09)
# =============================================================================


def build_deletion(event_ids: Iterable[str], reason: str | None = None) -> UnsignedEvent:
    """Build a Kind 5 deletion request for ``event_ids``.

    Raises:
        ValueError: If any id is not 64 lowercase hex characters.
    """
    tags = []
    for event_id in event_ids:
        validate_hex(event_id, "event id", 64)
        tags.append(("e", event_id))
    return UnsignedEvent(kind=EventKind.EVENT_DELETION, content=reason or "", tags=tuple(tags))


# =============================================================================
# Kind 7 (NIP-25)
# =============================================================================


def build_reaction(event: Event, *, positive: bool = True) -> UnsignedEvent:
    """Build a Kind 7 like (``+``) or dislike (``-``) reaction to ``event``."""
    return UnsignedEvent(
        kind=EventKind.REACTION,
        content="+" if positive else "-",
        tags=(("e", event.id), ("p", event.pubkey)),
    )


# =============================================================================
# Kind 22242 (NIP-42)
# =============================================================================


def build_auth_event(relay_url: str, challenge: str) -> UnsignedEvent:
    """Build the ephemeral Kind 22242 event answering an AUTH challenge."""
    return UnsignedEvent(
        kind=EventKind.CLIENT_AUTHENTICATION,
        content="",
        tags=(("relay", relay_url), ("challenge", challenge)),
    )
