"""NIP helpers built on the pure models layer.

Attributes:
    ProfileMetadata: Kind 0 profile content (NIP-01).
    Contact: NIP-02 contact list entry.
    build_*: Event builders returning
        [UnsignedEvent][nostrpool.models.event.UnsignedEvent] templates
        for kinds 0, 1, 2, 3, 5, 7 and 22242.
"""

from .event_builders import (
    Contact,
    build_auth_event,
    build_contact_list,
    build_deletion,
    build_profile_event,
    build_reaction,
    build_recommend_relay,
    build_text_note,
)
from .profile import ProfileMetadata


__all__ = [
    "Contact",
    "ProfileMetadata",
    "build_auth_event",
    "build_contact_list",
    "build_deletion",
    "build_profile_event",
    "build_reaction",
    "build_recommend_relay",
    "build_text_note",
]
