"""
Unit tests for models.event module.

Tests:
- Canonical serialization and reference ids
- UnsignedEvent construction and signing
- Event shape validation (MalformedEventError)
- validate() / is_valid() against tampering
- Dict / JSON conversion
"""

import dataclasses
import json

import pytest

from nostrpool.exceptions import (
    EventIdMismatchError,
    EventValidationError,
    InvalidSignatureError,
    MalformedEventError,
)
from nostrpool.models import Event, Keys, UnsignedEvent, compute_id, serialize_for_id


VECTOR0_PUBKEY = "f9308a019258c31049344f85f89d5229b531c845836f99b08601f113bce036f9"
SCENARIO_A_ID = "a9d53fee641fe563de947fa330a3b4902e52e249894660aaa521cd039e896128"
ESCAPES_ID = "f2cfd82e85ac7aec4a5ecc5611368ff8250c7d4ad51fd269ef8b88650c838289"
UNICODE_ID = "3e29def3aa5fc55a93c46a277ed00b9da06f2f44b2d7fca22cfd50317c423fc9"
ESCAPES_CONTENT = 'line\nbreak "quoted" back\\slash /path'


# ============================================================================
# Canonical serialization
# ============================================================================


class TestSerializeForId:
    """Canonical byte layout."""

    def test_compact_positional_array(self):
        data = serialize_for_id(VECTOR0_PUBKEY, 1_700_000_000, 1, [], "hello")
        assert data == f'[0,"{VECTOR0_PUBKEY}",1700000000,1,[],"hello"]'.encode()

    def test_non_ascii_written_verbatim(self):
        data = serialize_for_id(VECTOR0_PUBKEY, 0, 1, [], "héllo ☕")
        assert "héllo ☕".encode() in data
        assert b"\\u" not in data

    def test_slash_not_escaped(self):
        assert b'"/path"' in serialize_for_id(VECTOR0_PUBKEY, 0, 1, [], "/path")

    def test_short_escapes(self):
        data = serialize_for_id(VECTOR0_PUBKEY, 0, 1, [], 'a\n"b"\\c\t')
        assert b'"a\\n\\"b\\"\\\\c\\t"' in data

    def test_tags_serialized_as_arrays(self):
        data = serialize_for_id(VECTOR0_PUBKEY, 0, 1, [("t", "nostr")], "")
        assert b'[["t","nostr"]]' in data

    def test_lone_surrogate_is_malformed(self):
        with pytest.raises(MalformedEventError, match="UTF-8"):
            serialize_for_id(VECTOR0_PUBKEY, 0, 1, [], "\ud800")


class TestComputeId:
    """Reference ids."""

    def test_scenario_a(self):
        assert compute_id(VECTOR0_PUBKEY, 1_700_000_000, 1, [], "hello") == SCENARIO_A_ID

    def test_escapes(self):
        event_id = compute_id(VECTOR0_PUBKEY, 1_700_000_000, 1, [["t", "nostr"]], ESCAPES_CONTENT)
        assert event_id == ESCAPES_ID

    def test_unicode(self):
        assert compute_id(VECTOR0_PUBKEY, 1_700_000_000, 1, [], "héllo ☕") == UNICODE_ID

    def test_deterministic(self):
        args = (VECTOR0_PUBKEY, 1_700_000_000, 1, [["p", "x"]], "hi")
        assert compute_id(*args) == compute_id(*args)

    @pytest.mark.parametrize(
        "changes",
        [
            {"created_at": 1_700_000_001},
            {"kind": 2},
            {"tags": [["t", "x"]]},
            {"content": "hello!"},
            {"pubkey": "ab" * 32},
        ],
    )
    def test_any_field_changes_id(self, changes):
        base = {
            "pubkey": VECTOR0_PUBKEY,
            "created_at": 1_700_000_000,
            "kind": 1,
            "tags": [],
            "content": "hello",
        }
        assert compute_id(**{**base, **changes}) != SCENARIO_A_ID


# ============================================================================
# UnsignedEvent
# ============================================================================


class TestUnsignedEvent:
    """UnsignedEvent construction and signing."""

    def test_sign_scenario_a(self, keys):
        event = UnsignedEvent(kind=1, content="hello", created_at=1_700_000_000).sign(keys)
        assert event.id == SCENARIO_A_ID
        assert event.pubkey == VECTOR0_PUBKEY
        assert len(event.sig) == 128
        event.validate()

    def test_signing_is_deterministic(self, keys):
        template = UnsignedEvent(kind=1, content="hello", created_at=1_700_000_000)
        assert template.sign(keys) == template.sign(keys)

    def test_compute_id_matches_signed(self, keys):
        template = UnsignedEvent(kind=1, content="hello", created_at=1_700_000_000)
        assert template.compute_id(VECTOR0_PUBKEY) == SCENARIO_A_ID

    def test_created_at_defaults_to_now(self):
        assert UnsignedEvent(kind=1, content="").created_at > 1_700_000_000

    def test_tags_normalized_to_tuples(self):
        template = UnsignedEvent(kind=1, content="", tags=[["t", "a"], ["p", "b", "c"]])  # type: ignore[arg-type]
        assert template.tags == (("t", "a"), ("p", "b", "c"))

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"kind": -1, "content": ""},
            {"kind": True, "content": ""},
            {"kind": "1", "content": ""},
            {"kind": 1, "content": None},
            {"kind": 1, "content": "", "created_at": -5},
            {"kind": 1, "content": "", "tags": "t"},
            {"kind": 1, "content": "", "tags": [["t", 1]]},
        ],
    )
    def test_malformed(self, kwargs):
        with pytest.raises(MalformedEventError):
            UnsignedEvent(**kwargs)


# ============================================================================
# Event
# ============================================================================


class TestEventShape:
    """Construction-time shape checks."""

    def test_valid_fields(self, note):
        rebuilt = Event(**note.to_dict())
        assert rebuilt == note

    @pytest.mark.parametrize(
        ("field", "value"),
        [
            ("id", "ab" * 31),
            ("id", "AB" * 32),
            ("pubkey", "zz" * 32),
            ("sig", "ab" * 32),
            ("created_at", -1),
            ("created_at", 1.5),
            ("kind", -1),
            ("kind", False),
            ("content", 7),
            ("tags", [[1, 2]]),
            ("tags", {"t": "x"}),
        ],
    )
    def test_malformed_field(self, note, field, value):
        data = note.to_dict()
        data[field] = value
        with pytest.raises(MalformedEventError):
            Event(**data)

    def test_malformed_is_value_error(self, note):
        data = {**note.to_dict(), "id": "nope"}
        with pytest.raises(ValueError):
            Event(**data)

    def test_frozen(self, note):
        with pytest.raises(dataclasses.FrozenInstanceError):
            note.content = "changed"  # type: ignore[misc]

    def test_tag_values(self, keys):
        event = UnsignedEvent(
            kind=1, content="", tags=(("t", "a"), ("p", "x"), ("t", "b"), ("t",))
        ).sign(keys)
        assert event.tag_values("t") == ["a", "b"]
        assert event.tag_values("e") == []


class TestEventValidate:
    """validate() catches every kind of tampering."""

    def test_valid(self, note):
        note.validate()
        assert note.is_valid()

    @pytest.mark.parametrize(
        ("field", "value"),
        [
            ("content", "HELLO"),
            ("tags", (("t", "x"),)),
            ("created_at", 1_700_000_001),
            ("kind", 2),
            ("pubkey", "7e7e9c42a91bfef19fa929e5fda1b72e0ebc1a4c1141673e2794234d86addf4e"),
        ],
    )
    def test_tampered_field_detected(self, note, field, value):
        tampered = dataclasses.replace(note, **{field: value})
        with pytest.raises(EventIdMismatchError):
            tampered.validate()
        assert not tampered.is_valid()

    def test_recomputed_id_with_old_signature(self, note):
        tampered = dataclasses.replace(note, content="evil")
        forged = dataclasses.replace(tampered, id=tampered.compute_id())
        with pytest.raises(InvalidSignatureError):
            forged.validate()
        assert not forged.is_valid()

    def test_signature_from_other_key(self, note, other_keys):
        foreign = UnsignedEvent(kind=1, content="hello", created_at=1_700_000_000).sign(other_keys)
        swapped = dataclasses.replace(note, sig=foreign.sig)
        with pytest.raises(InvalidSignatureError):
            swapped.validate()

    def test_errors_share_base(self, note):
        with pytest.raises(EventValidationError):
            dataclasses.replace(note, content="x").validate()


class TestEventConversion:
    """to_dict / from_dict / to_json / from_json."""

    def test_to_dict_uses_lists(self, keys):
        event = UnsignedEvent(kind=1, content="", tags=(("t", "a"),)).sign(keys)
        assert event.to_dict()["tags"] == [["t", "a"]]

    def test_json_roundtrip_validates(self, keys):
        event = UnsignedEvent(
            kind=1, content=ESCAPES_CONTENT, tags=(("t", "nostr"),), created_at=1_700_000_000
        ).sign(keys)
        parsed = Event.from_json(event.to_json())
        assert parsed == event
        assert parsed.id == ESCAPES_ID
        parsed.validate()

    def test_to_json_is_compact(self, note):
        assert ", " not in note.to_json()
        assert json.loads(note.to_json()) == note.to_dict()

    def test_from_dict_ignores_unknown_keys(self, note):
        assert Event.from_dict({**note.to_dict(), "extra": 1}) == note

    def test_from_dict_missing_field(self, note):
        data = note.to_dict()
        del data["sig"]
        with pytest.raises(MalformedEventError, match="sig"):
            Event.from_dict(data)

    def test_from_dict_not_a_mapping(self):
        with pytest.raises(MalformedEventError):
            Event.from_dict(["not", "an", "object"])  # type: ignore[arg-type]

    def test_from_json_invalid(self):
        with pytest.raises(MalformedEventError, match="JSON"):
            Event.from_json("{not json")


def test_keys_fixture_is_vector0(keys: Keys) -> None:
    assert keys.public_key() == VECTOR0_PUBKEY
