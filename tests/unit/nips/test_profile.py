"""Unit tests for nips.profile module."""

from __future__ import annotations

import pydantic
import pytest

from nostrpool.models import UnsignedEvent
from nostrpool.nips import ProfileMetadata


class TestParse:
    """Lenient parsing of untrusted content."""

    def test_known_string_fields_kept(self):
        profile = ProfileMetadata.from_dict({"name": "alice", "nip05": "alice@example.com"})
        assert profile.name == "alice"
        assert profile.nip05 == "alice@example.com"

    def test_unknown_and_mistyped_dropped(self):
        profile = ProfileMetadata.from_dict({"name": 5, "about": ["x"], "pets": "cat"})
        assert profile == ProfileMetadata()

    def test_parse_non_dict(self):
        assert ProfileMetadata.parse(["name"]) == {}

    def test_from_json(self):
        profile = ProfileMetadata.from_json('{"display_name":"Alice","website":"https://a.io"}')
        assert profile.display_name == "Alice"
        assert profile.website == "https://a.io"

    def test_from_json_not_object(self):
        with pytest.raises(ValueError, match="JSON object"):
            ProfileMetadata.from_json('["alice"]')

    def test_from_json_invalid(self):
        with pytest.raises(ValueError):
            ProfileMetadata.from_json("{broken")


class TestFromEvent:
    def test_kind_zero(self, keys):
        event = UnsignedEvent(kind=0, content='{"name":"alice"}').sign(keys)
        assert ProfileMetadata.from_event(event).name == "alice"

    def test_wrong_kind(self, note):
        with pytest.raises(ValueError, match="expected kind 0"):
            ProfileMetadata.from_event(note)


class TestSerialize:
    def test_to_dict_excludes_none(self):
        assert ProfileMetadata(name="a").to_dict() == {"name": "a"}

    def test_to_json_compact_utf8(self):
        assert ProfileMetadata(about="☕ lover").to_json() == '{"about":"☕ lover"}'

    def test_frozen(self):
        profile = ProfileMetadata(name="a")
        with pytest.raises(pydantic.ValidationError):
            profile.name = "b"  # type: ignore[misc]
