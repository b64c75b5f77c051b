"""
Unit tests for models.keys module.

Tests:
- Keys construction from raw bytes, hex and nsec
- BIP-340 deterministic signing (test vector 0)
- verify_signature() never raising
- NIP-19 bech32 helpers (npub / nsec / note)
- Invalid key handling
"""

import pytest

from nostrpool.exceptions import InvalidPublicKeyError, InvalidSecretKeyError, KeyMaterialError
from nostrpool.models import (
    Keys,
    decode_bech32,
    encode_bech32,
    event_id_to_bech32,
    parse_public_key,
    public_key_to_bech32,
    verify_signature,
)


VECTOR0_SECRET = "0000000000000000000000000000000000000000000000000000000000000003"  # pragma: allowlist secret
VECTOR0_PUBKEY = "f9308a019258c31049344f85f89d5229b531c845836f99b08601f113bce036f9"
VECTOR0_SIG = (
    "e907831f80848d1069a5371b402410364bdf1c5f8307b0084c55f1ce2dca8215"
    "25f66a4a85ea8b71e482a74f382d2ce5ebeee8fdb2172f477df4900d310536c0"
)

# Test keys from NIP-19 (DO NOT USE IN PRODUCTION)
VALID_HEX_KEY = "67dea2ed018072d675f5415ecfaed7d2597555e202d85b3d65ea4e58d2d92ffa"  # pragma: allowlist secret
VALID_NSEC_KEY = "nsec1vl029mgpspedva04g90vltkh6fvh240zqtv9k0t9af8935ke9laqsnlfe5"  # pragma: allowlist secret
NIP19_PUBKEY = "7e7e9c42a91bfef19fa929e5fda1b72e0ebc1a4c1141673e2794234d86addf4e"
NIP19_NPUB = "npub10elfcs4fr0l0r8af98jlmgdh9c8tcxjvz9qkw038js35mp4dma8qzvjptg"

CURVE_ORDER = "fffffffffffffffffffffffffffffffebaaedce6af48a03bbfd25e8cd0364141"


class TestGenerate:
    """Keys.generate() class method."""

    def test_returns_keys_instance(self):
        assert isinstance(Keys.generate(), Keys)

    def test_generates_unique_keys(self):
        assert Keys.generate().public_key() != Keys.generate().public_key()

    def test_public_key_is_lower_hex(self):
        pubkey = Keys.generate().public_key()
        assert len(pubkey) == 64
        assert pubkey == pubkey.lower()
        int(pubkey, 16)


class TestConstruction:
    """Keys(secret) and its validation."""

    def test_vector0_public_key(self):
        keys = Keys(bytes.fromhex(VECTOR0_SECRET))
        assert keys.public_key() == VECTOR0_PUBKEY

    def test_from_secret(self):
        assert Keys.from_secret(bytes.fromhex(VECTOR0_SECRET)).public_key() == VECTOR0_PUBKEY

    def test_zero_secret_rejected(self):
        with pytest.raises(InvalidSecretKeyError):
            Keys(bytes(32))

    def test_secret_equal_to_order_rejected(self):
        with pytest.raises(InvalidSecretKeyError):
            Keys(bytes.fromhex(CURVE_ORDER))

    def test_short_secret_rejected(self):
        with pytest.raises(InvalidSecretKeyError, match="32 bytes"):
            Keys(b"\x01" * 31)

    def test_non_bytes_rejected(self):
        with pytest.raises(InvalidSecretKeyError):
            Keys(VECTOR0_SECRET)  # type: ignore[arg-type]

    def test_is_value_error(self):
        with pytest.raises(ValueError):
            Keys(bytes(32))

    def test_repr_hides_secret(self):
        keys = Keys.parse(VALID_HEX_KEY)
        assert VALID_HEX_KEY not in repr(keys)
        assert keys.public_key() in repr(keys)

    def test_equality_by_secret(self):
        assert Keys.parse(VALID_HEX_KEY) == Keys.parse(VALID_NSEC_KEY)

    def test_frozen(self):
        keys = Keys.generate()
        with pytest.raises(AttributeError):
            keys.secret = bytes(32)  # type: ignore[misc]


class TestParse:
    """Keys.parse() from hex and nsec."""

    def test_parse_hex(self):
        assert Keys.parse(VALID_HEX_KEY).secret_hex() == VALID_HEX_KEY

    def test_parse_uppercase_hex(self):
        assert Keys.parse(VALID_HEX_KEY.upper()).secret_hex() == VALID_HEX_KEY

    def test_parse_nsec(self):
        assert Keys.parse(VALID_NSEC_KEY).secret_hex() == VALID_HEX_KEY

    def test_parse_strips_whitespace(self):
        assert Keys.parse(f"  {VALID_NSEC_KEY}\n").secret_hex() == VALID_HEX_KEY

    def test_to_bech32(self):
        assert Keys.parse(VALID_HEX_KEY).to_bech32() == VALID_NSEC_KEY

    @pytest.mark.parametrize(
        "value",
        [
            "",
            "not-a-key",
            "abcd",
            VALID_HEX_KEY + "00",
            "nsec1invalid",
            NIP19_NPUB,
        ],
    )
    def test_invalid_strings(self, value):
        with pytest.raises(InvalidSecretKeyError):
            Keys.parse(value)

    def test_invalid_raises_key_material_error(self):
        with pytest.raises(KeyMaterialError):
            Keys.parse("zz")


class TestSign:
    """Deterministic BIP-340 signing."""

    def test_vector0_signature(self):
        keys = Keys.parse(VECTOR0_SECRET)
        assert keys.sign(bytes(32)).hex() == VECTOR0_SIG

    def test_signing_is_deterministic(self):
        keys = Keys.generate()
        digest = bytes(range(32))
        assert keys.sign(digest) == keys.sign(digest)

    def test_signature_length(self):
        assert len(Keys.generate().sign(bytes(32))) == 64

    @pytest.mark.parametrize("length", [0, 31, 33, 64])
    def test_wrong_digest_length(self, length):
        with pytest.raises(ValueError, match="32 bytes"):
            Keys.generate().sign(bytes(length))


class TestVerifySignature:
    """verify_signature() accepts hex or bytes and never raises."""

    def test_vector0_verifies(self):
        assert verify_signature(VECTOR0_PUBKEY, bytes(32), VECTOR0_SIG) is True

    def test_bytes_arguments(self):
        assert verify_signature(bytes.fromhex(VECTOR0_PUBKEY), bytes(32), bytes.fromhex(VECTOR0_SIG))

    def test_roundtrip_with_generated_key(self):
        keys = Keys.generate()
        digest = b"\x42" * 32
        assert verify_signature(keys.public_key(), digest, keys.sign(digest))

    def test_wrong_digest(self):
        assert verify_signature(VECTOR0_PUBKEY, b"\x01" * 32, VECTOR0_SIG) is False

    def test_wrong_pubkey(self):
        other = Keys.parse(VALID_HEX_KEY).public_key()
        assert verify_signature(other, bytes(32), VECTOR0_SIG) is False

    def test_flipped_signature_bit(self):
        sig = bytearray(bytes.fromhex(VECTOR0_SIG))
        sig[-1] ^= 0x01
        assert verify_signature(VECTOR0_PUBKEY, bytes(32), bytes(sig)) is False

    @pytest.mark.parametrize(
        ("pubkey", "sig"),
        [
            ("zz" * 32, VECTOR0_SIG),
            (VECTOR0_PUBKEY, "zz" * 64),
            (VECTOR0_PUBKEY[:-2], VECTOR0_SIG),
            (VECTOR0_PUBKEY, VECTOR0_SIG[:-2]),
            ("ff" * 32, VECTOR0_SIG),
        ],
    )
    def test_malformed_inputs_return_false(self, pubkey, sig):
        assert verify_signature(pubkey, bytes(32), sig) is False

    def test_short_digest_returns_false(self):
        assert verify_signature(VECTOR0_PUBKEY, bytes(31), VECTOR0_SIG) is False


class TestBech32:
    """NIP-19 helpers."""

    def test_npub_vector(self):
        assert public_key_to_bech32(NIP19_PUBKEY) == NIP19_NPUB

    def test_parse_public_key_from_npub(self):
        assert parse_public_key(NIP19_NPUB) == NIP19_PUBKEY

    def test_parse_public_key_from_uppercase_hex(self):
        assert parse_public_key(NIP19_PUBKEY.upper()) == NIP19_PUBKEY

    def test_keys_public_key_bech32(self):
        keys = Keys.parse(VECTOR0_SECRET)
        assert parse_public_key(keys.public_key_bech32()) == VECTOR0_PUBKEY

    def test_note_prefix(self):
        encoded = event_id_to_bech32("ab" * 32)
        assert encoded.startswith("note1")
        assert decode_bech32(encoded, "note") == bytes.fromhex("ab" * 32)

    def test_encode_decode(self):
        assert decode_bech32(encode_bech32("npub", b"\x07" * 32), "npub") == b"\x07" * 32

    def test_decode_wrong_prefix(self):
        with pytest.raises(ValueError, match="expected 'nsec'"):
            decode_bech32(NIP19_NPUB, "nsec")

    def test_decode_bad_checksum(self):
        corrupted = NIP19_NPUB[:-1] + ("q" if NIP19_NPUB[-1] != "q" else "p")
        with pytest.raises(ValueError, match="invalid bech32"):
            decode_bech32(corrupted, "npub")

    @pytest.mark.parametrize("value", ["", "abc", "00" * 31, "ff" * 32, "npub1xyz"])
    def test_parse_public_key_invalid(self, value):
        with pytest.raises(InvalidPublicKeyError):
            parse_public_key(value)
