"""
BIP-340 Schnorr keypairs and NIP-19 bech32 encodings.

Wraps ``coincurve`` (libsecp256k1 bindings) to derive x-only public keys,
produce deterministic Schnorr signatures over 32-byte digests and verify
signatures received from relays. Public identities are the 32-byte
x-coordinate of the public point, rendered as 64 lowercase hex characters.

Signing always passes an all-zero auxiliary randomness, which makes
signatures reproducible for a given key and digest (the BIP-340 test
vectors are produced the same way).

Examples:
    ```python
    keys = Keys.generate()
    keys.public_key()          # 'f9308a01...'
    keys.to_bech32()           # 'nsec1...'
    sig = keys.sign(digest)
    verify_signature(keys.public_key(), digest, sig)  # True
    ```

See Also:
    [Event][nostrpool.models.event.Event]: Signed events validated with
        [verify_signature()][nostrpool.models.keys.verify_signature].
    [load_keys_from_env()][nostrpool.utils.keys.load_keys_from_env]: Loads
        a [Keys][nostrpool.models.keys.Keys] instance from the environment.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Final

import bech32
from coincurve import PrivateKey, PublicKeyXOnly

from nostrpool.exceptions import InvalidPublicKeyError, InvalidSecretKeyError


SECRET_KEY_LENGTH: Final[int] = 32
PUBLIC_KEY_LENGTH: Final[int] = 32
SIGNATURE_LENGTH: Final[int] = 64
DIGEST_LENGTH: Final[int] = 32

NSEC_PREFIX: Final[str] = "nsec"
NPUB_PREFIX: Final[str] = "npub"
NOTE_PREFIX: Final[str] = "note"

_ZERO_AUX: Final[bytes] = bytes(32)


# ---------------------------------------------------------------------------
# NIP-19 bech32
# ---------------------------------------------------------------------------


def encode_bech32(prefix: str, data: bytes) -> str:
    """Encode raw bytes as a bech32 string with the given human-readable prefix."""
    words = bech32.convertbits(data, 8, 5)
    if words is None:
        raise ValueError(f"cannot convert {len(data)} bytes to bech32 words")
    return bech32.bech32_encode(prefix, words)


def decode_bech32(value: str, expected_prefix: str) -> bytes:
    """Decode a bech32 string and check its human-readable prefix.

    Raises:
        ValueError: If the checksum is invalid or the prefix differs.
    """
    prefix, words = bech32.bech32_decode(value.strip())
    if prefix is None or words is None:
        raise ValueError(f"invalid bech32 string: {value!r}")
    if prefix != expected_prefix:
        raise ValueError(f"expected '{expected_prefix}' prefix, got '{prefix}'")
    data = bech32.convertbits(words, 5, 8, pad=False)
    if data is None:
        raise ValueError(f"invalid bech32 payload: {value!r}")
    return bytes(data)


def parse_public_key(value: str) -> str:
    """Normalize a public key given as 64-char hex or ``npub1...`` to lowercase hex.

    Raises:
        InvalidPublicKeyError: If the value does not decode to a valid
            x-only point.
    """
    text = value.strip()
    try:
        if text.startswith(NPUB_PREFIX + "1"):
            raw = decode_bech32(text, NPUB_PREFIX)
        else:
            raw = bytes.fromhex(text)
    except ValueError as e:
        raise InvalidPublicKeyError(f"cannot decode public key: {e}") from e

    if len(raw) != PUBLIC_KEY_LENGTH:
        raise InvalidPublicKeyError(f"public key must be {PUBLIC_KEY_LENGTH} bytes, got {len(raw)}")
    try:
        PublicKeyXOnly(raw)
    except ValueError as e:
        raise InvalidPublicKeyError(f"not a valid x-only public key: {text}") from e
    return raw.hex()


def public_key_to_bech32(pubkey: str) -> str:
    """Render a hex public key as ``npub1...``."""
    return encode_bech32(NPUB_PREFIX, bytes.fromhex(parse_public_key(pubkey)))


def event_id_to_bech32(event_id: str) -> str:
    """Render a hex event id as ``note1...``."""
    return encode_bech32(NOTE_PREFIX, bytes.fromhex(event_id))


# ---------------------------------------------------------------------------
# Keys
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Keys:
    """Immutable secp256k1 keypair.

    The secret scalar is held in ``secret`` and never appears in ``repr``.
    The x-only public key is derived once at construction.

    Attributes:
        secret: 32-byte secret scalar.

    Raises:
        InvalidSecretKeyError: If ``secret`` is not 32 bytes or is outside
            ``[1, n-1]``.
    """

    secret: bytes = field(repr=False)
    _public_key: str = field(init=False, compare=False)
    _private_key: PrivateKey = field(init=False, repr=False, compare=False, hash=False)

    def __post_init__(self) -> None:
        if not isinstance(self.secret, bytes) or len(self.secret) != SECRET_KEY_LENGTH:
            raise InvalidSecretKeyError(f"secret key must be {SECRET_KEY_LENGTH} bytes")
        try:
            private_key = PrivateKey(self.secret)
        except ValueError as e:
            raise InvalidSecretKeyError("secret key is out of range") from e

        object.__setattr__(self, "_private_key", private_key)
        object.__setattr__(self, "_public_key", private_key.public_key.format(compressed=True)[1:].hex())

    def __repr__(self) -> str:
        return f"Keys(public_key={self._public_key!r})"

    @classmethod
    def generate(cls) -> Keys:
        """Create a fresh keypair from the operating system CSPRNG."""
        return cls(PrivateKey().secret)

    @classmethod
    def from_secret(cls, secret: bytes) -> Keys:
        """Create a keypair from raw secret bytes."""
        return cls(secret)

    @classmethod
    def parse(cls, value: str) -> Keys:
        """Create a keypair from a 64-char hex secret or an ``nsec1...`` string.

        Raises:
            InvalidSecretKeyError: If the string cannot be decoded or the
                scalar is out of range.
        """
        text = value.strip()
        try:
            if text.startswith(NSEC_PREFIX + "1"):
                raw = decode_bech32(text, NSEC_PREFIX)
            else:
                raw = bytes.fromhex(text)
        except ValueError as e:
            raise InvalidSecretKeyError(f"cannot decode secret key: {e}") from e
        return cls(raw)

    def public_key(self) -> str:
        """Return the x-only public key as 64 lowercase hex characters."""
        return self._public_key

    def public_key_bech32(self) -> str:
        """Return the public key as ``npub1...``."""
        return encode_bech32(NPUB_PREFIX, bytes.fromhex(self._public_key))

    def secret_hex(self) -> str:
        """Return the secret key as 64 lowercase hex characters."""
        return self.secret.hex()

    def to_bech32(self) -> str:
        """Return the secret key as ``nsec1...``."""
        return encode_bech32(NSEC_PREFIX, self.secret)

    def sign(self, digest: bytes) -> bytes:
        """Produce a deterministic 64-byte BIP-340 signature over a 32-byte digest.

        Raises:
            ValueError: If ``digest`` is not exactly 32 bytes.
        """
        if len(digest) != DIGEST_LENGTH:
            raise ValueError(f"digest must be {DIGEST_LENGTH} bytes, got {len(digest)}")
        return self._private_key.sign_schnorr(digest, _ZERO_AUX)


def verify_signature(pubkey: str | bytes, digest: bytes, sig: str | bytes) -> bool:
    """Check a BIP-340 signature.

    Accepts hex strings or raw bytes for ``pubkey`` and ``sig``. Never
    raises: malformed lengths, bad hex and off-curve keys all yield False.
    """
    try:
        pub = bytes.fromhex(pubkey) if isinstance(pubkey, str) else pubkey
        raw_sig = bytes.fromhex(sig) if isinstance(sig, str) else sig
        if (
            len(pub) != PUBLIC_KEY_LENGTH
            or len(raw_sig) != SIGNATURE_LENGTH
            or len(digest) != DIGEST_LENGTH
        ):
            return False
        return bool(PublicKeyXOnly(pub).verify(raw_sig, digest))
    except (ValueError, TypeError):
        return False
