from __future__ import annotations

import base64
import struct
from dataclasses import dataclass
from typing import Tuple

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)
from cryptography.hazmat.primitives.kdf.hkdf import HKDF
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat

from common.errors import InvalidSecretError


SEED_BYTES = 16
PUBLIC_KEY_BYTES = 32
SECRET_KEY_BYTES = 64
DATA_KEY_BYTES = 32
SIGNATURE_BYTES = 64

# Domain separation for the two HKDF uses
REGISTRY_KEYS_SALT = b"registry-entry-keys"
CONTENT_KEY_SALT = b"registry-content-key"


@dataclass(frozen=True)
class KeyPair:
    """
    Ed25519 key pair for one registry slot.

    `secret_key` follows the libsodium layout: 32-byte seed followed by the
    32-byte public key. It never leaves the process; it only signs writes.
    """

    public_key: bytes
    secret_key: bytes

    def __repr__(self) -> str:
        return f"KeyPair(public_key={self.public_key.hex()})"

    def sign(self, message: bytes) -> bytes:
        private = Ed25519PrivateKey.from_private_bytes(self.secret_key[:32])
        return private.sign(message)


def _check_seed(seed: bytes) -> None:
    if not isinstance(seed, (bytes, bytearray)):
        raise InvalidSecretError(f"seed must be bytes, got {type(seed).__name__}")
    if len(seed) != SEED_BYTES:
        raise InvalidSecretError(
            f"seed has the wrong length: expected {SEED_BYTES} bytes, got {len(seed)}"
        )


def _tag_info(keypair_tag: str, datakey_tag: str) -> bytes:
    # Length-prefixed so ("ab", "c") and ("a", "bc") never collide
    out = b""
    for tag in (keypair_tag, datakey_tag):
        if not isinstance(tag, str) or not tag:
            raise ValueError("tags must be non-empty strings")
        raw = tag.encode("utf-8")
        out += struct.pack("<Q", len(raw)) + raw
    return out


def _hkdf(seed: bytes, *, salt: bytes, info: bytes, length: int) -> bytes:
    return HKDF(
        algorithm=hashes.SHA512(),
        length=length,
        salt=salt,
        info=info,
    ).derive(bytes(seed))


def derive(seed: bytes, keypair_tag: str, datakey_tag: str) -> Tuple[KeyPair, bytes]:
    """
    Derive the registry key pair and data key for a (keypair_tag, datakey_tag) slot.

    Both outputs come from one HKDF-SHA512 expansion over both tags, so changing
    either tag changes both the key pair and the data key. Pure and deterministic:
    the same seed and tags reproduce the same identity across restarts.

    Raises InvalidSecretError if `seed` is not 16 bytes.
    """
    _check_seed(seed)
    okm = _hkdf(
        seed,
        salt=REGISTRY_KEYS_SALT,
        info=_tag_info(keypair_tag, datakey_tag),
        length=32 + DATA_KEY_BYTES,
    )
    private = Ed25519PrivateKey.from_private_bytes(okm[:32])
    public_key = private.public_key().public_bytes(Encoding.Raw, PublicFormat.Raw)
    key_pair = KeyPair(public_key=public_key, secret_key=okm[:32] + public_key)
    return key_pair, okm[32:]


def derive_content_key(seed: bytes, keypair_tag: str, datakey_tag: str) -> bytes:
    """Fernet key (urlsafe base64, 32 bytes) for encrypting the slot's document at rest."""
    _check_seed(seed)
    raw = _hkdf(
        seed,
        salt=CONTENT_KEY_SALT,
        info=_tag_info(keypair_tag, datakey_tag),
        length=32,
    )
    return base64.urlsafe_b64encode(raw)


def verify(public_key: bytes, message: bytes, signature: bytes) -> bool:
    """Return True if `signature` is a valid ed25519 signature of `message`."""
    if len(public_key) != PUBLIC_KEY_BYTES or len(signature) != SIGNATURE_BYTES:
        return False
    try:
        Ed25519PublicKey.from_public_bytes(public_key).verify(signature, message)
    except InvalidSignature:
        return False
    return True
