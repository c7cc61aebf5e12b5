from __future__ import annotations

import base64
import hashlib
import re
import struct
from typing import Optional, Tuple

from common.errors import MalformedLocatorError


RAW_SKYLINK_BYTES = 34
SKYLINK_CHARS = 46
ENTRY_ID_BYTES = 32
KEY_BYTES = 32

# Low two bits of the bitfield hold (version - 1)
VERSION_DIRECT = 1
VERSION_RESOLVER = 2
RESOLVER_BITFIELD = 1

# Sia encoding of a SiaPublicKey: 16-byte algorithm specifier, then a
# length-prefixed key
_ED25519_SPECIFIER = b"ed25519".ljust(16, b"\x00")

_SKYLINK_RE = re.compile(r"^[A-Za-z0-9_-]{%d}$" % SKYLINK_CHARS)


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def _b64decode(skylink: str) -> bytes:
    if not isinstance(skylink, str) or not _SKYLINK_RE.match(skylink):
        raise MalformedLocatorError(f"skylink must be {SKYLINK_CHARS} base64url characters: {skylink!r}")
    return base64.urlsafe_b64decode(skylink + "==")


def _version(raw: bytes) -> int:
    (bitfield,) = struct.unpack("<H", raw[:2])
    return (bitfield & 0b11) + 1


def decode_any(skylink: str) -> Tuple[int, bytes]:
    """Decode a skylink of either version; returns (version, raw 34 bytes)."""
    raw = _b64decode(skylink)
    if len(raw) != RAW_SKYLINK_BYTES:
        raise MalformedLocatorError(f"skylink decodes to {len(raw)} bytes, expected {RAW_SKYLINK_BYTES}")
    version = _version(raw)
    if version not in (VERSION_DIRECT, VERSION_RESOLVER):
        raise MalformedLocatorError(f"unsupported skylink version {version}")
    if version == VERSION_RESOLVER and raw[:2] != struct.pack("<H", RESOLVER_BITFIELD):
        raise MalformedLocatorError("resolver skylink has unexpected bitfield")
    return version, raw


def encode_direct(raw: bytes) -> str:
    """Encode the 34-byte binary form of a v1 skylink as base64url."""
    if len(raw) != RAW_SKYLINK_BYTES:
        raise MalformedLocatorError(f"binary skylink must be {RAW_SKYLINK_BYTES} bytes, got {len(raw)}")
    if _version(raw) != VERSION_DIRECT:
        raise MalformedLocatorError("binary skylink is not a v1 (direct) skylink")
    return _b64encode(bytes(raw))


def decode_direct(skylink: str) -> bytes:
    """Decode a v1 skylink into the 34-byte form stored as registry entry data."""
    version, raw = decode_any(skylink)
    if version != VERSION_DIRECT:
        raise MalformedLocatorError(f"expected a direct (v1) skylink, got v{version}")
    return raw


def is_resolver(skylink: str) -> bool:
    try:
        version, _ = decode_any(skylink)
    except MalformedLocatorError:
        return False
    return version == VERSION_RESOLVER


def entry_id(public_key: bytes, data_key: bytes) -> bytes:
    """
    Registry entry id for (public_key, data_key).

    blake2b-256 over the Sia encoding of the ed25519 public key followed by the
    data key. Needs no registry round trip.
    """
    if len(public_key) != KEY_BYTES:
        raise MalformedLocatorError(f"public key must be {KEY_BYTES} bytes, got {len(public_key)}")
    if len(data_key) != KEY_BYTES:
        raise MalformedLocatorError(f"data key must be {KEY_BYTES} bytes, got {len(data_key)}")
    h = hashlib.blake2b(digest_size=ENTRY_ID_BYTES)
    h.update(_ED25519_SPECIFIER)
    h.update(struct.pack("<Q", len(public_key)))
    h.update(bytes(public_key))
    h.update(bytes(data_key))
    return h.digest()


def resolver_locator(entry: bytes) -> str:
    """Build the v2 (resolver) skylink that dereferences to the entry's current data."""
    if len(entry) != ENTRY_ID_BYTES:
        raise MalformedLocatorError(f"entry id must be {ENTRY_ID_BYTES} bytes, got {len(entry)}")
    return _b64encode(struct.pack("<H", RESOLVER_BITFIELD) + bytes(entry))


def resolver_entry_id(skylink: str) -> bytes:
    """Inverse of `resolver_locator`."""
    version, raw = decode_any(skylink)
    if version != VERSION_RESOLVER:
        raise MalformedLocatorError(f"expected a resolver (v2) skylink, got v{version}")
    return raw[2:]


def format_url(portal: Optional[str], skylink: str) -> str:
    """Human-facing link: `<portal>/<skylink>` when a portal is given, else `sia://<skylink>`."""
    if portal:
        return f"{portal.rstrip('/')}/{skylink}"
    return f"sia://{skylink}"
