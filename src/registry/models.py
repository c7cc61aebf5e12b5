from __future__ import annotations

import hashlib
import struct

from pydantic import BaseModel, ConfigDict, Field, field_validator

from locator.codec import entry_id


MAX_REVISION = 2**64 - 1
# Portal-enforced cap on registry entry payloads
MAX_ENTRY_DATA_BYTES = 70


def signing_digest(data_key: bytes, entry_data: bytes, revision: int) -> bytes:
    """Message signed for a registry entry: blake2b-256(datakey ‖ len-prefixed data ‖ revision)."""
    h = hashlib.blake2b(digest_size=32)
    h.update(bytes(data_key))
    h.update(struct.pack("<Q", len(entry_data)))
    h.update(bytes(entry_data))
    h.update(struct.pack("<Q", revision))
    return h.digest()


class PointerRecord(BaseModel):
    """
    One signed registry entry.

    Identified by (public_key, data_key). The portal keeps at most one record
    per pair and only accepts a replacement with a strictly higher revision.

    Fields
    - public_key: 32-byte ed25519 public key of the slot owner.
    - data_key: 32-byte secondary key distinguishing documents under one key.
    - revision: monotonically increasing u64, starting at 0.
    - entry_data: opaque payload; here the 34-byte binary skylink of the document.
    - signature: ed25519 signature over `signing_digest(...)`.
    """

    model_config = ConfigDict(frozen=True)

    public_key: bytes = Field(..., min_length=32, max_length=32)
    data_key: bytes = Field(..., min_length=32, max_length=32)
    revision: int = Field(..., ge=0, le=MAX_REVISION)
    entry_data: bytes = Field(default=b"", max_length=MAX_ENTRY_DATA_BYTES)
    signature: bytes = Field(default=b"", description="64-byte ed25519 signature")

    @field_validator("signature")
    @classmethod
    def _signature_length(cls, v: bytes) -> bytes:
        if v and len(v) != 64:
            raise ValueError("signature must be 64 bytes")
        return v

    @property
    def entry_id(self) -> bytes:
        return entry_id(self.public_key, self.data_key)

    def digest(self) -> bytes:
        return signing_digest(self.data_key, self.entry_data, self.revision)
