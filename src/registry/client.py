from __future__ import annotations

import logging
import re
from typing import Any, Dict, Optional

from pydantic import ValidationError

from common.errors import (
    InvalidEntryError,
    InvalidSignatureError,
    RegistryError,
    RegistryUnavailableError,
    RevisionConflictError,
)
from common.portal import PortalClient, PortalTransportError
from keys import KeyPair, verify
from locator.codec import entry_id as derive_entry_id

from .models import MAX_ENTRY_DATA_BYTES, MAX_REVISION, PointerRecord, signing_digest


REGISTRY_PATH = "/skynet/registry"

_CONFLICT_RE = re.compile(r"revision", re.IGNORECASE)

_log = logging.getLogger(__name__)


class RegistryClient(PortalClient):
    """
    Reads and writes signed registry entries on a Skynet-style portal.

    - `read()` returns the current `PointerRecord` or None when the slot has
      never been written. Every returned record has had its signature verified.
    - `write()` signs and submits a new revision. The portal rejects revisions
      that are not strictly greater than the stored one, surfaced as
      `RevisionConflictError`; the caller must re-read and retry.
    - A write either fully succeeds or leaves the stored record untouched.
    """

    # --------------- Public API ---------------
    async def read(self, public_key: bytes, data_key: bytes) -> Optional[PointerRecord]:
        params = {
            "publickey": f"ed25519:{bytes(public_key).hex()}",
            "datakey": bytes(data_key).hex(),
        }
        try:
            resp = await self._request("GET", REGISTRY_PATH, params=params)
        except PortalTransportError as exc:
            raise RegistryUnavailableError(f"registry read failed: {exc}") from exc

        if resp.status_code == 404:
            return None
        if resp.status_code != 200:
            raise RegistryError(
                f"HTTP {resp.status_code} reading registry: {self._error_message(resp)}"
            )

        try:
            payload = resp.json()
        except ValueError as exc:
            raise InvalidSignatureError("registry returned a non-JSON entry") from exc
        record = self._parse_entry(payload, public_key=public_key, data_key=data_key)
        if not verify(record.public_key, record.digest(), record.signature):
            raise InvalidSignatureError(
                f"registry entry for {record.entry_id.hex()} failed signature verification"
            )
        return record

    async def write(
        self,
        key_pair: KeyPair,
        data_key: bytes,
        entry_data: bytes,
        revision: int,
    ) -> bytes:
        """Submit a signed entry at `revision`; returns the entry id on success."""
        if not 0 <= revision <= MAX_REVISION:
            raise InvalidEntryError(f"revision {revision} does not fit in a u64")
        if len(entry_data) > MAX_ENTRY_DATA_BYTES:
            raise InvalidEntryError(
                f"entry data is {len(entry_data)} bytes; registry limit is {MAX_ENTRY_DATA_BYTES}"
            )

        signature = key_pair.sign(signing_digest(data_key, entry_data, revision))
        body: Dict[str, Any] = {
            "publickey": {"algorithm": "ed25519", "key": list(key_pair.public_key)},
            "datakey": bytes(data_key).hex(),
            "revision": revision,
            "data": list(entry_data),
            "signature": list(signature),
        }
        try:
            resp = await self._request("POST", REGISTRY_PATH, json=body)
        except PortalTransportError as exc:
            raise RegistryUnavailableError(f"registry write failed: {exc}") from exc

        if resp.status_code in (200, 204):
            eid = derive_entry_id(key_pair.public_key, data_key)
            _log.debug("registry entry %s now at revision %d", eid.hex(), revision)
            return eid

        message = self._error_message(resp)
        if resp.status_code == 409 or (resp.status_code == 400 and _CONFLICT_RE.search(message)):
            raise RevisionConflictError(f"revision {revision} rejected: {message}")
        raise RegistryError(f"HTTP {resp.status_code} writing registry: {message}")

    # --------------- Internal ---------------
    @staticmethod
    def _parse_entry(payload: Any, *, public_key: bytes, data_key: bytes) -> PointerRecord:
        # An entry we cannot parse is an entry we cannot verify
        if not isinstance(payload, dict):
            raise InvalidSignatureError("registry returned a malformed entry")
        try:
            return PointerRecord(
                public_key=bytes(public_key),
                data_key=bytes(data_key),
                revision=int(payload["revision"]),
                entry_data=bytes.fromhex(payload.get("data") or ""),
                signature=bytes.fromhex(payload["signature"]),
            )
        except (KeyError, TypeError, ValueError, ValidationError) as exc:
            raise InvalidSignatureError(f"registry returned a malformed entry: {exc}") from exc


__all__ = ["RegistryClient"]
