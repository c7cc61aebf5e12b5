from __future__ import annotations

import asyncio
import logging
from contextlib import contextmanager
from typing import Any, Iterator, Optional, Tuple

import httpx
from cryptography.fernet import Fernet, InvalidToken

from blobstore.client import BlobStoreClient, random_name
from common.config import PortalSettings
from common.errors import (
    ConcurrentModificationError,
    DeserializationError,
    InvalidSecretError,
    PersistenceError,
    RevisionConflictError,
)
from keys.derive import SEED_BYTES, derive, derive_content_key
from locator.codec import decode_direct, entry_id, format_url, resolver_locator
from registry.client import RegistryClient

from .serializers import JsonSerializer


DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BACKOFF = 0.25

_log = logging.getLogger(__name__)


@contextmanager
def _phase(name: str, tags: Tuple[str, str]) -> Iterator[None]:
    """Attach the operation phase and slot to any persistence error raised inside."""
    try:
        yield
    except PersistenceError as err:
        err.annotate(phase=name, tags=tags)
        raise


class PersistenceCoordinator:
    """
    Saves and loads a document through an immutable blob plus a registry pointer.

    save(document, keypair_tag, datakey_tag)
      serialize -> (encrypt) -> upload -> derive keys -> read revision ->
      write revision+1 (or 0) -> return resolver skylink.
      A conflict whose stored entry already equals (revision, upload) counts
      as applied. Other revision conflicts are retried from the registry read, up to
      `max_attempts` times, before `ConcurrentModificationError` is raised.

    load(keypair_tag, datakey_tag)
      derive keys -> entry id -> resolver skylink -> download -> (decrypt) ->
      deserialize. The registry is not read; the portal resolves the pointer.
      `NotFoundError` means nothing has been saved for the slot yet.

    Collaborators are duck-typed: `blobs` needs `upload(payload, name)` and
    `download(skylink)`, `registry` needs `read(public_key, data_key)` and
    `write(key_pair, data_key, entry_data, revision)`; all coroutines.
    """

    def __init__(
        self,
        seed: bytes,
        *,
        blobs: Any,
        registry: Any,
        serializer: Any = None,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        backoff: float = DEFAULT_BACKOFF,
        encrypt_at_rest: bool = False,
        client: Optional[httpx.AsyncClient] = None,
        portal_url: Optional[str] = None,
    ) -> None:
        if not isinstance(seed, (bytes, bytearray)) or len(seed) != SEED_BYTES:
            raise InvalidSecretError(f"seed must be {SEED_BYTES} bytes")
        if max_attempts <= 0:
            raise ValueError("max_attempts must be > 0")
        self._seed = bytes(seed)
        self._blobs = blobs
        self._registry = registry
        self._serializer = serializer or JsonSerializer()
        self._max_attempts = max_attempts
        self._backoff = backoff
        self._encrypt_at_rest = encrypt_at_rest
        self._portal_url = portal_url
        # Shared HTTP pool owned by this coordinator (from_env only)
        self._client = client

    # -------- Construction helpers --------
    @classmethod
    def from_settings(
        cls,
        settings: PortalSettings,
        *,
        serializer: Any = None,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ) -> "PersistenceCoordinator":
        client = httpx.AsyncClient(timeout=settings.timeout)
        shared = dict(api_key=settings.api_key, timeout=settings.timeout, client=client)
        return cls(
            settings.seed,
            blobs=BlobStoreClient(settings.portal_url, **shared),
            registry=RegistryClient(settings.portal_url, **shared),
            serializer=serializer,
            max_attempts=max_attempts,
            encrypt_at_rest=settings.encrypt_at_rest,
            client=client,
            portal_url=settings.portal_url,
        )

    @classmethod
    def from_env(cls, *, serializer: Any = None) -> "PersistenceCoordinator":
        return cls.from_settings(PortalSettings.from_env(), serializer=serializer)

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()

    async def __aenter__(self) -> "PersistenceCoordinator":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    # -------- Core operations --------
    def locator_for(self, keypair_tag: str, datakey_tag: str) -> str:
        """Resolver skylink for a slot. Pure; no network round trip."""
        key_pair, data_key = derive(self._seed, keypair_tag, datakey_tag)
        return resolver_locator(entry_id(key_pair.public_key, data_key))

    async def save(self, document: Any, keypair_tag: str, datakey_tag: str) -> str:
        tags = (keypair_tag, datakey_tag)

        with _phase("serialize", tags):
            payload = self._encode(document, tags)

        _log.info("uploading %s + %s...", keypair_tag, datakey_tag)
        with _phase("upload", tags):
            skylink = await self._blobs.upload(payload, random_name())
        _log.info("upload successful")

        with _phase("derive", tags):
            key_pair, data_key = derive(self._seed, keypair_tag, datakey_tag)
        with _phase("encode-locator", tags):
            entry_data = decode_direct(skylink)

        last_conflict: Optional[RevisionConflictError] = None
        for attempt in range(self._max_attempts):
            with _phase("registry-read", tags):
                current = await self._registry.read(key_pair.public_key, data_key)
            revision = 0 if current is None else current.revision + 1

            _log.info("writing registry for %s + %s at revision %d...", keypair_tag, datakey_tag, revision)
            try:
                with _phase("registry-write", tags):
                    entry = await self._registry.write(key_pair, data_key, entry_data, revision)
                break
            except RevisionConflictError as exc:
                last_conflict = exc

            # A write retried after a lost response is rejected against itself
            with _phase("registry-read", tags):
                latest = await self._registry.read(key_pair.public_key, data_key)
            if latest is not None and latest.revision == revision and latest.entry_data == entry_data:
                _log.info("revision %d already holds this upload; write was applied", revision)
                entry = entry_id(key_pair.public_key, data_key)
                break

            _log.warning(
                "revision conflict for %s + %s (attempt %d/%d)",
                keypair_tag, datakey_tag, attempt + 1, self._max_attempts,
            )
            if attempt + 1 < self._max_attempts:
                await asyncio.sleep(self._backoff * (2 ** attempt))
        else:
            raise ConcurrentModificationError(
                f"registry revision kept moving after {self._max_attempts} attempts",
                phase="registry-write",
                tags=tags,
            ) from last_conflict

        with _phase("resolver-locator", tags):
            locator = resolver_locator(entry)
        _log.info("persisted to %s", format_url(self._portal_url, locator))
        return locator

    async def load(self, keypair_tag: str, datakey_tag: str) -> Any:
        tags = (keypair_tag, datakey_tag)

        with _phase("derive", tags):
            locator = self.locator_for(keypair_tag, datakey_tag)

        _log.info("downloading %s + %s from %s", keypair_tag, datakey_tag, locator)
        with _phase("download", tags):
            payload = await self._blobs.download(locator)

        with _phase("deserialize", tags):
            return self._decode(payload, tags)

    # -------- Internal --------
    def _fernet(self, tags: Tuple[str, str]) -> Fernet:
        return Fernet(derive_content_key(self._seed, *tags))

    def _encode(self, document: Any, tags: Tuple[str, str]) -> bytes:
        data = self._serializer.dumps(document)
        if self._encrypt_at_rest:
            data = self._fernet(tags).encrypt(data)
        return data

    def _decode(self, payload: bytes, tags: Tuple[str, str]) -> Any:
        if self._encrypt_at_rest:
            try:
                payload = self._fernet(tags).decrypt(payload)
            except InvalidToken as ex:
                raise DeserializationError("failed to decrypt document: invalid Fernet token") from ex
        return self._serializer.loads(payload)


__all__ = ["PersistenceCoordinator"]
