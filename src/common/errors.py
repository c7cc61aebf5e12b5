from __future__ import annotations

from typing import Optional, Tuple


class PersistenceError(RuntimeError):
    """
    Base error for the registry-backed persistence layer.

    Every error carries optional context so a failure can be diagnosed without
    retrying blindly:
    - `phase`: which step of save/load raised it (e.g. "upload", "registry-read").
    - `tags`: the (keypair tag, data key tag) slot being operated on.

    `retryable` marks kinds that a caller may retry by repeating the whole
    operation. Only `RevisionConflictError` is retried internally.
    """

    retryable = False

    def __init__(
        self,
        message: str = "",
        *,
        phase: Optional[str] = None,
        tags: Optional[Tuple[str, str]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.phase = phase
        self.tags = tags

    def annotate(self, *, phase: str, tags: Tuple[str, str]) -> "PersistenceError":
        # Keep the innermost phase; it is the most specific
        if self.phase is None:
            self.phase = phase
        if self.tags is None:
            self.tags = tags
        return self

    def __str__(self) -> str:
        ctx = []
        if self.phase:
            ctx.append(f"phase={self.phase}")
        if self.tags:
            ctx.append(f"tags={self.tags[0]}/{self.tags[1]}")
        if not ctx:
            return self.message
        return f"{self.message} [{', '.join(ctx)}]"


class InvalidSecretError(PersistenceError):
    """Root secret has the wrong type, length or encoding."""


class MalformedLocatorError(PersistenceError):
    """Skylink or entry id does not have the expected length, charset or version."""


class SerializationError(PersistenceError):
    """Document could not be turned into bytes. Fatal."""


class DeserializationError(PersistenceError):
    """Stored bytes do not match the expected schema. Fatal."""


class UploadError(PersistenceError):
    """Upload rejected by the portal or failed in transport."""

    retryable = True


class DownloadError(PersistenceError):
    """Download failed for a reason other than missing content."""

    retryable = True


class NotFoundError(DownloadError):
    """Nothing is stored behind the locator (e.g. a slot never saved)."""

    retryable = False


class RegistryError(PersistenceError):
    """Registry rejected a request."""


class RegistryUnavailableError(RegistryError):
    """Registry could not be reached, or kept failing after retries."""

    retryable = True


class InvalidEntryError(RegistryError, ValueError):
    """Entry cannot be written: revision outside u64 or data over the size limit."""


class InvalidSignatureError(RegistryError):
    """Registry entry failed verification against its public key."""


class RevisionConflictError(RegistryError):
    """Write revision was not strictly greater than the stored revision."""

    retryable = True


class ConcurrentModificationError(PersistenceError):
    """Revision conflicts persisted after the bounded retry budget."""


__all__ = [
    "PersistenceError",
    "InvalidSecretError",
    "MalformedLocatorError",
    "SerializationError",
    "DeserializationError",
    "UploadError",
    "DownloadError",
    "NotFoundError",
    "RegistryError",
    "RegistryUnavailableError",
    "InvalidEntryError",
    "InvalidSignatureError",
    "RevisionConflictError",
    "ConcurrentModificationError",
]
