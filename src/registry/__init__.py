"""
Signed, versioned pointer records on the portal registry.

`RegistryClient` talks to the portal; `PointerRecord` is the verified result.
"""

from .client import RegistryClient
from .models import MAX_ENTRY_DATA_BYTES, PointerRecord, signing_digest

__all__ = ["RegistryClient", "PointerRecord", "MAX_ENTRY_DATA_BYTES", "signing_digest"]
