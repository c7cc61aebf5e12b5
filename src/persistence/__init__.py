"""
Registry-backed persistence for small mutable documents.

A document is stored as an immutable blob; a signed registry entry derived
from the root seed and two tags points at the latest blob, and a resolver
skylink built from that entry always fetches the current version.
"""

from .coordinator import PersistenceCoordinator
from .serializers import JsonSerializer, ModelSerializer

__all__ = ["PersistenceCoordinator", "JsonSerializer", "ModelSerializer"]
