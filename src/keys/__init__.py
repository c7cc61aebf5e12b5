"""
Deterministic key material for registry slots.

A 16-byte root seed plus two tags yields an ed25519 key pair, a 32-byte data
key and (optionally) a Fernet content key. Nothing is cached or stored.
"""

from .derive import KeyPair, derive, derive_content_key, verify

__all__ = ["KeyPair", "derive", "derive_content_key", "verify"]
