"""Pure conversions between skylinks, their binary form, and registry entry ids."""

from .codec import (
    decode_any,
    decode_direct,
    encode_direct,
    entry_id,
    format_url,
    is_resolver,
    resolver_entry_id,
    resolver_locator,
)

__all__ = [
    "decode_any",
    "decode_direct",
    "encode_direct",
    "entry_id",
    "format_url",
    "is_resolver",
    "resolver_entry_id",
    "resolver_locator",
]
