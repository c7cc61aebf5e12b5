from __future__ import annotations

import base64

import pytest

from common.errors import MalformedLocatorError
from keys import derive
from locator import (
    decode_any,
    decode_direct,
    encode_direct,
    entry_id,
    format_url,
    is_resolver,
    resolver_entry_id,
    resolver_locator,
)


SEED = bytes(range(16))

# 34 raw bytes: v1 bitfield (low bits 00) followed by a merkle root
RAW_DIRECT = b"\x04\x00" + bytes(range(32))


def test_direct_skylink_encoding():
    skylink = encode_direct(RAW_DIRECT)

    assert len(skylink) == 46
    assert "=" not in skylink
    assert decode_direct(skylink) == RAW_DIRECT
    assert decode_any(skylink) == (1, RAW_DIRECT)
    assert not is_resolver(skylink)


def test_resolver_locator_format():
    kp, dk = derive(SEED, "moduleA", "list1")
    eid = entry_id(kp.public_key, dk)
    link = resolver_locator(eid)

    assert len(link) == 46
    assert link.startswith("AQ")  # bitfield 0x0001
    assert is_resolver(link)
    assert resolver_entry_id(link) == eid


def test_entry_id_is_pure_and_distinguishes_inputs():
    kp, dk = derive(SEED, "moduleA", "list1")
    _, dk2 = derive(SEED, "moduleA", "list2")

    assert entry_id(kp.public_key, dk) == entry_id(kp.public_key, dk)
    assert len(entry_id(kp.public_key, dk)) == 32
    assert entry_id(kp.public_key, dk) != entry_id(kp.public_key, dk2)


@pytest.mark.parametrize(
    "bad",
    [
        "",
        "too-short",
        "A" * 45,
        "A" * 47,
        "!" * 46,
        "AAAA+AAA/AAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAA",  # standard, not urlsafe, alphabet
    ],
)
def test_malformed_skylinks_rejected(bad):
    with pytest.raises(MalformedLocatorError):
        decode_direct(bad)
    assert not is_resolver(bad)


def test_decode_direct_rejects_resolver_links():
    link = resolver_locator(b"\x11" * 32)
    with pytest.raises(MalformedLocatorError):
        decode_direct(link)


def test_unsupported_version_rejected():
    raw = b"\x03\x00" + bytes(32)  # low bits 11 -> version 4
    link = base64.urlsafe_b64encode(raw).decode().rstrip("=")
    with pytest.raises(MalformedLocatorError):
        decode_any(link)


def test_encode_direct_validates_input():
    with pytest.raises(MalformedLocatorError):
        encode_direct(b"\x00" * 33)
    with pytest.raises(MalformedLocatorError):
        encode_direct(b"\x01\x00" + bytes(32))


def test_wrong_key_and_entry_lengths_rejected():
    with pytest.raises(MalformedLocatorError):
        entry_id(b"\x00" * 31, b"\x00" * 32)
    with pytest.raises(MalformedLocatorError):
        entry_id(b"\x00" * 32, b"\x00" * 33)
    with pytest.raises(MalformedLocatorError):
        resolver_locator(b"\x00" * 31)
    with pytest.raises(MalformedLocatorError):
        resolver_entry_id(encode_direct(RAW_DIRECT))


def test_format_url():
    link = encode_direct(RAW_DIRECT)
    assert format_url(None, link) == f"sia://{link}"
    assert format_url("https://siasky.net/", link) == f"https://siasky.net/{link}"
