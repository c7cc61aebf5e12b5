from __future__ import annotations

import base64
import hashlib
import json
from typing import Dict, List, Optional, Tuple

import httpx

from keys import verify
from locator.codec import encode_direct, entry_id, is_resolver, resolver_entry_id
from registry.models import signing_digest


PORTAL = "https://portal.test"


def _skylink_for(payload: bytes) -> str:
    raw = b"\x00\x00" + hashlib.blake2b(payload, digest_size=32).digest()
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def _multipart_file(request: httpx.Request) -> bytes:
    ctype = request.headers["content-type"]
    boundary = ctype.split("boundary=", 1)[1].encode("ascii")
    for part in request.content.split(b"--" + boundary):
        if b'name="file"' in part:
            body = part.split(b"\r\n\r\n", 1)[1]
            return body[:-2]  # trailing CRLF before the next boundary
    raise AssertionError("no file part in upload")


class FakePortal:
    """
    In-memory Skynet-style portal served through `httpx.MockTransport`.

    - POST /skynet/skyfile stores the uploaded file and returns its skylink.
    - GET/POST /skynet/registry read and write entries, rejecting stale
      revisions and bad signatures like the real registry does.
    - GET /<skylink> serves direct skylinks and resolves resolver skylinks.
    - `fail_next` holds status codes returned (and consumed) before normal handling.
    - `fail_after_write` holds status codes returned (and consumed) after a
      registry write has been applied, as when the response is lost.
    """

    def __init__(self) -> None:
        self.blobs: Dict[str, bytes] = {}
        self.entries: Dict[Tuple[str, str], Dict[str, object]] = {}
        self.fail_next: List[int] = []
        self.fail_after_write: List[int] = []
        self.requests: List[httpx.Request] = []

    def client(self) -> httpx.AsyncClient:
        # Looked up per request so tests can swap the handler mid-scenario
        return httpx.AsyncClient(
            transport=httpx.MockTransport(lambda request: self.handler(request)), timeout=5.0
        )

    # -------- helpers for assertions --------
    def entry(self, public_key: bytes, data_key: bytes) -> Optional[Dict[str, object]]:
        return self.entries.get((public_key.hex(), data_key.hex()))

    # -------- routing --------
    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_next:
            return httpx.Response(self.fail_next.pop(0), json={"message": "injected failure"})

        path = request.url.path
        if path == "/skynet/skyfile" and request.method == "POST":
            return self._upload(request)
        if path == "/skynet/registry" and request.method == "GET":
            return self._registry_read(request)
        if path == "/skynet/registry" and request.method == "POST":
            resp = self._registry_write(request)
            if resp.status_code == 204 and self.fail_after_write:
                return httpx.Response(self.fail_after_write.pop(0), json={"message": "bad gateway"})
            return resp
        if request.method == "GET":
            return self._download(path.lstrip("/"))
        return httpx.Response(405)

    def _upload(self, request: httpx.Request) -> httpx.Response:
        payload = _multipart_file(request)
        skylink = _skylink_for(payload)
        self.blobs[skylink] = payload
        return httpx.Response(200, json={"skylink": skylink, "merkleroot": "", "bitfield": 0})

    def _registry_read(self, request: httpx.Request) -> httpx.Response:
        pub = request.url.params["publickey"].split(":", 1)[1]
        dk = request.url.params["datakey"]
        item = self.entries.get((pub, dk))
        if item is None:
            return httpx.Response(404, json={"message": "registry entry not found"})
        return httpx.Response(
            200,
            json={
                "data": item["data"].hex(),  # type: ignore[union-attr]
                "revision": item["revision"],
                "signature": item["signature"].hex(),  # type: ignore[union-attr]
                "type": 1,
            },
        )

    def _registry_write(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        pub = bytes(body["publickey"]["key"])
        dk = bytes.fromhex(body["datakey"])
        data = bytes(body["data"])
        sig = bytes(body["signature"])
        revision = int(body["revision"])

        if not verify(pub, signing_digest(dk, data, revision), sig):
            return httpx.Response(400, json={"message": "invalid signature"})
        current = self.entries.get((pub.hex(), dk.hex()))
        if current is not None and revision <= int(current["revision"]):  # type: ignore[arg-type]
            return httpx.Response(
                400, json={"message": "unable to update the registry: provided revision number is invalid"}
            )
        self.entries[(pub.hex(), dk.hex())] = {
            "revision": revision,
            "data": data,
            "signature": sig,
            "public_key": pub,
            "data_key": dk,
        }
        return httpx.Response(204)

    def _download(self, skylink: str) -> httpx.Response:
        if is_resolver(skylink):
            target = resolver_entry_id(skylink)
            for item in self.entries.values():
                if entry_id(item["public_key"], item["data_key"]) == target:  # type: ignore[arg-type]
                    skylink = encode_direct(item["data"])  # type: ignore[arg-type]
                    break
            else:
                return httpx.Response(404, json={"message": "unable to resolve skylink"})
        payload = self.blobs.get(skylink)
        if payload is None:
            return httpx.Response(404, json={"message": "not found"})
        return httpx.Response(200, content=payload)
