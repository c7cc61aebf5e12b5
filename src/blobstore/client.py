from __future__ import annotations

import logging
from typing import Optional
from uuid import uuid4

from common.errors import DownloadError, MalformedLocatorError, NotFoundError, UploadError
from common.portal import PortalClient, PortalTransportError
from locator.codec import decode_any, decode_direct


UPLOAD_PATH = "/skynet/skyfile"

_log = logging.getLogger(__name__)


def random_name() -> str:
    """Filename for an upload. Only needs to avoid accidental collisions."""
    return uuid4().hex


class BlobStoreClient(PortalClient):
    """
    Uploads immutable blobs and downloads them by skylink.

    - `upload()` returns the direct (v1) skylink of the stored payload.
    - `download()` accepts direct or resolver skylinks. Resolver skylinks are
      resolved by the portal to whatever the registry entry points at now.
    - A 404 on download is reported as `NotFoundError` so callers can treat
      "nothing saved yet" as an empty state rather than a fault.
    """

    async def upload(self, payload: bytes, name: Optional[str] = None) -> str:
        filename = name or random_name()
        files = {"file": (filename, bytes(payload), "application/octet-stream")}
        try:
            resp = await self._request(
                "POST", UPLOAD_PATH, params={"filename": filename}, files=files
            )
        except PortalTransportError as exc:
            raise UploadError(f"upload of {filename} failed: {exc}") from exc

        if resp.status_code != 200:
            raise UploadError(
                f"HTTP {resp.status_code} uploading {filename}: {self._error_message(resp)}"
            )
        try:
            body = resp.json()
            skylink = body["skylink"]
            decode_direct(skylink)
        except (ValueError, KeyError, TypeError, MalformedLocatorError) as exc:
            raise UploadError(f"portal returned no usable skylink for {filename}") from exc

        _log.debug("uploaded %s (%d bytes) to %s", filename, len(payload), skylink)
        return skylink

    async def download(self, skylink: str) -> bytes:
        decode_any(skylink)
        try:
            resp = await self._request("GET", f"/{skylink}")
        except PortalTransportError as exc:
            raise DownloadError(f"download of {skylink} failed: {exc}") from exc

        if resp.status_code == 404:
            raise NotFoundError(f"no content behind {skylink}")
        if resp.status_code != 200:
            raise DownloadError(
                f"HTTP {resp.status_code} downloading {skylink}: {self._error_message(resp)}"
            )
        return resp.content


__all__ = ["BlobStoreClient", "random_name"]
